"""Tests for account, DAO id and address validation."""

from unittest.mock import patch

import pytest

from errors import TransientFetchError, ValidationError
from validation import (
    is_valid_dao_id_format,
    is_valid_near_account,
    validate_chain_address,
    validate_dao_id,
)

IMPLICIT = "a" * 64


class TestNearAccounts:
    @pytest.mark.parametrize("account_id", ["alice.near", "bot.tg", "x.aurora", IMPLICIT, "B" * 64])
    def test_valid(self, account_id):
        assert is_valid_near_account(account_id)

    @pytest.mark.parametrize("account_id", ["", None, "alice.testnet", "a" * 63, 42])
    def test_invalid(self, account_id):
        assert not is_valid_near_account(account_id)

    def test_dao_id_format(self):
        assert is_valid_dao_id_format("treasury.sputnik-dao.near")
        assert not is_valid_dao_id_format(IMPLICIT)
        assert not is_valid_dao_id_format("Treasury.sputnik-dao.near")
        assert not is_valid_dao_id_format("treasury near")


class TestValidateDaoId:
    def test_existing_dao(self):
        with patch("validation.rpc.view_account", return_value={"amount": "1"}):
            assert validate_dao_id("  treasury.sputnik-dao.near ") == "treasury.sputnik-dao.near"

    def test_required(self):
        with pytest.raises(ValidationError, match="required"):
            validate_dao_id("  ")

    def test_wrong_suffix(self):
        with pytest.raises(ValidationError, match="sputnik-dao.near"):
            validate_dao_id("treasury.near")

    def test_missing_dao(self):
        with patch("validation.rpc.view_account", return_value=None):
            with pytest.raises(ValidationError, match="does not exist"):
                validate_dao_id("ghost.sputnik-dao.near")

    def test_rpc_outage_is_not_a_validation_error(self):
        with patch("validation.rpc.view_account", side_effect=TransientFetchError("rpc", "down")):
            with pytest.raises(TransientFetchError):
                validate_dao_id("treasury.sputnik-dao.near")


class TestChainAddresses:
    @pytest.mark.parametrize("chain,address", [
        ("btc", "bc1qar0srrr7xfkvy5l643lydnw9re59gtzzwf5mdq"),
        ("btc", "1BoatSLRHtKNngkdXEeobR76b53LETtpyT"),
        ("eth", "0x" + "a1" * 20),
        ("base", "0x" + "B2" * 20),
        ("sol", "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T"),
        ("doge", "D" + "8" * 33),
        ("xrp", "r" + "9" * 33),
        ("tron", "T" + "9" * 33),
        ("zec", "t1" + "a" * 33),
        ("ton", "anything"),
    ])
    def test_valid(self, chain, address):
        assert validate_chain_address(chain, address)

    @pytest.mark.parametrize("chain,address", [
        ("btc", "0x" + "a1" * 20),
        ("eth", "bc1qar0srrr7xfkvy5l643lydnw9re59gtzzwf5mdq"),
        ("eth", "0x123"),
        ("sol", "0OIl" * 10),
        ("ton", ""),
    ])
    def test_invalid(self, chain, address):
        assert not validate_chain_address(chain, address)
