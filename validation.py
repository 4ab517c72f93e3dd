"""
NEAR Treasury Dashboard - Input Validation
===========================================
NEAR account ids, Sputnik DAO ids and recipient addresses on other chains.
"""

import re

from config import SPUTNIK_DAO_SUFFIX
from errors import ValidationError
import rpc

HEX64 = re.compile(r"^[0-9a-fA-F]{64}$")
DAO_ID = re.compile(r"^[a-z0-9._-]+\.near$")
NEAR_SUFFIXES = (".near", ".aurora", ".tg")

ETH_LIKE = ("eth", "arb", "gnosis", "bera", "base", "pol", "bsc")
ADDRESS_PATTERNS = {
    "btc": re.compile(r"^(bc1|[13])[a-zA-HJ-NP-Z0-9]{25,39}$", re.IGNORECASE),
    "zec": re.compile(r"^(t1|t3)[a-zA-HJ-NP-Z0-9]{33}$|^zc[a-z0-9]{76}$", re.IGNORECASE),
    "sol": re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$"),
    "doge": re.compile(r"^[DA][a-km-zA-HJ-NP-Z1-9]{33}$"),
    "xrp": re.compile(r"^r[1-9A-HJ-NP-Za-km-z]{33}$"),
    "tron": re.compile(r"^T[1-9A-HJ-NP-Za-km-z]{33}$"),
}
ADDRESS_PATTERNS.update({chain: re.compile(r"^0x[a-fA-F0-9]{40}$") for chain in ETH_LIKE})


def is_valid_near_account(account_id) -> bool:
    """Named (.near / .aurora / .tg) or implicit (64 hex chars) account."""
    if not account_id or not isinstance(account_id, str):
        return False
    return bool(HEX64.match(account_id)) or account_id.endswith(NEAR_SUFFIXES)


def is_valid_dao_id_format(dao_id) -> bool:
    if not dao_id or not isinstance(dao_id, str):
        return False
    return bool(DAO_ID.match(dao_id))


def validate_dao_id(dao_id) -> str:
    """Return the trimmed DAO id, or raise ValidationError.

    The account must exist on chain; an RPC outage propagates as
    TransientFetchError rather than being reported as a bad id.
    """
    dao_id = (dao_id or "").strip()
    if not dao_id:
        raise ValidationError("DAO ID is required")
    if not dao_id.endswith(SPUTNIK_DAO_SUFFIX):
        raise ValidationError(f"DAO ID must end with {SPUTNIK_DAO_SUFFIX}")
    if not is_valid_dao_id_format(dao_id):
        raise ValidationError(f"Invalid DAO ID: {dao_id}")
    if rpc.view_account(dao_id) is None:
        raise ValidationError(f"DAO {dao_id} does not exist")
    return dao_id


def validate_chain_address(blockchain: str, address: str) -> bool:
    """Whether ``address`` is a plausible recipient on ``blockchain``.

    Chains without a known address format only require a value.
    """
    pattern = ADDRESS_PATTERNS.get((blockchain or "").lower())
    if pattern is None:
        return bool(address)
    return bool(address) and bool(pattern.match(address))
