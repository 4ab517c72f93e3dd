"""Tests for the balance reconciliation engine."""

from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from balances import (
    aggregate_intents_assets,
    aggregate_staking_pools,
    compute_account_balance,
    ft_lockup_balance,
    reconcile_lockup_balance,
    released_sessions,
    staking_pool_balance,
    total_usd_balance,
)
from models import (
    AccountBalance,
    AggregatedIntentsAsset,
    AggregatedStaking,
    LockupAccount,
    StakingPoolBalance,
)

NEAR = 10 ** 24

yocto = st.integers(min_value=0, max_value=2 ** 128 - 1)
storage_bytes = st.integers(min_value=0, max_value=10 ** 9)
# Staked totals are sums of 2-decimal pool amounts
staked_near = st.integers(min_value=0, max_value=10 ** 12).map(lambda cents: Decimal(cents) / 100)


def _pool(pool_id, staked, unstaked, withdrawable):
    staked, unstaked, withdrawable = Decimal(staked), Decimal(unstaked), Decimal(withdrawable)
    return StakingPoolBalance(pool_id, staked, unstaked, withdrawable, staked + unstaked + withdrawable)


def _lockup(total, storage, vesting_locked, staked=Decimal(0)):
    return LockupAccount(
        contract_id="abc.lockup.near",
        state=None,
        vesting_locked=vesting_locked,
        near_balances=AccountBalance(total=total, available=max(0, total - storage), storage=storage),
        staked_balances=AggregatedStaking(staked=staked, total=staked),
    )


class TestComputeAccountBalance:
    def test_one_near_with_500_bytes(self):
        result = compute_account_balance({"amount": "1000000000000000000000000", "storageUsage": 500})
        assert result.storage == 5000000000000000000000
        assert result.total == 1000000000000000000000000
        assert result.available == 995000000000000000000000

    def test_accepts_rpc_field_name(self):
        result = compute_account_balance({"amount": str(NEAR), "storage_usage": 500})
        assert result.storage == 500 * 10 ** 19

    def test_absent_account_passes_through(self):
        assert compute_account_balance(None) is None

    def test_missing_fields_are_zero(self):
        result = compute_account_balance({})
        assert (result.total, result.available, result.storage) == (0, 0, 0)

    @given(total=yocto, usage=storage_bytes)
    def test_available_is_never_negative(self, total, usage):
        result = compute_account_balance({"amount": str(total), "storage_usage": usage})
        assert result.available >= 0
        if result.storage > total:
            assert result.available == 0
        else:
            assert result.available == total - result.storage

    def test_parsed_strings(self):
        result = compute_account_balance({"amount": "1000000000000000000000000", "storageUsage": 500})
        data = result.to_dict()
        assert data["totalParsed"] == "1.00"
        assert data["storageParsed"] == "0.01"
        assert data["availableParsed"] == "1.00"


class TestStakingPoolBalance:
    def test_pending_unstake(self):
        pool = staking_pool_balance("a.pool.near", str(10 * NEAR), str(5 * NEAR), False)
        assert pool.staked == Decimal("10.00")
        assert pool.unstaked == Decimal("5.00")
        assert pool.available_to_withdraw == 0
        assert pool.total == Decimal("15.00")

    def test_withdrawable_unstake(self):
        pool = staking_pool_balance("a.pool.near", str(10 * NEAR), str(5 * NEAR), True)
        assert pool.unstaked == 0
        assert pool.available_to_withdraw == Decimal("5.00")

    def test_missing_view_results_are_zero(self):
        pool = staking_pool_balance("a.pool.near", None, None, False)
        assert pool.total == 0

    def test_rounds_half_up_to_two_places(self):
        pool = staking_pool_balance("a.pool.near", "1005000000000000000000000", "0", False)
        assert pool.staked == Decimal("1.01")

    @given(staked=yocto, unstaked=yocto, available=st.booleans())
    def test_unstaked_and_withdrawable_are_exclusive(self, staked, unstaked, available):
        pool = staking_pool_balance("p", staked, unstaked, available)
        assert not (pool.unstaked > 0 and pool.available_to_withdraw > 0)
        assert pool.total == pool.staked + pool.unstaked + pool.available_to_withdraw


class TestAggregateStakingPools:
    def test_two_pools(self):
        pools = [
            StakingPoolBalance("a", Decimal("10"), Decimal("0"), Decimal("0"), Decimal("10")),
            StakingPoolBalance("b", Decimal("0"), Decimal("5"), Decimal("5"), Decimal("5")),
        ]
        assert aggregate_staking_pools(pools).to_dict() == {
            "staked": "10",
            "unstaked": "5",
            "total": "15",
            "availableToWithdraw": "5",
        }

    def test_no_pools_is_all_zero(self):
        result = aggregate_staking_pools([])
        assert result == AggregatedStaking()
        assert result.to_dict() == {"staked": "0", "unstaked": "0", "total": "0", "availableToWithdraw": "0"}

    @given(st.lists(
        st.tuples(staked_near, staked_near, st.booleans()),
        max_size=8,
    ).flatmap(lambda rows: st.tuples(st.just(rows), st.permutations(rows))))
    def test_order_does_not_matter(self, rows_and_permutation):
        rows, permuted = rows_and_permutation

        def build(items):
            return [
                _pool(f"p{i}", staked, 0 if ready else pending, pending if ready else 0)
                for i, (staked, pending, ready) in enumerate(items)
            ]

        assert aggregate_staking_pools(build(rows)) == aggregate_staking_pools(build(permuted))


class TestReconcileLockupBalance:
    def test_unvested_funds_are_locked(self):
        lockup = _lockup(total=100 * NEAR, storage=NEAR // 100, vesting_locked=60 * NEAR)
        result = reconcile_lockup_balance(lockup)
        assert result.locked == 60 * NEAR
        assert result.staked == 0
        assert result.storage == NEAR // 100
        assert result.available == 100 * NEAR - 60 * NEAR - NEAR // 100
        assert result.total == 100 * NEAR

    def test_locked_amount_is_compared_in_yocto(self):
        # 100 NEAR still locked by the contract, 40 NEAR of it staked
        lockup = _lockup(total=70 * NEAR, storage=0, vesting_locked=100 * NEAR, staked=Decimal("40"))
        result = reconcile_lockup_balance(lockup)
        assert result.staked == 40 * NEAR
        assert result.locked == 60 * NEAR
        assert result.total == 110 * NEAR
        assert result.available == 10 * NEAR

    def test_staked_covers_locked(self):
        lockup = _lockup(total=10 * NEAR, storage=0, vesting_locked=5 * NEAR, staked=Decimal("20"))
        result = reconcile_lockup_balance(lockup)
        assert result.locked == 0
        assert result.available == 10 * NEAR

    def test_explicit_vesting_locked_overrides_account(self):
        lockup = _lockup(total=10 * NEAR, storage=0, vesting_locked=0)
        result = reconcile_lockup_balance(lockup, vesting_locked=str(4 * NEAR))
        assert result.locked == 4 * NEAR
        assert result.contract_locked == 4 * NEAR

    def test_storage_absorbs_overshoot(self):
        lockup = _lockup(total=10 * NEAR, storage=NEAR, vesting_locked=9_500_000_000_000_000_000_000_000)
        result = reconcile_lockup_balance(lockup)
        assert result.available == 0
        assert result.storage == NEAR // 2
        assert result.locked + result.available + result.staked + result.storage == result.total

    def test_storage_never_goes_negative(self):
        lockup = _lockup(total=NEAR, storage=NEAR // 2, vesting_locked=2 * NEAR)
        result = reconcile_lockup_balance(lockup)
        assert result.storage == 0
        assert result.locked == NEAR
        assert result.available == 0

    @given(total=yocto, usage=storage_bytes, locked=yocto, staked=staked_near)
    def test_categories_sum_to_total(self, total, usage, locked, staked):
        balances = compute_account_balance({"amount": str(total), "storage_usage": usage})
        lockup = LockupAccount("x.lockup.near", None, locked, balances,
                               AggregatedStaking(staked=staked, total=staked))
        result = reconcile_lockup_balance(lockup)
        assert result.locked + result.available + result.staked + result.storage == result.total
        assert min(result.locked, result.available, result.staked, result.storage) >= 0

    @given(total=yocto, usage=storage_bytes, locked=yocto, staked=staked_near)
    def test_same_inputs_same_output(self, total, usage, locked, staked):
        balances = compute_account_balance({"amount": str(total), "storage_usage": usage})
        lockup = LockupAccount("x.lockup.near", None, locked, balances,
                               AggregatedStaking(staked=staked, total=staked))
        assert reconcile_lockup_balance(lockup).to_dict() == reconcile_lockup_balance(lockup).to_dict()


USDC_METADATA = {
    "nep141:usdc.eth": {"symbol": "USDC", "decimals": 6, "price": 1, "blockchain": "eth", "icon": "usdc.svg"},
}


class TestAggregateIntentsAssets:
    def test_duplicate_catalog_entries_count_once(self):
        owned = [{"token_id": "nep141:usdc.eth", "amount": "2500000"}]
        catalog = [
            {"intents_token_id": "nep141:usdc.eth", "chainName": "eth", "defuse_asset_identifier": "eth:1:0xa0b8"},
            {"intents_token_id": "nep141:usdc.eth", "chainName": "eth", "defuse_asset_identifier": "eth:1:0xa0b8"},
        ]
        assets = aggregate_intents_assets(owned, catalog, USDC_METADATA, {"eth": {"name": "Ethereum"}})
        assert len(assets) == 1
        usdc = assets[0]
        assert usdc.symbol == "USDC"
        assert len(usdc.networks) == 1
        assert usdc.total_amount == Decimal("2.5")
        assert usdc.total_usd == Decimal("2.5")
        network = usdc.networks[0]
        assert network.label == "Ethereum"
        assert network.chain_id == "eth:1"

    def test_same_symbol_on_two_chains_is_one_asset(self):
        metadata = dict(USDC_METADATA)
        metadata["nep141:usdc.sol"] = {"symbol": "usdc", "decimals": 6, "price": 1, "blockchain": "sol"}
        owned = [
            {"token_id": "nep141:usdc.eth", "amount": "1000000"},
            {"token_id": "nep141:usdc.sol", "amount": "3000000"},
        ]
        catalog = [
            {"intents_token_id": "nep141:usdc.eth", "chainName": "eth"},
            {"intents_token_id": "nep141:usdc.sol", "chainName": "sol"},
        ]
        assets = aggregate_intents_assets(owned, catalog, metadata, {})
        assert [a.symbol for a in assets] == ["USDC"]
        assert assets[0].total_amount == Decimal(4)
        assert [n.label for n in assets[0].networks] == ["ETH", "SOL"]

    def test_zero_balances_are_dropped(self):
        owned = [{"token_id": "nep141:usdc.eth", "amount": "0"}]
        catalog = [{"intents_token_id": "nep141:usdc.eth", "chainName": "eth"}]
        assert aggregate_intents_assets(owned, catalog, USDC_METADATA, {}) == []

    def test_catalog_tokens_not_owned_are_dropped(self):
        catalog = [{"intents_token_id": "nep141:usdc.eth", "chainName": "eth"}]
        assert aggregate_intents_assets([], catalog, USDC_METADATA, {}) == []

    def test_tokens_without_metadata_are_skipped(self):
        owned = [{"token_id": "nep141:mystery.near", "amount": "10"}]
        catalog = [{"intents_token_id": "nep141:mystery.near", "chainName": "near"}]
        assert aggregate_intents_assets(owned, catalog, {}, {}) == []

    def test_owned_token_missing_from_catalog_uses_metadata_chain(self):
        owned = [{"token_id": "nep141:usdc.eth", "amount": "1000000"}]
        assets = aggregate_intents_assets(owned, [], USDC_METADATA, {"eth": {"name": "Ethereum"}})
        assert assets[0].networks[0].label == "Ethereum"

    @given(st.lists(st.integers(min_value=0, max_value=10 ** 30), min_size=1, max_size=5))
    def test_no_zero_total_assets(self, amounts):
        metadata = {
            f"nep141:t{i}.near": {"symbol": f"T{i}", "decimals": 18, "blockchain": "near"}
            for i in range(len(amounts))
        }
        owned = [{"token_id": f"nep141:t{i}.near", "amount": str(a)} for i, a in enumerate(amounts)]
        catalog = [{"intents_token_id": f"nep141:t{i}.near"} for i in range(len(amounts))]
        assets = aggregate_intents_assets(owned, catalog, metadata, {})
        assert all(a.total_amount > 0 for a in assets)
        assert len(assets) == sum(1 for a in amounts if a > 0)


class TestTotalUsdBalance:
    def test_sums_every_section(self):
        asset = AggregatedIntentsAsset("USDC", None, Decimal(1), Decimal(5), Decimal(5), ())
        total = total_usd_balance(
            AccountBalance(total=NEAR, available=NEAR, storage=0),
            AggregatedStaking(total=Decimal(2)),
            3 * NEAR,
            "10",
            [asset],
            "2",
        )
        assert total == Decimal(27)

    def test_missing_sections(self):
        assert total_usd_balance(None, None, None, None, [], None) == 0

    def test_includes_ft_lockups(self):
        lockup = ft_lockup_balance(
            "vesting.ft-lockup.near",
            {"token_account_id": "token.near"},
            {"deposited_amount": "3000000", "claimed_amount": "1000000"},
            {"symbol": "TKN", "decimals": 6, "price": 1.5},
            now=0,
        )
        assert total_usd_balance(None, None, None, None, [], None, [lockup]) == Decimal(3)


class TestFtLockups:
    START = 1_700_000_000
    ACCOUNT = {
        "deposited_amount": "1000000000000000000000",
        "claimed_amount": "250000000000000000000",
        "unclaimed_amount": "250000000000000000000",
        "start_timestamp": START,
        "session_interval": 86400,
        "session_num": 4,
        "last_claim_session": 1,
    }

    @pytest.mark.parametrize("now, expected", [
        (START - 1, 0),
        (START, 0),
        (START + 86400, 1),
        (START + 3 * 86400 + 5, 3),
        (START + 40 * 86400, 4),
    ])
    def test_released_sessions(self, now, expected):
        assert released_sessions(self.START, 86400, 4, now) == expected

    def test_released_sessions_without_schedule(self):
        assert released_sessions(None, 86400, 4, self.START) == 0
        assert released_sessions(self.START, 0, 4, self.START + 10) == 0

    def test_values_unclaimed_deposit(self):
        lockup = ft_lockup_balance(
            "vesting.ft-lockup.near",
            {"token_account_id": "token.near"},
            self.ACCOUNT,
            {"symbol": "TKN", "icon": "i", "decimals": 18, "price": "2"},
            now=self.START + 2 * 86400,
        )
        assert lockup.token_account_id == "token.near"
        assert lockup.locked == 500 * 10 ** 18
        assert lockup.usd_value == Decimal(1500)
        assert lockup.released_sessions == 2
        assert not lockup.fully_claimed
        body = lockup.to_dict()
        assert body["usdValue"] == "1500.00"
        assert body["lockedFormatted"] == "500"

    def test_no_price_is_zero_usd(self):
        lockup = ft_lockup_balance("c.near", {"token_account_id": "t.near"}, self.ACCOUNT, {}, now=0)
        assert lockup.price is None
        assert lockup.decimals == 18
        assert lockup.usd_value == 0

    def test_fully_claimed(self):
        account = {"deposited_amount": "10", "claimed_amount": "10"}
        lockup = ft_lockup_balance("c.near", {"token_account_id": "t.near"}, account, {"price": 5}, now=0)
        assert lockup.fully_claimed
        assert lockup.usd_value == 0

    def test_no_account_in_contract(self):
        assert ft_lockup_balance("c.near", {"token_account_id": "t.near"}, None, {}, now=0) is None
