"""
NEAR Treasury Dashboard - Balance Reconciliation
=================================================
Pure functions turning already-fetched RPC/API results into the categorised
balances shown on the dashboard. No I/O happens here; absent inputs are
treated as absent or zero and never raise.
"""

import logging
from decimal import Decimal, localcontext
from typing import Any, Dict, Iterable, List, Mapping, Optional

from config import STORAGE_PRICE_PER_BYTE
from formatters import WIDE, near_to_yocto, readable_amount, round_near, to_decimal, to_int
from models import (
    AccountBalance,
    AggregatedIntentsAsset,
    AggregatedStaking,
    FtLockupBalance,
    IntentsNetwork,
    LockupAccount,
    LockupReconciledBalance,
    StakingPoolBalance,
)

logger = logging.getLogger(__name__)


# ── Native balance ──────────────────────────────────────────────────────

def compute_account_balance(raw_account: Optional[Mapping[str, Any]]) -> Optional[AccountBalance]:
    """Split a view_account result into total / available / storage yoctoNEAR.

    ``None`` means the account does not exist and is passed straight through.
    """
    if raw_account is None:
        return None
    storage_usage = raw_account.get("storage_usage", raw_account.get("storageUsage"))
    storage = to_int(storage_usage) * STORAGE_PRICE_PER_BYTE
    total = to_int(raw_account.get("amount"))
    available = max(0, total - storage)
    return AccountBalance(total=total, available=available, storage=storage)


# ── Staking ─────────────────────────────────────────────────────────────

def staking_pool_balance(pool_id: str, staked_yocto, unstaked_yocto,
                         is_unstaked_available: bool) -> StakingPoolBalance:
    """Build one pool's balance from its three view-call results.

    Unstaked funds are either still in the waiting period (``unstaked``) or
    ready to withdraw (``available_to_withdraw``), never both.
    """
    staked = round_near(to_int(staked_yocto))
    pending = round_near(to_int(unstaked_yocto))
    with localcontext(WIDE):
        total = staked + pending
    if is_unstaked_available:
        return StakingPoolBalance(pool_id, staked, Decimal(0), pending, total)
    return StakingPoolBalance(pool_id, staked, pending, Decimal(0), total)


def aggregate_staking_pools(pools: Iterable[StakingPoolBalance]) -> AggregatedStaking:
    staked = unstaked = total = withdrawable = Decimal(0)
    with localcontext(WIDE):
        for pool in pools:
            staked += to_decimal(pool.staked)
            unstaked += to_decimal(pool.unstaked)
            total += to_decimal(pool.total)
            withdrawable += to_decimal(pool.available_to_withdraw)
    return AggregatedStaking(
        staked=staked,
        unstaked=unstaked,
        total=total,
        available_to_withdraw=withdrawable,
    )


# ── Lockup ──────────────────────────────────────────────────────────────

def reconcile_lockup_balance(lockup: LockupAccount, vesting_locked=None) -> LockupReconciledBalance:
    """Categorise a lockup account into locked / available / staked / storage.

    The contract's locked amount (yocto) is compared with the staked total
    after converting the latter to yocto too. Funds held at staking pools are
    not part of the account's own balance, so they are added back to the total.
    The four categories always sum exactly to ``total``.
    """
    contract_locked = to_int(lockup.vesting_locked if vesting_locked is None else vesting_locked)
    staked = near_to_yocto(lockup.staked_balances.total)

    if staked >= contract_locked:
        locked = 0
    else:
        locked = contract_locked - staked

    total = lockup.near_balances.total + staked
    storage = lockup.near_balances.storage
    available = max(0, total - staked - locked - storage)

    # Staked totals are rounded to 2 decimals, so the parts can overshoot the
    # total; storage absorbs the drift and locked covers whatever storage can't.
    excess = locked + available + staked + storage - total
    if excess > 0:
        storage -= excess
        if storage < 0:
            logger.warning(
                "Lockup %s: categories exceed total by more than storage, trimming locked by %d",
                lockup.contract_id, -storage,
            )
            locked += storage
            storage = 0

    return LockupReconciledBalance(
        locked=locked,
        available=available,
        staked=staked,
        storage=storage,
        total=total,
        contract_locked=contract_locked,
    )


# ── Intents ─────────────────────────────────────────────────────────────

def _chain_id(defuse_asset_identifier: Optional[str], fallback: str) -> str:
    # "eth:1:0xa0b8..." -> "eth:1"
    if not defuse_asset_identifier:
        return fallback
    parts = defuse_asset_identifier.split(":")
    if len(parts) >= 2:
        return ":".join(parts[:2])
    return parts[0]


def aggregate_intents_assets(
    owned_tokens: Iterable[Mapping[str, Any]],
    supported_catalog: Iterable[Mapping[str, Any]],
    metadata_by_asset_id: Mapping[str, Mapping[str, Any]],
    network_by_name: Mapping[str, Mapping[str, Any]],
) -> List[AggregatedIntentsAsset]:
    """Group intents balances by symbol across source chains.

    Catalog entries are de-duplicated by ``intents_token_id`` (first wins).
    Tokens without metadata are skipped; groups that add up to zero are dropped.
    Owned tokens the catalog does not list are placed on the chain their
    metadata names.
    """
    balances: Dict[str, int] = {}
    for token in owned_tokens:
        token_id = token.get("token_id")
        if token_id:
            balances[token_id] = balances.get(token_id, 0) + to_int(token.get("amount"))

    catalog: Dict[str, Mapping[str, Any]] = {}
    for entry in supported_catalog:
        token_id = entry.get("intents_token_id")
        if token_id and token_id not in catalog:
            catalog[token_id] = entry

    for token_id in balances:
        if token_id not in catalog and token_id in metadata_by_asset_id:
            metadata = metadata_by_asset_id[token_id]
            catalog[token_id] = {
                "intents_token_id": token_id,
                "asset_name": metadata.get("symbol"),
                "chainName": metadata.get("blockchain"),
            }

    groups: Dict[str, Dict[str, Any]] = {}
    with localcontext(WIDE):
        for token_id, entry in catalog.items():
            metadata = metadata_by_asset_id.get(token_id)
            if not metadata:
                continue

            symbol = (metadata.get("symbol") or entry.get("asset_name") or "").upper()
            if not symbol:
                continue

            decimals = to_int(metadata.get("decimals", 18))
            amount = readable_amount(balances.get(token_id, 0), decimals)

            chain_name = entry.get("chainName") or metadata.get("blockchain") or ""
            network = network_by_name.get(chain_name.lower(), {}) if chain_name else {}

            group = groups.setdefault(symbol, {
                "icon": metadata.get("icon"),
                "price": None,
                "networks": {},
            })
            if group["price"] is None and metadata.get("price") is not None:
                group["price"] = to_decimal(metadata.get("price"))
            if not group["icon"]:
                group["icon"] = metadata.get("icon")

            row = group["networks"].get(token_id)
            if row:
                row["amount"] += amount
                continue
            group["networks"][token_id] = {
                "id": token_id,
                "label": network.get("name") or chain_name.upper(),
                "icon": network.get("icon"),
                "chain_id": _chain_id(entry.get("defuse_asset_identifier"), chain_name),
                "decimals": decimals,
                "amount": amount,
            }

        assets = []
        for symbol, group in groups.items():
            networks = tuple(IntentsNetwork(**row) for row in group["networks"].values())
            total_amount = sum((n.amount for n in networks), Decimal(0))
            if total_amount <= 0:
                continue
            price = group["price"]
            total_usd = total_amount * (price if price is not None else Decimal(0))
            assets.append(AggregatedIntentsAsset(
                symbol=symbol,
                icon=group["icon"],
                price=price,
                total_amount=total_amount,
                total_usd=total_usd,
                networks=networks,
            ))
    return assets


# ── Fungible-token lockups ──────────────────────────────────────────────

def released_sessions(start_timestamp, session_interval, session_num, now: int) -> int:
    """Vesting sessions released by ``now`` (seconds), capped at ``session_num``."""
    start = to_int(start_timestamp)
    interval = to_int(session_interval)
    if not start or not interval or now < start:
        return 0
    return min((now - start) // interval, to_int(session_num))


def ft_lockup_balance(contract_id: str,
                      contract_metadata: Optional[Mapping[str, Any]],
                      account: Optional[Mapping[str, Any]],
                      token_metadata: Optional[Mapping[str, Any]],
                      now: int) -> Optional[FtLockupBalance]:
    """A treasury's position in one FT lockup contract, valued at the token price.

    The USD value covers everything deposited and not yet claimed, unlocked
    or not. Returns None when the treasury has no account in the contract.
    """
    if not account or not contract_metadata:
        return None
    token_metadata = token_metadata or {}
    decimals = to_int(token_metadata.get("decimals", 18))
    price = to_decimal(token_metadata["price"]) if token_metadata.get("price") is not None else None
    deposited = to_int(account.get("deposited_amount"))
    claimed = to_int(account.get("claimed_amount"))

    with localcontext(WIDE):
        remaining = readable_amount(max(deposited - claimed, 0), decimals)
        usd_value = remaining * (price if price is not None else Decimal(0))

    return FtLockupBalance(
        contract_id=contract_id,
        token_account_id=contract_metadata.get("token_account_id") or "",
        symbol=token_metadata.get("symbol") or "",
        icon=token_metadata.get("icon"),
        decimals=decimals,
        price=price,
        deposited=deposited,
        claimed=claimed,
        unclaimed=to_int(account.get("unclaimed_amount")),
        start_timestamp=to_int(account["start_timestamp"]) if account.get("start_timestamp") else None,
        session_interval=to_int(account["session_interval"]) if account.get("session_interval") else None,
        session_num=to_int(account.get("session_num")),
        last_claim_session=to_int(account.get("last_claim_session")),
        released_sessions=released_sessions(
            account.get("start_timestamp"), account.get("session_interval"), account.get("session_num"), now
        ),
        usd_value=usd_value,
    )


# ── Dashboard total ─────────────────────────────────────────────────────

def total_usd_balance(near_balances: Optional[AccountBalance],
                      staked_balances: Optional[AggregatedStaking],
                      lockup_total_yocto: Optional[int],
                      ft_total_usd,
                      intents_assets: Iterable[AggregatedIntentsAsset],
                      near_price,
                      ft_lockups: Iterable[FtLockupBalance] = ()) -> Decimal:
    """Grand total in USD: native, staked and lockup NEAR at the NEAR price plus tokens."""
    price = to_decimal(near_price)
    with localcontext(WIDE):
        near_total = Decimal(0)
        if near_balances:
            near_total += round_near(near_balances.total)
        if staked_balances:
            near_total += to_decimal(staked_balances.total)
        if lockup_total_yocto:
            near_total += round_near(lockup_total_yocto)
        total = near_total * price + to_decimal(ft_total_usd)
        for asset in intents_assets:
            total += asset.total_usd
        for lockup in ft_lockups:
            total += lockup.usd_value
    return total
