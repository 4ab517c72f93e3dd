"""
NEAR Treasury Dashboard - Treasury Fetcher
===========================================
Fetches a treasury's balances from NEAR RPC and the backend APIs, runs them
through the reconciliation engine and keeps the latest snapshot per DAO.

Independent requests fan out on thread pools and are joined before the
engine runs. Each refresh is tagged with a generation so that a slow,
superseded refresh can never overwrite a newer one.
"""

import base64
import binascii
import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from balances import (
    aggregate_intents_assets,
    aggregate_staking_pools,
    compute_account_balance,
    ft_lockup_balance,
    reconcile_lockup_balance,
    staking_pool_balance,
    total_usd_balance,
)
from cache import BoundedCache
from config import (
    FETCH_WORKERS,
    FT_LOCKUP_CONTRACTS,
    INTENTS_CONTRACT_ID,
    LOCKUP_LOCKED_AMOUNT_METHOD,
    TRACKED_TREASURIES,
)
from errors import TransientFetchError, TreasuryError
from formatters import to_decimal, to_int
from lockup import derive_lockup_account_id, deserialize_lockup_contract, summarize_vesting
from models import (
    AccountBalance,
    AggregatedIntentsAsset,
    AggregatedStaking,
    FtLockupBalance,
    IntentsToken,
    LockupAccount,
    StakingPoolBalance,
    TreasurySnapshot,
)
import backend
import rpc

logger = logging.getLogger(__name__)


# ── Native & staked NEAR ────────────────────────────────────────────────

def get_near_balances(account_id: str) -> Optional[AccountBalance]:
    """Total / available / storage for an account, or None if it doesn't exist."""
    return compute_account_balance(rpc.view_account(account_id))


def _pool_balance(pool_id: str, account_id: str) -> StakingPoolBalance:
    args = {"account_id": account_id}
    with ThreadPoolExecutor(max_workers=3) as pool:
        staked = pool.submit(rpc.view_function, pool_id, "get_account_staked_balance", args)
        unstaked = pool.submit(rpc.view_function, pool_id, "get_account_unstaked_balance", args)
        available = pool.submit(rpc.view_function, pool_id, "is_account_unstaked_balance_available", args)
        return staking_pool_balance(pool_id, staked.result(), unstaked.result(), bool(available.result()))


def get_near_staked_balances(account_id: str) -> Tuple[List[StakingPoolBalance], AggregatedStaking]:
    """Per-pool balances, in registry order, and their aggregate."""
    pool_ids = backend.list_staking_pools(account_id)
    if not pool_ids:
        return [], AggregatedStaking()

    with ThreadPoolExecutor(max_workers=min(FETCH_WORKERS, len(pool_ids))) as pool:
        pools = list(pool.map(lambda pool_id: _pool_balance(pool_id, account_id), pool_ids))
    return pools, aggregate_staking_pools(pools)


# ── Lockup ──────────────────────────────────────────────────────────────

def resolve_lockup_account(treasury_id: str) -> Optional[LockupAccount]:
    """Find the treasury's lockup contract and fetch what reconciliation needs.

    Returns None when no lockup account exists for the treasury.
    """
    lockup_id = derive_lockup_account_id(treasury_id)
    near_balances = get_near_balances(lockup_id)
    if near_balances is None:
        logger.debug("No lockup account for %s", treasury_id)
        return None

    with ThreadPoolExecutor(max_workers=3) as pool:
        staking = pool.submit(get_near_staked_balances, lockup_id)
        locked = pool.submit(rpc.view_function, lockup_id, LOCKUP_LOCKED_AMOUNT_METHOD)
        state = pool.submit(rpc.first_state_value, lockup_id)
        pools, aggregated = staking.result()
        vesting_locked = to_int(locked.result())
        raw_state = state.result()

    logger.info("Lockup %s found for %s", lockup_id, treasury_id)
    return LockupAccount(
        contract_id=lockup_id,
        state=raw_state,
        vesting_locked=vesting_locked,
        near_balances=near_balances,
        staked_balances=aggregated,
        staking_pools=tuple(pools),
    )


# ── Fungible-token lockups ──────────────────────────────────────────────

def _ft_lockup(contract_id: str, account_id: str) -> Optional[FtLockupBalance]:
    account = rpc.view_function(contract_id, "get_account", {"account_id": account_id})
    if not account:
        return None
    contract_metadata = rpc.view_function(contract_id, "contract_metadata")
    if not isinstance(contract_metadata, dict):
        logger.warning("FT lockup %s returned no contract metadata", contract_id)
        return None
    token_metadata = backend.get_ft_token_metadata(contract_metadata.get("token_account_id"))
    return ft_lockup_balance(contract_id, contract_metadata, account, token_metadata, int(time.time()))


def get_ft_lockups(account_id: str, contracts: Optional[List[str]] = None) -> List[FtLockupBalance]:
    """The account's positions in the configured FT lockup contracts, in contract order."""
    contract_ids = FT_LOCKUP_CONTRACTS if contracts is None else contracts
    if not contract_ids:
        return []
    with ThreadPoolExecutor(max_workers=min(FETCH_WORKERS, len(contract_ids))) as pool:
        lockups = list(pool.map(lambda contract_id: _ft_lockup(contract_id, account_id), contract_ids))
    return [lockup for lockup in lockups if lockup is not None]


# ── Intents ─────────────────────────────────────────────────────────────

def get_intents_balances(account_id: str,
                         metadata_cache: Optional[BoundedCache] = None
                         ) -> Tuple[List[IntentsToken], List[AggregatedIntentsAsset]]:
    """Non-zero balances held in the intents contract, per token and grouped by symbol."""
    owned = rpc.view_function(INTENTS_CONTRACT_ID, "mt_tokens_for_owner", {"account_id": account_id})
    if not owned:
        return [], []

    token_ids = [t.get("token_id") for t in owned if t.get("token_id")]
    amounts = rpc.view_function(
        INTENTS_CONTRACT_ID,
        "mt_batch_balance_of",
        {"account_id": account_id, "token_ids": token_ids},
    )
    if amounts is None:
        raise TransientFetchError("intents", f"no balances returned for {account_id}")

    held = [
        {"token_id": token_id, "amount": to_int(amount)}
        for token_id, amount in zip(token_ids, amounts)
        if to_int(amount) > 0
    ]
    if not held:
        return [], []

    metadata = backend.metadata_by_defuse_asset_id([t["token_id"] for t in held], metadata_cache)
    held_ids = {t["token_id"] for t in held}
    catalog = [e for e in backend.supported_token_catalog() if e.get("intents_token_id") in held_ids]

    network_names = [m.get("blockchain") for m in metadata.values()]
    network_names += [e.get("chainName") for e in catalog]
    networks = backend.blockchain_info(n for n in network_names if n)

    tokens = []
    for token in held:
        meta = metadata.get(token["token_id"])
        if not meta:
            continue
        blockchain = meta.get("blockchain")
        network = networks.get(blockchain.lower(), {}) if blockchain else {}
        tokens.append(IntentsToken(
            token_id=token["token_id"],
            amount=token["amount"],
            symbol=meta.get("symbol") or "",
            icon=meta.get("icon"),
            decimals=to_int(meta.get("decimals", 18)),
            price=to_decimal(meta["price"]) if meta.get("price") is not None else None,
            blockchain=blockchain,
            blockchain_name=network.get("name") or (blockchain or "").upper(),
        ))

    return tokens, aggregate_intents_assets(held, catalog, metadata, networks)


# ── Snapshot ────────────────────────────────────────────────────────────

def build_treasury_snapshot(dao_id: str,
                            generation: int = 0,
                            price_cache: Optional[BoundedCache] = None,
                            metadata_cache: Optional[BoundedCache] = None) -> TreasurySnapshot:
    """Fetch every balance section of a treasury and reconcile them.

    A section whose source is unreachable, or whose data is malformed, is
    left empty and listed in ``failed_sections``; the others are still shown.
    """
    snapshot = TreasurySnapshot(dao_id=dao_id, generation=generation,
                                fetched_at=datetime.now(timezone.utc))

    with ThreadPoolExecutor(max_workers=FETCH_WORKERS) as pool:
        futures = {
            "near": pool.submit(get_near_balances, dao_id),
            "staking": pool.submit(get_near_staked_balances, dao_id),
            "lockup": pool.submit(resolve_lockup_account, dao_id),
            "ft": pool.submit(backend.get_ft_tokens, dao_id),
            "ft_lockup": pool.submit(get_ft_lockups, dao_id),
            "intents": pool.submit(get_intents_balances, dao_id, metadata_cache),
            "price": pool.submit(backend.get_near_price, price_cache),
        }
        results: Dict[str, Any] = {}
        for section, future in futures.items():
            try:
                results[section] = future.result()
            except TransientFetchError as e:
                logger.error("%s: %s section unavailable: %s", dao_id, section, e)
                snapshot.failed_sections.append(section)
            except Exception:
                logger.exception("%s: unexpected error in %s section", dao_id, section)
                snapshot.failed_sections.append(section)

    snapshot.near_balances = results.get("near")
    if "staking" in results:
        snapshot.staking_pools, snapshot.staked_balances = results["staking"]
    snapshot.ft_tokens = results.get("ft") or {}
    snapshot.ft_lockups = results.get("ft_lockup") or []
    if "intents" in results:
        snapshot.intents_tokens, snapshot.intents_assets = results["intents"]
    snapshot.near_price = results.get("price")

    lockup = results.get("lockup")
    if lockup is not None:
        reconciled = reconcile_lockup_balance(lockup)
        snapshot.lockup_contract = lockup.contract_id
        snapshot.lockup_balances = reconciled
        snapshot.lockup_staking_pools = list(lockup.staking_pools)
        snapshot.lockup_staked_balances = lockup.staked_balances
        if lockup.state:
            try:
                state = deserialize_lockup_contract(lockup.state)
                snapshot.lockup_vesting = summarize_vesting(state, reconciled.contract_locked)
            except ValueError as e:
                logger.warning("Could not decode lockup state of %s: %s", lockup.contract_id, e)

    snapshot.total_usd = total_usd_balance(
        snapshot.near_balances,
        snapshot.staked_balances,
        snapshot.lockup_balances.total if snapshot.lockup_balances else None,
        snapshot.ft_tokens.get("totalCumulativeAmt"),
        snapshot.intents_assets,
        snapshot.near_price,
        snapshot.ft_lockups,
    )
    return snapshot


# ── Snapshot store ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class RefreshTicket:
    dao_id: str
    generation: int


class SnapshotStore:
    """Latest snapshot per DAO, guarded by a per-DAO generation counter.

    ``begin`` hands out a ticket for a new refresh; ``commit`` only accepts a
    snapshot whose ticket is still the newest for its DAO.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._generations: Dict[str, int] = {}
        self._snapshots: Dict[str, TreasurySnapshot] = {}

    def begin(self, dao_id: str) -> RefreshTicket:
        with self._lock:
            generation = self._generations.get(dao_id, 0) + 1
            self._generations[dao_id] = generation
            return RefreshTicket(dao_id, generation)

    def is_current(self, ticket: RefreshTicket) -> bool:
        with self._lock:
            return self._generations.get(ticket.dao_id) == ticket.generation

    def commit(self, ticket: RefreshTicket, snapshot: TreasurySnapshot) -> bool:
        with self._lock:
            if self._generations.get(ticket.dao_id) != ticket.generation:
                logger.info("Discarding stale snapshot of %s (generation %d)",
                            ticket.dao_id, ticket.generation)
                return False
            self._snapshots[ticket.dao_id] = snapshot
            return True

    def get(self, dao_id: str) -> Optional[TreasurySnapshot]:
        with self._lock:
            return self._snapshots.get(dao_id)

    def forget(self, dao_id: str) -> None:
        """Drop a DAO's snapshot; refreshes already running for it are discarded."""
        with self._lock:
            self._generations[dao_id] = self._generations.get(dao_id, 0) + 1
            self._snapshots.pop(dao_id, None)

    def dao_ids(self) -> List[str]:
        with self._lock:
            return list(self._snapshots)


# ── Master fetch ────────────────────────────────────────────────────────

def fetch_single_treasury(dao_id: str,
                          store: SnapshotStore,
                          price_cache: Optional[BoundedCache] = None,
                          metadata_cache: Optional[BoundedCache] = None) -> Optional[TreasurySnapshot]:
    """Refresh one treasury. Returns the snapshot, or None if a newer refresh superseded it."""
    ticket = store.begin(dao_id)
    logger.info("Fetching %s (generation %d)", dao_id, ticket.generation)
    snapshot = build_treasury_snapshot(dao_id, ticket.generation, price_cache, metadata_cache)
    if not store.commit(ticket, snapshot):
        return None
    if snapshot.failed_sections:
        logger.warning("%s refreshed with failed sections: %s", dao_id, ", ".join(snapshot.failed_sections))
    return snapshot


def fetch_all(store: SnapshotStore,
              treasuries: Optional[List[str]] = None,
              price_cache: Optional[BoundedCache] = None,
              metadata_cache: Optional[BoundedCache] = None) -> None:
    """Refresh every tracked treasury plus any that have been viewed since startup."""
    logger.info("Starting full fetch at %s", time.strftime('%Y-%m-%d %H:%M:%S'))
    dao_ids = treasuries if treasuries is not None else TRACKED_TREASURIES + store.dao_ids()
    for dao_id in dict.fromkeys(dao_ids):
        try:
            fetch_single_treasury(dao_id, store, price_cache, metadata_cache)
        except TreasuryError as e:
            logger.error("Fetch of %s failed: %s", dao_id, e)
        except Exception:
            logger.exception("Unexpected error fetching %s", dao_id)
    logger.info("Fetch complete at %s", time.strftime('%Y-%m-%d %H:%M:%S'))


# ── User treasuries ─────────────────────────────────────────────────────

def _decode_config_metadata(metadata: Optional[str]) -> Optional[Dict[str, Any]]:
    if not metadata:
        return None
    try:
        return json.loads(base64.b64decode(metadata).decode("utf-8"))
    except (binascii.Error, ValueError):
        return None


def _treasury_with_config(dao_id: str) -> Optional[Dict[str, Any]]:
    try:
        config = rpc.view_function(dao_id, "get_config")
    except TransientFetchError as e:
        logger.error("Error processing DAO %s: %s", dao_id, e)
        return None
    if not isinstance(config, dict):
        return None
    return {"daoId": dao_id, "config": {**config, "metadata": _decode_config_metadata(config.get("metadata"))}}


def get_user_treasuries(account_id: str) -> List[Dict[str, Any]]:
    """DAOs the account belongs to, each with its on-chain config and decoded metadata."""
    dao_ids = backend.get_user_daos(account_id)
    if not dao_ids:
        return []
    with ThreadPoolExecutor(max_workers=min(FETCH_WORKERS, len(dao_ids))) as pool:
        treasuries = list(pool.map(_treasury_with_config, dao_ids))
    return [t for t in treasuries if t is not None]
