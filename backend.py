"""
NEAR Treasury Dashboard - Price & Metadata Backend
===================================================
Token prices, token/network metadata, fungible token balances, staking pool
registries and the intents bridge token catalog.

Every call degrades to an empty value on failure and logs the error, so a
broken backend only blanks the section that depends on it.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import requests

from cache import BoundedCache
from config import BACKEND_API_BASE, CHAINDEFUSER_RPC_URL, HTTP_TIMEOUT, STAKING_POOL_REGISTRIES
from formatters import to_decimal
from rpc import create_session

logger = logging.getLogger(__name__)

session = create_session(allowed_methods=("GET", "POST"))


# ── Helpers ──────────────────────────────────────────────────────────────

def _api_get(path_or_url: str, params: Optional[dict] = None) -> Optional[Any]:
    """GET a backend endpoint and return its JSON body, or None on any failure."""
    url = path_or_url if path_or_url.startswith("http") else f"{BACKEND_API_BASE}/{path_or_url}"
    try:
        resp = session.get(url, params=params, headers={"accept": "application/json"}, timeout=HTTP_TIMEOUT)
        resp.raise_for_status()
        return resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("API error %s: %s", url, e)
        return None


def _bridge_call(method: str, params: list, request_id: str) -> Optional[Any]:
    payload = {"id": request_id, "jsonrpc": "2.0", "method": method, "params": params}
    try:
        resp = session.post(CHAINDEFUSER_RPC_URL, json=payload, timeout=HTTP_TIMEOUT)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("Bridge %s error: %s", method, e)
        return None
    if data.get("error"):
        logger.error("Bridge %s error: %s", method, data["error"].get("message", data["error"]))
        return None
    return data.get("result")


# ── Staking ──────────────────────────────────────────────────────────────

def list_staking_pools(account_id: str) -> List[str]:
    """Pool ids the account has delegated to, merged from every registry."""
    if not account_id:
        logger.warning("list_staking_pools called without account_id")
        return []

    pools: List[str] = []
    for template in STAKING_POOL_REGISTRIES:
        data = _api_get(template.format(account_id=account_id))
        if not isinstance(data, dict):
            continue
        for pool in data.get("pools") or []:
            pool_id = pool.get("pool_id")
            if pool_id and pool_id not in pools:
                pools.append(pool_id)
    return pools


def get_validators() -> List[Dict[str, Any]]:
    return _api_get("validators") or []


# ── Prices & tokens ──────────────────────────────────────────────────────

def get_near_price(cache: Optional[BoundedCache] = None) -> Optional[Decimal]:
    """Current NEAR/USD price. Served from cache while fresh."""
    if cache is not None:
        cached = cache.get("near")
        if cached is not None:
            return cached

    data = _api_get("near-price")
    if not isinstance(data, (int, float, str)) or isinstance(data, bool):
        return None
    price = to_decimal(data)
    if cache is not None and price > 0:
        cache.set("near", price)
    return price


def get_ft_tokens(account_id: str) -> Dict[str, Any]:
    """Fungible tokens held by an account: {totalCumulativeAmt, fts: [...]}."""
    if not account_id:
        logger.warning("get_ft_tokens called without account_id")
        return {}
    logger.info("API call: get_ft_tokens %s", account_id)
    data = _api_get("ft-tokens", {"account_id": account_id})
    return data if isinstance(data, dict) else {}


def get_historical_data(account_id: str, token: str = "near") -> Any:
    if not account_id or not token:
        return {}
    return _api_get("all-token-balance-history", {"account_id": account_id, "token_id": token}) or {}


def get_intents_historical_data(account_id: str) -> Any:
    if not account_id:
        logger.warning("get_intents_historical_data called without account_id")
        return []
    return _api_get("intents-balance-history", {"account_id": account_id}) or []


def get_transfer_history(account_id: str, lockup_contract: Optional[str] = None, page: int = 1) -> Any:
    """Incoming and outgoing transfers of a treasury (and its lockup), one page at a time."""
    if not account_id:
        logger.warning("get_transfer_history called without account_id")
        return []
    params = {"treasuryDaoID": account_id, "page": page}
    if lockup_contract:
        params["lockupContract"] = lockup_contract
    logger.info("API call: get_transfer_history %s page %d", account_id, page)
    return _api_get("transactions-transfer-history", params) or []


def get_ft_token_metadata(token_id: str) -> Dict[str, Any]:
    """Symbol, icon, decimals and current price of a NEP-141 token."""
    if not token_id:
        return {}
    data = _api_get("ft-token-metadata", {"account_id": token_id})
    return data if isinstance(data, dict) else {}


def get_user_daos(account_id: str) -> List[str]:
    if not account_id:
        logger.warning("get_user_daos called without account_id")
        return []
    data = _api_get("user-daos", {"account_id": account_id})
    return data if isinstance(data, list) else []


def metadata_by_defuse_asset_id(asset_ids: Iterable[str],
                                cache: Optional[BoundedCache] = None) -> Dict[str, Dict[str, Any]]:
    """Token metadata (symbol, icon, decimals, price, blockchain) keyed by defuse asset id.

    Only ids missing from ``cache`` are requested.
    """
    wanted = [i for i in dict.fromkeys(asset_ids) if i]
    found: Dict[str, Dict[str, Any]] = cache.get_many(wanted) if cache is not None else {}
    missing = [i for i in wanted if i not in found]
    if not missing:
        return found

    data = _api_get("token-by-defuse-asset-id", {"defuseAssetId": ",".join(missing)})
    for metadata in data if isinstance(data, list) else []:
        asset_id = metadata.get("defuseAssetId") or metadata.get("defuse_asset_id")
        if not asset_id:
            continue
        found[asset_id] = metadata
        if cache is not None:
            cache.set(asset_id, metadata)
    return found


def blockchain_info(networks: Iterable[str], theme: str = "light") -> Dict[str, Dict[str, Any]]:
    """Display name and icon per network, keyed by lower-cased network name."""
    names = [n for n in dict.fromkeys(networks) if n]
    if not names:
        return {}
    data = _api_get("blockchain-by-network", {"network": ",".join(names), "theme": theme})
    result = {}
    for network in data if isinstance(data, list) else []:
        if network.get("network"):
            result[network["network"].lower()] = network
    return result


def supported_token_catalog() -> List[Dict[str, Any]]:
    """NEP-141 tokens the intents bridge can move, as listed by the bridge."""
    result = _bridge_call("supported_tokens", [{}], "supportedTokensFetchAll")
    if not result:
        return []
    return [t for t in result.get("tokens") or [] if t.get("standard") == "nep141"]


def get_deposit_address(account_id: str, chain_id: str) -> Optional[Dict[str, Any]]:
    """Bridge deposit address for sending ``chain_id`` assets into the account's intents balance."""
    if not account_id or not chain_id:
        return None
    return _bridge_call(
        "deposit_address",
        [{"account_id": account_id, "chain": chain_id}],
        "depositAddressFetch",
    )
