"""
NEAR Treasury Dashboard - NEAR RPC Client
==========================================
Read-only JSON-RPC calls against a NEAR archival/regular RPC node.

Absence (unknown account, no contract, failing view method) is returned as
None. Transport failures raise TransientFetchError for the caller to handle.
"""

import base64
import json
import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import FASTNEAR_API_KEY, HTTP_TIMEOUT, NEAR_RPC_URL
from errors import TransientFetchError

logger = logging.getLogger(__name__)

# Error causes that mean "nothing there" rather than "try again later"
ABSENT_CAUSES = {
    "UNKNOWN_ACCOUNT",
    "NO_CONTRACT_CODE",
    "UNKNOWN_TRANSACTION",
    "CONTRACT_EXECUTION_ERROR",
    "UNKNOWN_ACCESS_KEY",
}


# Configure robust session
def create_session(allowed_methods=("GET",)):
    s = requests.Session()
    retries = Retry(
        total=3,
        backoff_factor=1,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=list(allowed_methods),
    )
    s.mount('https://', HTTPAdapter(max_retries=retries))
    s.mount('http://', HTTPAdapter(max_retries=retries))
    return s


# RPC reads are idempotent, so POST is safe to retry
session = create_session(allowed_methods=("GET", "POST"))


# ── Helpers ──────────────────────────────────────────────────────────────

def _rpc_call(method: str, params) -> Optional[Any]:
    """POST a JSON-RPC request and return ``result``; None if the target is absent."""
    payload = {"jsonrpc": "2.0", "id": "treasury-dashboard", "method": method, "params": params}
    headers = {"Content-Type": "application/json"}
    if FASTNEAR_API_KEY:
        headers["Authorization"] = FASTNEAR_API_KEY

    try:
        resp = session.post(NEAR_RPC_URL, json=payload, headers=headers, timeout=HTTP_TIMEOUT)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        raise TransientFetchError("rpc", f"{method} failed: {e}") from e

    error = data.get("error")
    if error:
        cause = (error.get("cause") or {}).get("name") if isinstance(error, dict) else None
        if cause in ABSENT_CAUSES:
            logger.debug("RPC %s: %s", method, cause)
            return None
        raise TransientFetchError("rpc", f"{method} returned {cause or error}")
    return data.get("result")


def _query(request_type: str, **params) -> Optional[Dict[str, Any]]:
    return _rpc_call("query", {"request_type": request_type, "finality": "final", **params})


# ── Queries ──────────────────────────────────────────────────────────────

def view_account(account_id: str) -> Optional[Dict[str, Any]]:
    """Account record ({amount, locked, storage_usage, ...}) or None if it doesn't exist."""
    if not account_id:
        return None
    return _query("view_account", account_id=account_id)


def view_function(contract_id: str, method_name: str, args: Optional[dict] = None) -> Optional[Any]:
    """Call a view method and decode its JSON result."""
    if not contract_id or not method_name:
        return None
    args_b64 = base64.b64encode(json.dumps(args or {}).encode()).decode()
    result = _query(
        "call_function",
        account_id=contract_id,
        method_name=method_name,
        args_base64=args_b64,
    )
    if result is None:
        return None
    if result.get("error"):
        # Older nodes report contract panics inside the result
        logger.warning("Error calling %s on %s: %s", method_name, contract_id, result["error"])
        return None

    raw = bytes(result.get("result") or [])
    if not raw:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Non-JSON result from %s.%s", contract_id, method_name)
        return None


def view_state(contract_id: str) -> Optional[List[Dict[str, str]]]:
    """Raw contract storage as [{key, value}] with base64 values."""
    if not contract_id:
        return None
    result = _query("view_state", account_id=contract_id, prefix_base64="")
    if result is None:
        return None
    return result.get("values", [])


def first_state_value(contract_id: str) -> Optional[bytes]:
    """Decoded value of the first storage entry, where lockup contracts keep their state."""
    values = view_state(contract_id)
    if not values:
        return None
    try:
        return base64.b64decode(values[0].get("value") or "")
    except (ValueError, TypeError):
        logger.warning("Undecodable state value for %s", contract_id)
        return None


def tx_status(tx_hash: str, sender_id: str) -> Optional[Dict[str, Any]]:
    """Final outcome of a transaction, or None if the node doesn't know it."""
    if not tx_hash or not sender_id:
        return None
    return _rpc_call("tx", [tx_hash, sender_id])
