"""
NEAR Treasury Dashboard - Flask Application
============================================
JSON API over the treasury snapshots, the proposal indexer and the account
lookups the dashboard needs.
"""

import json
import os
import logging
import sys
import threading

from flask import Flask, jsonify, redirect, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman
from apscheduler.schedulers.background import BackgroundScheduler

from cache import BoundedCache
from config import (
    FETCH_INTERVAL_MINUTES, SCHEDULER_ENABLED, PROPOSAL_STATUSES,
    PRICE_CACHE_DURATION, PROFILE_CACHE_SIZE, PROFILE_CACHE_TTL,
    TOKEN_METADATA_CACHE_SIZE, TOKEN_METADATA_CACHE_TTL,
)
from errors import TreasuryError, ValidationError
from fetcher import SnapshotStore, fetch_all, fetch_single_treasury, get_user_treasuries
from proposals import describe_transaction, wait_for_proposal
from social import profiles_by_account_ids
from validation import is_valid_near_account, validate_chain_address, validate_dao_id
import backend
import indexer

# ── App Setup ────────────────────────────────────────────────────────────

app = Flask(__name__)

# CORS: restrict to your domain in production
ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "*").split(",")
CORS(app, origins=ALLOWED_ORIGINS)

# Rate limiting
limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=["120 per minute"],
    storage_uri="memory://",
)

# Security headers
csp = {
    "default-src": "'none'",
    "frame-ancestors": "'none'",
}
Talisman(
    app,
    content_security_policy=csp,
    force_https=os.environ.get("FORCE_HTTPS", "false").lower() == "true",
    session_cookie_secure=os.environ.get("FORCE_HTTPS", "false").lower() == "true",
    session_cookie_samesite="Lax",
)

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] %(levelname)s in %(module)s: %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)

# ── Shared state ─────────────────────────────────────────────────────────

store = SnapshotStore()
PRICE_CACHE = BoundedCache(max_size=8, ttl=PRICE_CACHE_DURATION)
METADATA_CACHE = BoundedCache(max_size=TOKEN_METADATA_CACHE_SIZE, ttl=TOKEN_METADATA_CACHE_TTL)
PROFILE_CACHE = BoundedCache(max_size=PROFILE_CACHE_SIZE, ttl=PROFILE_CACHE_TTL)


def refresh_all():
    fetch_all(store, price_cache=PRICE_CACHE, metadata_cache=METADATA_CACHE)


def refresh_treasury(dao_id):
    return fetch_single_treasury(dao_id, store, PRICE_CACHE, METADATA_CACHE)


# ── Background Scheduler ────────────────────────────────────────────────

if SCHEDULER_ENABLED:
    scheduler = BackgroundScheduler(daemon=True)
    scheduler.add_job(refresh_all, "interval", minutes=FETCH_INTERVAL_MINUTES, id="fetch_all")
    scheduler.start()

    # Do an initial fetch in a background thread
    threading.Thread(target=refresh_all, daemon=True).start()


# ── Error Handling ───────────────────────────────────────────────────────

@app.errorhandler(TreasuryError)
def handle_treasury_error(e):
    if e.http_status >= 500:
        logger.error("Request failed: %s", e.message)
    return jsonify({"error": e.message}), e.http_status


# ── Request Helpers ──────────────────────────────────────────────────────

def _int_arg(name, default, minimum=0, maximum=None):
    try:
        value = max(int(request.args.get(name, default)), minimum)
    except (ValueError, TypeError):
        return default
    return min(value, maximum) if maximum is not None else value


def _list_arg(name):
    raw = request.args.get(name, "")
    return [v.strip() for v in raw.split(",") if v.strip()]


def _filters_arg():
    raw = request.args.get("filters")
    if not raw:
        return None
    try:
        filters = json.loads(raw)
    except ValueError:
        raise ValidationError("filters must be a JSON object")
    if not isinstance(filters, dict):
        raise ValidationError("filters must be a JSON object")
    return filters


def _amount_args():
    return {
        name: request.args[f"amount_{name}"]
        for name in ("min", "max", "equal")
        if request.args.get(f"amount_{name}")
    }


# ── Health ───────────────────────────────────────────────────────────────

@app.route("/api/health")
def api_health():
    return jsonify({"status": "ok", "treasuries": store.dao_ids()})


# ── Treasury API ─────────────────────────────────────────────────────────

@app.route("/api/treasuries")
def api_treasuries():
    """DAOs the given account is a member of."""
    account_id = request.args.get("account_id", "").strip()
    if not is_valid_near_account(account_id):
        raise ValidationError("A valid account_id is required")
    return jsonify(get_user_treasuries(account_id))


@app.route("/api/treasury/<dao_id>")
def api_treasury(dao_id):
    """Latest balances of a treasury, fetched on first request."""
    dao_id = validate_dao_id(dao_id)
    snapshot = store.get(dao_id) or refresh_treasury(dao_id) or store.get(dao_id)
    if snapshot is None:
        return jsonify({"error": f"No data for {dao_id} yet"}), 503
    return jsonify(snapshot.to_dict())


@app.route("/api/treasury/<dao_id>/refresh", methods=["POST"])
@limiter.limit("6 per minute")
def api_refresh(dao_id):
    """Manually trigger a refresh of one treasury."""
    dao_id = validate_dao_id(dao_id)
    threading.Thread(target=refresh_treasury, args=(dao_id,), daemon=True).start()
    return jsonify({"success": True, "message": f"Refresh started for {dao_id}"})


@app.route("/api/treasury/<dao_id>/history")
def api_history(dao_id):
    dao_id = validate_dao_id(dao_id)
    return jsonify(backend.get_historical_data(dao_id, request.args.get("token", "near")))


@app.route("/api/treasury/<dao_id>/intents-history")
def api_intents_history(dao_id):
    dao_id = validate_dao_id(dao_id)
    return jsonify(backend.get_intents_historical_data(dao_id))


@app.route("/api/treasury/<dao_id>/transfers")
def api_transfers(dao_id):
    """Transfer history of the treasury, including its lockup contract when it has one."""
    dao_id = validate_dao_id(dao_id)
    snapshot = store.get(dao_id)
    lockup_contract = snapshot.lockup_contract if snapshot else None
    return jsonify(backend.get_transfer_history(dao_id, lockup_contract, _int_arg("page", 1, minimum=1)))


@app.route("/api/treasury/<dao_id>/deposit-address")
def api_deposit_address(dao_id):
    """Bridge address for depositing assets from another chain into the treasury's intents balance."""
    dao_id = validate_dao_id(dao_id)
    chain = request.args.get("chain", "").strip()
    if not chain:
        raise ValidationError("chain is required")
    address = backend.get_deposit_address(dao_id, chain)
    if address is None:
        return jsonify({"error": f"No deposit address for {chain}"}), 404
    return jsonify(address)


# ── Proposals API ────────────────────────────────────────────────────────

@app.route("/api/treasury/<dao_id>/proposals")
def api_proposals(dao_id):
    """
    Return one page of proposals.
    Query params: category, page, page_size, statuses, proposal_types,
    sort_direction, filters (JSON), search, search_not, account_id, amount_min/max/equal
    """
    dao_id = validate_dao_id(dao_id)
    sort_direction = request.args.get("sort_direction", "desc")
    if sort_direction not in ("asc", "desc"):
        raise ValidationError("sort_direction must be asc or desc")

    result = indexer.query_proposals(
        dao_id,
        category=request.args.get("category") or None,
        page=_int_arg("page", 0),
        page_size=_int_arg("page_size", 10, minimum=1, maximum=100),
        statuses=_list_arg("statuses") or None,
        proposal_types=_list_arg("proposal_types") or None,
        sort_direction=sort_direction,
        filters=_filters_arg(),
        search=request.args.get("search"),
        search_not=request.args.get("search_not"),
        amount_values=_amount_args(),
        account_id=request.args.get("account_id") or None,
    )
    return jsonify(result)


@app.route("/api/treasury/<dao_id>/proposals/<facet>")
def api_proposal_facets(dao_id, facet):
    dao_id = validate_dao_id(dao_id)
    if facet not in indexer.FACETS:
        return jsonify({"error": f"Unknown facet {facet}"}), 404
    return jsonify(indexer.get_proposal_facets(dao_id, facet))


@app.route("/api/treasury/<dao_id>/export")
def api_export(dao_id):
    """Redirect to the indexer's CSV export of the (filtered) proposals."""
    dao_id = validate_dao_id(dao_id)
    url = indexer.build_csv_export_url(
        dao_id,
        category=request.args.get("category") or None,
        filters=_filters_arg(),
        account_id=request.args.get("account_id") or None,
        amount_values=_amount_args(),
        search=request.args.get("search"),
    )
    return redirect(url)


@app.route("/api/treasury/<dao_id>/transactions/<tx_hash>")
@limiter.limit("30 per minute")
def api_transaction(dao_id, tx_hash):
    """Outcome of a signed DAO transaction.

    Waits for the indexer to list the affected proposal (with the signer's vote,
    for votes), then refreshes the treasury in the background whether or not
    it caught up.
    """
    dao_id = validate_dao_id(dao_id)
    signer = request.args.get("signer", "").strip()
    if not is_valid_near_account(signer):
        raise ValidationError("A valid signer account is required")

    outcome = describe_transaction(dao_id, tx_hash, signer)
    if outcome is None:
        return jsonify({"error": f"Nothing to report for transaction {tx_hash}"}), 404

    indexed = None
    if outcome["proposalId"] is not None and outcome["status"] != "Removed":
        expected = outcome["status"] if outcome["status"] in PROPOSAL_STATUSES else None
        indexed = wait_for_proposal(dao_id, outcome["proposalId"], expected_status=expected,
                                    voter=signer, vote=outcome.get("vote"))

    threading.Thread(target=refresh_treasury, args=(dao_id,), daemon=True).start()
    return jsonify({**outcome, "indexed": indexed is not None})


# ── Accounts API ─────────────────────────────────────────────────────────

@app.route("/api/profiles")
def api_profiles():
    ids = _list_arg("ids")
    if not ids:
        raise ValidationError("ids is required")
    if len(ids) > 100:
        raise ValidationError("At most 100 ids per request")
    return jsonify(profiles_by_account_ids(ids, PROFILE_CACHE))


@app.route("/api/validators")
def api_validators():
    return jsonify(backend.get_validators())


@app.route("/api/validate/account")
def api_validate_account():
    account_id = request.args.get("account_id", "")
    return jsonify({"account_id": account_id, "valid": is_valid_near_account(account_id)})


@app.route("/api/validate/address")
def api_validate_address():
    blockchain = request.args.get("blockchain", "")
    address = request.args.get("address", "")
    return jsonify({
        "blockchain": blockchain,
        "address": address,
        "valid": validate_chain_address(blockchain, address),
    })


# ── Run ──────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    debug_mode = os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    app.run(host="0.0.0.0", port=8080, debug=debug_mode)
