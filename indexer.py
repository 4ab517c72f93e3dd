"""
NEAR Treasury Dashboard - Proposal Indexer Client
==================================================
Paginated, filtered proposal queries against the Sputnik DAO indexer and
the URLs of its CSV exports.

Filters use the dashboard's shape: ``{key: {"values": [...], "include": bool}}``.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote, urlencode

import requests

from config import CSV_CATEGORIES, HTTP_TIMEOUT, PROPOSAL_STATUSES, SPUTNIK_INDEXER_BASE
from rpc import create_session

logger = logging.getLogger(__name__)

session = create_session()

FACETS = {
    "approvers": "approvers",
    "recipients": "recipients",
    "requested-tokens": "requested_tokens",
    "proposers": "proposers",
    "validators": "validators",
}

# filter key -> (include param, exclude param)
LIST_FILTERS = {
    "proposers": ("proposers", "proposers_not"),
    "approvers": ("approvers", "approvers_not"),
    "recipients": ("recipients", "recipients_not"),
    "token": ("tokens", "tokens_not"),
    "validators": ("validators", "validators_not"),
}

Params = List[Tuple[str, str]]


def _encode(params: Params) -> str:
    # Lists stay comma separated and voter tags keep their colon
    return urlencode(params, safe=",:", quote_via=quote)


def _filter_values(flt: Mapping[str, Any]) -> List[str]:
    return [v for v in flt.get("values") or [] if v not in (None, "")]


def _votes_params(params: Params, values: List[str], include: bool, account_id: str) -> None:
    choice = values[0]
    if include:
        if choice == "Approved":
            params.append(("voter_votes", f"{account_id}:approved"))
        elif choice == "Rejected":
            params.append(("voter_votes", f"{account_id}:rejected"))
        elif choice in ("Awaiting Decision", "Not Voted"):
            for i, (key, value) in enumerate(params):
                if key == "approvers_not":
                    merged = list(dict.fromkeys(value.split(",") + [account_id]))
                    params[i] = ("approvers_not", ",".join(merged))
                    break
            else:
                params.append(("approvers_not", account_id))
    else:
        if choice == "Approved":
            params.append(("voter_votes", f"{account_id}:rejected"))
        elif choice == "Rejected":
            params.append(("voter_votes", f"{account_id}:approved"))
        elif choice in ("Awaiting Decision", "Not Voted"):
            params.append(("approvers", account_id))


def build_filter_params(filters: Optional[Mapping[str, Mapping[str, Any]]] = None,
                        account_id: Optional[str] = None,
                        amount_values: Optional[Mapping[str, Any]] = None,
                        search: Optional[str] = None,
                        search_not: Optional[str] = None) -> Params:
    """Translate dashboard filters into indexer query parameters, in order."""
    params: Params = []

    if search and search.strip():
        params.append(("search", search.strip()))
    if search_not and search_not.strip():
        params.append(("search_not", search_not.strip()))

    for key, flt in (filters or {}).items():
        if not flt:
            continue
        values = _filter_values(flt)
        if not values:
            continue
        include = flt.get("include", True) is not False

        if key == "status":
            if include:
                params.append(("statuses", ",".join(values)))
            else:
                kept = [s for s in PROPOSAL_STATUSES if s not in values]
                params.append(("statuses", ",".join(kept)))
        elif key in LIST_FILTERS:
            name = LIST_FILTERS[key][0 if include else 1]
            params.append((name, ",".join(values)))
        elif key == "created_date":
            raw = list(flt.get("values") or []) + [None, None]
            if raw[0]:
                params.append(("created_date_from", raw[0]))
            if raw[1]:
                params.append(("created_date_to", raw[1]))
        elif key == "votes":
            if account_id:
                _votes_params(params, values, include, account_id)
        elif key == "type":
            params.append(("stake_type" if include else "stake_type_not", values[0].lower()))
        elif key == "source":
            source = "-".join(values[0].lower().split(" "))
            params.append(("source" if include else "source_not", source))

    for name in ("min", "max", "equal"):
        value = (amount_values or {}).get(name)
        if value not in (None, ""):
            params.append((f"amount_{name}", str(value)))

    return params


def build_filter_query(*args, **kwargs) -> str:
    """URL-encoded form of build_filter_params."""
    return _encode(build_filter_params(*args, **kwargs))


# ── Proposals ────────────────────────────────────────────────────────────

def query_proposals(dao_id: str,
                    category: Optional[str] = None,
                    page: int = 0,
                    page_size: int = 10,
                    statuses: Optional[List[str]] = None,
                    proposal_types: Optional[List[str]] = None,
                    sort_direction: str = "desc",
                    filters: Optional[Mapping[str, Mapping[str, Any]]] = None,
                    search: Optional[str] = None,
                    search_not: Optional[str] = None,
                    amount_values: Optional[Mapping[str, Any]] = None,
                    account_id: Optional[str] = None) -> Dict[str, Any]:
    """One page of a DAO's proposals: {proposals, total, url}. Empty page on failure."""
    params: Params = [
        ("page", str(page)),
        ("page_size", str(page_size)),
        ("sort_by", "CreationTime"),
        ("sort_direction", sort_direction),
    ]
    if category:
        params.append(("category", category))
    if proposal_types:
        params.append(("proposal_types", ",".join(proposal_types)))

    # Status filters take precedence over the page's default statuses
    status_filter = (filters or {}).get("status") or {}
    if not status_filter.get("values") and statuses:
        params.append(("statuses", ",".join(statuses)))

    params.extend(build_filter_params(filters, account_id, amount_values, search, search_not))
    url = f"{SPUTNIK_INDEXER_BASE}/proposals/{dao_id}?{_encode(params)}"

    logger.info("Indexer call: query_proposals dao=%s category=%s page=%s", dao_id, category, page)
    try:
        resp = session.get(url, timeout=HTTP_TIMEOUT)
        resp.raise_for_status()
        data = resp.json() or {}
    except (requests.RequestException, ValueError) as e:
        logger.error("Error getting proposals from indexer: %s", e)
        return {"proposals": [], "total": 0, "url": None}

    return {
        "proposals": data.get("proposals") or [],
        "total": data.get("total") or 0,
        "url": url,
    }


def get_proposal_facets(dao_id: str, facet: str) -> List[Any]:
    """Distinct approvers / recipients / requested-tokens / proposers / validators of a DAO."""
    key = FACETS.get(facet)
    if key is None:
        raise ValueError(f"Unknown facet {facet!r}")
    logger.info("Indexer call: %s for %s", facet, dao_id)
    try:
        resp = session.get(f"{SPUTNIK_INDEXER_BASE}/proposals/{dao_id}/{facet}", timeout=HTTP_TIMEOUT)
        resp.raise_for_status()
        data = resp.json() or {}
    except (requests.RequestException, ValueError) as e:
        logger.error("Error getting proposal %s: %s", facet, e)
        return []
    return data.get(key) or []


# ── CSV Export ───────────────────────────────────────────────────────────

def build_csv_export_url(dao_id: str,
                         category: Optional[str] = None,
                         filters: Optional[Mapping[str, Mapping[str, Any]]] = None,
                         account_id: Optional[str] = None,
                         amount_values: Optional[Mapping[str, Any]] = None,
                         search: Optional[str] = None) -> str:
    """Indexer URL that streams the (optionally filtered) proposals as CSV."""
    url = f"{SPUTNIK_INDEXER_BASE}/csv/proposals/{dao_id}"
    parts = []
    if category in CSV_CATEGORIES:
        parts.append(CSV_CATEGORIES[category])
    filtered = build_filter_query(filters, account_id, amount_values, search)
    if filtered:
        parts.append(filtered)
    if parts:
        url += "?" + "&".join(parts)
    return url
