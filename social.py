"""
NEAR Treasury Dashboard - NEAR Social Profiles
===============================================
Profile name/avatar lookup for account ids, through the NEAR Social API.
"""

import logging
from typing import Dict, Iterable

import requests

from cache import BoundedCache
from config import HTTP_TIMEOUT, SOCIAL_API_BASE
from rpc import create_session

logger = logging.getLogger(__name__)

session = create_session(allowed_methods=("GET", "POST"))


def profiles_by_account_ids(account_ids: Iterable[str], cache: BoundedCache) -> Dict[str, dict]:
    """{account_id: profile} for every requested id; unknown accounts map to {}.

    Only ids missing from ``cache`` are requested. A failed lookup caches
    empty profiles so one outage doesn't turn into a request per render.
    """
    accounts = [a for a in dict.fromkeys(account_ids) if a]
    profiles = cache.get_many(accounts)
    uncached = [a for a in accounts if a not in profiles]

    if uncached:
        logger.info("Social API call for %d profiles", len(uncached))
        keys = [f"{account_id}/profile/**" for account_id in uncached]
        try:
            resp = session.post(f"{SOCIAL_API_BASE}/get", json={"keys": keys}, timeout=HTTP_TIMEOUT)
            resp.raise_for_status()
            data = resp.json() or {}
        except (requests.RequestException, ValueError) as e:
            logger.error("Error getting profiles: %s", e)
            data = {}

        for account_id in uncached:
            profile = (data.get(account_id) or {}).get("profile") or {}
            cache.set(account_id, profile)
            profiles[account_id] = profile

    return {account_id: profiles.get(account_id, {}) for account_id in accounts}
