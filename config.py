"""
NEAR Treasury Dashboard - Configuration
========================================
External service endpoints, tracked treasuries, and protocol constants.
Easy to modify: override any value through the environment or a .env file.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# General
# ---------------------------------------------------------------------------
# Fetch interval in minutes
FETCH_INTERVAL_MINUTES = int(os.environ.get("FETCH_INTERVAL_MINUTES", "15"))

# Disable to run the API without the background refresh (tests, one-off scripts)
SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "true").lower() == "true"

# Seconds before an outbound HTTP request is abandoned
HTTP_TIMEOUT = int(os.environ.get("HTTP_TIMEOUT", "30"))

# Upper bound on concurrent outbound requests per fan-out
FETCH_WORKERS = int(os.environ.get("FETCH_WORKERS", "8"))

# ---------------------------------------------------------------------------
# External services
# ---------------------------------------------------------------------------
NEAR_RPC_URL = os.environ.get("NEAR_RPC_URL", "https://rpc.mainnet.fastnear.com")
FASTNEAR_API_KEY = os.environ.get("FASTNEAR_API_KEY", "")  # Optional

BACKEND_API_BASE = os.environ.get("BACKEND_API_BASE", "https://ref-sdk-api-2.fly.dev/api")
SPUTNIK_INDEXER_BASE = os.environ.get("SPUTNIK_INDEXER_BASE", "https://sputnik-indexer.fly.dev")
SOCIAL_API_BASE = os.environ.get("SOCIAL_API_BASE", "https://api.near.social")
CHAINDEFUSER_RPC_URL = os.environ.get("CHAINDEFUSER_RPC_URL", "https://bridge.chaindefuser.com/rpc")

# Both registries are queried; the union of their pool ids is used
STAKING_POOL_REGISTRIES = [
    "https://api.fastnear.com/v1/account/{account_id}/staking",
    "https://staking-pools-api.neartreasury.com/v1/account/{account_id}/staking",
]

# ---------------------------------------------------------------------------
# Protocol constants
# ---------------------------------------------------------------------------
NEAR_DECIMALS = 24
YOCTO_PER_NEAR = 10 ** NEAR_DECIMALS

# Storage staking price: 10^19 yoctoNEAR per byte
STORAGE_PRICE_PER_BYTE = 10 ** 19

# Lockup contracts are named sha256(owner)[:40] + LOCKUP_SUFFIX
LOCKUP_SUFFIX = ".lockup.near"
LOCKUP_LOCKED_AMOUNT_METHOD = "get_locked_amount"

INTENTS_CONTRACT_ID = os.environ.get("INTENTS_CONTRACT_ID", "intents.near")

# Fungible-token lockup contracts checked for every treasury
FT_LOCKUP_CONTRACTS = [
    contract_id.strip()
    for contract_id in os.environ.get("FT_LOCKUP_CONTRACTS", "").split(",")
    if contract_id.strip()
]

SPUTNIK_DAO_SUFFIX = ".sputnik-dao.near"

# ---------------------------------------------------------------------------
# Caches
# ---------------------------------------------------------------------------
TOKEN_METADATA_CACHE_SIZE = int(os.environ.get("TOKEN_METADATA_CACHE_SIZE", "2048"))
TOKEN_METADATA_CACHE_TTL = int(os.environ.get("TOKEN_METADATA_CACHE_TTL", "3600"))
PROFILE_CACHE_SIZE = int(os.environ.get("PROFILE_CACHE_SIZE", "4096"))
PROFILE_CACHE_TTL = int(os.environ.get("PROFILE_CACHE_TTL", "1800"))
PRICE_CACHE_DURATION = 300  # 5 minutes

# ---------------------------------------------------------------------------
# Post-write indexer polling
# ---------------------------------------------------------------------------
INDEXER_POLL_ATTEMPTS = int(os.environ.get("INDEXER_POLL_ATTEMPTS", "5"))
INDEXER_POLL_BASE_DELAY = float(os.environ.get("INDEXER_POLL_BASE_DELAY", "0.5"))
INDEXER_POLL_MAX_DELAY = float(os.environ.get("INDEXER_POLL_MAX_DELAY", "8"))

# ---------------------------------------------------------------------------
# Tracked Treasuries
# Refreshed by the background scheduler. Comma separated DAO account ids.
# ---------------------------------------------------------------------------
TRACKED_TREASURIES = [
    dao_id.strip()
    for dao_id in os.environ.get("TRACKED_TREASURIES", "").split(",")
    if dao_id.strip()
]

# ---------------------------------------------------------------------------
# Proposal categories understood by the indexer CSV export
# ---------------------------------------------------------------------------
CSV_CATEGORIES = {
    "payments": "category=payments",
    "stake-delegation": "category=stake-delegation",
    "asset-exchange": "category=asset-exchange",
    "lockup": "category=lockup",
    "function-call": "proposal_types=FunctionCall",
}

PROPOSAL_STATUSES = ["Approved", "Rejected", "Failed", "Expired"]
