"""
NEAR Treasury Dashboard - Post-Write Handling
==============================================
After a wallet signs a vote or a new proposal, decode what the transaction
did and wait (briefly) for the indexer to catch up before refreshing.
"""

import base64
import binascii
import json
import logging
import time
from typing import Any, Dict, Optional

from config import INDEXER_POLL_ATTEMPTS, INDEXER_POLL_BASE_DELAY, INDEXER_POLL_MAX_DELAY
import indexer
import rpc

logger = logging.getLogger(__name__)

POLL_PAGE_SIZE = 50

# act_proposal action -> vote as recorded in the proposal's votes map
VOTE_ACTIONS = {"VoteApprove": "Approve", "VoteReject": "Reject", "VoteRemove": "Remove"}


def _b64_text(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return base64.b64decode(value).decode("utf-8")
    except (binascii.Error, ValueError):
        return ""


def _first_function_call(transaction: Dict[str, Any]) -> Dict[str, Any]:
    actions = (transaction.get("transaction") or {}).get("actions") or []
    if not actions or not isinstance(actions[0], dict):
        return {}
    return actions[0].get("FunctionCall") or {}


def describe_transaction(dao_id: str, tx_hash: str, signer_id: str) -> Optional[Dict[str, Any]]:
    """What a signed DAO transaction did: {method, proposalId, status}.

    ``act_proposal`` reports the proposal's current status ("Removed" once
    the proposal is gone) and the vote cast, ``add_proposal`` reports
    "ProposalAdded" with the new id. Other transactions, or unknown hashes,
    give None.
    """
    outcome = rpc.tx_status(tx_hash, signer_id)
    if not outcome:
        return None

    call = _first_function_call(outcome)
    method = call.get("method_name")

    if method == "act_proposal":
        try:
            args = json.loads(_b64_text(call.get("args")) or "{}")
        except ValueError:
            args = {}
        proposal_id = args.get("id") if isinstance(args, dict) else None
        if proposal_id is None:
            return None
        proposal = rpc.view_function(dao_id, "get_proposal", {"id": proposal_id})
        status = proposal.get("status") if isinstance(proposal, dict) else "Removed"
        return {
            "method": method,
            "proposalId": proposal_id,
            "status": status,
            "vote": VOTE_ACTIONS.get(args.get("action")),
        }

    if method == "add_proposal":
        success = (outcome.get("status") or {}).get("SuccessValue")
        text = _b64_text(success)
        try:
            proposal_id = json.loads(text) if text else None
        except ValueError:
            proposal_id = None
        return {"method": method, "proposalId": proposal_id, "status": "ProposalAdded"}

    logger.info("Transaction %s called %s, nothing to report", tx_hash, method)
    return None


def wait_for_proposal(dao_id: str,
                      proposal_id: int,
                      expected_status: Optional[str] = None,
                      voter: Optional[str] = None,
                      vote: Optional[str] = None,
                      attempts: int = INDEXER_POLL_ATTEMPTS,
                      base_delay: float = INDEXER_POLL_BASE_DELAY,
                      max_delay: float = INDEXER_POLL_MAX_DELAY,
                      sleep=time.sleep) -> Optional[Dict[str, Any]]:
    """Poll the indexer until it lists ``proposal_id`` in the expected state.

    The proposal must be in ``expected_status`` when one is given, and must
    record ``vote`` from ``voter`` when both are given. Delays double from
    ``base_delay`` up to ``max_delay``. Returns the indexed proposal, or None
    when the indexer hasn't caught up after ``attempts`` polls.
    """
    statuses = [expected_status] if expected_status else None
    delay = base_delay
    for attempt in range(1, attempts + 1):
        page = indexer.query_proposals(dao_id, page_size=POLL_PAGE_SIZE, statuses=statuses)
        for proposal in page["proposals"]:
            if proposal.get("id") != proposal_id:
                continue
            if expected_status is not None and proposal.get("status") != expected_status:
                continue
            if vote and voter and (proposal.get("votes") or {}).get(voter) != vote:
                continue
            logger.info("Proposal %s of %s indexed after %d poll(s)", proposal_id, dao_id, attempt)
            return proposal
        if attempt < attempts:
            sleep(delay)
            delay = min(delay * 2, max_delay)

    logger.warning("Proposal %s of %s not indexed after %d polls", proposal_id, dao_id, attempts)
    return None
