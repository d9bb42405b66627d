# electzone/voting.py
# Vote submission: eligibility re-check, payload, hash, then the two writes.
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from electzone.ballot import build_vote_payload
from electzone.crypto import create_payload_hash, generate_vote_token
from electzone.errors import (
    ElectionUnavailableError,
    EligibilityError,
    PartialWriteInconsistency,
    StoreError,
    TransientStoreError,
    VoteSubmissionError,
)
from electzone.helpers import is_election_active
from electzone.models.vote_model import SubmissionOutcome, VotePayload

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "We could not submit your vote. Please try again."
PARTIAL_WRITE_MESSAGE = (
    "Your vote was received but your voting status could not be updated. "
    "Do not submit again. Please contact an election administrator."
)


async def check_eligibility(store, voter_id: str) -> Dict[str, Any]:
    """
    Read the voter's has_voted and is_active flags straight from the store.
    Never trust a value loaded earlier in the session: a second tab or a
    back-navigation may have voted since then.
    """
    try:
        status = await store.get_voter_status(voter_id)
    except StoreError as e:
        raise TransientStoreError(GENERIC_FAILURE) from e

    if status is None:
        raise EligibilityError("You are not registered to vote.", kind="not_registered")
    if not status.get("is_active", True):
        logger.info(f"Rejected submission for {voter_id}: registration inactive")
        raise EligibilityError("Your voter registration is inactive.", kind="inactive")
    if status.get("has_voted"):
        logger.info(f"Rejected submission for {voter_id}: already voted")
        raise EligibilityError("You have already voted. Cannot submit another vote.")
    return status


async def load_election_context(store, election_id: str, now: Optional[datetime] = None) -> Tuple[Dict[str, Any], list]:
    """The running election and its candidate roster."""
    try:
        election = await store.get_active_election()
        if election is None or str(election["id"]) != str(election_id):
            raise ElectionUnavailableError("This election is not open for voting.")
        if not is_election_active(election, now=now):
            raise ElectionUnavailableError("Voting for this election is closed.")
        candidates = await store.list_candidates(election["id"])
    except StoreError as e:
        raise TransientStoreError(GENERIC_FAILURE) from e
    return election, candidates


async def record_vote(
    store,
    election_id: str,
    voter_id: str,
    vote_token: str,
    payload: VotePayload,
    payload_hash: str,
) -> None:
    """
    Insert the vote, then mark the voter. Strictly in that order.

    If the insert fails nothing has changed and the voter may retry.
    If the insert succeeded but the status update did not, the vote exists
    while the voter still looks eligible. A retry would add a second,
    unlinkable vote, so this is reported as PartialWriteInconsistency and
    left for an administrator.
    """
    logger.info(f"Recording vote for election {election_id}")
    try:
        await store.insert_vote_record(election_id, vote_token, payload.to_dict(), payload_hash)
    except StoreError as e:
        logger.error(f"Vote insert failed for election {election_id}: {e}")
        raise TransientStoreError(GENERIC_FAILURE) from e

    try:
        marked = await store.set_voter_voted(voter_id)
    except StoreError as e:
        logger.error(f"Marking {voter_id} as voted failed after vote insert: {e}")
        marked = False

    if not marked:
        await _flag_partial_write(store, election_id, voter_id)
        raise PartialWriteInconsistency(PARTIAL_WRITE_MESSAGE, vote_token=vote_token, payload_hash=payload_hash)

    logger.info(f"Voter {voter_id} marked as voted")


async def _flag_partial_write(store, election_id: str, voter_id: str) -> None:
    # the vote token stays out of the log so the record remains unlinkable
    try:
        await store.log_action("voter", voter_id, "vote.partial_write", {"election_id": election_id})
    except StoreError as e:
        logger.error(f"Could not write partial-write audit entry for {voter_id}: {e}")


async def cast_vote(
    store,
    voter_id: str,
    election_id: str,
    selections: Dict[str, str],
    now: Optional[datetime] = None,
) -> Tuple[str, str]:
    """
    Run one submission attempt end to end.
    Returns (vote_token, payload_hash); raises a VoteSubmissionError subclass.
    """
    await check_eligibility(store, voter_id)
    election, candidates = await load_election_context(store, election_id, now=now)

    payload = build_vote_payload(selections, election["id"], candidates, now=now)
    payload_hash = create_payload_hash(payload.to_dict())
    vote_token = generate_vote_token()

    await record_vote(store, election["id"], voter_id, vote_token, payload, payload_hash)
    return vote_token, payload_hash


def outcome_from_error(error: VoteSubmissionError) -> SubmissionOutcome:
    return SubmissionOutcome(
        success=False,
        kind=error.kind,
        message=error.message,
        next_step=error.next_step,
        vote_token=getattr(error, "vote_token", None),
        payload_hash=getattr(error, "payload_hash", None),
    )


async def submit_vote(
    store,
    voter_id: str,
    election_id: str,
    selections: Dict[str, str],
    now: Optional[datetime] = None,
) -> Tuple[SubmissionOutcome, int]:
    """
    Single success/failure outcome for the client, with the HTTP status
    that goes with it. Selections are untouched on failure so the client
    can keep the voter on the review step.
    """
    try:
        vote_token, payload_hash = await cast_vote(store, voter_id, election_id, selections, now=now)
    except VoteSubmissionError as e:
        logger.warning(f"Vote submission for {voter_id} failed ({e.kind}): {e.message}")
        return outcome_from_error(e), e.status_code

    return SubmissionOutcome(
        success=True,
        kind="submitted",
        message="Your vote has been recorded. Thank you for voting!",
        next_step="thank-you",
        vote_token=vote_token,
        payload_hash=payload_hash,
    ), 200
