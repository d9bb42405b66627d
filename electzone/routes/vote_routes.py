import logging
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from electzone.crypto import verify_payload_hash
from electzone.dependencies import get_current_voter, get_store
from electzone.models.vote_model import SubmissionOutcome, VerifyRequest, VoteSubmission
from electzone.models.voter_model import VoterStatus
from electzone.voting import submit_vote

logger = logging.getLogger(__name__)

vote_router = APIRouter(prefix="/vote", tags=["Vote"])


# ------------------------------
# CHECK IF USER HAS ALREADY VOTED
# ------------------------------
@vote_router.get("/status", response_model=VoterStatus)
async def check_vote(store=Depends(get_store), student_id: str = Depends(get_current_voter)):
    status = await store.get_voter_status(student_id)
    if not status:
        raise HTTPException(status_code=404, detail="Voter not found.")
    return status


# ------------------------------
# SUBMIT BALLOT
# ------------------------------
@vote_router.post("/submit", response_model=SubmissionOutcome)
async def cast_vote(
    vote: VoteSubmission,
    store=Depends(get_store),
    student_id: str = Depends(get_current_voter),
):
    """
    Records the ballot once. The has_voted flag is re-read here, so a second
    submission from another tab is rejected even if this session still shows
    the ballot.
    """
    outcome, status_code = await submit_vote(store, student_id, vote.election_id, vote.selections)
    if not outcome.success:
        return JSONResponse(status_code=status_code, content=outcome.model_dump())
    return outcome


# ------------------------------
# AUDIT REPLAY OF ONE RECEIPT
# ------------------------------
@vote_router.post("/verify")
async def verify_vote(body: VerifyRequest):
    return {"valid": verify_payload_hash(body.payload, body.payload_hash)}


@vote_router.get("/count/{election_id}")
async def get_vote_count(election_id: str, store=Depends(get_store)):
    return {"election_id": election_id, "count": await store.count_votes(election_id)}
