import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.encoders import jsonable_encoder

from electzone.ballot import candidates_by_position, required_position_count
from electzone.dependencies import get_current_admin, get_store
from electzone.helpers import (
    format_date,
    get_initials,
    get_time_remaining,
    group_by,
    is_election_active,
    parse_datetime,
)
from electzone.models.election_model import (
    Candidate,
    CandidateCreate,
    CandidateUpdate,
    ElectionCreate,
    ElectionStatusUpdate,
    ElectionUpdate,
)
from electzone.schemas import BallotOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/election", tags=["Election"])


def _with_window(election: dict) -> dict:
    election["is_active"] = is_election_active(election)
    election["time_remaining"] = get_time_remaining(election.get("end_at"))
    election["starts"] = format_date(election.get("start_at"))
    election["ends"] = format_date(election.get("end_at"))
    return election


async def _get_election_or_404(store, election_id: str) -> dict:
    election = await store.get_election(election_id)
    if not election:
        raise HTTPException(status_code=404, detail="Election not found.")
    return election


async def _get_editable_candidate(store, election_id: str, candidate_id: str) -> dict:
    election = await _get_election_or_404(store, election_id)
    if election.get("status") == "running":
        raise HTTPException(status_code=409, detail="Candidates cannot change while voting is running.")
    candidate = await store.get_candidate(candidate_id)
    if not candidate or candidate["election_id"] != election_id:
        raise HTTPException(status_code=404, detail="Candidate not found.")
    return candidate


@router.get("/active")
async def get_active_election(store=Depends(get_store)):
    election = await store.get_active_election()
    if not election:
        raise HTTPException(status_code=404, detail="No active election found")
    return _with_window(election)


@router.get("/all")
async def get_all_elections(store=Depends(get_store)):
    elections = await store.list_elections()
    return {"elections": [_with_window(e) for e in elections]}


@router.post("/create")
async def create_election(election: ElectionCreate, store=Depends(get_store), admin=Depends(get_current_admin)):
    if election.end_at <= election.start_at:
        raise HTTPException(status_code=422, detail="Election must end after it starts.")
    if election.status == "running" and await store.get_active_election():
        raise HTTPException(status_code=409, detail="Another election is already running.")

    created = await store.create_election(election.model_dump())
    await store.log_action("admin", admin["sub"], "election.create", {"election_id": created["id"]})
    logger.info(f"Election {created['id']} created by {admin.get('email')}")
    return {"message": "Election created successfully!", "election_id": created["id"]}


@router.get("/{election_id}")
async def get_election(election_id: str, store=Depends(get_store)):
    return _with_window(await _get_election_or_404(store, election_id))


@router.get("/{election_id}/is-active")
async def check_election_active(election_id: str, store=Depends(get_store)):
    election = await _get_election_or_404(store, election_id)
    return {"election_id": election_id, "is_active": is_election_active(election)}


@router.patch("/{election_id}")
async def update_election(
    election_id: str,
    changes: ElectionUpdate,
    store=Depends(get_store),
    admin=Depends(get_current_admin),
):
    election = await _get_election_or_404(store, election_id)
    updates = changes.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="Nothing to update.")

    start_at = parse_datetime(updates.get("start_at", election.get("start_at")))
    end_at = parse_datetime(updates.get("end_at", election.get("end_at")))
    if start_at and end_at and end_at <= start_at:
        raise HTTPException(status_code=422, detail="Election must end after it starts.")

    updated = await store.update_election(election_id, updates)
    await store.log_action(
        "admin", admin["sub"], "election.update", {"election_id": election_id, "fields": sorted(updates)}
    )
    return _with_window(updated)


@router.delete("/{election_id}")
async def delete_election(election_id: str, store=Depends(get_store), admin=Depends(get_current_admin)):
    election = await _get_election_or_404(store, election_id)
    if election.get("status") == "running":
        raise HTTPException(status_code=409, detail="A running election cannot be deleted.")
    if await store.count_votes(election_id):
        raise HTTPException(status_code=409, detail="An election with recorded votes cannot be deleted.")

    await store.delete_election(election_id)
    await store.log_action("admin", admin["sub"], "election.delete", {"election_id": election_id})
    logger.info(f"Election {election_id} deleted by {admin.get('email')}")
    return {"message": "Election deleted.", "election_id": election_id}


@router.patch("/{election_id}/status")
async def update_election_status(
    election_id: str,
    status_update: ElectionStatusUpdate,
    store=Depends(get_store),
    admin=Depends(get_current_admin),
):
    await _get_election_or_404(store, election_id)

    # only one election may run at a time
    if status_update.status == "running":
        running = await store.get_active_election()
        if running and running["id"] != election_id:
            raise HTTPException(status_code=409, detail="Another election is already running.")

    updated = await store.update_election(election_id, {"status": status_update.status})
    await store.log_action(
        "admin", admin["sub"], "election.status", {"election_id": election_id, "status": status_update.status}
    )
    return _with_window(updated)


@router.get("/{election_id}/candidates")
async def get_candidates(
    election_id: str,
    grouped: bool = Query(False, description="Group candidates by party"),
    position: str = Query(None, description="Only candidates running for this position"),
    store=Depends(get_store),
):
    candidates = await store.list_candidates(election_id, position=position)
    if grouped:
        return {"candidates": group_by(candidates, "party", default="Independent")}
    return {"candidates": candidates}


@router.post("/{election_id}/candidates", response_model=Candidate)
async def add_candidate(
    election_id: str,
    candidate: CandidateCreate,
    store=Depends(get_store),
    admin=Depends(get_current_admin),
):
    election = await _get_election_or_404(store, election_id)
    if election.get("status") == "running":
        raise HTTPException(status_code=409, detail="Candidates cannot change while voting is running.")

    created = await store.add_candidate(election_id, candidate.model_dump())
    await store.log_action(
        "admin", admin["sub"], "candidate.create", {"election_id": election_id, "candidate_id": created["id"]}
    )
    return created


@router.patch("/{election_id}/candidates/{candidate_id}", response_model=Candidate)
async def update_candidate(
    election_id: str,
    candidate_id: str,
    changes: CandidateUpdate,
    store=Depends(get_store),
    admin=Depends(get_current_admin),
):
    await _get_editable_candidate(store, election_id, candidate_id)
    updates = changes.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="Nothing to update.")

    updated = await store.update_candidate(candidate_id, updates)
    await store.log_action(
        "admin", admin["sub"], "candidate.update", {"election_id": election_id, "candidate_id": candidate_id}
    )
    return updated


@router.delete("/{election_id}/candidates/{candidate_id}")
async def delete_candidate(
    election_id: str,
    candidate_id: str,
    store=Depends(get_store),
    admin=Depends(get_current_admin),
):
    await _get_editable_candidate(store, election_id, candidate_id)
    await store.delete_candidate(candidate_id)
    await store.log_action(
        "admin", admin["sub"], "candidate.delete", {"election_id": election_id, "candidate_id": candidate_id}
    )
    return {"message": "Candidate removed.", "candidate_id": candidate_id}


@router.get("/{election_id}/ballot", response_model=BallotOut)
async def get_ballot(election_id: str, store=Depends(get_store)):
    election = await _get_election_or_404(store, election_id)
    candidates = await store.list_candidates(election_id)
    for cand in candidates:
        cand["initials"] = get_initials(cand.get("name"))
    return BallotOut(
        election_id=election["id"],
        title=election["title"],
        required_positions=required_position_count(candidates),
        positions=jsonable_encoder(candidates_by_position(candidates)),
        time_remaining=get_time_remaining(election.get("end_at")),
    )
