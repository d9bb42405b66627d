import asyncio
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

from electzone.crud import (
    audit_election,
    create_admin,
    get_candidate_vote_counts,
    get_results_by_party,
    get_results_by_position,
    get_statistics,
)
from electzone.dependencies import get_current_admin, get_store
from electzone.helpers import is_valid_student_id
from electzone.models.voter_model import Voter, VoterCreate, VoterUpdate
from electzone.schemas import AdminCreate, AdminOut, AuditReport, CandidateResult, PartyResult, StatisticsOut, TurnoutOut
from electzone.security import decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


def _check_student_id(student_id: str) -> None:
    if not is_valid_student_id(student_id):
        raise HTTPException(status_code=422, detail=f"'{student_id}' is not a valid student ID.")


@router.get("/turnout", response_model=TurnoutOut, dependencies=[Depends(get_current_admin)])
async def get_turnout(store=Depends(get_store)):
    return await store.get_turnout()


@router.get("/statistics/{election_id}", response_model=StatisticsOut, dependencies=[Depends(get_current_admin)])
async def get_election_statistics(election_id: str, store=Depends(get_store)):
    if not await store.get_election(election_id):
        raise HTTPException(status_code=404, detail="Election not found.")
    return await get_statistics(store, election_id)


@router.get("/results/{election_id}", response_model=List[CandidateResult], dependencies=[Depends(get_current_admin)])
async def get_results(election_id: str, store=Depends(get_store)):
    return await get_candidate_vote_counts(store, election_id)


@router.get("/results/{election_id}/party", response_model=List[PartyResult], dependencies=[Depends(get_current_admin)])
async def get_party_results(election_id: str, store=Depends(get_store)):
    return await get_results_by_party(store, election_id)


@router.get(
    "/results/{election_id}/position/{position}",
    response_model=List[CandidateResult],
    dependencies=[Depends(get_current_admin)],
)
async def get_position_results(election_id: str, position: str, store=Depends(get_store)):
    return await get_results_by_position(store, election_id, position)


@router.get("/audit/{election_id}", response_model=AuditReport, dependencies=[Depends(get_current_admin)])
async def verify_election_integrity(election_id: str, store=Depends(get_store)):
    """Recomputes every stored payload hash of an election."""
    report = await audit_election(store, election_id)
    if report["mismatched"]:
        logger.warning(f"{len(report['mismatched'])} vote(s) in {election_id} failed hash verification")
    return report


# --- Voters ---


@router.get("/voters", response_model=List[Voter], dependencies=[Depends(get_current_admin)])
async def get_all_voters(year_level: str = Query(None), store=Depends(get_store)):
    return await store.list_voters(year_level=year_level)


@router.post("/voters", response_model=Voter)
async def add_voter(voter: VoterCreate, store=Depends(get_store), admin=Depends(get_current_admin)):
    created = await store.add_voter(voter.model_dump())
    if not created:
        raise HTTPException(status_code=400, detail=f"Voter {voter.student_id} already exists.")
    await store.log_action("admin", admin["sub"], "voter.create", {"student_id": voter.student_id})
    return created


@router.patch("/voters/{student_id}", response_model=Voter)
async def update_voter(
    student_id: str,
    changes: VoterUpdate,
    store=Depends(get_store),
    admin=Depends(get_current_admin),
):
    _check_student_id(student_id)
    updates = changes.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="Nothing to update.")
    updated = await store.update_voter(student_id, updates)
    if not updated:
        raise HTTPException(status_code=404, detail="Voter not found.")
    await store.log_action("admin", admin["sub"], "voter.update", {"student_id": student_id, "fields": sorted(updates)})
    return updated


@router.delete("/voters/{student_id}")
async def delete_voter(student_id: str, store=Depends(get_store), admin=Depends(get_current_admin)):
    _check_student_id(student_id)
    voter = await store.get_voter(student_id)
    if not voter:
        raise HTTPException(status_code=404, detail="Voter not found.")
    # turnout must keep matching the vote count
    if voter.get("has_voted"):
        raise HTTPException(status_code=409, detail="A voter who has voted cannot be removed. Deactivate instead.")
    await store.delete_voter(student_id)
    await store.log_action("admin", admin["sub"], "voter.delete", {"student_id": student_id})
    return {"message": "Voter removed.", "student_id": student_id}


# --- Admins ---


@router.get("/admins", response_model=List[AdminOut], dependencies=[Depends(get_current_admin)])
async def get_all_admins(store=Depends(get_store)):
    return await store.list_admins()


@router.post("/admins", response_model=AdminOut)
async def add_admin(data: AdminCreate, store=Depends(get_store), admin=Depends(get_current_admin)):
    created = await create_admin(store, data)
    if not created:
        raise HTTPException(status_code=400, detail=f"Admin {data.email} already exists.")
    await store.log_action("admin", admin["sub"], "admin.create", {"email": data.email})
    logger.info(f"Admin {data.email} created by {admin.get('email')}")
    return created


@router.get("/audit-logs", dependencies=[Depends(get_current_admin)])
async def get_audit_logs(limit: int = Query(100, ge=1, le=1000), store=Depends(get_store)):
    return {"logs": await store.list_audit_logs(limit)}


# --- Live dashboard ---


async def _push_changes(websocket: WebSocket, store, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(
            {
                "event": f"{message['table']}:{message['event']}",
                "turnout": await store.get_turnout(),
            }
        )


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def stream_changes(websocket: WebSocket, store, queue: asyncio.Queue) -> None:
    """
    Forward feed events until the client goes away. Waiting on the socket as
    well as the queue ends the stream on disconnect even when no votes arrive.
    """
    tasks = [
        asyncio.create_task(_push_changes(websocket, store, queue)),
        asyncio.create_task(_wait_for_disconnect(websocket)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()
    except (WebSocketDisconnect, RuntimeError) as e:
        # sending on a closed socket raises RuntimeError in starlette
        logger.info(f"Dashboard live connection dropped: {e!r}")
    finally:
        for task in tasks:
            task.cancel()


@router.websocket("/live")
async def live_updates(websocket: WebSocket, token: str = Query(...)):
    """
    Pushes a turnout snapshot on connect and again after every vote insert
    or voter update.
    """
    claims = decode_access_token(token)
    if not claims or claims.get("role") != "admin":
        await websocket.close(code=1008)
        return

    store = websocket.app.state.store
    feed = websocket.app.state.feed
    await websocket.accept()
    queue = feed.subscribe()
    try:
        await websocket.send_json({"event": "snapshot", "turnout": await store.get_turnout()})
        await stream_changes(websocket, store, queue)
    except WebSocketDisconnect:
        logger.info("Dashboard left before the snapshot was sent")
    finally:
        feed.unsubscribe(queue)
        logger.info("Dashboard live connection closed")
