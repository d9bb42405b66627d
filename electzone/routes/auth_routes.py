import logging
from fastapi import APIRouter, Depends, Form, HTTPException

from electzone.crud import login_admin, login_voter
from electzone.dependencies import get_store
from electzone.schemas import TokenOut, VoterLoginOut, VoterLoginRequest
from electzone.security import create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/voter/login", response_model=VoterLoginOut)
async def voter_login(body: VoterLoginRequest, store=Depends(get_store)):
    voter, error = await login_voter(store, body.student_id)
    if error:
        raise HTTPException(status_code=401, detail=error)
    token = create_access_token({"sub": voter["student_id"], "role": "voter"})
    logger.info(f"Voter {voter['student_id']} logged in")
    return VoterLoginOut(access_token=token, student_id=voter["student_id"], name=voter["name"])


@router.post("/admin/login", response_model=TokenOut)
async def admin_login(email: str = Form(...), password: str = Form(...), store=Depends(get_store)):
    admin, error = await login_admin(store, email, password)
    if error:
        raise HTTPException(status_code=401, detail=error)
    token = create_access_token({"sub": str(admin["id"]), "email": email, "role": "admin"})
    await store.log_action("admin", str(admin["id"]), "admin.login", {"email": email})
    return TokenOut(access_token=token)
