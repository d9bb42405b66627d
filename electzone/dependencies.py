from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from electzone.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_store(request: Request):
    return request.app.state.store


def _claims(credentials: HTTPAuthorizationCredentials) -> dict:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    claims = decode_access_token(credentials.credentials)
    if not claims:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return claims


def get_current_voter(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> str:
    """Student ID of the logged-in voter."""
    claims = _claims(credentials)
    if claims.get("role") != "voter":
        raise HTTPException(status_code=403, detail="Voter login required")
    return claims["sub"]


def get_current_admin(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> dict:
    claims = _claims(credentials)
    if claims.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin login required")
    return claims
