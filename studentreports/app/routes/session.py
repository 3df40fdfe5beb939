from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import get_current_user
from ..schemas import ClientSettings, SessionResponse, SessionUser


router = APIRouter(tags=["session"])


@router.get("/users/me", response_model=SessionResponse)
def get_session(user: SessionUser = Depends(get_current_user)):
    return SessionResponse(user=user, settings=ClientSettings())
