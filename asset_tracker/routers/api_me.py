from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.security import Actor
from ..crud.assignments import employee_assets
from ..db.session import get_db
from ..deps.auth import get_actor
from ..schemas.assignment import AssignmentOut

router = APIRouter(prefix="/api/me", tags=["me"])


@router.get("/assets", response_model=list[AssignmentOut])
def api_my_assets(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """Assets held (or once held) by the caller; the token subject is the employee code."""

    return employee_assets(db, actor.user_id)
