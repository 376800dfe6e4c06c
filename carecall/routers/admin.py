# carecall/routers/admin.py
import os
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from carecall.database import get_db
from carecall.deps import require_admin
from carecall.lifecycle import sweep_emergencies
from carecall.schemas import CleanupOut

RETENTION_DAYS = int(os.getenv("RETENTION_DAYS", "30"))
MAX_RETENTION_DAYS = 36500

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/cleanup", response_model=CleanupOut)
def cleanup(
    days: Optional[int] = Query(default=None, ge=0, le=MAX_RETENTION_DAYS),
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    days = RETENTION_DAYS if days is None else days
    deleted = sweep_emergencies(db, days)
    return CleanupOut(deleted=deleted, days=days)
