# carecall/routers/emergencies.py
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from carecall.database import get_db
from carecall.lifecycle import UNSET, report_emergency, list_active, transition_emergency
from carecall.models import Emergency
from carecall.notifier import PushSender, get_push_sender
from carecall.schemas import MAX_ID, EmergencyCreate, EmergencyCreated, EmergencyTransition, EmergencyOut, OkOut
from carecall.utils import to_epoch_ms

router = APIRouter(prefix="/api/emergencies", tags=["emergencies"])


def to_out(em: Emergency) -> EmergencyOut:
    return EmergencyOut(
        id=em.id,
        elderly_id=em.elderly_id,
        latitude=em.latitude,
        longitude=em.longitude,
        timestamp=to_epoch_ms(em.created_at) if em.created_at else em.id,
        status=em.status,
        volunteer_id=em.volunteer_id,
    )


@router.post("", response_model=EmergencyCreated, status_code=status.HTTP_201_CREATED)
def create_emergency(
    payload: EmergencyCreate,
    db: Session = Depends(get_db),
    push: PushSender = Depends(get_push_sender),
):
    return EmergencyCreated(id=report_emergency(db, payload, push))


@router.get("/active", response_model=List[EmergencyOut])
def active_emergencies(
    volunteer_id: Optional[int] = Query(default=None, ge=0, le=MAX_ID),
    db: Session = Depends(get_db),
):
    return [to_out(em) for em in list_active(db, volunteer_id)]


@router.put("/{emergency_id}", response_model=OkOut)
def update_emergency(
    payload: EmergencyTransition,
    emergency_id: int = Path(gt=0, le=MAX_ID),
    db: Session = Depends(get_db),
    push: PushSender = Depends(get_push_sender),
):
    # an explicit "volunteer_id": null clears it; leaving the key out keeps it
    volunteer_id = payload.volunteer_id if "volunteer_id" in payload.model_fields_set else UNSET
    transition_emergency(db, emergency_id, payload.status, push, volunteer_id)
    return OkOut()
