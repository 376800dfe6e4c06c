# carecall/routers/devices.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import datetime

from carecall.database import get_db
from carecall.models import Device, device_key, ROLE_VOLUNTEER
from carecall.schemas import DeviceRegisterIn, AvailabilityIn, OkOut

router = APIRouter(prefix="/api", tags=["devices"])


def _merge_device(db: Session, key: str, fields: dict) -> Device:
    dev = db.get(Device, key)
    if dev:
        for k, v in fields.items():
            setattr(dev, k, v)
    else:
        dev = Device(id=key, **fields)
        db.add(dev)
    return dev


@router.post("/devices/register", response_model=OkOut)
def register_device(payload: DeviceRegisterIn, db: Session = Depends(get_db)):
    now = datetime.utcnow()
    # full registration: coordinates not sent are cleared
    _merge_device(db, device_key(payload.role, payload.user_id), dict(
        user_id=payload.user_id,
        role=payload.role,
        push_token=payload.fcm_token,
        is_available=payload.is_available,
        latitude=payload.latitude,
        longitude=payload.longitude,
        last_seen_at=now,
        updated_at=now,
    ))
    db.commit()
    return OkOut()


@router.post("/volunteers/availability", response_model=OkOut)
def update_availability(payload: AvailabilityIn, db: Session = Depends(get_db)):
    now = datetime.utcnow()
    patch = dict(
        user_id=payload.volunteer_id,
        role=ROLE_VOLUNTEER,
        is_available=payload.is_available,
        last_seen_at=now,
        updated_at=now,
    )
    if payload.latitude is not None:
        patch["latitude"] = payload.latitude
    if payload.longitude is not None:
        patch["longitude"] = payload.longitude
    if payload.fcm_token and payload.fcm_token.strip():
        patch["push_token"] = payload.fcm_token.strip()

    _merge_device(db, device_key(ROLE_VOLUNTEER, payload.volunteer_id), patch)
    db.commit()
    return OkOut()
