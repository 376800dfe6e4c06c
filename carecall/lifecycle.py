"""
Emergency lifecycle engine.

An emergency is created `active` and may move to `accepted` exactly once.
That transition is a single conditional UPDATE guarded on `status = 'active'`;
the affected row count decides the winner, so concurrent accepts on the same
id yield one success and `Conflict` for everybody else. Any other status is a
plain last-writer-wins overwrite.

Audit entries are written before notifications. Push failures that happen
after a committed transition are logged and never reported to the caller.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carecall.errors import Conflict, NotFound, Unavailable, ValidationError
from carecall.models import (
    AuditLog, Device, Emergency, device_key,
    ROLE_ELDERLY, ROLE_SYSTEM, ROLE_VOLUNTEER, STATUS_ACCEPTED, STATUS_ACTIVE,
)
from carecall.notifier import PushSender
from carecall.schemas import EmergencyCreate
from carecall.selector import fetch_candidates, select_volunteers
from carecall.utils import now_ms

logger = logging.getLogger(__name__)

LIST_LIMIT = 200
SWEEP_LIMIT = 200
MAX_ID_ATTEMPTS = 5

# marks "volunteer_id not supplied", as opposed to an explicit None
UNSET: Any = object()


def append_audit(
    db: Session,
    emergency_id: int,
    action: str,
    actor_role: str,
    actor_user_id: Optional[int] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Stage an audit entry on `db`; the caller commits."""
    entry = AuditLog(
        emergency_id=emergency_id,
        action=action,
        actor_role=actor_role,
        actor_user_id=actor_user_id,
        extra=json.dumps(extra) if extra else None,
    )
    db.add(entry)
    return entry


def _insert_report(db: Session, emergency_id: int, payload: EmergencyCreate) -> bool:
    """
    Commit the record with its `created` entry under `emergency_id`.

    Returns False when another report already holds that id. Any other
    integrity failure propagates.
    """
    now = datetime.utcnow()
    db.add(Emergency(
        id=emergency_id,
        elderly_id=payload.elderly_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        status=STATUS_ACTIVE,
        volunteer_id=None,
        created_at=now,
        updated_at=now,
    ))
    append_audit(db, emergency_id, "created", ROLE_ELDERLY, payload.elderly_id)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if db.get(Emergency, emergency_id) is None:
            raise
        return False
    return True


def report_emergency(db: Session, payload: EmergencyCreate, push: PushSender) -> int:
    # client-supplied ids are never bumped; clock ids step past same-millisecond reports
    requested = payload.timestamp if payload.timestamp and payload.timestamp > 0 else None
    emergency_id = requested or now_ms()
    for _ in range(MAX_ID_ATTEMPTS):
        if db.get(Emergency, emergency_id) is None and _insert_report(db, emergency_id, payload):
            break
        if requested:
            raise Conflict(f"Emergency {emergency_id} already exists")
        emergency_id += 1
    else:
        raise Conflict("Could not allocate an emergency id")
    logger.info("Emergency %s reported by elderly %s", emergency_id, payload.elderly_id)

    _dispatch_to_volunteers(db, emergency_id, payload, push)
    return emergency_id


def _dispatch_to_volunteers(db: Session, emergency_id: int, payload: EmergencyCreate, push: PushSender) -> None:
    volunteers = select_volunteers(payload.latitude, payload.longitude, fetch_candidates(db))
    if not volunteers:
        logger.info("No reachable volunteers for emergency %s", emergency_id)
        return

    data = {
        "type": "emergency_new",
        "emergency_id": str(emergency_id),
        "elderly_id": str(payload.elderly_id),
        "latitude": str(payload.latitude),
        "longitude": str(payload.longitude),
    }
    try:
        push.send_many([v.push_token for v in volunteers], data)
    except Unavailable as e:
        logger.warning("Push to volunteers for emergency %s failed: %s", emergency_id, e)
        return

    append_audit(
        db, emergency_id, "pushed_to_volunteers", ROLE_SYSTEM,
        extra={"notified_volunteer_user_ids": [v.user_id for v in volunteers]},
    )
    db.commit()
    logger.info("Emergency %s pushed to %d volunteer(s)", emergency_id, len(volunteers))


def accept_emergency(db: Session, emergency_id: int, volunteer_id: int, push: PushSender) -> None:
    now = datetime.utcnow()
    result = db.execute(
        update(Emergency)
        .where(Emergency.id == emergency_id, Emergency.status == STATUS_ACTIVE)
        .values(status=STATUS_ACCEPTED, volunteer_id=volunteer_id, accepted_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        if db.get(Emergency, emergency_id) is None:
            raise NotFound("Emergency not found")
        logger.info("Volunteer %s lost the race for emergency %s", volunteer_id, emergency_id)
        raise Conflict("Emergency already accepted")
    db.commit()
    logger.info("Emergency %s accepted by volunteer %s", emergency_id, volunteer_id)

    append_audit(db, emergency_id, "accepted", ROLE_VOLUNTEER, volunteer_id)
    db.commit()

    _notify_reporter(db, emergency_id, volunteer_id, push)


def _notify_reporter(db: Session, emergency_id: int, volunteer_id: int, push: PushSender) -> None:
    emergency = db.get(Emergency, emergency_id)
    if emergency is None:
        return
    device = db.get(Device, device_key(ROLE_ELDERLY, emergency.elderly_id))
    if device is None or not device.push_token:
        logger.info("Elderly %s has no push token; acceptance of %s not pushed", emergency.elderly_id, emergency_id)
        return

    data = {
        "type": "emergency_accepted",
        "emergency_id": str(emergency_id),
        "volunteer_id": str(volunteer_id),
    }
    try:
        push.send_one(device.push_token, data)
    except Unavailable as e:
        logger.warning("Push to elderly %s for emergency %s failed: %s", emergency.elderly_id, emergency_id, e)


def set_status(db: Session, emergency_id: int, status: str, volunteer_id: Any = UNSET) -> None:
    """
    Overwrite status (and volunteer_id when supplied, None clears it).

    Last writer wins. `active` and `accepted` are reserved: an emergency is
    only active from creation, and only accept_emergency may accept it.
    """
    if status in (STATUS_ACTIVE, STATUS_ACCEPTED):
        raise ValidationError(f"status '{status}' cannot be set directly")

    values: Dict[str, Any] = {"status": status, "updated_at": datetime.utcnow()}
    if volunteer_id is not UNSET:
        values["volunteer_id"] = volunteer_id

    result = db.execute(
        update(Emergency)
        .where(Emergency.id == emergency_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFound("Emergency not found")
    append_audit(db, emergency_id, f"status_{status}", ROLE_SYSTEM)
    db.commit()
    logger.info("Emergency %s set to %s", emergency_id, status)


def transition_emergency(
    db: Session,
    emergency_id: int,
    status: str,
    push: PushSender,
    volunteer_id: Any = UNSET,
) -> None:
    if status == STATUS_ACCEPTED:
        if volunteer_id is UNSET or volunteer_id is None:
            raise ValidationError("volunteer_id is required for accepted")
        accept_emergency(db, emergency_id, volunteer_id, push)
    else:
        set_status(db, emergency_id, status, volunteer_id)


def list_active(db: Session, volunteer_id: Optional[int] = None) -> List[Emergency]:
    """Open emergencies, plus the ones `volunteer_id` has accepted."""
    rows = list(db.scalars(
        select(Emergency)
        .where(Emergency.status == STATUS_ACTIVE)
        .order_by(Emergency.id)
        .limit(LIST_LIMIT)
    ))
    if volunteer_id:
        rows.extend(db.scalars(
            select(Emergency)
            .where(Emergency.status == STATUS_ACCEPTED, Emergency.volunteer_id == volunteer_id)
            .order_by(Emergency.id)
            .limit(LIST_LIMIT)
        ))
    return rows


def sweep_emergencies(db: Session, days: int, now: Optional[datetime] = None) -> int:
    # age only: an active emergency past the cutoff is deleted too
    now = now or datetime.utcnow()
    try:
        cutoff = now - timedelta(days=days)
    except OverflowError:
        cutoff = datetime.min
    ids = db.scalars(
        select(Emergency.id).where(Emergency.created_at < cutoff).limit(SWEEP_LIMIT)
    ).all()
    if ids:
        db.execute(delete(Emergency).where(Emergency.id.in_(ids)))
        db.commit()
    logger.info("Retention sweep removed %d emergencies older than %d days", len(ids), days)
    return len(ids)
