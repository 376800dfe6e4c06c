"""
Volunteer selection: turn a snapshot of available volunteer devices into a
ranked, size-bounded dispatch list for one emergency location.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from carecall.models import Device, ROLE_VOLUNTEER
from carecall.utils import haversine_km

MAX_CANDIDATES = 200
MAX_DISPATCH = 10
FRESHNESS = timedelta(minutes=10)


@dataclass(frozen=True)
class RankedVolunteer:
    user_id: int
    push_token: str
    distance_km: Optional[float] = None


def _known(coord: Optional[float]) -> bool:
    return coord is not None and math.isfinite(coord)


def fetch_candidates(db: Session, limit: int = MAX_CANDIDATES) -> Sequence[Device]:
    stmt = (
        select(Device)
        .where(Device.role == ROLE_VOLUNTEER, Device.is_available.is_(True))
        .limit(limit)
    )
    return db.scalars(stmt).all()


def select_volunteers(
    latitude: float,
    longitude: float,
    candidates: Iterable[Device],
    now: Optional[datetime] = None,
    limit: int = MAX_DISPATCH,
) -> List[RankedVolunteer]:
    """
    Filter and rank volunteer devices around (latitude, longitude).

    Devices without a push token, or not seen within FRESHNESS of `now`, are
    dropped. The rest are ordered by ascending distance; devices with no known
    (or no finite) location go last. Ties keep snapshot order.
    """
    now = now or datetime.utcnow()
    ranked: List[RankedVolunteer] = []

    for d in candidates:
        if not d.push_token:
            continue
        if d.last_seen_at is None or now - d.last_seen_at > FRESHNESS:
            continue

        distance = None
        if _known(d.latitude) and _known(d.longitude):
            distance = haversine_km(latitude, longitude, d.latitude, d.longitude)
        ranked.append(RankedVolunteer(user_id=d.user_id, push_token=d.push_token, distance_km=distance))

    # sorted() is stable, so equal keys keep snapshot order
    ranked = sorted(ranked, key=lambda v: (v.distance_km is None, v.distance_km or 0.0))
    return ranked[:limit]
