from pydantic import BaseModel, Field, StrictFloat
from typing import Annotated, Literal, Optional

# ids are stored in BIGINT columns
MAX_ID = 2**63 - 1

Id = Annotated[int, Field(gt=0, le=MAX_ID)]
# JSON parsing lets NaN and Infinity through; both must fail here, before any write
Latitude = Annotated[StrictFloat, Field(ge=-90, le=90, allow_inf_nan=False)]
Longitude = Annotated[StrictFloat, Field(ge=-180, le=180, allow_inf_nan=False)]


# --- Devices ---
class DeviceRegisterIn(BaseModel):
    user_id: Id
    role: Literal["elderly", "volunteer"]
    fcm_token: str = Field(min_length=1)
    is_available: bool = False
    latitude: Optional[Latitude] = None
    longitude: Optional[Longitude] = None


class AvailabilityIn(BaseModel):
    volunteer_id: Id
    is_available: bool = False
    latitude: Optional[Latitude] = None
    longitude: Optional[Longitude] = None
    fcm_token: Optional[str] = None


class OkOut(BaseModel):
    ok: bool = True


# --- Emergencies ---
class EmergencyCreate(BaseModel):
    elderly_id: Id
    latitude: Latitude
    longitude: Longitude
    timestamp: Optional[Annotated[int, Field(le=MAX_ID)]] = None  # epoch ms; a positive value becomes the id
    status: Optional[str] = None  # accepted for compatibility, records always start 'active'


class EmergencyCreated(BaseModel):
    id: int


class EmergencyTransition(BaseModel):
    status: str = Field(min_length=1)
    volunteer_id: Optional[Id] = None


class EmergencyOut(BaseModel):
    id: int
    elderly_id: int
    latitude: float
    longitude: float
    timestamp: int  # created_at, epoch ms
    status: str
    volunteer_id: Optional[int] = None


# --- Admin ---
class CleanupOut(BaseModel):
    ok: bool = True
    deleted: int
    days: int
