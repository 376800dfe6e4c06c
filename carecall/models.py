from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, Text, Boolean, DateTime, Float, Integer, BigInteger, Index
import uuid
from datetime import datetime

Base = declarative_base()

ROLE_ELDERLY = "elderly"
ROLE_VOLUNTEER = "volunteer"
ROLE_SYSTEM = "system"

STATUS_ACTIVE = "active"
STATUS_ACCEPTED = "accepted"

def uuid_str() -> str:
    return str(uuid.uuid4())

def device_key(role: str, user_id: int) -> str:
    return f"{role}_{user_id}"


class Device(Base):
    __tablename__ = "devices"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # "{role}_{user_id}"
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # 'elderly' | 'volunteer'

    push_token: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    last_seen_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_devices_role_available", "role", "is_available"),
    )


class Emergency(Base):
    __tablename__ = "emergencies"
    # epoch milliseconds; client timestamps become ids
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=False)
    elderly_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    status: Mapped[str] = mapped_column(String(32), default=STATUS_ACTIVE, nullable=False)  # 'active' | 'accepted' | free-form
    volunteer_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_emergencies_status_volunteer", "status", "volunteer_id"),
        Index("ix_emergencies_created_at", "created_at"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    # no FK: entries outlive swept emergencies
    emergency_id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)  # 'elderly' | 'volunteer' | 'system'
    actor_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    extra: Mapped[str | None] = mapped_column(Text, nullable=True)  # store JSON text
