from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    first_name: str
    last_name: str
    role: str = Field(index=True)  # admin | donor | volunteer | aid_requester
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)


class ContactInfo(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True)

    first_name: str
    last_name: str
    phone_no: str
    street: str
    city: str
    state: str
    updated_at: datetime = Field(default_factory=utcnow)


class AidRequest(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    requester_id: int = Field(foreign_key="user.id", index=True)

    aid_type: str
    quantity: int
    urgency: str = "low"  # low | medium | high
    status: str = Field(default="pending", index=True)  # pending | assigned | fulfilled
    latitude: float
    longitude: float
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Resource(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    donor_id: int = Field(foreign_key="user.id", index=True)

    resource_type: str
    quantity: int
    status: str = "available"  # available | allocated
    latitude: float
    longitude: float
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Match(SQLModel, table=True):
    __tablename__ = "matches"

    id: Optional[int] = Field(default=None, primary_key=True)
    request_id: int = Field(foreign_key="aidrequest.id", index=True)
    resource_id: int = Field(foreign_key="resource.id", index=True)

    distance_km: float
    status: str = Field(default="pending", index=True)  # pending | confirmed | rejected
    created_at: datetime = Field(default_factory=utcnow)
    decided_at: Optional[datetime] = None


class Assignment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    request_id: int = Field(foreign_key="aidrequest.id", index=True)
    volunteer_id: int = Field(foreign_key="user.id", index=True)
    resource_id: Optional[int] = Field(default=None, foreign_key="resource.id")
    match_id: Optional[int] = Field(default=None, foreign_key="matches.id")
    quantity: int = 0  # units drawn from the resource

    status: str = "pending"  # pending | fulfilled
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
