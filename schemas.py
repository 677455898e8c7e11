from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator

Role = Literal["admin", "donor", "volunteer", "aid_requester"]
Urgency = Literal["low", "medium", "high"]

Latitude = Annotated[float, Field(ge=-90, le=90)]
Longitude = Annotated[float, Field(ge=-180, le=180)]


def _camel(snake: str, camel: str):
    return AliasChoices(snake, camel)


class UserCreate(BaseModel):
    first_name: str = Field(min_length=1, validation_alias=_camel("first_name", "firstName"))
    last_name: str = Field(min_length=1, validation_alias=_camel("last_name", "lastName"))
    email: EmailStr
    password: str = Field(min_length=6)
    role: str = "aid_requester"

    @field_validator("role")
    @classmethod
    def normalise_role(cls, v: str) -> str:
        # older clients send "aidrequester"
        v = v.strip().lower()
        if v == "aidrequester":
            return "aid_requester"
        if v not in {"admin", "donor", "volunteer", "aid_requester"}:
            raise ValueError(f"Unknown role: {v}")
        return v


class UserRead(BaseModel):
    id: int
    email: EmailStr
    first_name: str
    last_name: str
    role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LoginData(BaseModel):
    email: EmailStr
    password: str


class RoleUpdate(BaseModel):
    role: Role


class ContactInfoIn(BaseModel):
    first_name: str = Field(min_length=1, validation_alias=_camel("first_name", "firstName"))
    last_name: str = Field(min_length=1, validation_alias=_camel("last_name", "lastName"))
    phone_no: str = Field(min_length=3, validation_alias=_camel("phone_no", "phone"))
    street: str
    city: str
    state: str


class AidRequestCreate(BaseModel):
    aid_type: str = Field(min_length=1)
    quantity: int = Field(default=1, gt=0)
    urgency: Urgency = "low"
    latitude: Latitude
    longitude: Longitude


class AidRequestUpdate(BaseModel):
    aid_type: Optional[str] = Field(default=None, min_length=1)
    quantity: Optional[int] = Field(default=None, gt=0)
    urgency: Optional[Urgency] = None
    latitude: Optional[Latitude] = None
    longitude: Optional[Longitude] = None


class UrgencyUpdate(BaseModel):
    urgency: Urgency


class ResourceCreate(BaseModel):
    resource_type: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    latitude: Latitude
    longitude: Longitude


class ResourceUpdate(BaseModel):
    resource_type: Optional[str] = Field(default=None, min_length=1)
    quantity: Optional[int] = Field(default=None, ge=0)
    latitude: Optional[Latitude] = None
    longitude: Optional[Longitude] = None


class FindMatchesIn(BaseModel):
    radius_km: Optional[float] = Field(default=None, gt=0)
    request_id: Optional[int] = None


class ConfirmMatchIn(BaseModel):
    volunteer_id: int = Field(validation_alias=_camel("volunteer_id", "volunteerId"))


class AssignmentCreate(BaseModel):
    request_id: int = Field(validation_alias=_camel("request_id", "requestId"))
    volunteer_id: int = Field(validation_alias=_camel("volunteer_id", "volunteerId"))
    resource_id: Optional[int] = Field(
        default=None, validation_alias=_camel("resource_id", "resourceId")
    )
