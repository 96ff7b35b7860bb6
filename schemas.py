from datetime import datetime, timezone
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator

from models import NOTES_MAX_LENGTH, ClaimStatus, Donation, DonationStatus, utcnow


def _as_naive_utc(value: datetime) -> datetime:
    # Stored timestamps are naive UTC
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UTCDatetime = Annotated[datetime, AfterValidator(_as_naive_utc)]


class DonationCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    quantity_kg: float = Field(gt=0, le=10000)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    expires_at: Optional[UTCDatetime] = None


class DonationUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    quantity_kg: Optional[float] = Field(default=None, gt=0, le=10000)
    expires_at: Optional[UTCDatetime] = None


class DonationRead(BaseModel):
    id: int
    donor_id: int
    title: str
    description: Optional[str]
    quantity_kg: float
    latitude: Optional[float]
    longitude: Optional[float]
    expires_at: Optional[datetime]
    status: DonationStatus
    pickup_code: Optional[str] = None
    is_expired: bool
    is_available: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def for_viewer(
        cls,
        donation: Donation,
        viewer_id: Optional[int],
        claimant_id: Optional[int] = None,
    ) -> "DonationRead":
        """
        Render a donation for one caller.
        The pickup code is shown only to the donor and the claiming volunteer.
        """
        now = utcnow()
        expired = donation.expires_at is not None and donation.expires_at < now
        can_see_code = viewer_id is not None and viewer_id in (donation.donor_id, claimant_id)
        return cls(
            id=donation.id,
            donor_id=donation.donor_id,
            title=donation.title,
            description=donation.description,
            quantity_kg=donation.quantity_kg,
            latitude=donation.latitude,
            longitude=donation.longitude,
            expires_at=donation.expires_at,
            status=donation.status,
            pickup_code=donation.pickup_code if can_see_code else None,
            is_expired=expired and donation.status != DonationStatus.DELIVERED,
            is_available=donation.status == DonationStatus.AVAILABLE and not expired,
            created_at=donation.created_at,
            updated_at=donation.updated_at,
        )


class ClaimRead(BaseModel):
    id: int
    donation_id: int
    volunteer_id: int
    status: ClaimStatus
    picked_up_at: Optional[datetime]
    delivered_at: Optional[datetime]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime
    donation: Optional[DonationRead] = None

    model_config = ConfigDict(from_attributes=True)


class ClaimResult(BaseModel):
    claim_id: int
    pickup_code: str
    claim: ClaimRead


class PickupRequest(BaseModel):
    pickup_code: str

    @field_validator("pickup_code")
    @classmethod
    def code_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Pickup code is required")
        return value


class DeliveryRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)


class UserCreate(BaseModel):
    email: EmailStr
    name: str
    password: str
    is_donor: bool = False
    is_volunteer: bool = False


class UserRead(BaseModel):
    id: int
    email: EmailStr
    name: str
    phone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_donor: bool
    is_volunteer: bool
    impact_score: int

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=30)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @field_validator("phone")
    @classmethod
    def blank_phone_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class UserPublic(BaseModel):
    id: int
    name: str
    impact_score: int

    model_config = ConfigDict(from_attributes=True)


class LoginData(BaseModel):
    email: EmailStr
    password: str

    role: Literal["donor", "volunteer"]


class NotificationRead(BaseModel):
    id: int
    type: str
    data: dict
    read_at: Optional[datetime]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
