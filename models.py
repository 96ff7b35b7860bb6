from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Enum as SAEnum, Index, text
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every datetime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _timestamp(**kwargs):
    # Naive UTC in a plain DATETIME column, whatever SQLModel would pick
    return Field(sa_type=DateTime(timezone=False), **kwargs)


def _status_column(enum_cls: type[Enum], default: Enum) -> Column:
    # Persist the lowercase values, not the member names
    return Column(
        SAEnum(
            enum_cls,
            values_callable=lambda members: [m.value for m in members],
            native_enum=False,
            length=20,
        ),
        nullable=False,
        default=default,
        index=True,
    )


class DonationStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DELETED = "deleted"
    EXPIRED = "expired"


class ClaimStatus(str, Enum):
    ACTIVE = "active"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Claims only ever move forward
CLAIM_TRANSITIONS = {
    ClaimStatus.ACTIVE: {ClaimStatus.PICKED_UP, ClaimStatus.CANCELLED},
    ClaimStatus.PICKED_UP: {ClaimStatus.DELIVERED, ClaimStatus.CANCELLED},
    ClaimStatus.DELIVERED: set(),
    ClaimStatus.CANCELLED: set(),
}

# Donation states that carry a pickup code
CODE_BEARING_STATUSES = {
    DonationStatus.RESERVED,
    DonationStatus.PICKED_UP,
    DonationStatus.DELIVERED,
}

NOTES_MAX_LENGTH = 500


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    phone: Optional[str] = Field(default=None, max_length=30)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_donor: bool = False
    is_volunteer: bool = False
    password_hash: str
    impact_score: int = Field(default=0, ge=0)
    created_at: datetime = _timestamp(default_factory=utcnow)

    @property
    def roles(self) -> set[str]:
        """Capability labels held by this user."""
        roles = set()
        if self.is_donor:
            roles.add("donor")
        if self.is_volunteer:
            roles.add("volunteer")
        return roles


class Donation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    donor_id: int = Field(foreign_key="user.id", index=True)

    title: str = Field(max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    quantity_kg: float
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    expires_at: Optional[datetime] = _timestamp(default=None)

    status: DonationStatus = Field(
        default=DonationStatus.AVAILABLE,
        sa_column=_status_column(DonationStatus, DonationStatus.AVAILABLE),
    )
    pickup_code: Optional[str] = Field(default=None, max_length=6)

    created_at: datetime = _timestamp(default_factory=utcnow)
    updated_at: datetime = _timestamp(
        default_factory=utcnow,
        sa_column_kwargs={"onupdate": utcnow},
    )


class Claim(SQLModel, table=True):
    __table_args__ = (
        # At most one open claim per donation; cancelled claims are history
        Index(
            "uq_claim_open_donation",
            "donation_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    donation_id: int = Field(foreign_key="donation.id")
    volunteer_id: int = Field(foreign_key="user.id", index=True)

    status: ClaimStatus = Field(
        default=ClaimStatus.ACTIVE,
        sa_column=_status_column(ClaimStatus, ClaimStatus.ACTIVE),
    )
    picked_up_at: Optional[datetime] = _timestamp(default=None)
    delivered_at: Optional[datetime] = _timestamp(default=None)
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)

    created_at: datetime = _timestamp(default_factory=utcnow)
    updated_at: datetime = _timestamp(
        default_factory=utcnow,
        sa_column_kwargs={"onupdate": utcnow},
    )


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    type: str
    data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    read_at: Optional[datetime] = _timestamp(default=None)
    created_at: datetime = _timestamp(default_factory=utcnow)
