from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel


# User.role
ROLE_USER = "user"
ROLE_RESTAURANT = "restaurant"
ROLE_CHARITY = "charity"
ROLE_ADMIN = "admin"
ROLE_CHARITY_REQUEST = "charity_role_request"
ROLE_RESTAURANT_REQUEST = "restaurant_role_request"
ROLES = (
    ROLE_USER,
    ROLE_RESTAURANT,
    ROLE_CHARITY,
    ROLE_ADMIN,
    ROLE_CHARITY_REQUEST,
    ROLE_RESTAURANT_REQUEST,
)

# Donation.status / Request.request_status
PENDING = "Pending"
VERIFIED = "Verified"
REJECTED = "Rejected"
ACCEPTED = "Accepted"
MODERATION_STATUSES = (PENDING, VERIFIED, REJECTED)

# Donation.donation_status / Request.picking_status
PICKED_UP = "Picked Up"

# Transaction.status / User.status
APPROVED = "approved"
DECLINED = "rejected"
AWAITING = "pending"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: Optional[str] = None
    photo_url: Optional[str] = None
    role: str = ROLE_USER
    status: Optional[str] = None  # pending | approved | rejected role request
    uid: Optional[str] = None  # identity provider account

    contact_number: Optional[str] = None
    organization_name: Optional[str] = None
    organization_email: Optional[str] = None
    organization_contact: Optional[str] = None
    organization_address: Optional[str] = None
    organization_tagline: Optional[str] = None
    mission: Optional[str] = None
    organization_logo: Optional[str] = None

    transaction_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    last_login: Optional[datetime] = None


class Donation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    restaurant_email: str = Field(index=True)
    restaurant_name: Optional[str] = None

    title: str
    food_type: str
    quantity: str
    pickup_window: Optional[str] = None
    location: str
    image: Optional[str] = None
    description: Optional[str] = None

    status: str = PENDING  # Pending | Verified | Rejected
    donation_status: Optional[str] = None  # None | Picked Up
    is_locked: bool = False
    is_featured: bool = False

    # written together with is_locked by the lock
    accepted_request_id: Optional[int] = None
    locked_by_email: Optional[str] = None

    picked_up_by_email: Optional[str] = None
    picked_up_by_name: Optional[str] = None

    posted_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    picked_up_at: Optional[datetime] = None


class Request(SQLModel, table=True):
    __table_args__ = (
        Index(
            "uq_request_live_claim",
            "donation_id",
            "charity_email",
            unique=True,
            postgresql_where=text("request_status IN ('Pending', 'Accepted')"),
            sqlite_where=text("request_status IN ('Pending', 'Accepted')"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    # weak reference: the donation may be deleted underneath it
    donation_id: Optional[int] = Field(default=None, index=True)
    donation_title: Optional[str] = None
    restaurant_email: Optional[str] = Field(default=None, index=True)

    charity_email: str = Field(index=True)
    charity_name: str
    charity_image: Optional[str] = None
    request_description: Optional[str] = None
    pickup_time: Optional[str] = None

    request_status: str = PENDING  # Pending | Accepted | Rejected
    picking_status: Optional[str] = None  # None | Picked Up
    created_at: datetime = Field(default_factory=utcnow)
    picked_up_at: Optional[datetime] = None


class Transaction(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_id: str = Field(index=True, unique=True)
    email: str = Field(index=True)
    amount: float
    role_requested: Optional[str] = None
    status: str = AWAITING
    request_time: datetime = Field(default_factory=utcnow)


class Review(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    reviewer_email: str = Field(index=True)
    reviewer_name: Optional[str] = None
    donation_id: Optional[int] = Field(default=None, index=True)
    restaurant_email: Optional[str] = None
    rating: int
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Favorite(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("donation_id", "favoriter_email", name="uq_favorite"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    donation_id: int = Field(index=True)
    favoriter_email: str = Field(index=True)
    saved_at: datetime = Field(default_factory=utcnow)
