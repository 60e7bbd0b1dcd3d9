from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    photo_url: Optional[str] = None
    uid: Optional[str] = None


class UserRead(BaseModel):
    id: int
    email: EmailStr
    name: Optional[str] = None
    photo_url: Optional[str] = None
    role: str
    status: Optional[str] = None
    contact_number: Optional[str] = None
    organization_name: Optional[str] = None
    organization_email: Optional[str] = None
    organization_contact: Optional[str] = None
    organization_address: Optional[str] = None
    organization_tagline: Optional[str] = None
    mission: Optional[str] = None
    organization_logo: Optional[str] = None
    transaction_id: Optional[str] = None
    created_at: datetime
    last_login: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LastLoginUpdate(BaseModel):
    email: EmailStr
    last_login: datetime


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    photo_url: Optional[str] = None
    contact_number: Optional[str] = None
    organization_name: Optional[str] = None
    organization_email: Optional[EmailStr] = None
    organization_contact: Optional[str] = None
    organization_address: Optional[str] = None
    organization_tagline: Optional[str] = None
    mission: Optional[str] = None
    organization_logo: Optional[str] = None


class RoleUpgradeRequest(ProfileUpdate):
    target_role: Literal["charity", "restaurant"]


class RoleDecision(BaseModel):
    decision: Literal["approved", "rejected"]


class DirectRoleChange(BaseModel):
    role: Literal["user", "restaurant", "charity", "admin"]


class PaymentIntentCreate(BaseModel):
    amount: int = Field(gt=0)


class TransactionCreate(BaseModel):
    transaction_id: str
    amount: float = Field(gt=0)
    role_requested: Optional[Literal["charity", "restaurant"]] = None


class DonationCreate(BaseModel):
    restaurant_email: EmailStr
    restaurant_name: Optional[str] = None
    title: str
    food_type: str
    quantity: str
    pickup_window: Optional[str] = None
    location: str
    image: Optional[str] = None
    description: Optional[str] = None


class DonationUpdate(BaseModel):
    title: Optional[str] = None
    food_type: Optional[str] = None
    quantity: Optional[str] = None
    pickup_window: Optional[str] = None
    location: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None


class ModerationUpdate(BaseModel):
    status: str = Field(pattern="^(Pending|Verified|Rejected)$")


class FeatureUpdate(BaseModel):
    is_featured: bool


class RequestCreate(BaseModel):
    donation_id: int
    charity_email: EmailStr
    charity_name: str
    charity_image: Optional[str] = None
    request_description: Optional[str] = None
    pickup_time: Optional[str] = None


class RequestDecision(BaseModel):
    decision: str = Field(pattern="^(Accepted|Rejected)$")


class ReviewCreate(BaseModel):
    donation_id: Optional[int] = None
    restaurant_email: Optional[EmailStr] = None
    reviewer_name: Optional[str] = None
    rating: int = Field(ge=1, le=5)
    description: Optional[str] = None


class PickupSnapshot(BaseModel):
    charity_email: Optional[str] = None
    charity_name: Optional[str] = None


# Operation reports


class DecisionReport(BaseModel):
    request_id: int
    donation_id: Optional[int] = None
    request_status: str
    donation_locked: bool = False
    siblings_rejected: int = 0
    siblings_error: Optional[str] = None


class PickupReport(BaseModel):
    donation_id: int
    request_id: Optional[int] = None
    donation_status: str
    picking_status: Optional[str] = None
    picked_up_at: datetime
    warning: Optional[str] = None


class ClaimCheck(BaseModel):
    donation_id: int
    already_requested: bool
    is_locked: bool
    locked_by_other: bool
    can_request: bool


class FavoriteReport(BaseModel):
    donation_id: int
    favoriters: List[str]


class RoleDecisionReport(BaseModel):
    email: str
    role: str
    status: str
    transaction_updated: bool
    transaction_conflict: Optional[str] = None


class CascadeOutcome(BaseModel):
    deleted_count: int = 0
    error: Optional[str] = None


class DeletionReport(BaseModel):
    user_id: int
    email: str
    identity_deleted: bool
    transaction_deleted: CascadeOutcome
    donations_deleted: CascadeOutcome
    requests_deleted: CascadeOutcome
    reviews_deleted: CascadeOutcome
    favorites_deleted: CascadeOutcome
    user_deleted: CascadeOutcome
