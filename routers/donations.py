from typing import List, Optional

from fastapi import APIRouter, Response

from models import Donation, Request as RequestModel
from schemas import (
    ClaimCheck,
    DonationCreate,
    DonationUpdate,
    FavoriteReport,
    FeatureUpdate,
    ModerationUpdate,
    PickupReport,
)
from .auth import ArbitrationManagerDep, CurrentIdentityDep, DonationManagerDep

router = APIRouter(tags=["donations"])


@router.get("/", response_model=List[Donation])
def list_donations(
    donations: DonationManagerDep,
    status: Optional[str] = None,
    restaurant_email: Optional[str] = None,
    featured: Optional[bool] = None,
):
    """
    List donations, optionally filtered by moderation status, owner and featured flag.
    """
    return donations.list(status=status, restaurant_email=restaurant_email, featured=featured)


@router.get("/favorites/mine", response_model=List[Donation])
def my_favorites(donations: DonationManagerDep, current: CurrentIdentityDep):
    return donations.favorites_of(current.email)


@router.get("/{donation_id}", response_model=Donation)
def get_donation(donation_id: int, donations: DonationManagerDep):
    return donations.get(donation_id)


@router.post("/", response_model=Donation)
def post_donation(
    donation_in: DonationCreate,
    donations: DonationManagerDep,
    current: CurrentIdentityDep,
):
    return donations.post(current, donation_in)


@router.patch("/{donation_id}", response_model=Donation)
def update_donation(
    donation_id: int,
    patch: DonationUpdate,
    donations: DonationManagerDep,
    current: CurrentIdentityDep,
):
    return donations.update(current, donation_id, patch)


@router.delete("/{donation_id}", status_code=204)
def delete_donation(
    donation_id: int,
    donations: DonationManagerDep,
    current: CurrentIdentityDep,
):
    donations.delete(current, donation_id)
    return Response(status_code=204)


@router.patch("/{donation_id}/moderation", response_model=Donation)
def moderate_donation(
    donation_id: int,
    update: ModerationUpdate,
    donations: DonationManagerDep,
    current: CurrentIdentityDep,
):
    return donations.advise_moderation(current, donation_id, update.status)


@router.patch("/{donation_id}/feature", response_model=Donation)
def feature_donation(
    donation_id: int,
    update: FeatureUpdate,
    donations: DonationManagerDep,
    current: CurrentIdentityDep,
):
    return donations.set_featured(current, donation_id, update.is_featured)


@router.patch("/{donation_id}/pickup", response_model=PickupReport)
def confirm_pickup(
    donation_id: int,
    donations: DonationManagerDep,
    current: CurrentIdentityDep,
):
    return donations.confirm_pickup_by_owner(current, donation_id)


@router.post("/{donation_id}/favorite", response_model=FavoriteReport)
def add_favorite(
    donation_id: int,
    donations: DonationManagerDep,
    current: CurrentIdentityDep,
):
    return donations.toggle_favorite(donation_id, current.email)


@router.get("/{donation_id}/favoriters", response_model=List[str])
def list_favoriters(donation_id: int, donations: DonationManagerDep):
    donations.get(donation_id)
    return donations.favoriters(donation_id)


@router.get("/{donation_id}/claim-check", response_model=ClaimCheck)
def check_claim(
    donation_id: int,
    arbitration: ArbitrationManagerDep,
    current: CurrentIdentityDep,
):
    return arbitration.check_claim(donation_id, current.email)


@router.get("/{donation_id}/requests", response_model=List[RequestModel])
def list_donation_requests(
    donation_id: int,
    arbitration: ArbitrationManagerDep,
    current: CurrentIdentityDep,
):
    return arbitration.list_for_donation(donation_id)
