import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from errors import (
    ALREADY_FAVORITED,
    DONATION_LOCKED,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from models import (
    ACCEPTED,
    MODERATION_STATUSES,
    PENDING,
    PICKED_UP,
    ROLE_ADMIN,
    ROLE_RESTAURANT,
    Donation,
    Favorite,
    Request,
    utcnow,
)
from providers import Identity
from schemas import DonationCreate, DonationUpdate, FavoriteReport, PickupReport, PickupSnapshot
from store import EntityStore

from .guards import is_admin, require_role

logger = logging.getLogger(__name__)


class DonationLifecycleManager:
    """Owns the donation state machine and the lock flag."""

    def __init__(self, store: EntityStore):
        self.store = store

    def get(self, donation_id: int) -> Donation:
        donation = self.store.get(Donation, donation_id)
        if donation is None:
            raise NotFoundError("Donation not found")
        return donation

    def list(
        self,
        status: Optional[str] = None,
        restaurant_email: Optional[str] = None,
        featured: Optional[bool] = None,
    ) -> List[Donation]:
        criteria = []
        if status is not None:
            criteria.append(Donation.status == status)
        if restaurant_email is not None:
            criteria.append(Donation.restaurant_email == restaurant_email)
        if featured is not None:
            criteria.append(Donation.is_featured == featured)
        return self.store.find(Donation, *criteria, order_by=[Donation.posted_at.desc()])

    def post(self, caller: Identity, data: DonationCreate) -> Donation:
        require_role(self.store, caller, ROLE_RESTAURANT)
        if data.restaurant_email != caller.email:
            raise ForbiddenError("Forbidden! Email mismatch from donation post.")
        now = utcnow()
        donation = Donation(
            **data.model_dump(),
            status=PENDING,
            is_locked=False,
            is_featured=False,
            posted_at=now,
            updated_at=now,
        )
        donation = self.store.insert(donation)
        logger.info(f"Donation {donation.id} posted by {caller.email}")
        return donation

    def update(self, caller: Identity, donation_id: int, patch: DonationUpdate) -> Donation:
        donation = self.get(donation_id)
        if donation.restaurant_email != caller.email:
            raise ForbiddenError("You can only edit donations you posted.")
        if donation.is_locked:
            raise ConflictError("Donation is already claimed", reason=DONATION_LOCKED)
        fields = patch.model_dump(exclude_unset=True)
        fields["updated_at"] = utcnow()
        self.store.update_one(Donation, [Donation.id == donation_id], fields)
        return self.store.refresh(donation)

    def delete(self, caller: Identity, donation_id: int) -> int:
        donation = self.get(donation_id)
        if donation.restaurant_email != caller.email and not is_admin(self.store, caller):
            raise ForbiddenError("You can only delete donations you posted.")
        deleted = self.store.delete_one(Donation, Donation.id == donation_id)
        logger.info(f"Donation {donation_id} deleted by {caller.email}")
        return deleted

    def advise_moderation(self, caller: Identity, donation_id: int, new_status: str) -> Donation:
        require_role(self.store, caller, ROLE_ADMIN)
        if new_status not in MODERATION_STATUSES:
            raise InvalidInputError(f"Unknown donation status: {new_status}")
        donation = self.get(donation_id)
        self.store.update_one(
            Donation,
            [Donation.id == donation_id],
            {"status": new_status, "updated_at": utcnow()},
        )
        return self.store.refresh(donation)

    def set_featured(self, caller: Identity, donation_id: int, featured: bool) -> Donation:
        require_role(self.store, caller, ROLE_ADMIN)
        donation = self.get(donation_id)
        self.store.update_one(Donation, [Donation.id == donation_id], {"is_featured": featured})
        return self.store.refresh(donation)

    def lock(self, donation_id: int, request_id: int, charity_email: str) -> bool:
        won = self.store.conditional_update(
            Donation,
            [
                Donation.id == donation_id,
                Donation.is_locked == False,  # noqa: E712
                Donation.donation_status.is_(None),
            ],
            {
                "is_locked": True,
                "accepted_request_id": request_id,
                "locked_by_email": charity_email,
                "updated_at": utcnow(),
            },
        )
        if won:
            logger.info(f"Donation {donation_id} locked for request {request_id}")
        else:
            logger.info(f"Lock on donation {donation_id} lost by request {request_id}")
        return won

    def release(self, donation_id: int, request_id: int) -> bool:
        return self.store.conditional_update(
            Donation,
            [
                Donation.id == donation_id,
                Donation.is_locked == True,  # noqa: E712
                Donation.accepted_request_id == request_id,
            ],
            {
                "is_locked": False,
                "accepted_request_id": None,
                "locked_by_email": None,
                "updated_at": utcnow(),
            },
        )

    def confirm_pickup(self, donation_id: int, snapshot: PickupSnapshot) -> PickupReport:
        donation = self.get(donation_id)
        warning = None
        if not donation.is_locked:
            # allowed for out-of-band corrections
            logger.warning(f"Pickup confirmed on unlocked donation {donation_id}")
            warning = "donation_not_locked"
        now = utcnow()
        self.store.update_one(
            Donation,
            [Donation.id == donation_id],
            {
                "donation_status": PICKED_UP,
                "picked_up_at": now,
                "picked_up_by_email": snapshot.charity_email,
                "picked_up_by_name": snapshot.charity_name,
                "updated_at": now,
            },
        )
        return PickupReport(
            donation_id=donation_id,
            request_id=donation.accepted_request_id,
            donation_status=PICKED_UP,
            picked_up_at=now,
            warning=warning,
        )

    def confirm_pickup_by_owner(self, caller: Identity, donation_id: int) -> PickupReport:
        """Direct pickup path used by the owning restaurant or an admin."""
        donation = self.get(donation_id)
        if donation.restaurant_email != caller.email and not is_admin(self.store, caller):
            raise ForbiddenError("You can only confirm pickup of donations you posted.")
        winner = self.store.find_one(
            Request,
            Request.donation_id == donation_id,
            Request.request_status == ACCEPTED,
        )
        if winner is not None:
            snapshot = PickupSnapshot(charity_email=winner.charity_email, charity_name=winner.charity_name)
        else:
            snapshot = PickupSnapshot(charity_email=donation.locked_by_email)
        return self.confirm_pickup(donation_id, snapshot)

    def favoriters(self, donation_id: int) -> List[str]:
        rows = self.store.find(
            Favorite, Favorite.donation_id == donation_id, order_by=[Favorite.saved_at]
        )
        return [row.favoriter_email for row in rows]

    def favorites_of(self, email: str) -> List[Donation]:
        rows = self.store.find(
            Favorite, Favorite.favoriter_email == email, order_by=[Favorite.saved_at.desc()]
        )
        ids = [row.donation_id for row in rows]
        if not ids:
            return []
        # favorites of deleted donations are skipped
        return self.store.find(Donation, Donation.id.in_(ids))

    def toggle_favorite(self, donation_id: int, who: str) -> FavoriteReport:
        self.get(donation_id)
        existing = self.store.find_one(
            Favorite,
            Favorite.donation_id == donation_id,
            Favorite.favoriter_email == who,
        )
        if existing is not None:
            raise ConflictError("Already added to favorites", reason=ALREADY_FAVORITED)
        try:
            self.store.insert(Favorite(donation_id=donation_id, favoriter_email=who))
        except IntegrityError:
            raise ConflictError("Already added to favorites", reason=ALREADY_FAVORITED)
        return FavoriteReport(donation_id=donation_id, favoriters=self.favoriters(donation_id))
