"""Competitive claims on donations.

The only cross-row invariant, at most one Accepted request per donation,
rests on the donation lock: a single conditional write that flips
``is_locked`` and names the winning request. Everything else here
(rejecting siblings, rolling a loser back) is best-effort and safe to
interleave.
"""
import logging
from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import (
    ACCEPT_RACE,
    ALREADY_REQUESTED,
    DONATION_CLOSED,
    DONATION_LOCKED,
    NOT_ACCEPTED,
    REQUEST_CLOSED,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from models import ACCEPTED, PENDING, PICKED_UP, REJECTED, ROLE_CHARITY, Donation, Request, utcnow
from providers import Identity
from schemas import ClaimCheck, DecisionReport, PickupReport, PickupSnapshot, RequestCreate
from store import EntityStore

from .donations import DonationLifecycleManager
from .guards import is_admin, require_role

logger = logging.getLogger(__name__)

LIVE_STATUSES = (PENDING, ACCEPTED)


class RequestArbitrationManager:
    def __init__(self, store: EntityStore, donations: DonationLifecycleManager):
        self.store = store
        self.donations = donations

    def get(self, request_id: int) -> Request:
        request = self.store.get(Request, request_id)
        if request is None:
            raise NotFoundError("Request not found")
        return request

    def list_for_donation(self, donation_id: int) -> List[Request]:
        return self.store.find(
            Request, Request.donation_id == donation_id, order_by=[Request.created_at.desc()]
        )

    def list_for_charity(self, charity_email: str) -> List[Request]:
        return self.store.find(
            Request, Request.charity_email == charity_email, order_by=[Request.created_at.desc()]
        )

    def list_for_restaurant(self, restaurant_email: str) -> List[Request]:
        return self.store.find(
            Request,
            Request.restaurant_email == restaurant_email,
            order_by=[Request.created_at.desc()],
        )

    def _live_claim(self, donation_id: int, charity_email: str):
        return self.store.find_one(
            Request,
            Request.donation_id == donation_id,
            Request.charity_email == charity_email,
            Request.request_status.in_(LIVE_STATUSES),
        )

    def check_claim(self, donation_id: int, charity_email: str) -> ClaimCheck:
        donation = self.donations.get(donation_id)
        already_requested = self._live_claim(donation_id, charity_email) is not None
        locked_by_other = donation.is_locked and donation.locked_by_email != charity_email
        return ClaimCheck(
            donation_id=donation_id,
            already_requested=already_requested,
            is_locked=donation.is_locked,
            locked_by_other=locked_by_other,
            can_request=not already_requested
            and not donation.is_locked
            and donation.donation_status != PICKED_UP,
        )

    def file(self, caller: Identity, data: RequestCreate) -> Request:
        require_role(self.store, caller, ROLE_CHARITY)
        if data.charity_email != caller.email:
            raise ForbiddenError("Forbidden! Email mismatch from donation request.")
        donation = self.donations.get(data.donation_id)
        if donation.donation_status == PICKED_UP:
            raise ConflictError("Donation has already been picked up", reason=DONATION_CLOSED)
        if self._live_claim(donation.id, caller.email) is not None:
            raise ConflictError("You have already requested this donation", reason=ALREADY_REQUESTED)
        if donation.is_locked and donation.locked_by_email != caller.email:
            raise ConflictError("Donation is already claimed by another charity", reason=DONATION_LOCKED)

        request = Request(
            **data.model_dump(),
            donation_title=donation.title,
            restaurant_email=donation.restaurant_email,
            request_status=PENDING,
            created_at=utcnow(),
        )
        try:
            request = self.store.insert(request)
        except IntegrityError:
            # a concurrent filing from the same charity got in first
            raise ConflictError("You have already requested this donation", reason=ALREADY_REQUESTED)
        logger.info(f"Request {request.id} filed by {caller.email} on donation {donation.id}")
        return request

    def withdraw(self, caller: Identity, request_id: int) -> int:
        request = self.get(request_id)
        if request.charity_email != caller.email:
            raise ForbiddenError("You can only withdraw your own requests.")
        deleted = self.store.delete_many(
            Request, Request.id == request_id, Request.request_status == PENDING
        )
        if not deleted:
            raise ConflictError("Only pending requests can be withdrawn", reason=REQUEST_CLOSED)
        return deleted

    def _authorize_decision(self, caller: Identity, donation: Donation) -> None:
        if donation.restaurant_email != caller.email and not is_admin(self.store, caller):
            raise ForbiddenError("You can only manage requests for your own donations.")

    def decide(self, caller: Identity, request_id: int, decision: str) -> DecisionReport:
        if decision not in (ACCEPTED, REJECTED):
            raise InvalidInputError(f"Unknown decision: {decision}")
        request = self.get(request_id)
        if request.donation_id is None:
            raise NotFoundError("Request has no associated donation")
        donation = self.donations.get(request.donation_id)
        self._authorize_decision(caller, donation)

        if request.request_status != PENDING:
            reason = DONATION_LOCKED if donation.is_locked else REQUEST_CLOSED
            raise ConflictError(f"Request is already {request.request_status}", reason=reason)
        if decision == ACCEPTED and donation.donation_status == PICKED_UP:
            raise ConflictError("Donation has already been picked up", reason=DONATION_CLOSED)

        if decision == REJECTED:
            closed = self.store.conditional_update(
                Request,
                [Request.id == request_id, Request.request_status == PENDING],
                {"request_status": REJECTED},
            )
            if not closed:
                raise ConflictError("Request was decided concurrently", reason=REQUEST_CLOSED)
            return DecisionReport(
                request_id=request_id,
                donation_id=donation.id,
                request_status=REJECTED,
                donation_locked=donation.is_locked,
            )
        return self._accept(request, donation.id)

    def _accept(self, request: Request, donation_id: int) -> DecisionReport:
        request_id = request.id
        if not self.donations.lock(donation_id, request_id, request.charity_email):
            self.store.conditional_update(
                Request,
                [Request.id == request_id, Request.request_status == PENDING],
                {"request_status": REJECTED},
            )
            raise ConflictError("Another request already won this donation", reason=ACCEPT_RACE)

        accepted = self.store.conditional_update(
            Request,
            [Request.id == request_id, Request.request_status == PENDING],
            {"request_status": ACCEPTED},
        )
        if not accepted:
            # the request left Pending while we held the lock
            self.donations.release(donation_id, request_id)
            raise ConflictError("Request was decided concurrently", reason=ACCEPT_RACE)

        siblings_rejected = 0
        siblings_error = None
        try:
            result = self.store.update_many(
                Request,
                [
                    Request.donation_id == donation_id,
                    Request.id != request_id,
                    Request.request_status == PENDING,
                ],
                {"request_status": REJECTED},
            )
            siblings_rejected = result.matched_count
        except SQLAlchemyError as e:
            logger.error(f"Failed to reject sibling requests on donation {donation_id}: {e}", exc_info=True)
            siblings_error = str(e)

        logger.info(
            f"Request {request_id} accepted on donation {donation_id}, "
            f"{siblings_rejected} sibling(s) rejected"
        )
        return DecisionReport(
            request_id=request_id,
            donation_id=donation_id,
            request_status=ACCEPTED,
            donation_locked=True,
            siblings_rejected=siblings_rejected,
            siblings_error=siblings_error,
        )

    def confirm_pickup(self, caller: Identity, request_id: int) -> PickupReport:
        request = self.get(request_id)
        if request.charity_email != caller.email and not is_admin(self.store, caller):
            raise ForbiddenError("You can only confirm pickup of your own requests.")
        if request.request_status != ACCEPTED:
            raise ConflictError("Only accepted requests can be picked up", reason=NOT_ACCEPTED)
        if request.donation_id is None:
            raise NotFoundError("Request has no associated donation")
        donation_id = request.donation_id
        self.donations.get(donation_id)

        self.store.update_one(
            Request,
            [Request.id == request_id],
            {"picking_status": PICKED_UP, "picked_up_at": utcnow()},
        )
        snapshot = PickupSnapshot(charity_email=request.charity_email, charity_name=request.charity_name)
        report = self.donations.confirm_pickup(donation_id, snapshot)
        report.request_id = request_id
        report.picking_status = PICKED_UP
        return report
