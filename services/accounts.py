"""Role upgrades and account teardown.

Deleting an account removes the identity-provider account first; if that
fails nothing else is touched. The store cleanup that follows is a set of
independent deletions joined on email, each reported on its own. Requests
pointing at a deleted restaurant's donations (and the other way round)
are left dangling.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import (
    DUPLICATE_TRANSACTION,
    NO_PENDING_ROLE_REQUEST,
    PAYMENT_REQUIRED,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from models import (
    APPROVED,
    AWAITING,
    DECLINED,
    ROLE_ADMIN,
    ROLE_CHARITY,
    ROLE_CHARITY_REQUEST,
    ROLE_RESTAURANT,
    ROLE_RESTAURANT_REQUEST,
    ROLE_USER,
    Donation,
    Favorite,
    Request,
    Review,
    Transaction,
    User,
    utcnow,
)
from providers import Identity, IdentityProvider
from schemas import (
    CascadeOutcome,
    DeletionReport,
    ProfileUpdate,
    RoleDecisionReport,
    RoleUpgradeRequest,
    TransactionCreate,
    UserCreate,
)
from store import EntityStore

from .guards import require_role

logger = logging.getLogger(__name__)

PENDING_ROLE_TARGETS = {
    ROLE_CHARITY_REQUEST: ROLE_CHARITY,
    ROLE_RESTAURANT_REQUEST: ROLE_RESTAURANT,
}
ROLE_REQUEST_FOR = {target: pending for pending, target in PENDING_ROLE_TARGETS.items()}

# roles whose reviews and favorites are removed with the account
ANNOTATING_ROLES = (ROLE_USER, ROLE_CHARITY, ROLE_CHARITY_REQUEST, ROLE_RESTAURANT_REQUEST)


class AccountLifecycleManager:
    def __init__(self, store: EntityStore, identity: IdentityProvider):
        self.store = store
        self.identity = identity

    def get_by_email(self, email: str) -> User:
        user = self.store.find_one(User, User.email == email)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def list_users(self, admin: Identity) -> List[User]:
        require_role(self.store, admin, ROLE_ADMIN)
        return self.store.find(User, order_by=[User.id])

    def list_role_requests(self, admin: Identity) -> List[User]:
        require_role(self.store, admin, ROLE_ADMIN)
        return self.store.find(User, User.role.in_(tuple(PENDING_ROLE_TARGETS)), order_by=[User.id])

    def register(self, data: UserCreate) -> Tuple[User, bool]:
        existing = self.store.find_one(User, User.email == data.email)
        if existing is not None:
            return existing, False
        try:
            user = self.store.insert(User(**data.model_dump(), role=ROLE_USER))
        except IntegrityError:
            # registered concurrently by another sign-in
            return self.get_by_email(data.email), False
        logger.info(f"User {user.email} registered")
        return user, True

    def _require_self(self, caller: Identity, email: str) -> None:
        if caller.email != email:
            raise ForbiddenError("Forbidden! Email mismatch.")

    def touch_last_login(self, caller: Identity, email: str, when: datetime) -> User:
        self._require_self(caller, email)
        result = self.store.update_one(User, [User.email == email], {"last_login": when})
        if not result.matched_count:
            raise NotFoundError("User not found")
        return self.get_by_email(email)

    def update_profile(self, caller: Identity, email: str, fields: ProfileUpdate) -> User:
        self._require_self(caller, email)
        patch = fields.model_dump(exclude_unset=True)
        result = self.store.update_one(User, [User.email == email], patch)
        if not result.matched_count:
            raise NotFoundError("User not found")
        return self.get_by_email(email)

    def save_transaction(self, caller: Identity, data: TransactionCreate) -> Transaction:
        transaction = Transaction(
            **data.model_dump(),
            email=caller.email,
            status=AWAITING,
            request_time=utcnow(),
        )
        try:
            transaction = self.store.insert(transaction)
        except IntegrityError:
            raise ConflictError("Transaction already saved", reason=DUPLICATE_TRANSACTION)
        logger.info(f"Transaction {transaction.transaction_id} saved for {caller.email}")
        return transaction

    def list_transactions(self, caller: Identity, email: Optional[str] = None) -> List[Transaction]:
        if email is None or email != caller.email:
            require_role(self.store, caller, ROLE_ADMIN)
        criteria = [] if email is None else [Transaction.email == email]
        return self.store.find(Transaction, *criteria, order_by=[Transaction.request_time.desc()])

    def _latest_transaction(self, email: str) -> Optional[Transaction]:
        latest = self.store.find(
            Transaction,
            Transaction.email == email,
            order_by=[Transaction.request_time.desc(), Transaction.id.desc()],
            limit=1,
        )
        return latest[0] if latest else None

    def request_role_upgrade(self, caller: Identity, email: str, data: RoleUpgradeRequest) -> User:
        self._require_self(caller, email)
        user = self.get_by_email(email)
        if user.role != ROLE_USER:
            raise InvalidInputError(f"Role upgrade is not available for role {user.role}")
        transaction = self._latest_transaction(email)
        if transaction is None or transaction.status != AWAITING:
            raise ConflictError("A completed payment is required first", reason=PAYMENT_REQUIRED)

        patch = data.model_dump(exclude_unset=True, exclude={"target_role"})
        patch.update(
            role=ROLE_REQUEST_FOR[data.target_role],
            status=AWAITING,
            transaction_id=transaction.transaction_id,
        )
        self.store.update_one(User, [User.email == email], patch)
        logger.info(f"{email} requested the {data.target_role} role")
        return self.get_by_email(email)

    def decide(self, candidate_email: str, admin: Identity, decision: str) -> RoleDecisionReport:
        require_role(self.store, admin, ROLE_ADMIN)
        if decision not in (APPROVED, DECLINED):
            raise InvalidInputError(f"Unknown decision: {decision}")
        candidate = self.get_by_email(candidate_email)
        target = PENDING_ROLE_TARGETS.get(candidate.role)
        if target is None:
            raise ConflictError(
                f"{candidate_email} has no pending role request", reason=NO_PENDING_ROLE_REQUEST
            )
        new_role = target if decision == APPROVED else ROLE_USER
        transaction_id = candidate.transaction_id
        self.store.update_one(
            User, [User.email == candidate_email], {"role": new_role, "status": decision}
        )
        logger.info(f"Role request of {candidate_email} {decision} by {admin.email}")

        transaction = None
        if transaction_id:
            transaction = self.store.find_one(Transaction, Transaction.transaction_id == transaction_id)
        if transaction is None:
            transaction = self._latest_transaction(candidate_email)
        if transaction is None:
            logger.warning(f"No transaction to mirror role decision for {candidate_email}")
            return RoleDecisionReport(
                email=candidate_email,
                role=new_role,
                status=decision,
                transaction_updated=False,
                transaction_conflict=f"No transaction found for {candidate_email}",
            )
        self.store.update_one(Transaction, [Transaction.id == transaction.id], {"status": decision})
        return RoleDecisionReport(
            email=candidate_email,
            role=new_role,
            status=decision,
            transaction_updated=True,
        )

    def change_role(self, admin: Identity, candidate_email: str, role: str) -> User:
        """Direct role change by an admin, bypassing the request workflow."""
        require_role(self.store, admin, ROLE_ADMIN)
        if role not in (ROLE_USER, ROLE_RESTAURANT, ROLE_CHARITY, ROLE_ADMIN):
            raise InvalidInputError(f"Unknown role: {role}")
        result = self.store.update_one(User, [User.email == candidate_email], {"role": role})
        if not result.matched_count:
            raise NotFoundError("User not found")
        logger.info(f"Role of {candidate_email} set to {role} by {admin.email}")
        return self.get_by_email(candidate_email)

    def _cascade(self, label: str, step: Callable[[], int]) -> CascadeOutcome:
        try:
            count = step()
        except SQLAlchemyError as e:
            logger.error(f"Cascade step {label} failed: {e}", exc_info=True)
            return CascadeOutcome(deleted_count=0, error=str(e))
        logger.info(f"Cascade step {label}: {count} deleted")
        return CascadeOutcome(deleted_count=count)

    def delete_user(self, admin: Identity, user_id: int) -> DeletionReport:
        require_role(self.store, admin, ROLE_ADMIN)
        user = self.store.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found.")
        if not user.uid:
            raise NotFoundError("User UID not found")
        email, role, uid = user.email, user.role, user.uid

        # all-or-nothing: an orphaned provider account is worse than a partial cleanup
        self.identity.delete_account(uid)
        logger.info(f"Identity account {uid} of {email} deleted")

        store = self.store
        # every payment made by the account, not only the one tied to a role request
        transaction_deleted = self._cascade(
            "transaction",
            lambda: store.delete_many(Transaction, Transaction.email == email),
        )
        donations_deleted = self._cascade(
            "donations",
            lambda: store.delete_many(Donation, Donation.restaurant_email == email)
            if role == ROLE_RESTAURANT
            else 0,
        )
        requests_deleted = self._cascade(
            "requests",
            lambda: store.delete_many(Request, Request.charity_email == email)
            if role == ROLE_CHARITY
            else 0,
        )
        annotating = role in ANNOTATING_ROLES
        reviews_deleted = self._cascade(
            "reviews",
            lambda: store.delete_many(Review, Review.reviewer_email == email) if annotating else 0,
        )
        favorites_deleted = self._cascade(
            "favorites",
            lambda: store.delete_many(Favorite, Favorite.favoriter_email == email) if annotating else 0,
        )
        user_deleted = self._cascade("user", lambda: store.delete_many(User, User.id == user_id))

        return DeletionReport(
            user_id=user_id,
            email=email,
            identity_deleted=True,
            transaction_deleted=transaction_deleted,
            donations_deleted=donations_deleted,
            requests_deleted=requests_deleted,
            reviews_deleted=reviews_deleted,
            favorites_deleted=favorites_deleted,
            user_deleted=user_deleted,
        )
