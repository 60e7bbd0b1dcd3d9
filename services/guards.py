from models import ROLE_ADMIN, User
from errors import ForbiddenError
from providers import Identity
from store import EntityStore


def caller_user(store: EntityStore, caller: Identity) -> User:
    user = store.find_one(User, User.email == caller.email)
    if user is None:
        raise ForbiddenError("No account found for this identity")
    return user


def require_role(store: EntityStore, caller: Identity, *roles: str) -> User:
    """Return the caller's account if it holds one of ``roles``."""
    user = caller_user(store, caller)
    if user.role not in roles:
        raise ForbiddenError(f"Requires role: {' or '.join(roles)}")
    return user


def is_admin(store: EntityStore, caller: Identity) -> bool:
    user = store.find_one(User, User.email == caller.email)
    return user is not None and user.role == ROLE_ADMIN
