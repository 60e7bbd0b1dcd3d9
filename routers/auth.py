from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request

from db import StoreDep
from providers import Identity, IdentityProvider, PaymentProcessor
from services.accounts import AccountLifecycleManager
from services.arbitration import RequestArbitrationManager
from services.donations import DonationLifecycleManager


def get_identity_provider(request: Request) -> IdentityProvider:
    """Process-wide identity provider created at startup."""
    return request.app.state.identity_provider


def get_payment_processor(request: Request) -> PaymentProcessor:
    return request.app.state.payment_processor


IdentityProviderDep = Annotated[IdentityProvider, Depends(get_identity_provider)]
PaymentProcessorDep = Annotated[PaymentProcessor, Depends(get_payment_processor)]


def get_current_identity(
    provider: IdentityProviderDep,
    authorization: Optional[str] = Header(default=None),
) -> Identity:
    """
    Reads the 'Authorization: Bearer <token>' header and verifies the token
    with the identity provider. Raises 401 if missing or invalid.
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized access, missing authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Unauthorized access, malformed token")
    return provider.verify(token.strip())


CurrentIdentityDep = Annotated[Identity, Depends(get_current_identity)]


def get_donation_manager(store: StoreDep) -> DonationLifecycleManager:
    return DonationLifecycleManager(store)


DonationManagerDep = Annotated[DonationLifecycleManager, Depends(get_donation_manager)]


def get_arbitration_manager(
    store: StoreDep, donations: DonationManagerDep
) -> RequestArbitrationManager:
    return RequestArbitrationManager(store, donations)


ArbitrationManagerDep = Annotated[RequestArbitrationManager, Depends(get_arbitration_manager)]


def get_account_manager(
    store: StoreDep, provider: IdentityProviderDep
) -> AccountLifecycleManager:
    return AccountLifecycleManager(store, provider)


AccountManagerDep = Annotated[AccountLifecycleManager, Depends(get_account_manager)]
