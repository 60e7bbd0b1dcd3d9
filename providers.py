"""External collaborators: identity provider and payment processor.

Both are created once by the process entry point and handed to the
managers and routers; nothing in here talks to the database.
"""
import base64
import json
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import firebase_admin
import stripe
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin.exceptions import FirebaseError
from itsdangerous import BadSignature, URLSafeTimedSerializer

from errors import UnauthorizedError, UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    email: str
    uid: str


class IdentityProvider(Protocol):
    def verify(self, credential: str) -> Identity:
        ...

    def delete_account(self, uid: str) -> None:
        ...


class PaymentProcessor(Protocol):
    def create_intent(self, amount: int) -> str:
        ...


class FirebaseIdentityProvider:
    def __init__(self, service_key_b64: str, app_name: str = "platebridge"):
        decoded = base64.b64decode(service_key_b64).decode("utf-8")
        cert = credentials.Certificate(json.loads(decoded))
        self.app = firebase_admin.initialize_app(cert, name=app_name)

    def verify(self, credential: str) -> Identity:
        try:
            decoded = firebase_auth.verify_id_token(credential, app=self.app)
        except (ValueError, FirebaseError) as e:
            raise UnauthorizedError(f"Invalid identity token: {e}")
        email = decoded.get("email")
        if not email:
            raise UnauthorizedError("Identity token carries no email")
        return Identity(email=email, uid=decoded["uid"])

    def delete_account(self, uid: str) -> None:
        try:
            firebase_auth.delete_user(uid, app=self.app)
        except (ValueError, FirebaseError) as e:
            logger.error(f"Failed to delete identity account {uid}: {e}", exc_info=True)
            raise UpstreamError(f"Identity provider refused to delete account {uid}")


class SignedTokenIdentityProvider:
    """Local identity provider backed by signed, timed tokens.

    Example payload:
        {"email": "kitchen@example.com", "uid": "u-17"}
    """

    def __init__(self, secret: str, max_age_seconds: int = 60 * 60 * 8):
        self.serializer = URLSafeTimedSerializer(secret, salt="platebridge-identity")
        self.max_age_seconds = max_age_seconds
        # process-local and unbounded; dev and test use only, not for production
        self.deleted_uids = set()

    def issue(self, email: str, uid: str) -> str:
        return self.serializer.dumps({"email": email, "uid": uid})

    def verify(self, credential: str) -> Identity:
        try:
            data = self.serializer.loads(credential, max_age=self.max_age_seconds)
        except BadSignature:
            raise UnauthorizedError("Invalid or expired token")
        if data.get("uid") in self.deleted_uids:
            raise UnauthorizedError("Account has been deleted")
        return Identity(email=data["email"], uid=data["uid"])

    def delete_account(self, uid: str) -> None:
        self.deleted_uids.add(uid)


class StripePaymentProcessor:
    def __init__(self, api_key: Optional[str], currency: str = "usd"):
        self.api_key = api_key
        self.currency = currency

    def create_intent(self, amount: int) -> str:
        if not self.api_key:
            raise UpstreamError("Payment processor is not configured")
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=amount * 100,
                currency=self.currency,
                payment_method_types=["card"],
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create payment intent: {e}", exc_info=True)
            raise UpstreamError("Failed to create payment intent")
        return intent.client_secret


def build_identity_provider(settings) -> IdentityProvider:
    if settings.IDENTITY_BACKEND == "firebase":
        if not settings.FB_SERVICE_KEY:
            raise RuntimeError("FB_SERVICE_KEY env variable not found!")
        return FirebaseIdentityProvider(settings.FB_SERVICE_KEY)
    if settings.IDENTITY_BACKEND == "signed":
        return SignedTokenIdentityProvider(
            settings.SESSION_SECRET, max_age_seconds=settings.SESSION_MAX_AGE
        )
    raise RuntimeError(f"Unknown IDENTITY_BACKEND: {settings.IDENTITY_BACKEND}")


def build_payment_processor(settings) -> PaymentProcessor:
    return StripePaymentProcessor(settings.STRIPE_SECRET_KEY, settings.PAYMENT_CURRENCY)
