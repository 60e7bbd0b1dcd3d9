from typing import List, Optional

from fastapi import APIRouter

from models import Transaction
from schemas import PaymentIntentCreate, TransactionCreate
from .auth import AccountManagerDep, CurrentIdentityDep, PaymentProcessorDep

router = APIRouter(tags=["payments"])


@router.post("/intent")
def create_payment_intent(
    body: PaymentIntentCreate,
    processor: PaymentProcessorDep,
    current: CurrentIdentityDep,
):
    return {"client_secret": processor.create_intent(body.amount)}


@router.post("/transactions", response_model=Transaction)
def save_transaction(
    body: TransactionCreate,
    accounts: AccountManagerDep,
    current: CurrentIdentityDep,
):
    """
    Record a payment the client confirmed with the payment processor.
    """
    return accounts.save_transaction(current, body)


@router.get("/transactions", response_model=List[Transaction])
def list_transactions(
    accounts: AccountManagerDep,
    current: CurrentIdentityDep,
    email: Optional[str] = None,
):
    return accounts.list_transactions(current, email)
