from typing import List

from fastapi import APIRouter, Response

from models import Request as RequestModel
from schemas import DecisionReport, PickupReport, RequestCreate, RequestDecision
from .auth import ArbitrationManagerDep, CurrentIdentityDep

router = APIRouter(tags=["requests"])


@router.post("/", response_model=RequestModel)
def file_request(
    request_data: RequestCreate,
    arbitration: ArbitrationManagerDep,
    current: CurrentIdentityDep,
):
    return arbitration.file(current, request_data)


@router.get("/mine", response_model=List[RequestModel])
def my_requests(arbitration: ArbitrationManagerDep, current: CurrentIdentityDep):
    """
    Requests filed by the calling charity.
    """
    return arbitration.list_for_charity(current.email)


@router.get("/incoming", response_model=List[RequestModel])
def incoming_requests(arbitration: ArbitrationManagerDep, current: CurrentIdentityDep):
    """
    Requests filed against the calling restaurant's donations.
    """
    return arbitration.list_for_restaurant(current.email)


@router.get("/{request_id}", response_model=RequestModel)
def get_request(request_id: int, arbitration: ArbitrationManagerDep):
    return arbitration.get(request_id)


@router.patch("/{request_id}/decision", response_model=DecisionReport)
def decide_request(
    request_id: int,
    update: RequestDecision,
    arbitration: ArbitrationManagerDep,
    current: CurrentIdentityDep,
):
    return arbitration.decide(current, request_id, update.decision)


@router.patch("/{request_id}/pickup", response_model=PickupReport)
def confirm_pickup(
    request_id: int,
    arbitration: ArbitrationManagerDep,
    current: CurrentIdentityDep,
):
    return arbitration.confirm_pickup(current, request_id)


@router.delete("/{request_id}", status_code=204)
def withdraw_request(
    request_id: int,
    arbitration: ArbitrationManagerDep,
    current: CurrentIdentityDep,
):
    arbitration.withdraw(current, request_id)
    return Response(status_code=204)
