# routers/users.py
from typing import List

from fastapi import APIRouter
from pydantic import EmailStr

from schemas import (
    DeletionReport,
    DirectRoleChange,
    LastLoginUpdate,
    ProfileUpdate,
    RoleDecision,
    RoleDecisionReport,
    RoleUpgradeRequest,
    UserCreate,
    UserRead,
)
from .auth import AccountManagerDep, CurrentIdentityDep

router = APIRouter(tags=["users"])


@router.post("/")
def create_user(user_in: UserCreate, accounts: AccountManagerDep):
    """
    Create the account on first sign-in. Signing in again is not an error.
    """
    user, created = accounts.register(user_in)
    message = "User created." if created else "User already exists in the database."
    return {"message": message, "created": created, "user": UserRead.model_validate(user)}


@router.get("/by-email", response_model=UserRead)
def get_user_by_email(email: EmailStr, accounts: AccountManagerDep):
    return accounts.get_by_email(email)


@router.get("/all", response_model=List[UserRead])
def list_users(accounts: AccountManagerDep, current: CurrentIdentityDep):
    """
    List all users (admin).
    """
    return accounts.list_users(current)


@router.get("/role-requests", response_model=List[UserRead])
def list_role_requests(accounts: AccountManagerDep, current: CurrentIdentityDep):
    return accounts.list_role_requests(current)


@router.patch("/last-login", response_model=UserRead)
def update_last_login(
    update: LastLoginUpdate,
    accounts: AccountManagerDep,
    current: CurrentIdentityDep,
):
    return accounts.touch_last_login(current, update.email, update.last_login)


@router.patch("/{email}/profile", response_model=UserRead)
def update_profile(
    email: EmailStr,
    fields: ProfileUpdate,
    accounts: AccountManagerDep,
    current: CurrentIdentityDep,
):
    return accounts.update_profile(current, email, fields)


@router.patch("/{email}/role-request", response_model=UserRead)
def request_role_upgrade(
    email: EmailStr,
    data: RoleUpgradeRequest,
    accounts: AccountManagerDep,
    current: CurrentIdentityDep,
):
    return accounts.request_role_upgrade(current, email, data)


@router.patch("/{candidate_email}/role-decision", response_model=RoleDecisionReport)
def decide_role_request(
    candidate_email: EmailStr,
    body: RoleDecision,
    accounts: AccountManagerDep,
    current: CurrentIdentityDep,
):
    return accounts.decide(candidate_email, current, body.decision)


@router.patch("/{candidate_email}/role", response_model=UserRead)
def change_role(
    candidate_email: EmailStr,
    body: DirectRoleChange,
    accounts: AccountManagerDep,
    current: CurrentIdentityDep,
):
    return accounts.change_role(current, candidate_email, body.role)


@router.delete("/{user_id}", response_model=DeletionReport)
def delete_user(
    user_id: int,
    accounts: AccountManagerDep,
    current: CurrentIdentityDep,
):
    return accounts.delete_user(current, user_id)
