import random

import pytest
from sqlalchemy.exc import SQLAlchemyError

from errors import (
    ACCEPT_RACE,
    ALREADY_REQUESTED,
    DONATION_CLOSED,
    DONATION_LOCKED,
    NOT_ACCEPTED,
    REQUEST_CLOSED,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from models import ACCEPTED, PENDING, PICKED_UP, REJECTED, Donation, Request

from conftest import donation_payload, make_account, request_payload


def _accepted_count(store, donation_id):
    return len(
        store.find(Request, Request.donation_id == donation_id, Request.request_status == ACCEPTED)
    )


@pytest.fixture
def ra(arbitration, donation, charity_a):
    return arbitration.file(charity_a, request_payload(donation.id, charity_a, "Alpha Relief"))


@pytest.fixture
def rb(arbitration, donation, charity_b):
    return arbitration.file(charity_b, request_payload(donation.id, charity_b, "Beta Shelter"))


def test_file_creates_pending_request_with_snapshot(ra, donation, charity_a):
    assert ra.request_status == PENDING
    assert ra.picking_status is None
    assert ra.charity_email == charity_a.email
    assert ra.donation_title == donation.title
    assert ra.restaurant_email == donation.restaurant_email
    assert ra.created_at is not None


def test_file_rejects_duplicate_claim(arbitration, ra, donation, charity_a):
    with pytest.raises(ConflictError) as exc:
        arbitration.file(charity_a, request_payload(donation.id, charity_a, "Alpha Relief"))
    assert exc.value.reason == ALREADY_REQUESTED


def test_file_requires_matching_charity(arbitration, donation, charity_a, charity_b):
    with pytest.raises(ForbiddenError):
        arbitration.file(charity_a, request_payload(donation.id, charity_b, "Beta Shelter"))


def test_file_requires_charity_role(arbitration, donation, restaurant):
    with pytest.raises(ForbiddenError):
        arbitration.file(restaurant, request_payload(donation.id, restaurant, "Green Kitchen"))


def test_file_on_missing_donation(arbitration, charity_a):
    with pytest.raises(NotFoundError):
        arbitration.file(charity_a, request_payload(999, charity_a, "Alpha Relief"))


def test_accept_one_reject_the_rest(arbitration, store, donation, restaurant, ra, rb):
    report = arbitration.decide(restaurant, ra.id, ACCEPTED)

    assert report.request_status == ACCEPTED
    assert report.donation_locked is True
    assert report.siblings_rejected == 1
    assert store.get(Request, ra.id).request_status == ACCEPTED
    assert store.get(Request, rb.id).request_status == REJECTED
    locked = store.get(Donation, donation.id)
    assert locked.is_locked is True
    assert locked.accepted_request_id == ra.id

    with pytest.raises(ConflictError) as exc:
        arbitration.decide(restaurant, rb.id, ACCEPTED)
    assert exc.value.reason == DONATION_LOCKED
    assert store.get(Request, rb.id).request_status == REJECTED
    assert _accepted_count(store, donation.id) == 1


def test_admin_may_decide(arbitration, admin, ra):
    assert arbitration.decide(admin, ra.id, ACCEPTED).request_status == ACCEPTED


def test_other_restaurant_may_not_decide(arbitration, store, ra):
    stranger = make_account(store, "other-kitchen@example.com", "restaurant")
    with pytest.raises(ForbiddenError):
        arbitration.decide(stranger, ra.id, ACCEPTED)


def test_reject_leaves_donation_open(arbitration, store, donation, restaurant, ra):
    report = arbitration.decide(restaurant, ra.id, REJECTED)

    assert report.request_status == REJECTED
    assert store.get(Donation, donation.id).is_locked is False
    with pytest.raises(ConflictError) as exc:
        arbitration.decide(restaurant, ra.id, ACCEPTED)
    assert exc.value.reason == REQUEST_CLOSED


def test_rejected_charity_may_file_again(arbitration, restaurant, donation, charity_a, ra):
    arbitration.decide(restaurant, ra.id, REJECTED)
    again = arbitration.file(charity_a, request_payload(donation.id, charity_a, "Alpha Relief"))
    assert again.request_status == PENDING


def test_file_on_locked_donation_is_refused(arbitration, restaurant, donation, charity_b, ra):
    arbitration.decide(restaurant, ra.id, ACCEPTED)

    with pytest.raises(ConflictError) as exc:
        arbitration.file(charity_b, request_payload(donation.id, charity_b, "Beta Shelter"))
    assert exc.value.reason == DONATION_LOCKED


def test_concurrent_accepts_have_single_winner(
    arbitration, donations, store, donation, restaurant, ra, rb, monkeypatch
):
    real_lock = donations.lock

    def racing_lock(donation_id, request_id, charity_email):
        if request_id == ra.id:
            # rb's acceptance lands between ra's checks and its lock attempt
            arbitration.decide(restaurant, rb.id, ACCEPTED)
        return real_lock(donation_id, request_id, charity_email)

    monkeypatch.setattr(donations, "lock", racing_lock)

    with pytest.raises(ConflictError) as exc:
        arbitration.decide(restaurant, ra.id, ACCEPTED)
    assert exc.value.reason == ACCEPT_RACE

    assert store.get(Request, ra.id).request_status == REJECTED
    assert store.get(Request, rb.id).request_status == ACCEPTED
    assert store.get(Donation, donation.id).accepted_request_id == rb.id
    assert _accepted_count(store, donation.id) == 1


def test_lost_lock_rolls_request_back_to_rejected(arbitration, donations, store, donation, restaurant, ra):
    # another acceptance already holds the lock
    assert donations.lock(donation.id, 12345, "elsewhere@example.com") is True

    with pytest.raises(ConflictError) as exc:
        arbitration.decide(restaurant, ra.id, ACCEPTED)
    assert exc.value.reason == ACCEPT_RACE
    assert store.get(Request, ra.id).request_status == REJECTED
    assert _accepted_count(store, donation.id) == 0


def test_request_decided_while_holding_lock_releases_it(
    arbitration, donations, store, donation, restaurant, ra, monkeypatch
):
    real_lock = donations.lock

    def lock_then_reject(donation_id, request_id, charity_email):
        won = real_lock(donation_id, request_id, charity_email)
        # the request is rejected elsewhere right after the lock lands
        store.update_one(Request, [Request.id == request_id], {"request_status": REJECTED})
        return won

    monkeypatch.setattr(donations, "lock", lock_then_reject)

    with pytest.raises(ConflictError) as exc:
        arbitration.decide(restaurant, ra.id, ACCEPTED)
    assert exc.value.reason == ACCEPT_RACE

    released = store.get(Donation, donation.id)
    assert released.is_locked is False
    assert released.accepted_request_id is None
    assert released.locked_by_email is None
    assert _accepted_count(store, donation.id) == 0


def test_sibling_rejection_failure_keeps_acceptance(
    arbitration, store, donation, restaurant, ra, rb, monkeypatch
):
    real_update_many = store.update_many

    def flaky_update_many(model, criteria, patch):
        if model is Request and patch == {"request_status": REJECTED}:
            raise SQLAlchemyError("request table unavailable")
        return real_update_many(model, criteria, patch)

    monkeypatch.setattr(store, "update_many", flaky_update_many)

    report = arbitration.decide(restaurant, ra.id, ACCEPTED)

    assert report.request_status == ACCEPTED
    assert report.donation_locked is True
    assert report.siblings_rejected == 0
    assert "request table unavailable" in report.siblings_error
    assert store.get(Request, ra.id).request_status == ACCEPTED
    assert store.get(Request, rb.id).request_status == PENDING
    assert store.get(Donation, donation.id).accepted_request_id == ra.id
    assert _accepted_count(store, donation.id) == 1


def test_picked_up_donation_is_closed_to_claims(
    arbitration, donations, store, donation, restaurant, charity_a, charity_b, ra
):
    donations.confirm_pickup_by_owner(restaurant, donation.id)

    with pytest.raises(ConflictError) as exc:
        arbitration.file(charity_b, request_payload(donation.id, charity_b, "Beta Shelter"))
    assert exc.value.reason == DONATION_CLOSED
    assert arbitration.check_claim(donation.id, charity_b.email).can_request is False

    # a request filed before the pickup cannot win it afterwards
    with pytest.raises(ConflictError) as exc:
        arbitration.decide(restaurant, ra.id, ACCEPTED)
    assert exc.value.reason == DONATION_CLOSED
    assert store.get(Donation, donation.id).is_locked is False
    assert _accepted_count(store, donation.id) == 0


def test_confirm_pickup_mirrors_charity_snapshot(arbitration, store, donation, restaurant, charity_a, ra):
    arbitration.decide(restaurant, ra.id, ACCEPTED)

    report = arbitration.confirm_pickup(charity_a, ra.id)

    assert report.warning is None
    assert report.picking_status == PICKED_UP
    picked = store.get(Request, ra.id)
    assert picked.picking_status == PICKED_UP
    assert picked.picked_up_at is not None
    stored = store.get(Donation, donation.id)
    assert stored.donation_status == PICKED_UP
    assert stored.picked_up_by_email == picked.charity_email
    assert stored.picked_up_by_name == picked.charity_name


def test_confirm_pickup_requires_accepted(arbitration, charity_a, ra):
    with pytest.raises(ConflictError) as exc:
        arbitration.confirm_pickup(charity_a, ra.id)
    assert exc.value.reason == NOT_ACCEPTED


def test_confirm_pickup_without_donation_id(arbitration, store, charity_a):
    orphan = store.insert(
        Request(
            donation_id=None,
            charity_email=charity_a.email,
            charity_name="Alpha Relief",
            request_status=ACCEPTED,
        )
    )
    with pytest.raises(NotFoundError):
        arbitration.confirm_pickup(charity_a, orphan.id)


def test_check_claim(arbitration, restaurant, donation, charity_a, charity_b, ra):
    check = arbitration.check_claim(donation.id, charity_a.email)
    assert check.already_requested is True
    assert check.can_request is False

    fresh = arbitration.check_claim(donation.id, charity_b.email)
    assert fresh.already_requested is False
    assert fresh.can_request is True

    arbitration.decide(restaurant, ra.id, ACCEPTED)
    locked = arbitration.check_claim(donation.id, charity_b.email)
    assert locked.is_locked is True
    assert locked.locked_by_other is True
    assert locked.can_request is False
    assert arbitration.check_claim(donation.id, charity_a.email).locked_by_other is False


def test_withdraw_only_pending(arbitration, restaurant, charity_a, charity_b, ra, rb):
    with pytest.raises(ForbiddenError):
        arbitration.withdraw(charity_b, ra.id)

    arbitration.decide(restaurant, ra.id, ACCEPTED)
    with pytest.raises(ConflictError):
        arbitration.withdraw(charity_a, ra.id)

    assert arbitration.list_for_charity(charity_a.email)[0].id == ra.id


def test_at_most_one_winner_under_random_interleaving(arbitration, donations, store, restaurant):
    rng = random.Random(20261018)
    charities = [make_account(store, f"charity{i}@example.com", "charity") for i in range(5)]
    donation = donations.post(restaurant, donation_payload(restaurant.email))

    for _ in range(60):
        if rng.random() < 0.5:
            charity = rng.choice(charities)
            try:
                arbitration.file(charity, request_payload(donation.id, charity, charity.email))
            except ConflictError:
                pass
        else:
            pending = store.find(Request, Request.donation_id == donation.id)
            if not pending:
                continue
            target = rng.choice(pending)
            try:
                arbitration.decide(restaurant, target.id, rng.choice([ACCEPTED, REJECTED]))
            except ConflictError:
                pass

        accepted = _accepted_count(store, donation.id)
        assert accepted <= 1
        assert store.get(Donation, donation.id).is_locked == (accepted == 1)

        live = {}
        for request in store.find(Request, Request.donation_id == donation.id):
            if request.request_status in (PENDING, ACCEPTED):
                assert request.charity_email not in live
                live[request.charity_email] = request.id
