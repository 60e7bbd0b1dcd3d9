from typing import List, Optional

from fastapi import APIRouter, HTTPException, Response

from db import StoreDep
from models import Review
from schemas import ReviewCreate
from .auth import CurrentIdentityDep

router = APIRouter(tags=["reviews"])


@router.post("/", response_model=Review)
def create_review(review_in: ReviewCreate, store: StoreDep, current: CurrentIdentityDep):
    if review_in.donation_id is None and review_in.restaurant_email is None:
        raise HTTPException(status_code=400, detail="A review needs a donation or a restaurant")
    review = Review(**review_in.model_dump(), reviewer_email=current.email)
    return store.insert(review)


@router.get("/", response_model=List[Review])
def list_reviews(
    store: StoreDep,
    restaurant_email: Optional[str] = None,
    donation_id: Optional[int] = None,
):
    criteria = []
    if restaurant_email is not None:
        criteria.append(Review.restaurant_email == restaurant_email)
    if donation_id is not None:
        criteria.append(Review.donation_id == donation_id)
    return store.find(Review, *criteria, order_by=[Review.created_at.desc()])


@router.get("/mine", response_model=List[Review])
def my_reviews(store: StoreDep, current: CurrentIdentityDep):
    return store.find(Review, Review.reviewer_email == current.email, order_by=[Review.created_at.desc()])


@router.delete("/{review_id}", status_code=204)
def delete_review(review_id: int, store: StoreDep, current: CurrentIdentityDep):
    review = store.get(Review, review_id)
    if review is None:
        raise HTTPException(status_code=404, detail="Review not found")
    if review.reviewer_email != current.email:
        raise HTTPException(status_code=403, detail="You can only delete your own reviews.")
    store.delete_one(Review, Review.id == review_id)
    return Response(status_code=204)
