# app/services/rating_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, List

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    AlreadyRated,
    DependentOperationFailure,
    InvalidRating,
    NotRateable,
    ProductNotFound,
)
from app.core.types import UserRole
from app.db.types import utcnow
from app.models.enums import ProductStatus
from app.models.product import Product
from app.models.rating import Rating
from app.models.user import User

logger = logging.getLogger(__name__)

REVIEW_MIN_CHARS = 10
REVIEW_MAX_CHARS = 200


@dataclass(frozen=True)
class RatingEligibility:
    can_rate: bool
    has_rated: bool


@dataclass(frozen=True)
class RatingSummary:
    average: Decimal
    count: int


def _validate(rating: Any, review: Any) -> tuple:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise InvalidRating("Rating must be a whole number from 1 to 5.")

    if not isinstance(review, str):
        raise InvalidRating("Review is required.")
    text = review.strip()
    if len(text) < REVIEW_MIN_CHARS:
        raise InvalidRating(f"Review must be at least {REVIEW_MIN_CHARS} characters.")
    if len(text) > REVIEW_MAX_CHARS:
        raise InvalidRating(f"Review must be at most {REVIEW_MAX_CHARS} characters.")
    return rating, text


class RatingService:
    """
    Post-delivery ratings between the seller and the winning bidder.
    At most one rating per (product, rater, ratee).
    """

    def _parties(self, product: Product) -> dict:
        # user id -> role on this lot
        parties = {product.seller_id: UserRole.farmer}
        if product.highest_bidder_id:
            parties[product.highest_bidder_id] = UserRole.merchant
        return parties

    def _is_settled(self, product: Product) -> bool:
        return product.status == ProductStatus.delivered.value and bool(product.product_delivered)

    def _is_party_pair(self, product: Product, from_user_id: str, to_user_id: str) -> bool:
        parties = self._parties(product)
        return (
            from_user_id != to_user_id
            and from_user_id in parties
            and to_user_id in parties
            and bool(product.bid_accepted)
        )

    def has_rated(
        self, db: Session, *, product_id: uuid.UUID, from_user_id: str, to_user_id: str
    ) -> bool:
        return db.get(Rating, (product_id, from_user_id, to_user_id)) is not None

    def check_eligibility(
        self,
        db: Session,
        *,
        product_id: uuid.UUID,
        from_user_id: str,
        to_user_id: str,
    ) -> RatingEligibility:
        has_rated = self.has_rated(
            db, product_id=product_id, from_user_id=from_user_id, to_user_id=to_user_id
        )
        product = db.get(Product, product_id)
        can_rate = (
            product is not None
            and not has_rated
            and self._is_settled(product)
            and self._is_party_pair(product, from_user_id, to_user_id)
        )
        return RatingEligibility(can_rate=can_rate, has_rated=has_rated)

    def submit_rating(
        self,
        db: Session,
        *,
        product_id: uuid.UUID,
        from_user_id: str,
        to_user_id: str,
        rating: int,
        review: str,
    ) -> Rating:
        rating, review = _validate(rating, review)

        product = db.get(Product, product_id)
        if not product:
            raise ProductNotFound(f"Product {product_id} not found.")

        if not self._is_settled(product):
            raise NotRateable("Ratings open once the product has been delivered.")
        if not self._is_party_pair(product, from_user_id, to_user_id):
            raise NotRateable("Only the seller and the winning bidder can rate each other.")

        if self.has_rated(db, product_id=product_id, from_user_id=from_user_id, to_user_id=to_user_id):
            raise AlreadyRated("You have already rated this user for this product.")

        parties = self._parties(product)
        row = Rating(
            product_id=product_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            rating=rating,
            review=review,
            from_role=parties[from_user_id].value,
            to_role=parties[to_user_id].value,
            created_at=utcnow(),
        )
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            # concurrent double submit: the composite key decided
            db.rollback()
            raise AlreadyRated("You have already rated this user for this product.")

        db.refresh(row)
        logger.info(
            "[ratings] rating=%d product=%s from=%s to=%s",
            rating, product_id, from_user_id, to_user_id,
        )

        self.refresh_user_aggregate_safely(db, to_user_id)
        return row

    def average_rating(self, db: Session, user_id: str) -> RatingSummary:
        count, total = db.execute(
            select(func.count(), func.coalesce(func.sum(Rating.rating), 0)).where(
                Rating.to_user_id == user_id
            )
        ).one()
        if not count:
            return RatingSummary(average=Decimal("0.0"), count=0)

        average = (Decimal(int(total)) / Decimal(int(count))).quantize(
            Decimal("0.1"), rounding=ROUND_HALF_UP
        )
        return RatingSummary(average=average, count=int(count))

    def list_ratings_for_user(self, db: Session, user_id: str) -> List[Rating]:
        return list(
            db.execute(
                select(Rating)
                .where(Rating.to_user_id == user_id)
                .order_by(Rating.created_at.desc())
            )
            .scalars()
            .all()
        )

    def refresh_user_aggregate_safely(self, db: Session, user_id: str) -> bool:
        """
        Best-effort copy of the aggregate onto users.rating_*. The rating
        itself is already committed; a failure here is logged only.
        """
        try:
            summary = self.average_rating(db, user_id)
            db.execute(
                update(User)
                .where(User.id == user_id)
                .values(
                    rating_average=summary.average,
                    rating_count=summary.count,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            failure = DependentOperationFailure(
                f"Rating aggregate refresh failed for user {user_id}: {exc}"
            )
            logger.exception("[ratings] %s", failure.message)
            return False
        return True
