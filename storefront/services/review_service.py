from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import bleach
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.errors import NotFoundError, ValidationError
from storefront.models import Product, ProductReview
from storefront.observability import increment_counter, record_event
from storefront.serializers import serialize_review
from storefront.utils import round_half_up

MAX_COMMENT_LENGTH = 2000
MAX_REVIEWER_NAME_LENGTH = 100


def updated_mean(old_mean: float, old_count: int, rating: int) -> float:
    """Fold one more rating into a running mean, rounded to one decimal."""
    old_count = old_count or 0
    return round_half_up(((float(old_mean or 0) * old_count) + rating) / (old_count + 1), 1)


class ReviewService:
    def __init__(self, db_session: Session) -> None:
        self.db = db_session
        self.logger = logging.getLogger(__name__)

    def _product(self, slug: str) -> Product:
        product = self.db.query(Product).filter_by(slug=slug).first()
        if not product:
            raise NotFoundError("Product not found")
        return product

    @staticmethod
    def _clean(value: Any, limit: int) -> Optional[str]:
        if value is None:
            return None
        cleaned = bleach.clean(str(value), tags=[], strip=True).strip()
        return cleaned[:limit] or None

    def list_reviews(self, slug: str) -> List[Dict[str, Any]]:
        product = self._product(slug)
        reviews = (
            self.db.query(ProductReview)
            .filter_by(product_id=product.id)
            .order_by(ProductReview.created_at.desc())
            .all()
        )
        return [serialize_review(review) for review in reviews]

    def submit_review(
        self,
        slug: str,
        rating: Any,
        comment: Optional[str] = None,
        reviewer_name: Optional[str] = None,
        anonymous_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("rating must be an integer between 1 and 5")

        product = self._product(slug)
        review = ProductReview(
            product_id=product.id,
            user_id=user_id,
            anonymous_id=None if user_id else anonymous_id,
            rating=rating,
            comment=self._clean(comment, MAX_COMMENT_LENGTH),
            reviewer_name=self._clean(reviewer_name, MAX_REVIEWER_NAME_LENGTH),
        )

        new_rating = updated_mean(product.base_rating, product.rating_count, rating)
        new_count = (product.rating_count or 0) + 1
        try:
            self.db.add(review)
            product.base_rating = new_rating
            product.rating_count = new_count
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        increment_counter("reviews_created_total")
        record_event("review_created", {"product_id": product.id, "rating": rating})
        self.logger.info(
            "Review %s stored for product %s",
            review.id,
            product.id,
            extra={"new_rating": new_rating, "new_count": new_count},
        )
        return {"review": serialize_review(review), "newRating": new_rating, "newCount": new_count}
