"""Product reviews for storefront."""

from .catalog import ProductStore
from .data_store import DataStore
from .errors import ReviewNotFoundError, ValidationError
from .models import REVIEW_STATUSES, Review, _generate_id, _utc_now

REVIEWS_TABLE = "reviews"


class ReviewStore:
    """Moderation-gated reviews. Independent of the order pipeline."""

    def __init__(self, data_store: DataStore, products: ProductStore):
        self.data_store = data_store
        self.products = products

    def submit(self, product_id: str, user_id: str, rating: int, comment: str = "") -> Review:
        """Submit a review; it stays hidden until approved."""
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", fields=["rating"])
        self.products.get_product(product_id)

        now = _utc_now()
        review = Review(
            id=_generate_id(),
            product_id=product_id,
            user_id=user_id,
            rating=rating,
            comment=comment.strip(),
            created_at=now,
            updated_at=now,
        )
        self.data_store.insert(REVIEWS_TABLE, review.to_dict())
        return review

    def moderate(self, review_id: str, status: str) -> Review:
        if status not in REVIEW_STATUSES or status == "pending":
            raise ValidationError(f"Invalid review status: {status}", fields=["status"])
        row = self.data_store.update(REVIEWS_TABLE, review_id, {"status": status})
        if row is None:
            raise ReviewNotFoundError(review_id)
        return Review.from_dict(row)

    def list_reviews(self, product_id: str | None = None, status: str | None = "approved") -> list[Review]:
        filters = {}
        if product_id is not None:
            filters["product_id"] = product_id
        if status is not None:
            filters["status"] = status
        rows = self.data_store.select(
            REVIEWS_TABLE, filters, order_by="created_at", descending=True
        )
        return [Review.from_dict(r) for r in rows]
