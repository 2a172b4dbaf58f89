"""Review service.

Upserts provider reviews keyed by (location_id, external_id) and owns the
derived replied_status field.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from revwave_core.domain.models import Review, ReplyStatus
from revwave_core.providers.base import ProviderReview


@dataclass
class ReviewStats:
    """Review counts and average rating for a tenant."""

    total: int
    pending: int
    drafted: int
    replied: int
    average_rating: Optional[float]

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "pending": self.pending,
            "drafted": self.drafted,
            "replied": self.replied,
            "average_rating": self.average_rating,
        }


class ReviewService:
    """Service for synced reviews."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_external_id(self, location_id: int, external_id: str) -> Optional[Review]:
        return self.db.execute(
            select(Review).where(
                Review.location_id == location_id,
                Review.external_id == external_id,
            )
        ).scalar_one_or_none()

    def get(self, review_id: int, tenant_id: str) -> Optional[Review]:
        return self.db.execute(
            select(Review).where(Review.id == review_id, Review.tenant_id == tenant_id)
        ).scalar_one_or_none()

    def upsert(
        self,
        location_id: int,
        tenant_id: str,
        review: ProviderReview,
    ) -> tuple[Review, bool]:
        """Create or update a review.

        replied_status is left alone here; the reconciler sets it.

        Returns:
            Tuple of (review, created) where created is True for a new row.
        """
        existing = self.find_by_external_id(location_id, review.external_id)

        if existing:
            existing.rating = review.rating
            existing.content = review.content
            existing.reviewer_name = review.reviewer_name
            existing.reviewer_avatar = review.reviewer_avatar
            existing.published_at = review.published_at
            existing.metadata_json = review.raw_data
            self.db.commit()
            return existing, False

        record = Review(
            external_id=review.external_id,
            rating=review.rating,
            content=review.content,
            reviewer_name=review.reviewer_name,
            reviewer_avatar=review.reviewer_avatar,
            published_at=review.published_at,
            replied_status=ReplyStatus.PENDING,
            metadata_json=review.raw_data,
            location_id=location_id,
            tenant_id=tenant_id,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record, True

    def update_reply_status(self, review: Review, status: str) -> None:
        if review.replied_status != status:
            review.replied_status = status
            self.db.commit()

    def get_stats(self, tenant_id: str) -> ReviewStats:
        """Count reviews per reply status and average the rating."""
        counts = dict(
            self.db.execute(
                select(Review.replied_status, func.count(Review.id))
                .where(Review.tenant_id == tenant_id)
                .group_by(Review.replied_status)
            ).all()
        )
        average = self.db.execute(
            select(func.avg(Review.rating)).where(Review.tenant_id == tenant_id)
        ).scalar()

        return ReviewStats(
            total=sum(counts.values()),
            pending=counts.get(ReplyStatus.PENDING, 0),
            drafted=counts.get(ReplyStatus.DRAFTED, 0),
            replied=counts.get(ReplyStatus.REPLIED, 0),
            average_rating=round(float(average), 2) if average is not None else None,
        )
