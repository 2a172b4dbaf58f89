"""Reply service for review replies (drafts and published).

A review can accumulate several replies; the latest is the most recently
created. Creating a draft moves the review to drafted, publishing moves it
to replied.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from revwave_core.domain.errors import NotFound, ReplyAlreadyPublished
from revwave_core.domain.models import Reply, ReplyStatus, Review, utcnow

logger = logging.getLogger(__name__)


class ReplyService:
    """Service for review replies."""

    def __init__(self, db: Session):
        self.db = db

    def _latest_query(self, review_id: int, *criteria):
        return (
            select(Reply)
            .where(Reply.review_id == review_id, *criteria)
            .order_by(Reply.created_at.desc(), Reply.id.desc())
            .limit(1)
        )

    def find_latest(self, review_id: int) -> Optional[Reply]:
        return self.db.execute(self._latest_query(review_id)).scalar_one_or_none()

    def find_latest_draft(self, review_id: int) -> Optional[Reply]:
        query = self._latest_query(review_id, Reply.is_draft.is_(True))
        return self.db.execute(query).scalar_one_or_none()

    def list_for_review(self, review_id: int) -> list[Reply]:
        return list(
            self.db.execute(
                select(Reply)
                .where(Reply.review_id == review_id)
                .order_by(Reply.created_at.desc(), Reply.id.desc())
            ).scalars()
        )

    def create(
        self,
        review_id: int,
        tenant_id: str,
        content: str,
        is_draft: bool = True,
        ai_generated: bool = False,
        ai_model: Optional[str] = None,
        published_by: Optional[str] = None,
    ) -> Reply:
        """Create a reply for a tenant's review.

        Raises:
            NotFound: If the review does not belong to the tenant.
        """
        review = self.db.execute(
            select(Review).where(Review.id == review_id, Review.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if review is None:
            raise NotFound(f"Review {review_id} not found")

        reply = Reply(
            review_id=review.id,
            content=content,
            is_draft=is_draft,
            ai_generated=ai_generated,
            ai_model=ai_model,
        )
        if not is_draft:
            reply.published_at = utcnow()
            reply.published_by = published_by

        review.replied_status = ReplyStatus.DRAFTED if is_draft else ReplyStatus.REPLIED
        self.db.add(reply)
        self.db.commit()
        self.db.refresh(reply)

        logger.info(
            f"Created {'draft' if is_draft else 'published'} reply for review {review_id}"
        )
        return reply

    def publish(self, reply_id: int, tenant_id: str, published_by: str) -> Reply:
        """Publish a draft reply.

        Raises:
            NotFound: If the reply does not exist for the tenant.
            ReplyAlreadyPublished: If the reply is not a draft.
        """
        reply = self.db.execute(
            select(Reply)
            .join(Review, Reply.review_id == Review.id)
            .where(Reply.id == reply_id, Review.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if reply is None:
            raise NotFound(f"Reply {reply_id} not found")
        if not reply.is_draft:
            raise ReplyAlreadyPublished(f"Reply {reply_id} is already published")

        reply.is_draft = False
        reply.published_at = utcnow()
        reply.published_by = published_by
        reply.review.replied_status = ReplyStatus.REPLIED
        self.db.commit()
        self.db.refresh(reply)

        logger.info(f"Published reply {reply_id}")
        return reply
