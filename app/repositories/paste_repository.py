from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import BigInteger, Select, Update, cast, or_, select, update
from sqlalchemy.engine import Row
from sqlalchemy.orm import Session

from app.domain.models import Paste
from app.observability import get_correlation_id


logger = logging.getLogger(__name__)


class PasteRepository:
    """
    Repository for Paste records.

    All database interaction for Paste should go through this class.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def create_paste(
        self,
        *,
        paste_id: str,
        content: str,
        ttl_seconds: Optional[int],
        max_views: Optional[int],
        created_at_ms: int,
    ) -> Paste:
        """
        Create and persist a new Paste with no views consumed.

        Flushes immediately so a primary-key conflict surfaces here rather
        than at commit time.
        """

        paste = Paste(
            id=paste_id,
            content=content,
            ttl_seconds=ttl_seconds,
            max_views=max_views,
            created_at_ms=created_at_ms,
            views_used=0,
        )
        self._session.add(paste)
        self._session.flush()
        return paste

    def get_paste_by_id(self, paste_id: str) -> Optional[Paste]:
        """Return a Paste by its id, or ``None`` if not found."""

        stmt: Select[tuple[Paste]] = select(Paste).where(Paste.id == paste_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def consume_view_atomic(self, paste_id: str, now_ms: int) -> Optional[Row]:
        """
        Consume one view if the paste is still available at ``now_ms``.

        The eligibility checks and the increment run as a single statement,
        so the database serialises concurrent consumers of the same row.
        Returns the post-increment row, or ``None`` when nothing was
        consumed (missing, expired or exhausted).
        """

        expiry_ms = Paste.created_at_ms + cast(Paste.ttl_seconds, BigInteger) * 1000
        stmt: Update = (
            update(Paste)
            .where(
                Paste.id == paste_id,
                or_(Paste.ttl_seconds.is_(None), expiry_ms > now_ms),
                or_(Paste.max_views.is_(None), Paste.views_used < Paste.max_views),
            )
            .values(views_used=Paste.views_used + 1)
            .returning(
                Paste.content,
                Paste.views_used,
                Paste.max_views,
                Paste.ttl_seconds,
                Paste.created_at_ms,
            )
            .execution_options(synchronize_session=False)
        )
        row = self._session.execute(stmt).one_or_none()

        logger.debug(
            "Conditional view increment executed",
            extra={
                "event": "paste_view_increment",
                "paste_id": paste_id,
                "outcome": "consumed" if row is not None else "refused",
                "correlation_id": get_correlation_id(),
            },
        )

        # Caller is responsible for committing.
        return row
