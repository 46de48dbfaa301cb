from __future__ import annotations

from sqlalchemy import BigInteger, CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.db import Base


PASTE_ID_MAX_LENGTH = 64


class Paste(Base):
    """
    Paste record persisted via SQLAlchemy.

    ``ttl_seconds`` and ``max_views`` are nullable: ``NULL`` means the paste
    has no time-based or no count-based limit respectively.
    """

    __tablename__ = "pastes"
    __table_args__ = (
        CheckConstraint(
            "ttl_seconds IS NULL OR ttl_seconds >= 1",
            name="ck_pastes_ttl_seconds_min_1",
        ),
        CheckConstraint(
            "max_views IS NULL OR max_views >= 1",
            name="ck_pastes_max_views_min_1",
        ),
        CheckConstraint(
            "views_used >= 0",
            name="ck_pastes_views_used_non_negative",
        ),
    )

    id: Mapped[str] = mapped_column(String(PASTE_ID_MAX_LENGTH), primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    ttl_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_views: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    views_used: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    @validates("content")
    def _validate_immutable_content(self, key: str, value: str) -> str:
        """
        Enforce that ``content`` is immutable after initial creation.

        The value can be set on new instances, but any subsequent attempt to
        change it will raise an error.
        """

        if getattr(self, "content", None) is not None and self.content != value:
            raise ValueError("Paste content is immutable and cannot be modified.")
        return value

    def __repr__(self) -> str:
        return (
            f"<Paste id={self.id!r} ttl_seconds={self.ttl_seconds} "
            f"max_views={self.max_views} views_used={self.views_used}>"
        )
