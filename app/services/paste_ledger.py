from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.availability import (
    OutcomeStatus,
    ViewOutcome,
    classify_unavailable,
    expires_at_ms,
    remaining_views,
)
from app.domain.models import PASTE_ID_MAX_LENGTH, Paste
from app.observability import get_correlation_id
from app.repositories.paste_repository import PasteRepository


logger = logging.getLogger(__name__)


# Upper bound of the Integer columns holding ttl_seconds / max_views.
MAX_LIMIT_VALUE = 2**31 - 1


def _paste_to_dto(paste: Paste) -> dict[str, Any]:
    """Convert a Paste ORM entity to a plain dict DTO."""
    return {
        "id": paste.id,
        "content": paste.content,
        "ttl_seconds": paste.ttl_seconds,
        "max_views": paste.max_views,
        "created_at_ms": paste.created_at_ms,
        "views_used": paste.views_used,
    }


class PasteError(Exception):
    """Base class for paste-related errors."""


class InvalidPasteParameters(PasteError):
    """Raised when creating a paste with invalid parameters."""


class DuplicatePasteError(PasteError):
    """Raised when a paste id is already taken."""


class StorageError(PasteError):
    """Raised when the database is unreachable or a statement fails."""


def _validate_limit(name: str, value: Optional[int]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPasteParameters(f"{name} must be an integer >= 1")
    if value < 1 or value > MAX_LIMIT_VALUE:
        raise InvalidPasteParameters(
            f"{name} must be an integer between 1 and {MAX_LIMIT_VALUE}"
        )


@dataclass
class PasteLedger:
    """
    Owns the create / consume protocol for pastes.

    Opens a session per operation, commits on success, rolls back on
    exception, and closes the session in a finally block. Nothing is cached
    between calls: the database is the single source of truth.
    """

    session_factory: Callable[[], Session]

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------
    def create(
        self,
        *,
        paste_id: str,
        content: str,
        ttl_seconds: Optional[int],
        max_views: Optional[int],
        now_ms: int,
    ) -> dict[str, Any]:
        """
        Persist a new paste with ``views_used = 0``.

        - ``content`` must be a non-empty string
        - ``ttl_seconds`` / ``max_views`` must be ``None`` or integers >= 1
        - an existing id is never overwritten
        """
        if not isinstance(content, str) or not content.strip():
            raise InvalidPasteParameters("content must be a non-empty string")
        if not paste_id or len(paste_id) > PASTE_ID_MAX_LENGTH:
            raise InvalidPasteParameters(
                f"paste id must be 1 to {PASTE_ID_MAX_LENGTH} characters"
            )
        _validate_limit("ttl_seconds", ttl_seconds)
        _validate_limit("max_views", max_views)

        session: Optional[Session] = None
        try:
            session = self.session_factory()
            paste_repo = PasteRepository(session=session)
            paste = paste_repo.create_paste(
                paste_id=paste_id,
                content=content,
                ttl_seconds=ttl_seconds,
                max_views=max_views,
                created_at_ms=now_ms,
            )
            dto = _paste_to_dto(paste)
            session.commit()
            logger.info(
                "Paste created",
                extra={
                    "event": "paste_created",
                    "paste_id": paste_id,
                    "correlation_id": get_correlation_id(),
                },
            )
            return dto
        except IntegrityError as exc:
            if session is not None:
                session.rollback()
            if self._exists(paste_id):
                raise DuplicatePasteError(f"Paste {paste_id} already exists.") from exc
            self._log_storage_error("create", paste_id, exc)
            raise StorageError("Failed to store paste.") from exc
        except SQLAlchemyError as exc:
            if session is not None:
                session.rollback()
            self._log_storage_error("create", paste_id, exc)
            raise StorageError("Failed to store paste.") from exc
        except Exception:
            if session is not None:
                session.rollback()
            raise
        finally:
            if session is not None:
                session.close()

    # -------------------------------------------------------------------------
    # Retrieval / viewing
    # -------------------------------------------------------------------------
    def consume_view(self, paste_id: str, now_ms: int) -> ViewOutcome:
        """
        Atomically check availability and consume one view.

        The conditional update either consumes a view and returns the new
        state, or changes nothing. In the latter case the record is read back
        only to tell ``missing``, ``expired`` and ``exhausted`` apart. Expired and
        exhausted are stable because ``views_used`` only grows and ``now_ms``
        is fixed for this call; a record that is neither was created after the
        update ran and counts as missing.
        """
        session: Optional[Session] = None
        try:
            session = self.session_factory()
            paste_repo = PasteRepository(session=session)
            row = paste_repo.consume_view_atomic(paste_id, now_ms)

            if row is None:
                outcome = classify_unavailable(
                    paste_repo.get_paste_by_id(paste_id), now_ms
                )
            else:
                outcome = ViewOutcome(
                    status=OutcomeStatus.OK,
                    content=row.content,
                    remaining_views=remaining_views(row.max_views, row.views_used),
                    expires_at_ms=expires_at_ms(row.created_at_ms, row.ttl_seconds),
                )

            session.commit()
        except SQLAlchemyError as exc:
            if session is not None:
                session.rollback()
            self._log_storage_error("consume_view", paste_id, exc)
            raise StorageError("Failed to consume paste view.") from exc
        except Exception:
            if session is not None:
                session.rollback()
            raise
        finally:
            if session is not None:
                session.close()

        if outcome.ok:
            logger.info(
                "Paste view consumed",
                extra={
                    "event": "paste_view_consumed",
                    "paste_id": paste_id,
                    "outcome": outcome.status.value,
                    "correlation_id": get_correlation_id(),
                },
            )
        else:
            logger.info(
                "Paste view rejected",
                extra={
                    "event": "paste_view_rejected",
                    "paste_id": paste_id,
                    "outcome": outcome.status.value,
                    "correlation_id": get_correlation_id(),
                },
            )
        return outcome

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------
    def ping(self) -> bool:
        """Return whether the database answers a trivial query."""
        session: Optional[Session] = None
        try:
            session = self.session_factory()
            session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, RuntimeError, OSError) as exc:
            logger.warning(
                "Store ping failed",
                exc_info=exc,
                extra={
                    "event": "store_ping_failed",
                    "error_type": type(exc).__name__,
                    "correlation_id": get_correlation_id(),
                },
            )
            return False
        finally:
            if session is not None:
                session.close()

    def _exists(self, paste_id: str) -> bool:
        session = self.session_factory()
        try:
            return PasteRepository(session=session).get_paste_by_id(paste_id) is not None
        except SQLAlchemyError:
            return False
        finally:
            session.close()

    @staticmethod
    def _log_storage_error(operation: str, paste_id: str, exc: Exception) -> None:
        logger.error(
            "Storage failure during %s",
            operation,
            exc_info=exc,
            extra={
                "event": "paste_storage_error",
                "paste_id": paste_id,
                "error_type": type(exc).__name__,
                "correlation_id": get_correlation_id(),
            },
        )
