from __future__ import annotations

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.db import Base
from app.domain.availability import (
    OutcomeStatus,
    ViewOutcome,
    classify_unavailable,
    expires_at_ms,
    format_iso_ms,
    is_exhausted,
    is_expired,
    remaining_views,
)
from app.domain.models import Paste
from app.repositories.paste_repository import PasteRepository


# ---------------------------------------------------------------------------
# Test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def engine() -> Generator:
    """
    Create a fresh in-memory SQLite engine for each test function.

    This keeps tests focused on domain behavior while using a real database
    session for repository operations.
    """

    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    with SessionLocal() as session:
        yield session
        session.rollback()


@pytest.fixture
def paste_repo(session: Session) -> PasteRepository:
    return PasteRepository(session=session)


def _paste(**overrides) -> Paste:
    values = {
        "id": "p1",
        "content": "hello",
        "ttl_seconds": None,
        "max_views": None,
        "created_at_ms": 0,
        "views_used": 0,
    }
    values.update(overrides)
    return Paste(**values)


# ---------------------------------------------------------------------------
# 1. Derived values.
# ---------------------------------------------------------------------------


def test_expires_at_is_created_plus_ttl() -> None:
    assert expires_at_ms(1_000, 10) == 11_000
    assert expires_at_ms(1_000, None) is None


def test_remaining_views_unlimited_without_max_views() -> None:
    assert remaining_views(5, 2) == 3
    assert remaining_views(None, 42) is None


@pytest.mark.parametrize(
    ("instant_ms", "expected"),
    [
        (0, "1970-01-01T00:00:00.000Z"),
        (10_000, "1970-01-01T00:00:10.000Z"),
        (1_700_000_000_123, "2023-11-14T22:13:20.123Z"),
        (951_782_400_000, "2000-02-29T00:00:00.000Z"),
        (253_402_300_799_999, "9999-12-31T23:59:59.999Z"),
        (253_402_300_800_000, "+010000-01-01T00:00:00.000Z"),
        (8_640_000_000_000_000, "+275760-09-13T00:00:00.000Z"),
        (-1, "1969-12-31T23:59:59.999Z"),
    ],
)
def test_format_iso_ms(instant_ms: int, expected: str) -> None:
    assert format_iso_ms(instant_ms) == expected


def test_ok_outcome_renders_expiry() -> None:
    outcome = ViewOutcome(
        status=OutcomeStatus.OK,
        content="x",
        remaining_views=None,
        expires_at_ms=10_000,
    )
    assert outcome.ok
    assert outcome.expires_at == "1970-01-01T00:00:10.000Z"
    assert ViewOutcome.missing().expires_at is None
    assert not ViewOutcome.exhausted().ok


# ---------------------------------------------------------------------------
# 2. Availability classification.
# ---------------------------------------------------------------------------


def test_expiry_instant_itself_is_unavailable() -> None:
    paste = _paste(ttl_seconds=10)
    assert not is_expired(paste, 9_999)
    assert is_expired(paste, 10_000)


def test_exhausted_only_with_max_views() -> None:
    assert is_exhausted(_paste(max_views=2, views_used=2))
    assert not is_exhausted(_paste(max_views=2, views_used=1))
    assert not is_exhausted(_paste(views_used=1_000))


def test_classify_missing() -> None:
    assert classify_unavailable(None, 0).status is OutcomeStatus.MISSING


def test_classify_prefers_expired_over_exhausted() -> None:
    paste = _paste(ttl_seconds=1, max_views=1, views_used=1)
    assert classify_unavailable(paste, 1_000).status is OutcomeStatus.EXPIRED
    assert classify_unavailable(paste, 999).status is OutcomeStatus.EXHAUSTED


def test_classify_eligible_record_as_missing() -> None:
    # The update refused it, so it did not exist when the update ran.
    assert classify_unavailable(_paste(), 0).status is OutcomeStatus.MISSING
    assert classify_unavailable(_paste(max_views=3, views_used=1), 0).status is OutcomeStatus.MISSING


# ---------------------------------------------------------------------------
# 3. Content cannot be modified.
# ---------------------------------------------------------------------------


def test_paste_content_is_immutable(session: Session) -> None:
    paste = _paste(content="immutable content")
    session.add(paste)
    session.flush()

    # Attempting to modify content after initial creation should fail via validator.
    with pytest.raises(ValueError):
        paste.content = "new content"
        session.flush()


# ---------------------------------------------------------------------------
# 4. Conditional view increment.
# ---------------------------------------------------------------------------


def test_atomic_view_increment(session: Session, paste_repo: PasteRepository) -> None:
    paste_repo.create_paste(
        paste_id="inc",
        content="increment views",
        ttl_seconds=None,
        max_views=10,
        created_at_ms=0,
    )
    session.commit()

    first = paste_repo.consume_view_atomic("inc", now_ms=1)
    second = paste_repo.consume_view_atomic("inc", now_ms=2)
    session.commit()

    # Values returned by the repository should reflect consecutive increments.
    assert first is not None and first.views_used == 1
    assert second is not None and second.views_used == 2
    assert second.content == "increment views"

    # Database state should match the last value.
    refreshed = session.get(Paste, "inc")
    assert refreshed is not None
    assert refreshed.views_used == 2


def test_increment_refused_when_exhausted(session: Session, paste_repo: PasteRepository) -> None:
    session.add(_paste(id="full", max_views=1, views_used=1))
    session.commit()

    assert paste_repo.consume_view_atomic("full", now_ms=1) is None
    session.commit()

    refreshed = session.get(Paste, "full")
    assert refreshed is not None
    assert refreshed.views_used == 1


def test_increment_refused_at_expiry(session: Session, paste_repo: PasteRepository) -> None:
    session.add(_paste(id="ttl", ttl_seconds=10, created_at_ms=5_000))
    session.commit()

    assert paste_repo.consume_view_atomic("ttl", now_ms=14_999) is not None
    assert paste_repo.consume_view_atomic("ttl", now_ms=15_000) is None
    session.commit()

    refreshed = session.get(Paste, "ttl")
    assert refreshed is not None
    assert refreshed.views_used == 1


def test_increment_refused_for_unknown_id(paste_repo: PasteRepository) -> None:
    assert paste_repo.consume_view_atomic("nope", now_ms=0) is None


def test_large_ttl_does_not_overflow(session: Session, paste_repo: PasteRepository) -> None:
    ttl = 2**31 - 1
    session.add(_paste(id="long", ttl_seconds=ttl, created_at_ms=1_700_000_000_000))
    session.commit()

    row = paste_repo.consume_view_atomic("long", now_ms=1_700_000_000_000 + 10**12)
    assert row is not None
    assert row.ttl_seconds == ttl
