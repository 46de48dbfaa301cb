from __future__ import annotations

import uuid
from http import HTTPStatus

from flask import Blueprint, request
from pydantic import ValidationError

from app.api.clock import current_time_ms
from app.api.schemas import (
    HealthResponse,
    PasteCreateRequest,
    PasteCreatedResponse,
    PasteViewResponse,
)
from app.db import get_session
from app.services.paste_ledger import (
    InvalidPasteParameters,
    PasteLedger,
    StorageError,
)

api_bp = Blueprint("api", __name__, url_prefix="/api")

_FIELD_ERRORS = {
    "content": "content must be a non-empty string",
    "ttl_seconds": "ttl_seconds must be an integer >= 1",
    "max_views": "max_views must be an integer >= 1",
}

NOT_FOUND_BODY = {"error": "not found"}
STORAGE_ERROR_BODY = {"error": "storage unavailable"}


def get_ledger() -> PasteLedger:
    return PasteLedger(session_factory=get_session)


def build_base_url() -> str:
    proto = request.headers.get("X-Forwarded-Proto") or "http"
    host = request.headers.get("Host") or "localhost:5000"
    return f"{proto}://{host}"


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    field = first["loc"][0] if first["loc"] else None
    return _FIELD_ERRORS.get(field, "Invalid request body")


@api_bp.route("/healthz", methods=["GET"])
def healthz() -> tuple[dict, int]:
    """Report whether the paste store is reachable."""

    ok = get_ledger().ping()
    body = HealthResponse(ok=ok).model_dump()
    return body, HTTPStatus.OK if ok else HTTPStatus.INTERNAL_SERVER_ERROR


@api_bp.route("/pastes", methods=["POST"])
def create_paste() -> tuple[dict, int]:
    """
    Create a new paste.

    Validation is handled by Pydantic; the ledger re-checks its own guards.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {"error": "Request body must be JSON"}, HTTPStatus.BAD_REQUEST

    try:
        payload = PasteCreateRequest.model_validate(data)
    except ValidationError as exc:
        return {
            "error": _describe_validation_error(exc),
            "details": str(exc),
        }, HTTPStatus.BAD_REQUEST

    paste_id = str(uuid.uuid4())
    try:
        get_ledger().create(
            paste_id=paste_id,
            content=payload.content,
            ttl_seconds=payload.ttl_seconds,
            max_views=payload.max_views,
            now_ms=current_time_ms(request.headers),
        )
    except InvalidPasteParameters as exc:
        return {"error": str(exc)}, HTTPStatus.BAD_REQUEST
    except StorageError:
        return STORAGE_ERROR_BODY, HTTPStatus.INTERNAL_SERVER_ERROR

    body = PasteCreatedResponse(
        id=paste_id,
        url=f"{build_base_url()}/p/{paste_id}",
    ).model_dump()
    return body, HTTPStatus.CREATED


@api_bp.route("/pastes/<paste_id>", methods=["GET"])
def view_paste(paste_id: str) -> tuple[dict, int]:
    """
    Reveal a paste, consuming one view.

    Missing, expired and exhausted pastes all answer with the same 404 so
    the reason a paste is gone is not disclosed.
    """
    try:
        outcome = get_ledger().consume_view(paste_id, current_time_ms(request.headers))
    except StorageError:
        return STORAGE_ERROR_BODY, HTTPStatus.INTERNAL_SERVER_ERROR

    if not outcome.ok:
        return NOT_FOUND_BODY, HTTPStatus.NOT_FOUND

    body = PasteViewResponse(
        content=outcome.content,
        remaining_views=outcome.remaining_views,
        expires_at=outcome.expires_at,
    ).model_dump()
    return body, HTTPStatus.OK
