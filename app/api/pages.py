from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, render_template, request

from app.api.clock import current_time_ms
from app.api.pastes import get_ledger
from app.services.paste_ledger import StorageError

pages_bp = Blueprint("pages", __name__)


@pages_bp.route("/", methods=["GET"])
def index() -> str:
    return render_template("index.html")


@pages_bp.route("/p/<paste_id>", methods=["GET"])
def show_paste(paste_id: str) -> tuple[str, int]:
    """Render a paste. Viewing the page consumes a view, like the API does."""
    try:
        outcome = get_ledger().consume_view(paste_id, current_time_ms(request.headers))
    except StorageError:
        return render_template("unavailable.html"), HTTPStatus.INTERNAL_SERVER_ERROR

    if not outcome.ok:
        return render_template("not_found.html"), HTTPStatus.NOT_FOUND

    return render_template("paste.html", outcome=outcome), HTTPStatus.OK
