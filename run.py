from __future__ import annotations

import os

from app import create_app
from app.db import Base, get_engine


def main() -> None:
    env = os.getenv("APP_ENV", "development")
    app = create_app(env)

    # Local convenience: create tables without running Alembic.
    if os.getenv("CREATE_SCHEMA") == "1":
        from app.domain import models as _models  # noqa: F401

        Base.metadata.create_all(get_engine())

    host = os.getenv("FLASK_RUN_HOST", "0.0.0.0")
    port = int(os.getenv("FLASK_RUN_PORT", "5000"))

    app.run(host=host, port=port, threaded=True)


if __name__ == "__main__":
    main()
