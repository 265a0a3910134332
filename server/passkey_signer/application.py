"""Application entry point for the passkey signing server."""
from __future__ import annotations

import logging

from .config import app
from . import routes  # noqa: F401  Registers the endpoints with Flask.


def main() -> None:
    # Browsers only allow WebAuthn on https origins or http://localhost.
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(
        host=app.config["FIDO_SERVER_HOST"],
        port=app.config["FIDO_SERVER_PORT"],
        debug=app.config.get("DEBUG", False),
    )


__all__ = ["app", "main"]


if __name__ == "__main__":  # pragma: no cover - convenience script entry point.
    main()
