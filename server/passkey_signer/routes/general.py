"""General application routes and error handlers."""
from __future__ import annotations

from datetime import datetime, timezone

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from ..config import app, get_orchestrator
from ..encoding import encode_base64url
from ..errors import CeremonyError, InvalidInputError, UserNotFoundError


@app.errorhandler(CeremonyError)
def handle_ceremony_error(error: CeremonyError):
    if error.status_code >= 500:
        app.logger.error("%s %s failed: %s", request.method, request.path, error.message)
    else:
        app.logger.info("%s %s rejected: %s (%s)", request.method, request.path, error.kind, error.message)
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(Exception)
def handle_unexpected_error(error: Exception):
    if isinstance(error, HTTPException):
        return jsonify({"error": error.description or error.name}), error.code or 500

    app.logger.exception("Unhandled error while serving %s %s", request.method, request.path)
    return jsonify({"error": str(error) or error.__class__.__name__}), 500


@app.route("/api/health")
def health_check():
    return jsonify({
        "status": "healthy",
        "routes": len(list(app.url_map.iter_rules())),
    })


@app.route("/api/credentials", methods=["GET"])
def list_credentials():
    user_id = (request.args.get("userId") or "").strip()
    if not user_id:
        raise InvalidInputError("userId is required")

    orchestrator = get_orchestrator()
    if orchestrator.identities.get_user(user_id) is None:
        raise UserNotFoundError()

    credentials = [
        {
            "credentialId": encode_base64url(credential.credential_id),
            "signCount": credential.sign_count,
            "aaguid": credential.aaguid.hex(),
            "registeredAt": datetime.fromtimestamp(
                credential.registered_at, tz=timezone.utc
            ).isoformat(),
        }
        for credential in orchestrator.credentials.list_credentials(user_id)
    ]
    return jsonify({"userId": user_id, "credentials": credentials})
