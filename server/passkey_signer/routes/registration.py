"""Routes for the registration ceremony."""
from __future__ import annotations

from flask import jsonify, request

from ..config import app, get_orchestrator
from ..encoding import encode_base64url
from ..schemas import RegisterBeginRequest, RegisterCompleteRequest


@app.route("/api/register/begin", methods=["POST"])
def register_begin():
    body = RegisterBeginRequest.from_payload(request.get_json(silent=True))
    begin = get_orchestrator().register_begin(body.username)
    return jsonify({"options": begin.options, "userId": begin.user.id})


@app.route("/api/register/complete", methods=["POST"])
def register_complete():
    body = RegisterCompleteRequest.from_payload(request.get_json(silent=True))
    outcome = get_orchestrator().register_complete(body.user_id, body.attestation_response)

    return jsonify({
        "verified": outcome.verified,
        "authenticator": {
            "credentialId": encode_base64url(outcome.credential.credential_id),
            "userId": outcome.user_id,
        },
    })
