"""Routes for the authentication ceremony."""
from __future__ import annotations

from flask import jsonify, request

from ..config import app, get_orchestrator
from ..encoding import encode_base64url
from ..schemas import AssertionCompleteRequest, AuthenticateBeginRequest


@app.route("/api/authenticate/begin", methods=["POST"])
def authenticate_begin():
    body = AuthenticateBeginRequest.from_payload(request.get_json(silent=True))
    options = get_orchestrator().authenticate_begin(body.user_id)
    return jsonify({"options": options})


@app.route("/api/authenticate/complete", methods=["POST"])
def authenticate_complete():
    body = AssertionCompleteRequest.from_payload(request.get_json(silent=True))
    outcome = get_orchestrator().authenticate_complete(body.user_id, body.assertion_response)

    return jsonify({
        "verified": outcome.verified,
        "userId": outcome.user_id,
        "credentialId": encode_base64url(outcome.credential_id),
        "signCount": outcome.sign_count,
    })
