"""Routes for the data signing ceremony and offline signature checks."""
from __future__ import annotations

from flask import jsonify, request

from ..config import app, get_orchestrator
from ..encoding import encode_base64url
from ..errors import CredentialNotFoundError, UserNotFoundError
from ..schemas import AssertionCompleteRequest, SignBeginRequest, SignVerifyRequest
from ..signatures import verify_detached_signature


@app.route("/api/sign/begin", methods=["POST"])
def sign_begin():
    body = SignBeginRequest.from_payload(request.get_json(silent=True))
    options = get_orchestrator().sign_begin(body.user_id, body.payload)
    return jsonify({"options": options})


@app.route("/api/sign/complete", methods=["POST"])
def sign_complete():
    body = AssertionCompleteRequest.from_payload(request.get_json(silent=True))
    outcome = get_orchestrator().sign_complete(body.user_id, body.assertion_response)

    return jsonify({
        "verified": outcome.verified,
        "data": outcome.data.decode("utf-8"),
        "signature": encode_base64url(outcome.signature),
        "authenticatorData": encode_base64url(outcome.authenticator_data),
        "clientDataJSON": encode_base64url(outcome.client_data_json),
        "credentialId": encode_base64url(outcome.credential_id),
    })


@app.route("/api/sign/verify", methods=["POST"])
def sign_verify():
    body = SignVerifyRequest.from_payload(request.get_json(silent=True))
    orchestrator = get_orchestrator()

    if orchestrator.identities.get_user(body.user_id) is None:
        raise UserNotFoundError()
    credential = orchestrator.credentials.find_credential(body.user_id, body.credential_id)
    if credential is None:
        raise CredentialNotFoundError()

    valid = verify_detached_signature(
        credential.public_key,
        body.data.encode("utf-8"),
        body.client_data_json,
        body.authenticator_data,
        body.signature,
        rp_id=app.config.get("FIDO_SERVER_RP_ID"),
    )
    if not valid:
        app.logger.warning("Detached signature rejected for user %s", body.user_id)
    return jsonify({"valid": valid})
