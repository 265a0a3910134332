"""Offline verification of signing-ceremony output.

A signature produced by the signing ceremony can be checked by anyone holding
the credential's public key, the original data and the three values returned
by ``/api/sign/complete``; no server-side state is needed.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Optional, Union

from fido2 import cbor
from fido2.cose import CoseKey
from fido2.webauthn import AuthenticatorData, CollectedClientData

from .ceremonies import signing_challenge

__all__ = ["verify_detached_signature"]


def verify_detached_signature(
    public_key: Union[bytes, CoseKey],
    data: bytes,
    client_data_json: bytes,
    authenticator_data: bytes,
    signature: bytes,
    rp_id: Optional[str] = None,
) -> bool:
    """Return ``True`` when ``signature`` is an assertion over ``data``.

    ``public_key`` is either a :class:`~fido2.cose.CoseKey` or its CBOR
    encoding. When ``rp_id`` is given the authenticator data must also be
    scoped to that relying party.
    """

    try:
        client_data = CollectedClientData(bytes(client_data_json))
        auth_data = AuthenticatorData(bytes(authenticator_data))
    except Exception:  # pylint: disable=broad-except
        return False

    if client_data.type != CollectedClientData.TYPE.GET:
        return False

    if not hmac.compare_digest(client_data.challenge, signing_challenge(bytes(data))):
        return False

    if rp_id is not None:
        expected_hash = hashlib.sha256(rp_id.encode("utf-8")).digest()
        if not hmac.compare_digest(auth_data.rp_id_hash, expected_hash):
            return False

    if not auth_data.is_user_present():
        return False

    if isinstance(public_key, (bytes, bytearray, memoryview)):
        try:
            cose_key = CoseKey.parse(cbor.decode(bytes(public_key)))
        except Exception:  # pylint: disable=broad-except
            return False
    else:
        cose_key = public_key

    try:
        cose_key.verify(bytes(auth_data) + client_data.hash, bytes(signature))
    except Exception:  # pylint: disable=broad-except
        return False
    return True
