"""
Session state and session-secret cryptography.

Secrets are generated fresh for every login and only ever live in memory:

* an Ed25519 signer (PyNaCl) registered with Grid as the session key
* a P-256 key (cryptography) whose public half is handed to the KMS
  provider as the encryption key; it signs KMS authorization payloads
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import nacl.signing
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from solders.message import to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .models import GridError, Session


# ------------------------
# Session secrets
# ------------------------
@dataclass
class SessionSecrets:
    signer: nacl.signing.SigningKey
    kms_key: ec.EllipticCurvePrivateKey

    @property
    def signer_address(self) -> str:
        return str(Pubkey.from_bytes(self.signer.verify_key.encode()))

    @property
    def encryption_public_key(self) -> str:
        raw = self.kms_key.public_key().public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
        return base64.b64encode(raw).decode()

    def public_config(self) -> Dict[str, Any]:
        """Public halves, as sent along with OTP verification."""
        return {
            "session_key": {"public_key": self.signer_address},
            "kms_provider_config": {"encryption_public_key": self.encryption_public_key},
        }

    def __repr__(self) -> str:
        return f"SessionSecrets(signer={self.signer_address})"


def generate_session_secrets() -> SessionSecrets:
    return SessionSecrets(
        signer=nacl.signing.SigningKey.generate(),
        kms_key=ec.generate_private_key(ec.SECP256R1()),
    )


# ------------------------
# Signing
# ------------------------
def sign_kms_payload(secrets: SessionSecrets, payload_b64: str) -> str:
    """ECDSA/SHA-256 over the decoded payload, base64 DER signature."""
    sig = secrets.kms_key.sign(base64.b64decode(payload_b64), ec.ECDSA(hashes.SHA256()))
    return base64.b64encode(sig).decode()


def sign_transaction(secrets: SessionSecrets, tx_b64: str) -> str:
    """Place the session signer's signature into a serialized transaction.

    Transactions that do not list the session signer among their required
    signers are returned unchanged.
    """
    tx = VersionedTransaction.from_bytes(base64.b64decode(tx_b64))
    message = tx.message
    required = message.header.num_required_signatures
    signers = [str(k) for k in message.account_keys[:required]]
    if secrets.signer_address not in signers:
        return tx_b64
    idx = signers.index(secrets.signer_address)
    raw_sig = secrets.signer.sign(to_bytes_versioned(message)).signature
    signatures = list(tx.signatures)
    signatures[idx] = Signature.from_bytes(raw_sig)
    signed = VersionedTransaction.populate(message, signatures)
    return base64.b64encode(bytes(signed)).decode()


def sign_payload(secrets: SessionSecrets, signing_context: Any, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Sign a Grid transaction payload with the session secrets.

    ``signing_context`` is the session/authentication record Grid returned at
    login; without it the KMS provider cannot authorize the signature.
    """
    if not signing_context:
        raise GridError("Missing session authentication context for signing")
    if not payload or not payload.get("transaction"):
        raise GridError("Transaction payload has no transaction to sign")

    kms_payloads: List[Dict[str, Any]] = []
    for item in payload.get("kms_payloads") or []:
        signed = dict(item)
        if item.get("payload"):
            signed["signature"] = sign_kms_payload(secrets, item["payload"])
        kms_payloads.append(signed)

    return {
        "transaction": sign_transaction(secrets, payload["transaction"]),
        "transaction_signers": payload.get("transaction_signers") or [],
        "kms_payloads": kms_payloads,
        "session": signing_context,
    }


# ------------------------
# Session context
# ------------------------
@dataclass
class SessionContext:
    """The one logged-in session of this process, owned by the menu loop."""

    session: Optional[Session] = None
    secrets: Optional[SessionSecrets] = field(default=None, repr=False)

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None and self.secrets is not None

    def bind(self, session: Session, secrets: SessionSecrets) -> None:
        self.session = session
        self.secrets = secrets

    def clear(self) -> None:
        self.session = None
        self.secrets = None
