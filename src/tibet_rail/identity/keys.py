"""
Public Key Material for DID Documents

Ed25519 key pairs published as JsonWebKey2020 verification methods. Tokens
are not signed with these keys; they only give a DID something verifiable to
publish.
"""

import base64
import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .did import (
    DIDDocument,
    DIDDocumentConfig,
    InvalidDIDError,
    VerificationMethod,
    build_did_document,
    is_valid_did,
)

logger = structlog.get_logger()

JWK_METHOD_TYPE = "JsonWebKey2020"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode('utf-8')


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


@dataclass
class DIDKeyPair:
    """An Ed25519 key pair bound to a DID."""
    did: str
    key_id: str
    public_key: bytes
    private_key: bytes
    created_at: str

    def to_jwk(self) -> Dict[str, str]:
        return {
            "kty": "OKP",
            "crv": "Ed25519",
            "x": _b64url(self.public_key),
            "kid": self.key_id,
        }

    def to_verification_method(self, fragment: str = "key-1") -> VerificationMethod:
        return VerificationMethod(
            id=f"{self.did}#{fragment}",
            type=JWK_METHOD_TYPE,
            controller=self.did,
            public_key_jwk=self.to_jwk(),
        )

    def to_dict(self, include_private: bool = False) -> Dict[str, Any]:
        result = {
            "did": self.did,
            "key_id": self.key_id,
            "public_key": base64.b64encode(self.public_key).decode('utf-8'),
            "created_at": self.created_at,
        }
        if include_private:
            result["private_key"] = base64.b64encode(self.private_key).decode('utf-8')
        return result


def _key_pair_from(did: str, private_key: ed25519.Ed25519PrivateKey) -> DIDKeyPair:
    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    private_bytes = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return DIDKeyPair(
        did=did,
        key_id=hashlib.sha256(public_bytes).hexdigest()[:16],
        public_key=public_bytes,
        private_key=private_bytes,
        created_at=datetime.now(timezone.utc).isoformat(),
    )


def generate_did_key(did: str) -> DIDKeyPair:
    """Generate a fresh Ed25519 key pair for a DID."""
    if not is_valid_did(did):
        raise InvalidDIDError(f"Invalid DID: {did}")

    keypair = _key_pair_from(did, ed25519.Ed25519PrivateKey.generate())
    logger.info("did_key_generated", did=did, key_id=keypair.key_id)
    return keypair


def load_did_key(did: str, private_key_bytes: bytes) -> DIDKeyPair:
    """Restore a key pair from raw private key bytes."""
    return _key_pair_from(did, ed25519.Ed25519PrivateKey.from_private_bytes(private_key_bytes))


def public_key_from_jwk(jwk: Dict[str, Any]) -> ed25519.Ed25519PublicKey:
    """Load an Ed25519 public key from an OKP JWK."""
    if jwk.get("kty") != "OKP" or jwk.get("crv") != "Ed25519":
        raise ValueError("Only OKP/Ed25519 JWKs are supported")
    return ed25519.Ed25519PublicKey.from_public_bytes(_b64url_decode(jwk["x"]))


def did_document_with_key(
    keypair: DIDKeyPair,
    consent_endpoint: Optional[str] = None,
    tibet_endpoint: Optional[str] = None,
) -> DIDDocument:
    """Build a DID document that publishes the key for authentication and assertion."""
    method = keypair.to_verification_method()
    return build_did_document(DIDDocumentConfig(
        did=keypair.did,
        verification_methods=[method],
        authentication=[method.id],
        assertion_method=[method.id],
        consent_endpoint=consent_endpoint,
        tibet_endpoint=tibet_endpoint,
    ))
