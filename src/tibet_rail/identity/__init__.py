"""
TIBET RAIL - Identity Module

did:jis identifiers, DID documents and the keys they publish.
"""

from .did import (
    DIDDocument,
    DIDDocumentConfig,
    InvalidDIDError,
    ParsedDID,
    ServiceEndpoint,
    VerificationMethod,
    build_did_document,
    create_did,
    is_valid_did,
    parse_did,
)
from .keys import DIDKeyPair, did_document_with_key, generate_did_key, load_did_key, public_key_from_jwk
from .resolver import DIDResolver

__all__ = [
    "DIDDocument",
    "DIDDocumentConfig",
    "InvalidDIDError",
    "ParsedDID",
    "ServiceEndpoint",
    "VerificationMethod",
    "build_did_document",
    "create_did",
    "is_valid_did",
    "parse_did",
    "DIDKeyPair",
    "did_document_with_key",
    "generate_did_key",
    "load_did_key",
    "public_key_from_jwk",
    "DIDResolver",
]
