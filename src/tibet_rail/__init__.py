"""
TIBET Rail
Provenance tokens, chain verification and bilateral consent.

    from tibet_rail import TokenStore, TokenVerifier, TokenKind

    store = TokenStore(default_actor="did:jis:alice")
    token = store.create(TokenKind.AUDIT, content="login", reason="session start")
    TokenVerifier(store).verify(token).valid  # True
"""

from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all
from .identity import (
    DIDDocument,
    DIDResolver,
    InvalidDIDError,
    build_did_document,
    create_did,
    generate_did_key,
    is_valid_did,
    parse_did,
)
from .config import RailConfig

__version__ = "1.0.0"

__all__ = list(_core_all) + [
    "DIDDocument",
    "DIDResolver",
    "InvalidDIDError",
    "build_did_document",
    "create_did",
    "generate_did_key",
    "is_valid_did",
    "parse_did",
    "RailConfig",
]
