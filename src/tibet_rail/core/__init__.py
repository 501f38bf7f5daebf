"""
TIBET RAIL - Core Module
Provenance tokens, chain verification and bilateral consent.

Reference: draft-vandemeent-tibet-provenance
"""

from .types import (
    ANONYMOUS_ACTOR,
    BilateralConsent,
    ConsentPayload,
    ConsentProposal,
    ConsentResponse,
    ConsentResponsePayload,
    Provenance,
    ProvenanceChain,
    Token,
    TokenKind,
    TokenState,
    VerificationDetails,
    VerificationResult,
)
from .digest import DigestEngine, new_token_id
from .store import TokenStore
from .chain import ChainWalker
from .verifier import LineageVerification, TokenVerifier
from .consent import BilateralConsentManager, QuickConsent, create_bilateral_consent
from .errors import ConsentError, ProposalClosedError, ProposalNotFoundError, RecipientMismatchError

__all__ = [
    "ANONYMOUS_ACTOR",
    "BilateralConsent",
    "ConsentPayload",
    "ConsentProposal",
    "ConsentResponse",
    "ConsentResponsePayload",
    "Provenance",
    "ProvenanceChain",
    "Token",
    "TokenKind",
    "TokenState",
    "VerificationDetails",
    "VerificationResult",
    "DigestEngine",
    "new_token_id",
    "TokenStore",
    "ChainWalker",
    "LineageVerification",
    "TokenVerifier",
    "BilateralConsentManager",
    "QuickConsent",
    "create_bilateral_consent",
    "ConsentError",
    "ProposalClosedError",
    "ProposalNotFoundError",
    "RecipientMismatchError",
]
