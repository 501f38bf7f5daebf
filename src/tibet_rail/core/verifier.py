"""
Token Verifier

Checks four facets of a token and folds them into a trust score:

    signature_valid  0.4   recomputed digest matches the stored one
    not_expired      0.3   expires_at absent or strictly in the future
    chain_intact     0.2   parent_id absent or the parent is in the store
    actor_trusted    0.1   actor is not the anonymous sentinel

valid = signature_valid AND not_expired AND chain_intact. An anonymous actor
lowers the score but never makes a token invalid.

chain_intact is a one-hop check. verify_lineage() walks and verifies the whole
chain when that stronger guarantee is needed.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import structlog

from .chain import ChainWalker
from .store import TokenStore
from .types import (
    ProvenanceChain,
    Token,
    VerificationDetails,
    VerificationResult,
    utc_now,
)

logger = structlog.get_logger()

SIGNATURE_WEIGHT = 0.4
EXPIRY_WEIGHT = 0.3
CHAIN_WEIGHT = 0.2
ACTOR_WEIGHT = 0.1


def trust_score(details: VerificationDetails) -> float:
    """Weighted sum of the verification facets, in [0, 1]."""
    score = 0.0
    if details.signature_valid:
        score += SIGNATURE_WEIGHT
    if details.not_expired:
        score += EXPIRY_WEIGHT
    if details.chain_intact:
        score += CHAIN_WEIGHT
    if details.actor_trusted:
        score += ACTOR_WEIGHT
    return round(score, 4)


@dataclass
class LineageVerification:
    """Result of verifying every token along a chain."""
    token_id: str
    valid: bool
    chain: Optional[ProvenanceChain] = None
    results: List[VerificationResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def min_trust_score(self) -> float:
        if not self.results:
            return 0.0
        return min(r.trust_score for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": self.token_id,
            "valid": self.valid,
            "complete": self.chain.complete if self.chain else False,
            "break_reason": self.chain.break_reason if self.chain else None,
            "min_trust_score": self.min_trust_score,
            "results": [r.to_dict() for r in self.results],
            "error": self.error,
        }


class TokenVerifier:
    """
    Verifies tokens against the store they live in.

    Verification never raises for a token that exists; every failure is
    reported through the result.
    """

    def __init__(self, store: TokenStore, walker: Optional[ChainWalker] = None):
        self.store = store
        self.walker = walker if walker is not None else ChainWalker(store)

    def verify(self, token_or_id: Union[Token, str]) -> VerificationResult:
        """Verify a token given either the token itself or its id."""
        if isinstance(token_or_id, Token):
            token: Optional[Token] = token_or_id
        else:
            token = self.store.get(token_or_id)

        if token is None:
            token_id = token_or_id if isinstance(token_or_id, str) else "unknown"
            return VerificationResult(
                valid=False,
                token_id=token_id,
                trust_score=0.0,
                details=VerificationDetails(),
                error="Token not found",
            )

        details = VerificationDetails(
            signature_valid=self._signature_valid(token),
            not_expired=self._not_expired(token),
            chain_intact=token.parent_id is None or token.parent_id in self.store,
            actor_trusted=not token.is_anonymous,
        )

        valid = details.signature_valid and details.not_expired and details.chain_intact
        score = trust_score(details)

        if not details.signature_valid:
            logger.warning("token_digest_mismatch", token_id=token.token_id)

        logger.debug(
            "token_verified",
            token_id=token.token_id,
            valid=valid,
            trust_score=score,
        )

        return VerificationResult(
            valid=valid,
            token_id=token.token_id,
            trust_score=score,
            details=details,
        )

    def verify_lineage(self, token_id: str) -> LineageVerification:
        """
        Verify every token from the origin down to token_id.

        Valid only if the chain reaches a root without gaps or cycles and
        each token on it verifies.
        """
        chain = self.walker.chain(token_id)
        if chain is None:
            return LineageVerification(token_id=token_id, valid=False, error="Token not found")

        results = [self.verify(token) for token in chain.tokens]
        valid = chain.complete and all(r.valid for r in results)

        error = None
        if not chain.complete:
            error = f"Chain broken: {chain.break_reason}"
        elif not valid:
            error = "One or more tokens in the chain failed verification"

        logger.info(
            "lineage_verified",
            token_id=token_id,
            length=chain.length,
            valid=valid,
        )

        return LineageVerification(
            token_id=token_id,
            valid=valid,
            chain=chain,
            results=results,
            error=error,
        )

    # Imported tokens are not validated, so any field may hold the wrong type.
    # A facet that cannot be evaluated is reported false.

    def _signature_valid(self, token: Token) -> bool:
        try:
            return self.store.digest_engine.matches(token.canonical_fields(), token.digest)
        except (TypeError, AttributeError, ValueError):
            logger.warning("token_fields_malformed", token_id=token.token_id)
            return False

    @staticmethod
    def _not_expired(token: Token) -> bool:
        try:
            return not token.is_expired(utc_now())
        except (TypeError, AttributeError, ValueError):
            logger.warning("token_expiry_unparseable", token_id=token.token_id, expires_at=token.expires_at)
            return False
