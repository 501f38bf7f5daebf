"""
TIBET Token Types

A token records one action with four-part provenance:

    content  - what the action is
    linked   - who/what it is attached to
    context  - the circumstances around it
    reason   - why it happened

Reference: draft-vandemeent-tibet-provenance
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

ANONYMOUS_ACTOR = "anonymous"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TokenKind(Enum):
    """Kinds of provenance tokens."""
    BILATERAL_CONSENT = "bilateral_consent"
    UNILATERAL_ACTION = "unilateral_action"
    VERIFICATION = "verification"
    REVOCATION = "revocation"
    DELEGATION = "delegation"
    AUDIT = "audit"
    THREAT = "threat"


class TokenState(Enum):
    """Lifecycle tag of a token. Not covered by the digest."""
    CREATED = "CREATED"
    PROPOSED = "PROPOSED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


@dataclass(frozen=True)
class ConsentPayload:
    """Content of a consent proposal: one party asks another to allow an action."""
    action: str
    from_did: str
    to_did: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "from": self.from_did,
            "to": self.to_did,
        }


@dataclass(frozen=True)
class ConsentResponsePayload:
    """Content of an acceptance or rejection token."""
    action: str
    original_action: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"action": self.action}
        if self.original_action is not None:
            result["original_action"] = self.original_action
        return result


RESPONSE_ACTIONS = ("consent_accepted", "consent_rejected")

Content = Union[str, Dict[str, Any], ConsentPayload, ConsentResponsePayload]


def content_to_wire(content: Content) -> Union[str, Dict[str, Any]]:
    """Render token content as plain JSON-compatible data."""
    if isinstance(content, (ConsentPayload, ConsentResponsePayload)):
        return content.to_dict()
    return content


def content_from_wire(value: Union[str, Dict[str, Any]]) -> Content:
    """
    Restore the typed content variant from wire data.

    Only the exact consent key sets are recognized; anything else stays a
    plain string or map.
    """
    if not isinstance(value, dict):
        return value

    keys = set(value)
    if keys == {"action", "from", "to"} and all(isinstance(v, str) for v in value.values()):
        return ConsentPayload(action=value["action"], from_did=value["from"], to_did=value["to"])

    if (
        value.get("action") in RESPONSE_ACTIONS
        and keys <= {"action", "original_action"}
        and isinstance(value.get("original_action", ""), str)
    ):
        return ConsentResponsePayload(
            action=value["action"],
            original_action=value.get("original_action"),
        )

    return value


@dataclass(frozen=True)
class Provenance:
    """The four-part provenance record carried by every token."""
    content: Content
    reason: str
    linked: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "content": content_to_wire(self.content),
            "reason": self.reason,
        }
        if self.linked is not None:
            result["linked"] = list(self.linked)
        if self.context is not None:
            result["context"] = self.context
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Provenance":
        return cls(
            content=content_from_wire(data["content"]),
            reason=data["reason"],
            linked=data.get("linked"),
            context=data.get("context"),
        )


@dataclass(frozen=True)
class Token:
    """
    A TIBET provenance token.

    The digest covers token_id, kind, actor, provenance, created_at and
    parent_id only, so state changes, expiry and metadata never break it.
    """
    token_id: str
    kind: TokenKind
    actor: str
    provenance: Provenance
    created_at: str
    state: TokenState
    digest: str
    parent_id: Optional[str] = None
    expires_at: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def canonical_fields(self) -> Dict[str, Any]:
        """Fields covered by the integrity digest."""
        fields: Dict[str, Any] = {
            "token_id": self.token_id,
            "kind": self.kind.value,
            "actor": self.actor,
            "provenance": self.provenance.to_dict(),
            "created_at": self.created_at,
        }
        if self.parent_id is not None:
            fields["parent_id"] = self.parent_id
        return fields

    @property
    def is_anonymous(self) -> bool:
        return self.actor == ANONYMOUS_ACTOR

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return parse_timestamp(self.expires_at) <= (now or utc_now())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: Dict[str, Any] = {
            "token_id": self.token_id,
            "kind": self.kind.value,
            "actor": self.actor,
            "provenance": self.provenance.to_dict(),
            "created_at": self.created_at,
            "state": self.state.value,
            "digest": self.digest,
        }
        if self.parent_id is not None:
            result["parent_id"] = self.parent_id
        if self.expires_at is not None:
            result["expires_at"] = self.expires_at
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            token_id=data["token_id"],
            kind=TokenKind(data["kind"]),
            actor=data.get("actor", ANONYMOUS_ACTOR),
            provenance=Provenance.from_dict(data["provenance"]),
            created_at=data["created_at"],
            state=TokenState(data.get("state", TokenState.CREATED.value)),
            digest=data.get("digest", ""),
            parent_id=data.get("parent_id"),
            expires_at=data.get("expires_at"),
            metadata=data.get("metadata"),
        )


@dataclass
class VerificationDetails:
    """The four facets checked by the verifier."""
    signature_valid: bool = False
    not_expired: bool = False
    chain_intact: bool = False
    actor_trusted: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "signature_valid": self.signature_valid,
            "not_expired": self.not_expired,
            "chain_intact": self.chain_intact,
            "actor_trusted": self.actor_trusted,
        }


@dataclass
class VerificationResult:
    """Outcome of verifying one token."""
    valid: bool
    token_id: str
    trust_score: float
    details: VerificationDetails = field(default_factory=VerificationDetails)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "token_id": self.token_id,
            "trust_score": self.trust_score,
            "details": self.details.to_dict(),
            "error": self.error,
        }


@dataclass
class ProvenanceChain:
    """
    Lineage of a token, ordered from the earliest ancestor to the token itself.

    complete is False when the walk stopped on a missing parent or a cycle.
    """
    tokens: List[Token]
    complete: bool = True
    break_reason: Optional[str] = None

    @property
    def length(self) -> int:
        return len(self.tokens)

    @property
    def origin(self) -> Token:
        return self.tokens[0]

    @property
    def current(self) -> Token:
        return self.tokens[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "length": self.length,
            "tokens": [t.to_dict() for t in self.tokens],
            "origin": self.origin.token_id,
            "current": self.current.token_id,
            "complete": self.complete,
            "break_reason": self.break_reason,
        }


@dataclass(frozen=True)
class BilateralConsent:
    """Terms of a two-party consent request."""
    from_did: str
    to_did: str
    action: str
    purpose: str
    context: Optional[Dict[str, Any]] = None
    expires_in: Optional[float] = None  # seconds


@dataclass
class ConsentProposal:
    """A bilateral_consent token awaiting the recipient's answer."""
    token: Token

    @property
    def proposal_id(self) -> str:
        return self.token.token_id

    @property
    def state(self) -> TokenState:
        return self.token.state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "state": self.state.value,
            "token": self.token.to_dict(),
        }


@dataclass
class ConsentResponse:
    """The recipient's answer to a proposal."""
    proposal_id: str
    accepted: bool
    token: Token
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "accepted": self.accepted,
            "token": self.token.to_dict(),
            "reason": self.reason,
        }
