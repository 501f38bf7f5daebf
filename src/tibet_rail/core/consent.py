"""
Bilateral Consent

Two-party consent recorded as linked tokens:

1. Party A proposes: a bilateral_consent token in state PROPOSED
2. Party B accepts or rejects: a response token whose parent is the proposal
3. Both tokens end in the same terminal state, ACCEPTED or REJECTED

Each step is a separate token, so the full exchange can be walked and
verified as a provenance chain.
"""

from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from .chain import ChainWalker
from .errors import ProposalClosedError, ProposalNotFoundError, RecipientMismatchError
from .store import Duration, TokenStore
from .types import (
    BilateralConsent,
    ConsentPayload,
    ConsentProposal,
    ConsentResponse,
    ConsentResponsePayload,
    ProvenanceChain,
    Token,
    TokenKind,
    TokenState,
    VerificationResult,
    utc_now,
)
from .verifier import TokenVerifier

logger = structlog.get_logger()


class BilateralConsentManager:
    """
    Handles the propose -> accept/reject flow.

    Proposals are indexed by their token id. A proposal answers once: after
    it reaches ACCEPTED or REJECTED, further answers raise
    ProposalClosedError. The manager lock keeps the two writes of an answer
    together so a concurrent accept and reject cannot both succeed.
    """

    def __init__(self, actor_did: Optional[str] = None, store: Optional[TokenStore] = None):
        self._store = store if store is not None else TokenStore(default_actor=actor_did)
        self.walker = ChainWalker(self._store)
        self.verifier = TokenVerifier(self._store, self.walker)
        self._proposals: Dict[str, ConsentProposal] = {}
        self._lock = Lock()

    @property
    def store(self) -> TokenStore:
        """Underlying token store, for operations outside the consent flow."""
        return self._store

    def propose(
        self,
        from_did: str,
        to_did: str,
        action: str,
        purpose: str,
        context: Optional[Dict[str, Any]] = None,
        expires_in: Optional[Duration] = None,
    ) -> ConsentProposal:
        """Create a PROPOSED token that to_did can accept or reject."""
        with self._lock:
            token = self._store.create(
                kind=TokenKind.BILATERAL_CONSENT,
                content=ConsentPayload(action=action, from_did=from_did, to_did=to_did),
                linked=[from_did, to_did],
                context=context,
                reason=purpose,
                actor=from_did,
                expires_in=expires_in,
                metadata={
                    "consent_type": "bilateral",
                    "proposed_at": utc_now().isoformat(),
                },
            )
            token = self._store.set_state(token.token_id, TokenState.PROPOSED)
            self._proposals[token.token_id] = ConsentProposal(token=token)

        logger.info(
            "consent_proposed",
            proposal_id=token.token_id,
            from_did=from_did,
            to_did=to_did,
            action=action,
        )

        return ConsentProposal(token=token)

    def accept(self, proposal_id: str, acceptor_did: str) -> ConsentResponse:
        """
        Accept a proposal on behalf of its recipient.

        Raises ProposalNotFoundError, RecipientMismatchError or
        ProposalClosedError.
        """
        with self._lock:
            proposal = self._open_proposal(proposal_id)
            payload = proposal.provenance.content

            if not isinstance(payload, ConsentPayload) or payload.to_did != acceptor_did:
                expected = payload.to_did if isinstance(payload, ConsentPayload) else ""
                logger.warning(
                    "consent_recipient_mismatch",
                    proposal_id=proposal_id,
                    expected=expected,
                    acceptor=acceptor_did,
                )
                raise RecipientMismatchError(proposal_id, expected, acceptor_did)

            response_token = self._store.create(
                kind=TokenKind.BILATERAL_CONSENT,
                content=ConsentResponsePayload(
                    action="consent_accepted",
                    original_action=payload.action,
                ),
                linked=proposal.provenance.linked,
                context=proposal.provenance.context,
                reason=f"Accepted: {proposal.provenance.reason}",
                actor=acceptor_did,
                parent_id=proposal_id,
                metadata={
                    "response_type": "acceptance",
                    "accepted_at": utc_now().isoformat(),
                },
            )
            response_token = self._store.set_state(response_token.token_id, TokenState.ACCEPTED)
            self._store.set_state(proposal_id, TokenState.ACCEPTED)

        logger.info(
            "consent_accepted",
            proposal_id=proposal_id,
            response_id=response_token.token_id,
            acceptor=acceptor_did,
        )

        return ConsentResponse(
            proposal_id=proposal_id,
            accepted=True,
            token=response_token,
        )

    def reject(
        self,
        proposal_id: str,
        rejector_did: str,
        reason: Optional[str] = None,
    ) -> ConsentResponse:
        """
        Reject a proposal.

        Raises ProposalNotFoundError or ProposalClosedError. Unlike accept,
        the rejector is not matched against the recipient.
        """
        with self._lock:
            proposal = self._open_proposal(proposal_id)
            payload = proposal.provenance.content
            original_action = payload.action if isinstance(payload, ConsentPayload) else None

            response_token = self._store.create(
                kind=TokenKind.BILATERAL_CONSENT,
                content=ConsentResponsePayload(
                    action="consent_rejected",
                    original_action=original_action,
                ),
                linked=proposal.provenance.linked,
                context=proposal.provenance.context,
                reason=reason or f"Rejected: {proposal.provenance.reason}",
                actor=rejector_did,
                parent_id=proposal_id,
                metadata={
                    "response_type": "rejection",
                    "rejected_at": utc_now().isoformat(),
                    "reason": reason,
                },
            )
            response_token = self._store.set_state(response_token.token_id, TokenState.REJECTED)
            self._store.set_state(proposal_id, TokenState.REJECTED)

        logger.info(
            "consent_rejected",
            proposal_id=proposal_id,
            response_id=response_token.token_id,
            rejector=rejector_did,
        )

        return ConsentResponse(
            proposal_id=proposal_id,
            accepted=False,
            token=response_token,
            reason=reason,
        )

    def get_proposal(self, proposal_id: str) -> Optional[ConsentProposal]:
        """Get a proposal with its current state, or None."""
        if proposal_id not in self._proposals:
            return None
        token = self._store.get(proposal_id)
        return ConsentProposal(token=token) if token is not None else None

    def get_consent_chain(self, proposal_id: str) -> Optional[ProvenanceChain]:
        """Get the provenance chain ending at the given token."""
        return self.walker.chain(proposal_id)

    def verify_consent(self, token_id: str) -> VerificationResult:
        """Verify a consent token."""
        return self.verifier.verify(token_id)

    def list_proposals(self, state: Optional[Union[TokenState, str]] = None) -> List[ConsentProposal]:
        """List proposals, optionally filtered by their current state."""
        proposals = [
            p for p in (self.get_proposal(pid) for pid in list(self._proposals))
            if p is not None
        ]
        if state is not None:
            wanted = state if isinstance(state, TokenState) else TokenState(state)
            proposals = [p for p in proposals if p.state == wanted]
        return proposals

    def _open_proposal(self, proposal_id: str) -> Token:
        """Resolve a proposal that can still be answered. Caller holds the lock."""
        token = self._store.get(proposal_id) if proposal_id in self._proposals else None
        if token is None:
            logger.warning("consent_proposal_not_found", proposal_id=proposal_id)
            raise ProposalNotFoundError(proposal_id)

        if token.state != TokenState.PROPOSED:
            logger.warning(
                "consent_proposal_closed",
                proposal_id=proposal_id,
                state=token.state.value,
            )
            raise ProposalClosedError(proposal_id, token.state.value)

        return token


@dataclass
class QuickConsent:
    """A proposal plus answer callables bound to its recipient."""
    proposal: ConsentProposal
    manager: BilateralConsentManager
    accept: Callable[[], ConsentResponse]
    reject: Callable[..., ConsentResponse]


def create_bilateral_consent(consent: BilateralConsent) -> QuickConsent:
    """
    One-shot helper: propose, then hand back accept/reject for the recipient.

        quick = create_bilateral_consent(BilateralConsent(
            from_did="did:jis:alice",
            to_did="did:jis:bob",
            action="view-profile",
            purpose="Networking",
        ))
        response = quick.accept()
    """
    manager = BilateralConsentManager(consent.from_did)
    proposal = manager.propose(
        from_did=consent.from_did,
        to_did=consent.to_did,
        action=consent.action,
        purpose=consent.purpose,
        context=consent.context,
        expires_in=consent.expires_in,
    )
    proposal_id = proposal.proposal_id

    def accept() -> ConsentResponse:
        return manager.accept(proposal_id, consent.to_did)

    def reject(reason: Optional[str] = None) -> ConsentResponse:
        return manager.reject(proposal_id, consent.to_did, reason)

    return QuickConsent(proposal=proposal, manager=manager, accept=accept, reject=reject)
