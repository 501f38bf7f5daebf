"""
Tests for Bilateral Consent

A proposal answers once; the answer is a child token and both end in the
same terminal state.
"""

import threading
import pytest

from tibet_rail.core.consent import BilateralConsentManager, create_bilateral_consent
from tibet_rail.core.errors import (
    ConsentError,
    ProposalClosedError,
    ProposalNotFoundError,
    RecipientMismatchError,
)
from tibet_rail.core.store import TokenStore
from tibet_rail.core.types import (
    BilateralConsent,
    ConsentPayload,
    ConsentResponsePayload,
    TokenKind,
    TokenState,
)

ALICE = "did:jis:alice"
BOB = "did:jis:bob"
CAROL = "did:jis:carol"


@pytest.fixture
def proposal(manager):
    return manager.propose(ALICE, BOB, "share-calendar", "Schedule a meeting")


class TestPropose:
    """Test proposal creation."""

    def test_proposal_token(self, manager, proposal):
        token = proposal.token

        assert proposal.state == TokenState.PROPOSED
        assert token.kind == TokenKind.BILATERAL_CONSENT
        assert token.actor == ALICE
        assert token.provenance.content == ConsentPayload("share-calendar", ALICE, BOB)
        assert token.provenance.linked == [ALICE, BOB]
        assert token.provenance.reason == "Schedule a meeting"
        assert token.metadata["consent_type"] == "bilateral"
        assert "proposed_at" in token.metadata

    def test_proposal_verifies(self, manager, proposal):
        assert manager.verify_consent(proposal.proposal_id).valid

    def test_proposal_with_expiry(self, manager):
        proposal = manager.propose(ALICE, BOB, "x", "y", expires_in=3600)
        assert proposal.token.expires_at is not None

    def test_proposal_content_wire_form(self, proposal):
        assert proposal.token.to_dict()["provenance"]["content"] == {
            "action": "share-calendar",
            "from": ALICE,
            "to": BOB,
        }

    def test_list_proposals(self, manager, proposal):
        other = manager.propose(ALICE, CAROL, "x", "y")
        manager.reject(other.proposal_id, CAROL)

        assert len(manager.list_proposals()) == 2
        assert [p.proposal_id for p in manager.list_proposals(TokenState.PROPOSED)] == [proposal.proposal_id]
        assert len(manager.list_proposals("REJECTED")) == 1


class TestAccept:
    """Test accepting proposals."""

    def test_accept_by_recipient(self, manager, proposal):
        response = manager.accept(proposal.proposal_id, BOB)

        assert response.accepted
        assert response.proposal_id == proposal.proposal_id
        assert response.token.state == TokenState.ACCEPTED
        assert response.token.parent_id == proposal.proposal_id
        assert response.token.actor == BOB
        assert response.token.provenance.reason == "Accepted: Schedule a meeting"
        assert response.token.provenance.content == ConsentResponsePayload(
            action="consent_accepted",
            original_action="share-calendar",
        )
        assert response.token.metadata["response_type"] == "acceptance"
        assert manager.get_proposal(proposal.proposal_id).state == TokenState.ACCEPTED

    def test_accept_chain_verifies(self, manager, proposal):
        response = manager.accept(proposal.proposal_id, BOB)

        chain = manager.get_consent_chain(response.token.token_id)
        assert chain.length == 2
        assert chain.origin.token_id == proposal.proposal_id
        assert manager.verify_consent(response.token.token_id).valid
        assert manager.verifier.verify_lineage(response.token.token_id).valid

    def test_wrong_recipient(self, manager, proposal):
        with pytest.raises(RecipientMismatchError) as exc_info:
            manager.accept(proposal.proposal_id, CAROL)

        assert str(exc_info.value) == "Acceptor does not match intended recipient"
        assert exc_info.value.expected == BOB
        assert exc_info.value.actual == CAROL
        assert manager.get_proposal(proposal.proposal_id).state == TokenState.PROPOSED
        assert len(manager.store) == 1

    def test_unknown_proposal(self, manager):
        with pytest.raises(ProposalNotFoundError) as exc_info:
            manager.accept("nope", BOB)

        assert str(exc_info.value) == "Proposal not found: nope"
        assert isinstance(exc_info.value, ConsentError)

    def test_non_proposal_token_is_not_a_proposal(self, manager):
        token = manager.store.create(TokenKind.AUDIT, content="x", reason="y")
        with pytest.raises(ProposalNotFoundError):
            manager.accept(token.token_id, BOB)

    def test_accept_twice_is_closed(self, manager, proposal):
        manager.accept(proposal.proposal_id, BOB)

        with pytest.raises(ProposalClosedError):
            manager.accept(proposal.proposal_id, BOB)
        assert len(manager.store) == 2

    def test_concurrent_answers_settle_once(self, manager, proposal):
        outcomes = []

        def answer(fn, *args):
            try:
                outcomes.append(fn(proposal.proposal_id, *args))
            except ProposalClosedError:
                outcomes.append(None)

        threads = [
            threading.Thread(target=answer, args=(manager.accept, BOB)),
            threading.Thread(target=answer, args=(manager.reject, BOB)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for o in outcomes if o is not None) == 1
        assert len(manager.store) == 2


class TestReject:
    """Test rejecting proposals."""

    def test_reject_with_reason(self, manager, proposal):
        response = manager.reject(proposal.proposal_id, BOB, "no thanks")

        assert not response.accepted
        assert response.reason == "no thanks"
        assert response.token.state == TokenState.REJECTED
        assert response.token.provenance.reason == "no thanks"
        assert response.token.parent_id == proposal.proposal_id
        assert response.token.metadata["reason"] == "no thanks"
        assert manager.get_proposal(proposal.proposal_id).state == TokenState.REJECTED

    def test_reject_default_reason(self, manager, proposal):
        response = manager.reject(proposal.proposal_id, BOB)

        assert response.reason is None
        assert response.token.provenance.reason == "Rejected: Schedule a meeting"

    def test_reject_by_anyone(self, manager, proposal):
        response = manager.reject(proposal.proposal_id, CAROL)
        assert response.token.actor == CAROL

    def test_accept_after_reject_is_closed(self, manager, proposal):
        manager.reject(proposal.proposal_id, BOB)

        with pytest.raises(ProposalClosedError) as exc_info:
            manager.accept(proposal.proposal_id, BOB)
        assert exc_info.value.state == "REJECTED"

    def test_reject_unknown(self, manager):
        with pytest.raises(ProposalNotFoundError):
            manager.reject("nope", BOB)


class TestSharedStore:
    """Test a manager over an externally owned store."""

    def test_manager_uses_given_store(self):
        store = TokenStore()
        manager = BilateralConsentManager(store=store)
        proposal = manager.propose(ALICE, BOB, "x", "y")

        assert store.get(proposal.proposal_id) is not None
        assert manager.store is store


class TestQuickConsent:
    """Test the one-shot helper."""

    def test_quick_accept(self):
        quick = create_bilateral_consent(BilateralConsent(
            from_did=ALICE,
            to_did=BOB,
            action="view-profile",
            purpose="Networking",
        ))

        response = quick.accept()
        assert response.accepted
        assert response.token.actor == BOB
        assert quick.manager.get_proposal(quick.proposal.proposal_id).state == TokenState.ACCEPTED

    def test_quick_reject(self):
        quick = create_bilateral_consent(BilateralConsent(ALICE, BOB, "x", "y"))

        response = quick.reject("busy")
        assert not response.accepted
        assert response.reason == "busy"


class TestResponseOwnership:
    """Test that a response token does not share maps with its proposal."""

    def test_response_context_is_a_copy(self, manager):
        proposal = manager.propose(ALICE, BOB, "x", "y", context={"room": "a"})
        response = manager.accept(proposal.proposal_id, BOB)

        response.token.provenance.context["room"] = "b"

        stored_proposal = manager.store.get(proposal.proposal_id)
        stored_response = manager.store.get(response.token.token_id)
        assert stored_proposal.provenance.context == {"room": "a"}
        assert stored_response.provenance.context == {"room": "a"}
        assert manager.verify_consent(proposal.proposal_id).valid
        assert manager.verify_consent(response.token.token_id).valid

    def test_empty_store_is_kept(self):
        store = TokenStore()
        manager = BilateralConsentManager(store=store)
        token = store.create(TokenKind.AUDIT, content="x", reason="y")

        assert manager.verify_consent(token.token_id).valid
