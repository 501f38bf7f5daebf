"""
Tests for FastAPI Endpoints

Integration tests for the provenance API.
"""

import pytest
from fastapi.testclient import TestClient
import os

# Set test environment before imports
os.environ["API_KEY"] = "test-key-12345"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from tibet_rail.api.server import app


@pytest.fixture
def client():
    """Create test client; the context manager runs the lifespan."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Headers with valid API key."""
    return {"X-API-Key": "test-key-12345"}


def _create(client, headers, **overrides):
    body = {"kind": "audit", "content": "login", "reason": "session start"}
    body.update(overrides)
    response = client.post("/tokens", json=body, headers=headers)
    assert response.status_code == 200
    return response.json()


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_no_auth_required(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["tokens"] == 0
        assert "version" in data
        assert "uptime_seconds" in data


class TestAuth:
    """Test API key enforcement."""

    def test_missing_key(self, client):
        response = client.post("/tokens", json={"kind": "audit", "content": "x", "reason": "y"})
        assert response.status_code == 422  # Missing header

    def test_invalid_key(self, client):
        response = client.get("/tokens", headers={"X-API-Key": "wrong-key"})
        assert response.status_code == 401


class TestTokenEndpoints:
    """Test minting, lookup and state changes."""

    def test_create_token(self, client, auth_headers):
        data = _create(client, auth_headers, actor="did:jis:alice")

        assert data["kind"] == "audit"
        assert data["state"] == "CREATED"
        assert data["actor"] == "did:jis:alice"
        assert data["provenance"] == {"content": "login", "reason": "session start"}
        assert len(data["digest"]) == 64

    def test_create_defaults_to_anonymous(self, client, auth_headers):
        assert _create(client, auth_headers)["actor"] == "anonymous"

    def test_create_invalid_kind(self, client, auth_headers):
        response = client.post(
            "/tokens",
            json={"kind": "bogus", "content": "x", "reason": "y"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_get_token(self, client, auth_headers):
        created = _create(client, auth_headers)
        response = client.get(f"/tokens/{created['token_id']}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == created

    def test_get_unknown_token(self, client, auth_headers):
        assert client.get("/tokens/nope", headers=auth_headers).status_code == 404

    def test_list_tokens_filtered(self, client, auth_headers):
        _create(client, auth_headers)
        _create(client, auth_headers, kind="threat", actor="did:jis:bob")

        data = client.get("/tokens", params={"kind": "threat"}, headers=auth_headers).json()
        assert data["total"] == 1
        assert data["tokens"][0]["actor"] == "did:jis:bob"

        data = client.get("/tokens", params={"actor": "anonymous"}, headers=auth_headers).json()
        assert data["total"] == 1

    def test_update_state(self, client, auth_headers):
        created = _create(client, auth_headers)
        response = client.post(
            f"/tokens/{created['token_id']}/state",
            json={"state": "revoked"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["state"] == "REVOKED"
        assert response.json()["digest"] == created["digest"]

    def test_update_state_unknown(self, client, auth_headers):
        response = client.post("/tokens/nope/state", json={"state": "REVOKED"}, headers=auth_headers)
        assert response.status_code == 404

    def test_update_state_invalid(self, client, auth_headers):
        created = _create(client, auth_headers)
        response = client.post(
            f"/tokens/{created['token_id']}/state",
            json={"state": "PENDING"},
            headers=auth_headers,
        )
        assert response.status_code == 400


class TestVerificationEndpoints:
    """Test verify, chain and lineage."""

    def test_verify(self, client, auth_headers):
        created = _create(client, auth_headers, actor="did:jis:alice")
        data = client.get(f"/tokens/{created['token_id']}/verify", headers=auth_headers).json()

        assert data["valid"] is True
        assert data["trust_score"] == 1.0

    def test_verify_expired_anonymous(self, client, auth_headers):
        created = _create(client, auth_headers, expires_in=-1)
        data = client.get(f"/tokens/{created['token_id']}/verify", headers=auth_headers).json()

        assert data["valid"] is False
        assert data["trust_score"] <= 0.6

    def test_verify_unknown_reports_not_found(self, client, auth_headers):
        response = client.get("/tokens/nope/verify", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["error"] == "Token not found"

    def test_chain_and_lineage(self, client, auth_headers):
        a = _create(client, auth_headers)
        b = _create(client, auth_headers, parent_id=a["token_id"])

        chain = client.get(f"/tokens/{b['token_id']}/chain", headers=auth_headers).json()
        assert chain["length"] == 2
        assert chain["origin"] == a["token_id"]

        lineage = client.get(f"/tokens/{b['token_id']}/lineage", headers=auth_headers).json()
        assert lineage["valid"] is True
        assert len(lineage["results"]) == 2

    def test_chain_unknown(self, client, auth_headers):
        assert client.get("/tokens/nope/chain", headers=auth_headers).status_code == 404


class TestConsentEndpoints:
    """Test the propose/accept/reject flow over HTTP."""

    def _propose(self, client, headers):
        response = client.post(
            "/consent/propose",
            json={
                "from_did": "did:jis:alice",
                "to_did": "did:jis:bob",
                "action": "share-calendar",
                "purpose": "Schedule a meeting",
            },
            headers=headers,
        )
        assert response.status_code == 200
        return response.json()

    def test_propose(self, client, auth_headers):
        proposal = self._propose(client, auth_headers)

        assert proposal["state"] == "PROPOSED"
        assert proposal["token"]["provenance"]["content"] == {
            "action": "share-calendar",
            "from": "did:jis:alice",
            "to": "did:jis:bob",
        }

    def test_accept(self, client, auth_headers):
        proposal = self._propose(client, auth_headers)
        response = client.post(
            f"/consent/{proposal['proposal_id']}/accept",
            json={"acceptor_did": "did:jis:bob"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] is True
        assert data["token"]["parent_id"] == proposal["proposal_id"]

        listed = client.get("/consent", params={"proposal_state": "ACCEPTED"}, headers=auth_headers).json()
        assert listed["total"] == 1

    def test_accept_wrong_recipient(self, client, auth_headers):
        proposal = self._propose(client, auth_headers)
        response = client.post(
            f"/consent/{proposal['proposal_id']}/accept",
            json={"acceptor_did": "did:jis:carol"},
            headers=auth_headers,
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Acceptor does not match intended recipient"

    def test_accept_unknown(self, client, auth_headers):
        response = client.post("/consent/nope/accept", json={"acceptor_did": "did:jis:bob"}, headers=auth_headers)
        assert response.status_code == 404

    def test_reject_then_accept_conflicts(self, client, auth_headers):
        proposal = self._propose(client, auth_headers)
        response = client.post(
            f"/consent/{proposal['proposal_id']}/reject",
            json={"rejector_did": "did:jis:bob", "reason": "no thanks"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["reason"] == "no thanks"

        response = client.post(
            f"/consent/{proposal['proposal_id']}/accept",
            json={"acceptor_did": "did:jis:bob"},
            headers=auth_headers,
        )
        assert response.status_code == 409


class TestExportImport:
    """Test store snapshots over HTTP."""

    def test_export_then_import(self, client, auth_headers):
        created = _create(client, auth_headers)
        exported = client.get("/export", headers=auth_headers).json()
        assert exported["entries"][0][0] == created["token_id"]

        response = client.post("/import", json=exported, headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"imported": 1, "total": 1}

    def test_import_malformed(self, client, auth_headers):
        response = client.post("/import", json={"entries": [["t1", {"kind": "audit"}]]}, headers=auth_headers)
        assert response.status_code == 400


class TestDIDEndpoints:
    """Test DID registration and resolution."""

    def test_register_and_resolve(self, client, auth_headers):
        response = client.post(
            "/did",
            json={"did": "did:jis:alice", "tibet_endpoint": "https://alice.example/tibet"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        doc = response.json()
        assert doc["verificationMethod"][0]["publicKeyJwk"]["crv"] == "Ed25519"

        resolved = client.get("/did/did:jis:alice")
        assert resolved.status_code == 200
        assert resolved.json() == doc

    def test_register_without_key(self, client, auth_headers):
        response = client.post("/did", json={"did": "did:jis:bob", "generate_key": False}, headers=auth_headers)
        assert response.json()["verificationMethod"] == []

    def test_register_invalid(self, client, auth_headers):
        response = client.post("/did", json={"did": "did:web:alice"}, headers=auth_headers)
        assert response.status_code == 400

    def test_resolve_unknown(self, client):
        assert client.get("/did/did:jis:nobody").status_code == 404


class TestPersistentState:
    """Test store snapshots across application restarts."""

    def test_state_reloads_saved_tokens(self, temp_db):
        from tibet_rail.api.server import AppState
        from tibet_rail.config import RailConfig

        config = RailConfig(persist=True, database_url=temp_db)
        first = AppState(config)
        token = first.store.create("audit", content="x", reason="y")
        first.repository.save_store(first.store)

        second = AppState(config)
        assert second.store.get(token.token_id) == token

    def test_no_repository_by_default(self):
        from tibet_rail.api.server import AppState
        from tibet_rail.config import RailConfig

        assert AppState(RailConfig()).repository is None


class TestSharedStore:
    """Test that every endpoint works on one store."""

    def test_consent_tokens_listed_and_exported(self, client, auth_headers):
        proposal = client.post(
            "/consent/propose",
            json={"from_did": "did:jis:alice", "to_did": "did:jis:bob", "action": "x", "purpose": "y"},
            headers=auth_headers,
        ).json()

        listed = client.get("/tokens", headers=auth_headers).json()
        assert [t["token_id"] for t in listed["tokens"]] == [proposal["proposal_id"]]

        exported = client.get("/export", headers=auth_headers).json()
        assert exported["entries"][0][0] == proposal["proposal_id"]

    def test_minted_token_found_by_consent_verifier(self, client, auth_headers):
        from tibet_rail.api.server import get_state

        state = get_state()
        assert state.consent.store is state.store

        created = _create(client, auth_headers)
        lineage = client.get(f"/tokens/{created['token_id']}/lineage", headers=auth_headers).json()
        assert lineage["valid"] is True
