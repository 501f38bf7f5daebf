"""
TIBET RAIL - FastAPI Server

Endpoints:
- POST /tokens - Mint a token
- GET /tokens/{id}/verify - Verify a token
- GET /tokens/{id}/chain - Provenance chain
- POST /consent/propose - Propose bilateral consent
- POST /consent/{id}/accept - Accept a proposal
- POST /consent/{id}/reject - Reject a proposal
- GET /export, POST /import - Store snapshots
- POST /did, GET /did/{did} - DID document registry
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
import json
import os
import structlog

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..config import RailConfig
from ..core.consent import BilateralConsentManager
from ..core.errors import ProposalClosedError, ProposalNotFoundError, RecipientMismatchError
from ..core.types import TokenKind, TokenState, content_from_wire
from ..identity.did import DIDDocumentConfig, InvalidDIDError, build_did_document
from ..identity.keys import did_document_with_key, generate_did_key
from ..identity.resolver import DIDResolver
from ..persistence import Database, TokenRepository

logger = structlog.get_logger()

VERSION = "1.0.0"


# ============================================================================
# Pydantic Models
# ============================================================================

class TokenCreateRequest(BaseModel):
    """Request to mint a token."""
    kind: str = Field(..., description="bilateral_consent, unilateral_action, verification, revocation, delegation, audit, threat")
    content: Union[str, Dict[str, Any]] = Field(..., description="The action itself")
    reason: str = Field(..., description="Why the action happened")
    linked: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None
    actor: Optional[str] = None
    parent_id: Optional[str] = None
    expires_in: Optional[float] = Field(None, description="Seconds until expiry")
    metadata: Optional[Dict[str, Any]] = None


class StateUpdateRequest(BaseModel):
    state: str


class ProposeRequest(BaseModel):
    """Request to propose bilateral consent."""
    from_did: str
    to_did: str
    action: str
    purpose: str
    context: Optional[Dict[str, Any]] = None
    expires_in: Optional[float] = None


class AcceptRequest(BaseModel):
    acceptor_did: str


class RejectRequest(BaseModel):
    rejector_did: str
    reason: Optional[str] = None


class ImportRequest(BaseModel):
    entries: List[List[Any]] = Field(..., description="[id, token] pairs as produced by /export")


class DIDRegisterRequest(BaseModel):
    """Request to publish a DID document."""
    did: str
    controller: Optional[str] = None
    consent_endpoint: Optional[str] = None
    tibet_endpoint: Optional[str] = None
    generate_key: bool = True


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    tokens: int
    proposals: int
    uptime_seconds: float


# ============================================================================
# Application State
# ============================================================================

class AppState:
    """Application state container."""

    def __init__(self, config: Optional[RailConfig] = None):
        self.config = config or RailConfig.from_env()
        self.store = self.config.build_store()
        self.consent = BilateralConsentManager(store=self.store)
        self.resolver = DIDResolver()
        self.repository: Optional[TokenRepository] = None
        if self.config.persist:
            db = Database(self.config.database_url)
            db.initialize()
            self.repository = TokenRepository(db)
            self.repository.load_into(self.store)
        self.start_time = datetime.now(timezone.utc)


app_state: Optional[AppState] = None


# ============================================================================
# Application Factory
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global app_state
    logger.info("tibet_rail_starting", version=VERSION)
    app_state = AppState()
    yield
    if app_state.repository is not None:
        app_state.repository.save_store(app_state.store)
    logger.info("tibet_rail_stopping", tokens=len(app_state.store))


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="TIBET Rail",
        description="Provenance tokens, chain verification and bilateral consent.",
        version=VERSION,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return application


app = create_app()


# ============================================================================
# Dependencies
# ============================================================================

def get_state() -> AppState:
    """Get application state."""
    if app_state is None:
        raise HTTPException(status_code=503, detail="Application not initialized")
    return app_state


def verify_api_key(
    x_api_key: str = Header(..., alias="X-API-Key"),
    state: AppState = Depends(get_state),
) -> str:
    """Verify API key."""
    if x_api_key != state.config.api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return x_api_key


def _parse_kind(value: str) -> TokenKind:
    try:
        return TokenKind(value.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid token kind: {value}")


def _parse_state(value: str) -> TokenState:
    try:
        return TokenState(value.upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid token state: {value}")


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(state: AppState = Depends(get_state)):
    """Health check endpoint."""
    uptime = (datetime.now(timezone.utc) - state.start_time).total_seconds()
    return HealthResponse(
        status="healthy",
        version=VERSION,
        tokens=len(state.store),
        proposals=len(state.consent.list_proposals()),
        uptime_seconds=uptime,
    )


@app.post("/tokens", tags=["Tokens"])
async def create_token(
    request: TokenCreateRequest,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    """Mint a token in state CREATED."""
    token = state.store.create(
        kind=_parse_kind(request.kind),
        content=content_from_wire(request.content),
        reason=request.reason,
        linked=request.linked,
        context=request.context,
        actor=request.actor,
        parent_id=request.parent_id,
        expires_in=request.expires_in,
        metadata=request.metadata,
    )
    return token.to_dict()


@app.get("/tokens", tags=["Tokens"])
async def list_tokens(
    kind: Optional[str] = None,
    token_state: Optional[str] = None,
    actor: Optional[str] = None,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    """List tokens, filtered by kind, state and actor."""
    tokens = state.store.list_tokens(
        kind=_parse_kind(kind) if kind else None,
        state=_parse_state(token_state) if token_state else None,
        actor=actor,
    )
    return {
        "total": len(tokens),
        "tokens": [t.to_dict() for t in tokens],
    }


@app.get("/tokens/{token_id}", tags=["Tokens"])
async def get_token(
    token_id: str,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    token = state.store.get(token_id)
    if token is None:
        raise HTTPException(status_code=404, detail=f"Token not found: {token_id}")
    return token.to_dict()


@app.post("/tokens/{token_id}/state", tags=["Tokens"])
async def update_token_state(
    token_id: str,
    request: StateUpdateRequest,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    """Move a token to a new lifecycle state."""
    token = state.store.set_state(token_id, _parse_state(request.state))
    if token is None:
        raise HTTPException(status_code=404, detail=f"Token not found: {token_id}")
    return token.to_dict()


@app.get("/tokens/{token_id}/verify", tags=["Verification"])
async def verify_token(
    token_id: str,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    """
    Verify a token.

    Always 200: an unknown or broken token is reported through the result.
    """
    return state.consent.verifier.verify(token_id).to_dict()


@app.get("/tokens/{token_id}/lineage", tags=["Verification"])
async def verify_token_lineage(
    token_id: str,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    """Verify every token from the origin down to this one."""
    return state.consent.verifier.verify_lineage(token_id).to_dict()


@app.get("/tokens/{token_id}/chain", tags=["Verification"])
async def get_token_chain(
    token_id: str,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    chain = state.consent.walker.chain(token_id)
    if chain is None:
        raise HTTPException(status_code=404, detail=f"Token not found: {token_id}")
    return chain.to_dict()


@app.post("/consent/propose", tags=["Consent"])
async def propose_consent(
    request: ProposeRequest,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    proposal = state.consent.propose(
        from_did=request.from_did,
        to_did=request.to_did,
        action=request.action,
        purpose=request.purpose,
        context=request.context,
        expires_in=request.expires_in,
    )
    return proposal.to_dict()


@app.post("/consent/{proposal_id}/accept", tags=["Consent"])
async def accept_consent(
    proposal_id: str,
    request: AcceptRequest,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    try:
        response = state.consent.accept(proposal_id, request.acceptor_did)
    except ProposalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RecipientMismatchError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ProposalClosedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return response.to_dict()


@app.post("/consent/{proposal_id}/reject", tags=["Consent"])
async def reject_consent(
    proposal_id: str,
    request: RejectRequest,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    try:
        response = state.consent.reject(proposal_id, request.rejector_did, request.reason)
    except ProposalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProposalClosedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return response.to_dict()


@app.get("/consent", tags=["Consent"])
async def list_proposals(
    proposal_state: Optional[str] = None,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    proposals = state.consent.list_proposals(
        _parse_state(proposal_state) if proposal_state else None
    )
    return {
        "total": len(proposals),
        "proposals": [p.to_dict() for p in proposals],
    }


@app.get("/export", tags=["Audit"])
async def export_tokens(
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    """Export the whole store as [id, token] pairs."""
    return {"entries": json.loads(state.store.export_all())}


@app.post("/import", tags=["Audit"])
async def import_tokens(
    request: ImportRequest,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    """
    Import [id, token] pairs, overwriting on id collision.

    Nothing is verified on the way in; use /tokens/{id}/verify afterwards.
    """
    try:
        imported = state.store.import_all(json.dumps(request.entries))
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Malformed token entry: {e}")
    return {"imported": imported, "total": len(state.store)}


@app.post("/did", tags=["Identity"])
async def register_did(
    request: DIDRegisterRequest,
    state: AppState = Depends(get_state),
    api_key: str = Depends(verify_api_key),
):
    """Build and register a DID document, optionally with a fresh Ed25519 key."""
    try:
        if request.generate_key:
            keypair = generate_did_key(request.did)
            doc = did_document_with_key(
                keypair,
                consent_endpoint=request.consent_endpoint,
                tibet_endpoint=request.tibet_endpoint,
            )
            doc.controller = request.controller
        else:
            doc = build_did_document(DIDDocumentConfig(
                did=request.did,
                controller=request.controller,
                consent_endpoint=request.consent_endpoint,
                tibet_endpoint=request.tibet_endpoint,
            ))
        state.resolver.register(doc)
    except InvalidDIDError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return doc.to_dict()


@app.get("/did/{did}", tags=["Identity"])
async def resolve_did(did: str, state: AppState = Depends(get_state)):
    """Resolve a DID document. Public, like any DID resolution."""
    doc = state.resolver.resolve(did)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"DID not found: {did}")
    return doc.to_dict()


# ============================================================================
# Run
# ============================================================================

def run():
    """Run the server."""
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(
        "tibet_rail.api.server:app",
        host="0.0.0.0",
        port=port,
        reload=os.environ.get("DEBUG", "false").lower() == "true",
    )


if __name__ == "__main__":
    run()
