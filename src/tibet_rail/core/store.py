"""
Token Store

Owns the id -> token mapping. Every mutation goes through the store, and a
reentrant lock makes each operation a single choke point for concurrent
callers.

Tokens are frozen; a state change replaces the stored entry. Content, context
and metadata maps are copied on the way in and on the way out, so no caller
holds a reference into a stored token.
"""

import copy
import dataclasses
import json
from datetime import timedelta
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional, Union

import structlog

from .digest import DigestEngine, new_token_id
from .types import (
    ANONYMOUS_ACTOR,
    Content,
    Provenance,
    Token,
    TokenKind,
    TokenState,
    utc_now,
)

logger = structlog.get_logger()

Duration = Union[timedelta, int, float]


def _as_kind(kind: Union[TokenKind, str]) -> TokenKind:
    return kind if isinstance(kind, TokenKind) else TokenKind(kind)


def _as_state(state: Union[TokenState, str]) -> TokenState:
    return state if isinstance(state, TokenState) else TokenState(state)


def _as_timedelta(duration: Duration) -> timedelta:
    if isinstance(duration, timedelta):
        return duration
    return timedelta(seconds=duration)


class TokenStore:
    """
    In-memory store of TIBET tokens.

    Lookups and state updates are soft: an unknown id yields None, never an
    exception.
    """

    def __init__(
        self,
        default_actor: Optional[str] = None,
        digest_engine: Optional[DigestEngine] = None,
    ):
        self.default_actor = default_actor or ANONYMOUS_ACTOR
        self.digest_engine = digest_engine if digest_engine is not None else DigestEngine()
        self._tokens: Dict[str, Token] = {}
        self._lock = RLock()

    def create(
        self,
        kind: Union[TokenKind, str],
        content: Content,
        reason: str,
        linked: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
        actor: Optional[str] = None,
        parent_id: Optional[str] = None,
        expires_in: Optional[Duration] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Token:
        """
        Mint a new token in state CREATED.

        parent_id is not checked here; a dangling parent only shows up at
        verification time. Any expires_in other than None, including zero or a
        negative one, sets expires_at relative to now.
        """
        now = utc_now()
        provenance = Provenance(
            content=copy.deepcopy(content),
            reason=reason,
            linked=list(linked) if linked is not None else None,
            context=copy.deepcopy(context),
        )

        unsigned = Token(
            token_id=new_token_id(),
            kind=_as_kind(kind),
            actor=actor or self.default_actor,
            provenance=provenance,
            created_at=now.isoformat(),
            state=TokenState.CREATED,
            digest="",
            parent_id=parent_id,
            expires_at=(now + _as_timedelta(expires_in)).isoformat() if expires_in is not None else None,
            metadata=copy.deepcopy(metadata),
        )
        token = dataclasses.replace(
            unsigned,
            digest=self.digest_engine.digest(unsigned.canonical_fields()),
        )

        with self._lock:
            self._tokens[token.token_id] = token

        logger.info(
            "token_created",
            token_id=token.token_id,
            kind=token.kind.value,
            actor=token.actor,
            parent_id=parent_id,
        )

        return copy.deepcopy(token)

    def get(self, token_id: str) -> Optional[Token]:
        """Retrieve a token by ID. Anything but a string id is a miss."""
        if not isinstance(token_id, str):
            return None
        with self._lock:
            return copy.deepcopy(self._tokens.get(token_id))

    def set_state(self, token_id: str, new_state: Union[TokenState, str]) -> Optional[Token]:
        """
        Move a token to a new lifecycle state.

        Returns the updated token, or None if the id is unknown.
        """
        state = _as_state(new_state)
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None:
                return None
            if token.state == state:
                return copy.deepcopy(token)

            updated = dataclasses.replace(token, state=state)
            self._tokens[token_id] = updated

        logger.info(
            "token_state_updated",
            token_id=token_id,
            old_state=token.state.value,
            new_state=state.value,
        )
        return copy.deepcopy(updated)

    def list_tokens(
        self,
        kind: Optional[Union[TokenKind, str]] = None,
        state: Optional[Union[TokenState, str]] = None,
        actor: Optional[str] = None,
    ) -> List[Token]:
        """List tokens matching every supplied filter. Order is not guaranteed."""
        with self._lock:
            tokens = copy.deepcopy(list(self._tokens.values()))

        if kind is not None:
            wanted_kind = _as_kind(kind)
            tokens = [t for t in tokens if t.kind == wanted_kind]
        if state is not None:
            wanted_state = _as_state(state)
            tokens = [t for t in tokens if t.state == wanted_state]
        if actor is not None:
            tokens = [t for t in tokens if t.actor == actor]

        return tokens

    def export_all(self) -> str:
        """Export the whole store as a JSON array of [id, token] pairs."""
        with self._lock:
            entries = [[token_id, token.to_dict()] for token_id, token in self._tokens.items()]
        return json.dumps(entries)

    def import_all(self, blob: str) -> int:
        """
        Restore entries from an export blob, overwriting on id collision.

        Digests, states and lineage are not validated; run the verifier over
        imported tokens to find out whether they can be trusted.
        """
        entries = json.loads(blob)
        restored = [(token_id, Token.from_dict(data)) for token_id, data in entries]

        with self._lock:
            for token_id, token in restored:
                self._tokens[token_id] = token

        logger.info("tokens_imported", count=len(restored), total=len(self))
        return len(restored)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def __contains__(self, token_id: object) -> bool:
        if not isinstance(token_id, str):
            return False
        with self._lock:
            return token_id in self._tokens

    def __iter__(self) -> Iterator[Token]:
        return iter(self.list_tokens())
