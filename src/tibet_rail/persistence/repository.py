"""
Token Repository

Saves tokens to the database and restores them into a TokenStore through the
store's own import path.
"""

import json
from datetime import datetime, timezone
from typing import List, Optional
import structlog

from ..core.store import TokenStore
from ..core.types import Token
from .database import Database, get_database

logger = structlog.get_logger()

_UPSERT_SQL = """INSERT OR REPLACE INTO tokens
   (token_id, kind, actor, state, parent_id, created_at, expires_at,
    digest, body, saved_at)
   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"""


def _row_tuple(token: Token, saved_at: str) -> tuple:
    return (
        token.token_id,
        token.kind.value,
        token.actor,
        token.state.value,
        token.parent_id,
        token.created_at,
        token.expires_at,
        token.digest,
        token.to_json(),
        saved_at,
    )


class TokenRepository:
    """Repository for token records."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db if db is not None else get_database()

    def save(self, token: Token) -> Token:
        """Insert or update one token."""
        self.db.execute(_UPSERT_SQL, _row_tuple(token, datetime.now(timezone.utc).isoformat()))
        logger.debug("token_saved", token_id=token.token_id, state=token.state.value)
        return token

    def save_store(self, store: TokenStore) -> int:
        """Snapshot every token in a store. Returns the number saved."""
        now = datetime.now(timezone.utc).isoformat()
        tokens = store.list_tokens()
        if tokens:
            self.db.execute_many(_UPSERT_SQL, [_row_tuple(t, now) for t in tokens])
        logger.info("store_saved", count=len(tokens))
        return len(tokens)

    def get(self, token_id: str) -> Optional[Token]:
        """Get a token by ID."""
        results = self.db.execute(
            "SELECT body FROM tokens WHERE token_id = ?",
            (token_id,)
        )
        return Token.from_dict(json.loads(results[0]["body"])) if results else None

    def get_children(self, parent_id: str) -> List[Token]:
        """Get tokens whose parent is the given token."""
        results = self.db.execute(
            "SELECT body FROM tokens WHERE parent_id = ? ORDER BY created_at ASC",
            (parent_id,)
        )
        return [Token.from_dict(json.loads(r["body"])) for r in results]

    def get_by_actor(self, actor: str, limit: int = 100) -> List[Token]:
        """Get tokens created by an actor, newest first."""
        results = self.db.execute(
            "SELECT body FROM tokens WHERE actor = ? ORDER BY created_at DESC LIMIT ?",
            (actor, limit)
        )
        return [Token.from_dict(json.loads(r["body"])) for r in results]

    def load_into(self, store: TokenStore) -> int:
        """Restore all saved tokens into a store, overwriting on id collision."""
        results = self.db.execute("SELECT token_id, body FROM tokens")
        blob = json.dumps([[r["token_id"], json.loads(r["body"])] for r in results])
        return store.import_all(blob)

    def count(self) -> int:
        """Count saved tokens."""
        results = self.db.execute("SELECT COUNT(*) as cnt FROM tokens")
        return results[0]["cnt"] if results else 0
