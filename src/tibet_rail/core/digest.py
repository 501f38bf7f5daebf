"""
Token Digest Engine

The token "signature" is an integrity digest, not an asymmetric signature:

    digest = H(Canonical(token_id, kind, actor, provenance, created_at, parent_id))

Canonicalization:
1. Absent (None) top-level optional fields are dropped; nulls inside
   content and context maps are kept
2. Keys sorted lexicographically
3. No extraneous whitespace

H defaults to SHA-256. When a digest key is configured the digest becomes an
HMAC over the same canonical payload.
"""

import hashlib
import hmac
import json
import uuid
from typing import Any, Dict, Optional

DEFAULT_HASH_ALGORITHM = "sha256"


def new_token_id() -> str:
    """Generate a random (version 4) token identifier."""
    return str(uuid.uuid4())


def canonicalize(fields: Dict[str, Any]) -> str:
    """Deterministic JSON rendering of the canonical token fields."""
    return json.dumps(
        {k: v for k, v in fields.items() if v is not None},
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
    )


class DigestEngine:
    """
    Computes token integrity digests.

    Pure and deterministic: the same canonical fields always produce the same
    hex string.
    """

    def __init__(
        self,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
        key: Optional[bytes] = None,
    ):
        # shake digests need an explicit output length
        if hash_algorithm not in hashlib.algorithms_guaranteed or hash_algorithm.startswith("shake"):
            raise ValueError(f"Unsupported hash algorithm: {hash_algorithm}")
        self.hash_algorithm = hash_algorithm
        self._hash_func = getattr(hashlib, hash_algorithm)
        self._key = key

    @property
    def keyed(self) -> bool:
        return self._key is not None

    def digest(self, canonical_fields: Dict[str, Any]) -> str:
        """Digest the canonical fields of a token."""
        payload = canonicalize(canonical_fields).encode('utf-8')
        if self._key is not None:
            return hmac.new(self._key, payload, self.hash_algorithm).hexdigest()
        return self._hash_func(payload).hexdigest()

    def matches(self, canonical_fields: Dict[str, Any], expected: str) -> bool:
        """Recompute the digest and compare it to a stored value."""
        return hmac.compare_digest(
            self.digest(canonical_fields).encode('utf-8'),
            (expected or "").encode('utf-8'),
        )
