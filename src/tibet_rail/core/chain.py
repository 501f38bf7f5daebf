"""
Provenance Chain Walker

Reconstructs a token's lineage by following parent_id back-references.
Chains are derived on demand; nothing about them is stored.
"""

from typing import List, Optional, Set

import structlog

from .store import TokenStore
from .types import ProvenanceChain, Token

logger = structlog.get_logger()

MISSING_PARENT = "missing_parent"
CYCLE = "cycle"


class ChainWalker:
    """Walks parent links inside a single store."""

    def __init__(self, store: TokenStore):
        self.store = store

    def chain(self, token_id: str) -> Optional[ProvenanceChain]:
        """
        Get the full provenance chain for a token.

        Returns None if the token is unknown. The walk stops at a root, at a
        parent that does not resolve, or at an id it has already visited.
        """
        current = self.store.get(token_id)
        if current is None:
            return None

        tokens: List[Token] = []
        visited: Set[str] = set()
        break_reason: Optional[str] = None

        while current is not None:
            if current.token_id in visited:
                break_reason = CYCLE
                logger.warning(
                    "chain_cycle_detected",
                    token_id=token_id,
                    repeated_id=current.token_id,
                )
                break

            visited.add(current.token_id)
            tokens.append(current)

            if current.parent_id is None:
                break

            parent = self.store.get(current.parent_id)
            if parent is None:
                break_reason = MISSING_PARENT
                logger.debug(
                    "chain_parent_missing",
                    token_id=current.token_id,
                    parent_id=current.parent_id,
                )
            current = parent

        tokens.reverse()

        return ProvenanceChain(
            tokens=tokens,
            complete=break_reason is None,
            break_reason=break_reason,
        )
