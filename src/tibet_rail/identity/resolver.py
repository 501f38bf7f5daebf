"""
In-memory DID registry.

A production deployment would resolve against a DID registry service; this
keeps documents in a process-local map.
"""

from threading import Lock
from typing import Dict, List, Optional

import structlog

from .did import DIDDocument, InvalidDIDError, is_valid_did

logger = structlog.get_logger()


class DIDResolver:
    """Registers and resolves DID documents."""

    def __init__(self):
        self._documents: Dict[str, DIDDocument] = {}
        self._lock = Lock()

    def register(self, doc: DIDDocument) -> None:
        """Register (or replace) a DID document."""
        if not is_valid_did(doc.id):
            raise InvalidDIDError(f"Invalid DID: {doc.id}")
        with self._lock:
            self._documents[doc.id] = doc
        logger.info("did_registered", did=doc.id)

    def resolve(self, did: str) -> Optional[DIDDocument]:
        return self._documents.get(did)

    def exists(self, did: str) -> bool:
        return did in self._documents

    def deactivate(self, did: str) -> bool:
        """Remove a DID. Returns False if it was not registered."""
        with self._lock:
            removed = self._documents.pop(did, None) is not None
        if removed:
            logger.info("did_deactivated", did=did)
        return removed

    def list(self) -> List[str]:
        return list(self._documents.keys())
