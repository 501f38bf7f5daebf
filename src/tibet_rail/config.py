"""
Runtime configuration.

Values come from the environment; every field has a development default.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .core.digest import DEFAULT_HASH_ALGORITHM, DigestEngine
from .core.store import TokenStore
from .core.types import ANONYMOUS_ACTOR


@dataclass
class RailConfig:
    """Configuration for a TIBET rail instance."""
    default_actor: str = ANONYMOUS_ACTOR
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    digest_key: Optional[bytes] = None  # switches the digest to HMAC
    api_key: str = "dev-key-change-in-production"
    database_url: str = "sqlite:///tibet.db"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    port: int = 8000
    persist: bool = False  # snapshot the store to database_url across restarts

    @classmethod
    def from_env(cls) -> "RailConfig":
        digest_key = os.environ.get("TIBET_DIGEST_KEY")
        return cls(
            default_actor=os.environ.get("TIBET_DEFAULT_ACTOR", ANONYMOUS_ACTOR),
            hash_algorithm=os.environ.get("TIBET_HASH_ALGORITHM", DEFAULT_HASH_ALGORITHM),
            digest_key=digest_key.encode('utf-8') if digest_key else None,
            api_key=os.environ.get("API_KEY", "dev-key-change-in-production"),
            database_url=os.environ.get("DATABASE_URL", "sqlite:///tibet.db"),
            cors_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
            port=int(os.environ.get("PORT", 8000)),
            persist=os.environ.get("TIBET_PERSIST", "false").lower() == "true",
        )

    def build_store(self) -> TokenStore:
        """Create a token store wired to this configuration."""
        return TokenStore(
            default_actor=self.default_actor,
            digest_engine=DigestEngine(self.hash_algorithm, key=self.digest_key),
        )
