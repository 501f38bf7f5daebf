"""
did:jis Identifiers and Documents

Format: did:jis:<method-specific-id>

    parse_did("did:jis:org:company:employee42")
    # ParsedDID(method='jis', id='org:company:employee42')

Documents are built from a plain configuration in one call instead of a
chained builder.

Reference: draft-vandemeent-jis-identity
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Union

DID_METHOD = "jis"
DID_PREFIX = f"did:{DID_METHOD}:"

DID_CONTEXT = [
    "https://www.w3.org/ns/did/v1",
    "https://w3id.org/security/suites/jws-2020/v1",
    "https://humotica.com/ns/jis/v1",
]

_DID_PATTERN = re.compile(r"^did:([a-z]+):(.+)$")
_ID_PATTERN = re.compile(r"^[a-zA-Z0-9:._-]+$")


class InvalidDIDError(ValueError):
    """Raised when an identifier is not a valid did:jis DID."""


class ParsedDID(NamedTuple):
    method: str
    id: str


def parse_did(did: str) -> Optional[ParsedDID]:
    """Split a DID into method and method-specific id, or None if malformed."""
    match = _DID_PATTERN.match(did)
    if not match:
        return None
    return ParsedDID(method=match.group(1), id=match.group(2))


def is_valid_did(did: str) -> bool:
    """True for a did:jis identifier with only allowed characters."""
    if not did.startswith(DID_PREFIX):
        return False
    parsed = parse_did(did)
    if parsed is None:
        return False
    return bool(_ID_PATTERN.match(parsed.id))


def create_did(*parts: str) -> str:
    """
    Join identifier parts into a did:jis DID.

        create_did("company", "employee", "42")  # 'did:jis:company:employee:42'
    """
    if not parts:
        raise InvalidDIDError("DID must have at least one identifier part")

    method_id = ":".join(parts)
    if not _ID_PATTERN.match(method_id):
        raise InvalidDIDError("DID contains invalid characters")

    return f"{DID_PREFIX}{method_id}"


@dataclass
class VerificationMethod:
    id: str
    type: str
    controller: str
    public_key_jwk: Optional[Dict[str, Any]] = None
    public_key_multibase: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "controller": self.controller,
        }
        if self.public_key_jwk is not None:
            result["publicKeyJwk"] = self.public_key_jwk
        if self.public_key_multibase is not None:
            result["publicKeyMultibase"] = self.public_key_multibase
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationMethod":
        return cls(
            id=data["id"],
            type=data["type"],
            controller=data["controller"],
            public_key_jwk=data.get("publicKeyJwk"),
            public_key_multibase=data.get("publicKeyMultibase"),
        )


@dataclass
class ServiceEndpoint:
    id: str
    type: str
    service_endpoint: Union[str, Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "serviceEndpoint": self.service_endpoint,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceEndpoint":
        return cls(id=data["id"], type=data["type"], service_endpoint=data["serviceEndpoint"])


@dataclass
class DIDDocument:
    """A DID document as published for a did:jis identifier."""
    id: str
    controller: Optional[str] = None
    verification_method: List[VerificationMethod] = field(default_factory=list)
    authentication: List[str] = field(default_factory=list)
    assertion_method: List[str] = field(default_factory=list)
    service: List[ServiceEndpoint] = field(default_factory=list)
    context: List[str] = field(default_factory=lambda: list(DID_CONTEXT))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "@context": list(self.context),
            "id": self.id,
        }
        if self.controller is not None:
            result["controller"] = self.controller
        result["verificationMethod"] = [m.to_dict() for m in self.verification_method]
        result["authentication"] = list(self.authentication)
        result["assertionMethod"] = list(self.assertion_method)
        result["service"] = [s.to_dict() for s in self.service]
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DIDDocument":
        return cls(
            id=data["id"],
            controller=data.get("controller"),
            verification_method=[VerificationMethod.from_dict(m) for m in data.get("verificationMethod", [])],
            authentication=list(data.get("authentication", [])),
            assertion_method=list(data.get("assertionMethod", [])),
            service=[ServiceEndpoint.from_dict(s) for s in data.get("service", [])],
            context=list(data.get("@context", DID_CONTEXT)),
        )


@dataclass
class DIDDocumentConfig:
    """Everything needed to build a DID document in one step."""
    did: str
    controller: Optional[str] = None
    verification_methods: Sequence[VerificationMethod] = ()
    authentication: Sequence[str] = ()
    assertion_method: Sequence[str] = ()
    services: Sequence[ServiceEndpoint] = ()
    consent_endpoint: Optional[str] = None
    tibet_endpoint: Optional[str] = None


def build_did_document(config: DIDDocumentConfig) -> DIDDocument:
    """
    Build a DID document from a configuration.

    consent_endpoint and tibet_endpoint add the BilateralConsentService and
    TIBETProvenanceService entries under their conventional fragments.
    """
    if not is_valid_did(config.did):
        raise InvalidDIDError(f"Invalid DID: {config.did}")

    services = list(config.services)
    if config.consent_endpoint:
        services.append(ServiceEndpoint(
            id=f"{config.did}#bilateral-consent",
            type="BilateralConsentService",
            service_endpoint=config.consent_endpoint,
        ))
    if config.tibet_endpoint:
        services.append(ServiceEndpoint(
            id=f"{config.did}#tibet-provenance",
            type="TIBETProvenanceService",
            service_endpoint=config.tibet_endpoint,
        ))

    return DIDDocument(
        id=config.did,
        controller=config.controller,
        verification_method=list(config.verification_methods),
        authentication=list(config.authentication),
        assertion_method=list(config.assertion_method),
        service=services,
    )
