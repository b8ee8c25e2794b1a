"""
Vault Data Model
================

Credentials held in the vault, bundles built from them, revocation
entries, and the disclosure payloads that travel inside a QR code.

Wire names are camelCase; every model converts with to_dict()/from_dict().
A disclosure is a tagged union: SingleDisclosure | BundleDisclosure.
The variant is decided once, when an envelope is parsed.
"""

import uuid
from typing import Optional, Dict, Any, List, Union
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .exceptions import InvalidSchema


def utc_now_iso() -> str:
    """Current UTC time, ISO-8601 with milliseconds and a Z suffix"""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Field:
    """Atomic disclosed datum"""
    key: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Field":
        return cls(key=data["key"], value=data["value"])


@dataclass(frozen=True)
class BundleField:
    """A Field annotated with the credential it was copied from"""
    credential_id: str
    credential_type: str
    key: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "credentialId": self.credential_id,
            "credentialType": self.credential_type,
            "key": self.key,
            "value": self.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BundleField":
        return cls(
            credential_id=data["credentialId"],
            credential_type=data["credentialType"],
            key=data["key"],
            value=data["value"]
        )


@dataclass(frozen=True)
class Credential:
    """
    A vault-held record of the fields extracted from one document.

    Never mutated after creation.
    """
    document_type: str
    fields: List[Field] = field(default_factory=list)
    id: str = ""
    issuer: str = ""
    issuance_date: str = ""
    ipfs_hash: str = ""
    file_data_url: str = ""

    def __post_init__(self):
        if not self.id:
            object.__setattr__(self, "id", str(uuid.uuid4()))
        if not self.issuance_date:
            object.__setattr__(self, "issuance_date", utc_now_iso())

    def get_field(self, key: str) -> Optional[Field]:
        for f in self.fields:
            if f.key == key:
                return f
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "documentType": self.document_type,
            "issuer": self.issuer,
            "issuanceDate": self.issuance_date,
            "ipfsHash": self.ipfs_hash,
            "fileDataUrl": self.file_data_url,
            "fields": [f.to_dict() for f in self.fields]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(
            id=data.get("id", ""),
            document_type=data.get("documentType", ""),
            issuer=data.get("issuer", ""),
            issuance_date=data.get("issuanceDate", ""),
            ipfs_hash=data.get("ipfsHash", ""),
            file_data_url=data.get("fileDataUrl", ""),
            fields=[Field.from_dict(f) for f in data.get("fields", [])]
        )


@dataclass
class Bundle:
    """A named, holder-curated set of fields drawn from several credentials"""
    name: str
    fields: List[BundleField] = field(default_factory=list)
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = str(uuid.uuid4())

    def credential_ids(self) -> set:
        return {f.credential_id for f in self.fields}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bundle":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            fields=[BundleField.from_dict(f) for f in data.get("fields", [])]
        )


@dataclass(frozen=True)
class RevocationEntry:
    credential_id: str
    revocation_date: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "credentialId": self.credential_id,
            "revocationDate": self.revocation_date
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RevocationEntry":
        return cls(
            credential_id=data["credentialId"],
            revocation_date=data.get("revocationDate", "")
        )


# ==================== DISCLOSURE PAYLOADS ====================

@dataclass(frozen=True)
class SingleDisclosure:
    """Selected fields of one credential"""
    credential_id: str
    document_type: str
    shared_by: str
    timestamp: str
    fields: tuple

    kind = "single"

    def credential_ids(self) -> set:
        return {self.credential_id}

    @property
    def title(self) -> str:
        return self.document_type

    def to_dict(self) -> Dict[str, Any]:
        # Key order is part of the signed message; do not reorder.
        return {
            "credentialId": self.credential_id,
            "documentType": self.document_type,
            "sharedBy": self.shared_by,
            "timestamp": self.timestamp,
            "fields": [f.to_dict() for f in self.fields]
        }


@dataclass(frozen=True)
class BundleDisclosure:
    """All fields of a bundle, each tagged with its source credential"""
    bundle_name: str
    shared_by: str
    timestamp: str
    fields: tuple

    kind = "bundle"

    def credential_ids(self) -> set:
        return {f.credential_id for f in self.fields}

    @property
    def title(self) -> str:
        return self.bundle_name

    def to_dict(self) -> Dict[str, Any]:
        # Key order is part of the signed message; do not reorder.
        return {
            "bundleName": self.bundle_name,
            "sharedBy": self.shared_by,
            "timestamp": self.timestamp,
            "fields": [f.to_dict() for f in self.fields]
        }


Disclosure = Union[SingleDisclosure, BundleDisclosure]


SINGLE_KEYS = {"credentialId", "documentType", "sharedBy", "timestamp", "fields", "signature"}
BUNDLE_KEYS = {"bundleName", "sharedBy", "timestamp", "fields", "signature"}
FIELD_KEYS = {"key", "value"}
BUNDLE_FIELD_KEYS = {"credentialId", "credentialType", "key", "value"}


@dataclass(frozen=True)
class SignedEnvelope:
    """A disclosure plus its signature: the unit actually transferred"""
    disclosure: Disclosure
    signature: str

    @property
    def shared_by(self) -> str:
        return self.disclosure.shared_by

    @property
    def fields(self) -> tuple:
        return self.disclosure.fields

    def to_dict(self) -> Dict[str, Any]:
        envelope = self.disclosure.to_dict()
        envelope["signature"] = self.signature
        return envelope

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignedEnvelope":
        """
        Structural check of a decoded candidate.

        Raises:
            InvalidSchema: if the candidate is not exactly one of the two
                envelope shapes
        """
        if not isinstance(data, dict):
            raise InvalidSchema("Payload is not an object")

        has_single = "credentialId" in data or "documentType" in data
        has_bundle = "bundleName" in data

        if has_single == has_bundle:
            raise InvalidSchema(
                "Payload must carry either documentType/credentialId or bundleName"
            )

        allowed = SINGLE_KEYS if has_single else BUNDLE_KEYS
        missing = sorted(allowed - data.keys())
        if missing:
            raise InvalidSchema(f"Missing required keys: {', '.join(missing)}")
        unknown = sorted(data.keys() - allowed)
        if unknown:
            raise InvalidSchema(f"Unexpected keys: {', '.join(unknown)}")

        for key in allowed - {"fields"}:
            if not isinstance(data[key], str):
                raise InvalidSchema(f"{key} must be a string")

        raw_fields = data["fields"]
        if not isinstance(raw_fields, list) or not raw_fields:
            raise InvalidSchema("fields must be a non-empty list")

        field_keys = FIELD_KEYS if has_single else BUNDLE_FIELD_KEYS
        for item in raw_fields:
            if not isinstance(item, dict) or set(item.keys()) != field_keys:
                raise InvalidSchema("Field entries have the wrong shape")
            if not all(isinstance(v, str) for v in item.values()):
                raise InvalidSchema("Field entries must contain strings")

        if has_single:
            disclosure = SingleDisclosure(
                credential_id=data["credentialId"],
                document_type=data["documentType"],
                shared_by=data["sharedBy"],
                timestamp=data["timestamp"],
                fields=tuple(Field.from_dict(f) for f in raw_fields)
            )
        else:
            disclosure = BundleDisclosure(
                bundle_name=data["bundleName"],
                shared_by=data["sharedBy"],
                timestamp=data["timestamp"],
                fields=tuple(BundleField.from_dict(f) for f in raw_fields)
            )

        return cls(disclosure=disclosure, signature=data["signature"])
