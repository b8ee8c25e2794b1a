"""
Vault Integration Service
=========================

Ties the vault components together for the three roles:
- Holder: digital id, credentials, bundles, sharing
- Issuer tools: revocation status of credentials
- Verifier: QR verification against the same revocation registry
"""

import uuid
import base64
import logging
from typing import Optional, Dict, Any, List, Iterable, Tuple

from .config import settings
from .models import Credential, Bundle, BundleField, SignedEnvelope
from .credential_store import (
    CredentialStore,
    CREDENTIALS_KEY,
    BUNDLES_KEY,
    DIGITAL_ID_KEY,
)
from .document_analyzer import DocumentAnalyzer, MockDocumentAnalyzer, fallback_result
from .signature_engine import SignatureEngine
from .disclosure_builder import DisclosureBuilder
from .transfer_codec import TransferCodec, ImageSource
from .revocation_registry import RevocationRegistry
from .credential_verifier import CredentialVerifier, VerificationResult
from .exceptions import (
    CredentialNotFound,
    BundleNotFound,
    EmptySelection,
    VaultLocked,
)

logger = logging.getLogger("VaultService")


class VaultService:
    """
    Main service class for vault operations

    Provides a unified interface for:
    - Digital id lifecycle
    - Document ingestion and credential management
    - Bundles and selective disclosure
    - Issuer revocation tooling
    - Verification
    """

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        analyzer: Optional[DocumentAnalyzer] = None,
        signature_engine: Optional[SignatureEngine] = None,
        codec: Optional[TransferCodec] = None
    ):
        """
        Initialize Vault Service

        Args:
            store: Collection store; defaults to settings.STORE_PATH
            analyzer: External document analyzer; defaults to the mock
            signature_engine: Digest engine shared by builder and verifier
            codec: QR transfer codec
        """
        self.store = store or CredentialStore(settings.STORE_PATH)
        self.analyzer = analyzer or MockDocumentAnalyzer()
        self.signature_engine = signature_engine or SignatureEngine()
        self.codec = codec or TransferCodec()

        self.builder = DisclosureBuilder(self.signature_engine)
        self.registry = RevocationRegistry(self.store)
        self.verifier = CredentialVerifier(
            registry=self.registry,
            signature_engine=self.signature_engine,
            codec=self.codec
        )

    # ==================== DIGITAL ID ====================

    @property
    def digital_id(self) -> Optional[str]:
        return self.store.get(DIGITAL_ID_KEY)

    def create_digital_id(self, unlock: bool = True) -> str:
        """
        Create a new self-issued digital id

        The id doubles as the signing secret for disclosures.
        """
        digital_id = f"did:{settings.DID_METHOD}:{uuid.uuid4()}"
        if unlock:
            self.unlock(digital_id)
        return digital_id

    def unlock(self, digital_id: str) -> str:
        digital_id = (digital_id or "").strip()
        if not digital_id:
            raise ValueError("Digital id must not be empty")
        self.store.set(DIGITAL_ID_KEY, digital_id)
        logger.info("Vault unlocked")
        return digital_id

    def lock(self):
        """
        Log out: forget the id, credentials and bundles

        The revocation list is kept; it stands in for a public ledger.
        """
        self.store.remove(DIGITAL_ID_KEY)
        self.store.remove(CREDENTIALS_KEY)
        self.store.remove(BUNDLES_KEY)
        logger.info("Vault locked")

    def _require_digital_id(self) -> str:
        digital_id = self.digital_id
        if not digital_id:
            raise VaultLocked("No digital id unlocked")
        return digital_id

    # ==================== CREDENTIALS ====================

    def add_document(self, image_bytes: bytes, mime_type: str) -> Credential:
        """
        Ingest a document image as a new credential

        The analyzer result is used as-is; if the analyzer raises, a
        degraded fallback result is stored instead.
        """
        self._require_digital_id()

        try:
            analysis = self.analyzer.analyze(image_bytes, mime_type)
        except Exception as e:
            logger.error(f"Document analysis failed, using fallback: {e}")
            analysis = fallback_result()

        encoded = base64.b64encode(image_bytes).decode("ascii")
        credential = Credential(
            document_type=analysis.document_type,
            fields=list(analysis.fields),
            issuer=settings.ISSUER_NAME,
            ipfs_hash=f"ipfs://{uuid.uuid4()}{uuid.uuid4()}",
            file_data_url=f"data:{mime_type};base64,{encoded}"
        )
        return self.add_credential(credential)

    def add_credential(self, credential: Credential) -> Credential:
        credentials = self.store.get(CREDENTIALS_KEY, [])
        credentials.append(credential.to_dict())
        self.store.set(CREDENTIALS_KEY, credentials)
        logger.info("Stored credential %s (%s)", credential.id, credential.document_type)
        return credential

    def list_credentials(self) -> List[Credential]:
        return [Credential.from_dict(c) for c in self.store.get(CREDENTIALS_KEY, [])]

    def get_credential(self, credential_id: str) -> Credential:
        for credential in self.list_credentials():
            if credential.id == credential_id:
                return credential
        raise CredentialNotFound(f"Credential not found: {credential_id}")

    def delete_credential(self, credential_id: str):
        """Delete a credential; bundles keep their copied fields"""
        credentials = self.store.get(CREDENTIALS_KEY, [])
        remaining = [c for c in credentials if c.get("id") != credential_id]
        if len(remaining) == len(credentials):
            raise CredentialNotFound(f"Credential not found: {credential_id}")
        self.store.set(CREDENTIALS_KEY, remaining)

    # ==================== BUNDLES ====================

    def create_bundle(self, name: str, selections: Iterable[Tuple[str, str]]) -> Bundle:
        """
        Create a bundle from (credential_id, field_key) selections

        Args:
            name: Bundle name
            selections: Fields to copy, in bundle order; repeats are ignored

        Returns:
            The stored Bundle
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Bundle name must not be empty")

        credentials = {c.id: c for c in self.list_credentials()}
        fields: List[BundleField] = []
        seen = set()

        for credential_id, key in selections:
            if (credential_id, key) in seen:
                continue
            credential = credentials.get(credential_id)
            if credential is None:
                raise CredentialNotFound(f"Credential not found: {credential_id}")
            source = credential.get_field(key)
            if source is None:
                raise KeyError(f"Credential {credential_id} has no field '{key}'")

            seen.add((credential_id, key))
            fields.append(BundleField(
                credential_id=credential.id,
                credential_type=credential.document_type,
                key=source.key,
                value=source.value
            ))

        if not fields:
            raise EmptySelection("A bundle needs at least one field")

        bundle = Bundle(name=name, fields=fields)
        bundles = self.store.get(BUNDLES_KEY, [])
        bundles.append(bundle.to_dict())
        self.store.set(BUNDLES_KEY, bundles)
        logger.info("Created bundle '%s' with %d field(s)", name, len(fields))
        return bundle

    def list_bundles(self) -> List[Bundle]:
        return [Bundle.from_dict(b) for b in self.store.get(BUNDLES_KEY, [])]

    def get_bundle(self, bundle_id: str) -> Bundle:
        for bundle in self.list_bundles():
            if bundle.id == bundle_id:
                return bundle
        raise BundleNotFound(f"Bundle not found: {bundle_id}")

    def delete_bundle(self, bundle_id: str):
        bundles = self.store.get(BUNDLES_KEY, [])
        remaining = [b for b in bundles if b.get("id") != bundle_id]
        if len(remaining) == len(bundles):
            raise BundleNotFound(f"Bundle not found: {bundle_id}")
        self.store.set(BUNDLES_KEY, remaining)

    # ==================== SHARING ====================

    def share_credential(self, credential_id: str, field_keys: Iterable[str]) -> SignedEnvelope:
        return self.builder.build_credential_disclosure(
            self.get_credential(credential_id),
            field_keys,
            self._require_digital_id()
        )

    def share_bundle(self, bundle_id: str) -> SignedEnvelope:
        return self.builder.build_bundle_disclosure(
            self.get_bundle(bundle_id),
            self._require_digital_id()
        )

    async def share_credential_async(
        self,
        credential_id: str,
        field_keys: Iterable[str]
    ) -> SignedEnvelope:
        return await self.builder.build_credential_disclosure_async(
            self.get_credential(credential_id),
            field_keys,
            self._require_digital_id()
        )

    async def share_bundle_async(self, bundle_id: str) -> SignedEnvelope:
        return await self.builder.build_bundle_disclosure_async(
            self.get_bundle(bundle_id),
            self._require_digital_id()
        )

    def share_qr(self, envelope: SignedEnvelope) -> Dict[str, Any]:
        """Envelope plus its rendered QR code as a PNG data URL"""
        return {
            "envelope": envelope.to_dict(),
            "payload": self.codec.encode(envelope),
            "qrDataUrl": self.codec.render_data_url(envelope)
        }

    # ==================== ISSUER TOOLS ====================

    def credential_statuses(self) -> List[Dict[str, Any]]:
        """Every credential in the vault with its revocation status"""
        statuses = []
        for credential in self.list_credentials():
            entry = self.registry.get_entry(credential.id)
            statuses.append({
                "credentialId": credential.id,
                "documentType": credential.document_type,
                "status": "revoked" if entry else "active",
                "revocationDate": entry.revocation_date if entry else None
            })
        return statuses

    def revoke_credential(self, credential_id: str):
        self.get_credential(credential_id)
        return self.registry.revoke(credential_id)

    def reinstate_credential(self, credential_id: str) -> bool:
        self.get_credential(credential_id)
        return self.registry.reinstate(credential_id)

    # ==================== VERIFICATION ====================

    def verify_qr_data(self, raw: str) -> VerificationResult:
        return self.verifier.verify_qr_data(raw)

    def verify_image(self, source: ImageSource) -> VerificationResult:
        return self.verifier.verify_image(source)

    # ==================== STATISTICS ====================

    def get_statistics(self) -> Dict[str, Any]:
        credentials = self.list_credentials()
        revoked = self.registry.revoked_ids()
        return {
            "digital_id": self.digital_id,
            "credentials": {
                "total": len(credentials),
                "revoked": sum(1 for c in credentials if c.id in revoked),
            },
            "bundles": len(self.list_bundles()),
            "revocations": self.registry.get_statistics()
        }
