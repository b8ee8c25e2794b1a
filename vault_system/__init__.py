"""
Identity Vault
==============

Self-sovereign credential vault with selective disclosure over QR codes.

Components:
- SignatureEngine: Keyed digest sign/verify (shared-secret model)
- DisclosureBuilder: Signed selective disclosures of credentials and bundles
- TransferCodec: Envelope <-> QR transport string <-> QR image
- RevocationRegistry: Issuer-side revocation status
- CredentialVerifier: Verification state machine (file, camera, raw data)
- VaultService: Service tying holder, issuer and verifier roles together
"""

from .models import (
    Field,
    Credential,
    BundleField,
    Bundle,
    RevocationEntry,
    SingleDisclosure,
    BundleDisclosure,
    SignedEnvelope,
)
from .signature_engine import SignatureEngine
from .disclosure_builder import DisclosureBuilder, canonical_serialize
from .transfer_codec import TransferCodec
from .revocation_registry import RevocationRegistry
from .credential_store import CredentialStore
from .camera import CameraScanner, OpenCVCaptureDevice
from .credential_verifier import (
    CredentialVerifier,
    VerificationAttempt,
    VerificationResult,
    VerifierState,
    FailureKind,
)
from .document_analyzer import DocumentAnalyzer, MockDocumentAnalyzer, AnalysisResult
from .vault_service import VaultService
from . import exceptions

__version__ = "1.0.0"
__all__ = [
    # Data model
    "Field",
    "Credential",
    "BundleField",
    "Bundle",
    "RevocationEntry",
    "SingleDisclosure",
    "BundleDisclosure",
    "SignedEnvelope",

    # Protocol
    "SignatureEngine",
    "DisclosureBuilder",
    "canonical_serialize",
    "TransferCodec",
    "RevocationRegistry",

    # Verification
    "CredentialVerifier",
    "VerificationAttempt",
    "VerificationResult",
    "VerifierState",
    "FailureKind",
    "CameraScanner",
    "OpenCVCaptureDevice",

    # Collaborators
    "CredentialStore",
    "DocumentAnalyzer",
    "MockDocumentAnalyzer",
    "AnalysisResult",

    # Service
    "VaultService",
    "exceptions",
]
