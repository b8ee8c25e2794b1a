"""
Credential Verifier
===================

Verifies disclosures scanned from QR codes.

Each verification is a VerificationAttempt that walks an explicit state
machine:

    IDLE -> ACQUIRING -> DECODING -> STRUCTURAL_CHECK
         -> REVOCATION_CHECK -> SIGNATURE_CHECK -> VERIFIED | FAILED

Attempts share no mutable state; the verifier only holds the injected
revocation registry, signature engine and codec.

Checks performed:
1. Decoding (JSON object)
2. Structure validation (single or bundle envelope)
3. Revocation check (any revoked credential fails a bundle)
4. Signature verification against the claimed sharer
"""

import asyncio
import logging
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from enum import Enum

from .models import Disclosure, SignedEnvelope, utc_now_iso
from .signature_engine import SignatureEngine
from .disclosure_builder import canonical_serialize
from .transfer_codec import TransferCodec, ImageSource
from .revocation_registry import RevocationRegistry
from .camera import CameraScanner
from .exceptions import (
    VaultError,
    NoCodeFound,
    MalformedPayload,
    InvalidSchema,
    Revoked,
    TamperedOrForged,
    CameraUnavailable,
    InvalidTransition,
)

logger = logging.getLogger("CredentialVerifier")


class VerifierState(Enum):
    """Verification state machine states"""
    IDLE = "idle"
    ACQUIRING = "acquiring"
    DECODING = "decoding"
    STRUCTURAL_CHECK = "structural_check"
    REVOCATION_CHECK = "revocation_check"
    SIGNATURE_CHECK = "signature_check"
    VERIFIED = "verified"
    FAILED = "failed"


class FailureKind(Enum):
    """Why an attempt ended in FAILED"""
    NO_CODE_FOUND = "no_code_found"
    MALFORMED_PAYLOAD = "malformed_payload"
    INVALID_SCHEMA = "invalid_schema"
    REVOKED = "revoked"
    TAMPERED_OR_FORGED = "tampered_or_forged"
    CAMERA_UNAVAILABLE = "camera_unavailable"


FAILURE_KINDS = {
    NoCodeFound: FailureKind.NO_CODE_FOUND,
    MalformedPayload: FailureKind.MALFORMED_PAYLOAD,
    InvalidSchema: FailureKind.INVALID_SCHEMA,
    Revoked: FailureKind.REVOKED,
    TamperedOrForged: FailureKind.TAMPERED_OR_FORGED,
    CameraUnavailable: FailureKind.CAMERA_UNAVAILABLE,
}

FAILURE_REASONS = {
    FailureKind.NO_CODE_FOUND: "No QR code found in the image. Please try another image.",
    FailureKind.MALFORMED_PAYLOAD: (
        "Failed to parse QR code data. It may not be a valid vault credential."
    ),
    FailureKind.INVALID_SCHEMA: (
        "Invalid QR code format. Required signature or fields are missing."
    ),
    FailureKind.REVOKED: (
        "Verification failed: this credential (or one in the bundle) "
        "has been revoked by the issuer."
    ),
    FailureKind.TAMPERED_OR_FORGED: "Tampering detected! The signature is invalid.",
    FailureKind.CAMERA_UNAVAILABLE: (
        "Could not access camera. Please ensure permissions are granted and try again."
    ),
}

TRANSITIONS = {
    VerifierState.IDLE: {VerifierState.ACQUIRING},
    VerifierState.ACQUIRING: {
        VerifierState.DECODING, VerifierState.FAILED, VerifierState.IDLE
    },
    VerifierState.DECODING: {VerifierState.STRUCTURAL_CHECK, VerifierState.FAILED},
    VerifierState.STRUCTURAL_CHECK: {VerifierState.REVOCATION_CHECK, VerifierState.FAILED},
    VerifierState.REVOCATION_CHECK: {VerifierState.SIGNATURE_CHECK, VerifierState.FAILED},
    VerifierState.SIGNATURE_CHECK: {VerifierState.VERIFIED, VerifierState.FAILED},
    VerifierState.VERIFIED: {VerifierState.IDLE},
    VerifierState.FAILED: {VerifierState.IDLE},
}


@dataclass
class VerificationResult:
    """Terminal outcome of one verification attempt"""
    status: VerifierState
    failure: Optional[FailureKind] = None
    reason: str = ""
    disclosure: Optional[Disclosure] = None
    checks: Dict[str, bool] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    transitions: List[VerifierState] = field(default_factory=list)
    verified_at: str = ""

    def __post_init__(self):
        if not self.verified_at:
            self.verified_at = utc_now_iso()

    @property
    def is_valid(self) -> bool:
        return self.status == VerifierState.VERIFIED

    @property
    def fields(self) -> list:
        return list(self.disclosure.fields) if self.disclosure else []

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "status": self.status.value,
            "isValid": self.is_valid,
            "failure": self.failure.value if self.failure else None,
            "reason": self.reason,
            "checks": self.checks,
            "errors": self.errors,
            "transitions": [s.value for s in self.transitions],
            "verifiedAt": self.verified_at
        }
        if self.disclosure:
            result["disclosure"] = self.disclosure.to_dict()
            result["kind"] = self.disclosure.kind
        return result


class VerificationAttempt:
    """
    One run of the verifier state machine

    Terminal states (VERIFIED, FAILED) are left only by starting a new
    acquisition, which returns the attempt to IDLE first.
    """

    def __init__(
        self,
        registry: RevocationRegistry,
        signature_engine: SignatureEngine,
        codec: TransferCodec
    ):
        self.registry = registry
        self.signature_engine = signature_engine
        self.codec = codec
        self.state = VerifierState.IDLE
        self.history: List[VerifierState] = [VerifierState.IDLE]
        self.result: Optional[VerificationResult] = None
        self._checks: Dict[str, bool] = {}

    # ==================== STATE HANDLING ====================

    def _move(self, new_state: VerifierState):
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Cannot move from {self.state.value} to {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    def _begin(self):
        if self.state in (VerifierState.VERIFIED, VerifierState.FAILED):
            self._move(VerifierState.IDLE)
        if self.state != VerifierState.IDLE:
            raise InvalidTransition(
                f"Cannot start an acquisition while {self.state.value}"
            )
        self.result = None
        self._checks = {"structure": False, "revocation": False, "signature": False}
        self._move(VerifierState.ACQUIRING)

    def _finish(self, disclosure: Disclosure) -> VerificationResult:
        self._move(VerifierState.VERIFIED)
        self.result = VerificationResult(
            status=VerifierState.VERIFIED,
            disclosure=disclosure,
            checks=dict(self._checks),
            transitions=list(self.history)
        )
        logger.info(
            "Verified %s disclosure '%s' shared by %s",
            disclosure.kind, disclosure.title, disclosure.shared_by
        )
        return self.result

    def _fail(self, error: VaultError, disclosure: Optional[Disclosure] = None) -> VerificationResult:
        kind = FAILURE_KINDS[type(error)]
        self._move(VerifierState.FAILED)
        self.result = VerificationResult(
            status=VerifierState.FAILED,
            failure=kind,
            reason=FAILURE_REASONS[kind],
            disclosure=disclosure,
            checks=dict(self._checks),
            errors=[str(error)],
            transitions=list(self.history)
        )
        logger.warning("Verification failed (%s): %s", kind.value, error)
        return self.result

    # ==================== ACQUISITION ====================

    def process_qr_data(self, raw: str) -> VerificationResult:
        """Verify a transport string that was already read from a code"""
        self._begin()
        return self._process(raw)

    def verify_image(self, source: ImageSource) -> VerificationResult:
        """
        Single-shot acquisition from an image file

        A missing code is terminal for this attempt.
        """
        self._begin()
        try:
            raw = self.codec.scan(source)
        except NoCodeFound as e:
            return self._fail(e)
        return self._process(raw)

    async def verify_camera(self, scanner: CameraScanner) -> VerificationResult:
        """
        Continuous acquisition from a live camera

        Frames without a code keep the attempt in ACQUIRING. Cancelling
        the awaiting task releases the camera and returns to IDLE.
        """
        self._begin()
        try:
            raw = await scanner.scan()
        except CameraUnavailable as e:
            return self._fail(e)
        except asyncio.CancelledError:
            self._move(VerifierState.IDLE)
            logger.info("Camera verification cancelled")
            raise
        return self._process(raw)

    # ==================== CHECKS ====================

    def _process(self, raw: str) -> VerificationResult:
        self._move(VerifierState.DECODING)
        try:
            candidate = self.codec.decode(raw)
        except MalformedPayload as e:
            return self._fail(e)

        self._move(VerifierState.STRUCTURAL_CHECK)
        try:
            envelope = SignedEnvelope.from_dict(candidate)
        except InvalidSchema as e:
            return self._fail(e)
        self._checks["structure"] = True
        disclosure = envelope.disclosure

        self._move(VerifierState.REVOCATION_CHECK)
        credential_ids = disclosure.credential_ids()
        if self.registry.is_any_revoked(credential_ids):
            revoked = sorted(credential_ids & self.registry.revoked_ids())
            return self._fail(
                Revoked(f"Revoked credential(s): {', '.join(revoked)}"),
                disclosure
            )
        self._checks["revocation"] = True

        self._move(VerifierState.SIGNATURE_CHECK)
        message = canonical_serialize(disclosure)
        if not self.signature_engine.verify(message, envelope.signature, disclosure.shared_by):
            return self._fail(
                TamperedOrForged(f"Signature does not match signer {disclosure.shared_by}"),
                disclosure
            )
        self._checks["signature"] = True

        return self._finish(disclosure)


class CredentialVerifier:
    """
    Verifies disclosure envelopes

    Features:
    - Raw string, image file and live camera acquisition
    - Revocation check through an injected registry
    - Shared-secret signature check against ``sharedBy``
    """

    def __init__(
        self,
        registry: RevocationRegistry,
        signature_engine: Optional[SignatureEngine] = None,
        codec: Optional[TransferCodec] = None
    ):
        self.registry = registry
        self.signature_engine = signature_engine or SignatureEngine()
        self.codec = codec or TransferCodec()

    def new_attempt(self) -> VerificationAttempt:
        return VerificationAttempt(self.registry, self.signature_engine, self.codec)

    # ==================== VERIFICATION ====================

    def verify_qr_data(self, raw: str) -> VerificationResult:
        return self.new_attempt().process_qr_data(raw)

    def verify_envelope(self, envelope: SignedEnvelope) -> VerificationResult:
        """Verify an in-memory envelope through its transport encoding"""
        return self.verify_qr_data(self.codec.encode(envelope))

    def verify_image(self, source: ImageSource) -> VerificationResult:
        return self.new_attempt().verify_image(source)

    async def verify_camera(
        self,
        scanner: Optional[CameraScanner] = None
    ) -> VerificationResult:
        scanner = scanner or CameraScanner(codec=self.codec)
        return await self.new_attempt().verify_camera(scanner)
