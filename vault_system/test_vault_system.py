"""
Identity Vault Tests
====================

Tests for disclosure, transfer, revocation and verification
"""

import json
import time
import asyncio
import tempfile
import dataclasses
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from vault_system.models import (
    Field,
    Credential,
    Bundle,
    BundleField,
    SingleDisclosure,
    SignedEnvelope,
)
from vault_system.signature_engine import SignatureEngine
from vault_system.disclosure_builder import DisclosureBuilder, canonical_serialize
from vault_system.transfer_codec import TransferCodec
from vault_system.revocation_registry import RevocationRegistry
from vault_system.credential_store import CredentialStore
from vault_system.camera import CameraScanner
from vault_system.credential_verifier import (
    CredentialVerifier,
    VerifierState,
    FailureKind,
)
from vault_system.document_analyzer import DocumentAnalyzer
from vault_system.vault_service import VaultService
from vault_system.exceptions import (
    EmptySelection,
    PayloadTooLarge,
    NoCodeFound,
    MalformedPayload,
    InvalidSchema,
    CameraUnavailable,
    InvalidTransition,
    CredentialNotFound,
    VaultLocked,
)

ACTOR = "did:x:1"
FIXED_TIME = "2024-05-01T12:00:00.000Z"


def fixed_clock():
    return FIXED_TIME


def passport() -> Credential:
    return Credential(
        id="c1",
        document_type="Passport",
        fields=[Field("Name", "Alice"), Field("DOB", "2000-01-01")]
    )


def blank_frame() -> np.ndarray:
    return np.full((240, 240, 3), 255, dtype=np.uint8)


class FakeCaptureDevice:
    """Serves queued frames, then blank frames forever"""

    def __init__(self, frames=None):
        self.frames = list(frames or [])
        self.reads = 0
        self.released = False

    def read_frame(self):
        self.reads += 1
        if self.frames:
            return self.frames.pop(0)
        return blank_frame()

    def release(self):
        self.released = True


class LostCaptureDevice(FakeCaptureDevice):
    """Opens fine, then fails on the first read"""

    def read_frame(self):
        self.reads += 1
        raise RuntimeError("device lost")


class SlowCaptureDevice(FakeCaptureDevice):
    """Blocks the calling thread on every read, like a real capture"""

    def __init__(self, frames=None, delay=0.05):
        super().__init__(frames)
        self.delay = delay

    def read_frame(self):
        time.sleep(self.delay)
        return super().read_frame()


class TestSignatureEngine:
    """Test SignatureEngine functionality"""

    def setup_method(self):
        self.engine = SignatureEngine()

    def test_sign_is_deterministic_hex(self):
        first = self.engine.sign("message", "secret")
        second = self.engine.sign("message", "secret")

        assert first == second
        assert len(first) == 64
        assert first == first.lower()
        int(first, 16)

    def test_round_trip(self):
        message = canonical_serialize(passport().to_dict())
        signature = self.engine.sign(message, ACTOR)

        assert self.engine.verify(message, signature, ACTOR) == True
        print("✅ sign/verify round trip")

    def test_single_byte_mutation_fails(self):
        message = '{"fields":[{"key":"Name","value":"Alice"}]}'
        signature = self.engine.sign(message, ACTOR)

        for position in range(len(message)):
            mutated = message[:position] + chr(ord(message[position]) ^ 1) + message[position + 1:]
            assert self.engine.verify(mutated, signature, ACTOR) == False

    def test_wrong_secret_fails(self):
        signature = self.engine.sign("message", ACTOR)
        assert self.engine.verify("message", signature, "did:x:2") == False

    def test_non_string_signature_fails(self):
        assert self.engine.verify("message", None, ACTOR) == False
        assert self.engine.verify("message", 12345, ACTOR) == False

    def test_async_matches_sync(self):
        async def run():
            signature = await self.engine.sign_async("message", ACTOR)
            valid = await self.engine.verify_async("message", signature, ACTOR)
            return signature, valid

        signature, valid = asyncio.run(run())
        assert signature == self.engine.sign("message", ACTOR)
        assert valid == True


class TestDisclosureBuilder:
    """Test DisclosureBuilder functionality"""

    def setup_method(self):
        self.engine = SignatureEngine()
        self.builder = DisclosureBuilder(self.engine, clock=fixed_clock)
        self.credential = Credential(
            id="c9",
            document_type="Driver License",
            fields=[Field("A", "1"), Field("B", "2"), Field("C", "3")]
        )

    def test_credential_is_immutable(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            self.credential.document_type = "Passport"

        generated = Credential(document_type="Passport")
        assert generated.id
        assert generated.issuance_date.endswith("Z")

    def test_selection_integrity(self):
        envelope = self.builder.build_credential_disclosure(self.credential, {"B", "A"}, ACTOR)

        assert [f.key for f in envelope.fields] == ["A", "B"]
        assert "C" not in [f.key for f in envelope.fields]
        assert envelope.disclosure.credential_id == "c9"
        assert envelope.disclosure.document_type == "Driver License"
        assert envelope.shared_by == ACTOR
        print("✅ Selection {A,B} discloses exactly A and B")

    def test_empty_selection_rejected(self):
        with pytest.raises(EmptySelection):
            self.builder.build_credential_disclosure(self.credential, set(), ACTOR)

    def test_selection_of_unknown_keys_rejected(self):
        with pytest.raises(EmptySelection):
            self.builder.build_credential_disclosure(self.credential, {"Z"}, ACTOR)

    def test_signature_covers_canonical_payload(self):
        envelope = self.builder.build_credential_disclosure(self.credential, {"A"}, ACTOR)
        message = canonical_serialize(envelope.disclosure)

        assert envelope.signature == self.engine.sign(message, ACTOR)

    def test_canonical_serialization_layout(self):
        disclosure = SingleDisclosure(
            credential_id="c1",
            document_type="Passport",
            shared_by=ACTOR,
            timestamp=FIXED_TIME,
            fields=(Field("Name", "Alice"),)
        )

        assert canonical_serialize(disclosure) == (
            '{"credentialId":"c1","documentType":"Passport","sharedBy":"did:x:1",'
            '"timestamp":"2024-05-01T12:00:00.000Z","fields":[{"key":"Name","value":"Alice"}]}'
        )

    def test_canonical_serialization_is_stable(self):
        first = self.builder.build_credential_disclosure(self.credential, {"A", "C"}, ACTOR)
        second = self.builder.build_credential_disclosure(self.credential, ["C", "A"], ACTOR)

        assert canonical_serialize(first.disclosure) == canonical_serialize(second.disclosure)
        assert first.signature == second.signature

    def test_bundle_disclosure_uses_all_fields(self):
        bundle = Bundle(name="Job application", fields=[
            BundleField("c1", "Passport", "Name", "Alice"),
            BundleField("c2", "Degree", "University", "MIT"),
        ])

        envelope = self.builder.build_bundle_disclosure(bundle, ACTOR)
        data = envelope.to_dict()

        assert data["bundleName"] == "Job application"
        assert "documentType" not in data
        assert "credentialId" not in data
        assert len(data["fields"]) == 2
        assert data["fields"][1] == {
            "credentialId": "c2",
            "credentialType": "Degree",
            "key": "University",
            "value": "MIT"
        }
        assert list(data.keys())[-1] == "signature"

    def test_empty_bundle_rejected(self):
        with pytest.raises(EmptySelection):
            self.builder.build_bundle_disclosure(Bundle(name="Empty"), ACTOR)

    def test_async_build_matches_sync(self):
        bundle = Bundle(name="B", fields=[BundleField("c1", "Passport", "Name", "Alice")])

        async def run():
            single = await self.builder.build_credential_disclosure_async(
                self.credential, {"A"}, ACTOR
            )
            many = await asyncio.gather(*[
                self.builder.build_bundle_disclosure_async(bundle, ACTOR) for _ in range(5)
            ])
            return single, many

        single, many = asyncio.run(run())
        assert single == self.builder.build_credential_disclosure(self.credential, {"A"}, ACTOR)
        assert len({e.signature for e in many}) == 1


class TestTransferCodec:
    """Test TransferCodec functionality"""

    def setup_method(self):
        self.codec = TransferCodec()
        self.builder = DisclosureBuilder(clock=fixed_clock)
        self.envelope = self.builder.build_credential_disclosure(passport(), {"Name"}, ACTOR)

    def test_encode_decode_round_trip(self):
        raw = self.codec.encode(self.envelope)
        candidate = self.codec.decode(raw)

        assert list(candidate.keys())[-1] == "signature"
        assert SignedEnvelope.from_dict(candidate) == self.envelope
        assert self.codec.parse(raw) == self.envelope

    def test_decode_malformed(self):
        with pytest.raises(MalformedPayload):
            self.codec.decode("not json {")
        with pytest.raises(MalformedPayload):
            self.codec.decode("[1, 2, 3]")
        with pytest.raises(MalformedPayload):
            self.codec.decode(b"\xff\xfe")

    def test_structural_check(self):
        valid = self.envelope.to_dict()

        both = dict(valid, bundleName="x")
        no_signature = {k: v for k, v in valid.items() if k != "signature"}
        no_credential_id = {k: v for k, v in valid.items() if k != "credentialId"}
        empty_fields = dict(valid, fields=[])
        extra_key = dict(valid, note="unsigned")
        bad_field = dict(valid, fields=[{"key": "Name"}])
        numeric_value = dict(valid, fields=[{"key": "Age", "value": 30}])
        neither = {k: v for k, v in valid.items() if k not in ("credentialId", "documentType")}

        for candidate in (both, no_signature, no_credential_id, empty_fields,
                          extra_key, bad_field, numeric_value, neither):
            with pytest.raises(InvalidSchema):
                SignedEnvelope.from_dict(candidate)

    def test_missing_timestamp_is_named(self):
        no_timestamp = {k: v for k, v in self.envelope.to_dict().items() if k != "timestamp"}

        with pytest.raises(InvalidSchema, match="Missing required keys: timestamp"):
            SignedEnvelope.from_dict(no_timestamp)

    def test_render_and_scan(self):
        image = self.codec.render(self.envelope)

        assert isinstance(image, Image.Image)
        assert self.codec.scan(image) == self.codec.encode(self.envelope)
        print("✅ QR render/scan round trip")

    def test_scan_png_bytes(self):
        png = self.codec.render_png(self.envelope)

        assert png.startswith(b"\x89PNG")
        assert self.codec.scan(png) == self.codec.encode(self.envelope)

    def test_render_data_url(self):
        assert self.codec.render_data_url(self.envelope).startswith("data:image/png;base64,")

    def test_scan_without_code(self):
        with pytest.raises(NoCodeFound):
            self.codec.scan(Image.new("RGB", (200, 200), "white"))
        with pytest.raises(NoCodeFound):
            self.codec.scan(b"definitely not an image")

    def test_payload_too_large(self):
        credential = Credential(
            document_type="Huge",
            fields=[Field(f"Field {i}", "x" * 200) for i in range(60)]
        )
        envelope = self.builder.build_credential_disclosure(
            credential, {f.key for f in credential.fields}, ACTOR
        )

        with pytest.raises(PayloadTooLarge):
            self.codec.render(envelope)

    def test_capacity_limit_respected(self):
        small_codec = TransferCodec(max_version=2)

        with pytest.raises(PayloadTooLarge):
            small_codec.render(self.envelope)

    def test_multi_field_bundle_fits(self):
        bundle = Bundle(name="Onboarding", fields=[
            BundleField(f"cred-{i % 4}", "Passport", f"Key {i}", f"Value {i}")
            for i in range(16)
        ])
        envelope = self.builder.build_bundle_disclosure(bundle, ACTOR)

        assert isinstance(self.codec.render(envelope), Image.Image)


class TestRevocationRegistry:
    """Test RevocationRegistry functionality"""

    def setup_method(self):
        self.registry = RevocationRegistry()

    def test_revocation_monotonicity(self):
        assert self.registry.is_revoked("c1") == False

        self.registry.revoke("c1")
        assert self.registry.is_revoked("c1") == True
        assert self.registry.is_revoked("c1") == True

        self.registry.reinstate("c1")
        assert self.registry.is_revoked("c1") == False

    def test_revoke_is_idempotent(self):
        first = self.registry.revoke("c1")
        second = self.registry.revoke("c1")

        assert first == second
        assert len(self.registry.list_entries()) == 1
        assert first.revocation_date.endswith("Z")

    def test_reinstate_not_revoked_is_noop(self):
        assert self.registry.reinstate("c1") == False
        assert self.registry.list_entries() == []

    def test_is_any_revoked(self):
        self.registry.revoke("c2")

        assert self.registry.is_any_revoked({"c1", "c2"}) == True
        assert self.registry.is_any_revoked({"c1", "c3"}) == False
        assert self.registry.is_any_revoked(set()) == False

    def test_persistence(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "vault.json"
            RevocationRegistry(CredentialStore(path)).revoke("c1")

            reloaded = RevocationRegistry(CredentialStore(path))
            assert reloaded.is_revoked("c1") == True

            reloaded.reinstate("c1")
            assert RevocationRegistry(CredentialStore(path)).is_revoked("c1") == False


class TestCredentialVerifier:
    """Test CredentialVerifier state machine"""

    def setup_method(self):
        self.registry = RevocationRegistry()
        self.codec = TransferCodec()
        self.builder = DisclosureBuilder(clock=fixed_clock)
        self.verifier = CredentialVerifier(self.registry, codec=self.codec)
        self.envelope = self.builder.build_credential_disclosure(passport(), {"Name"}, ACTOR)

    def test_end_to_end_verified(self):
        raw = self.codec.encode(self.envelope)
        result = self.verifier.verify_qr_data(raw)

        assert result.status == VerifierState.VERIFIED
        assert result.is_valid == True
        assert result.fields == [Field("Name", "Alice")]
        assert result.disclosure.credential_id == "c1"
        assert result.disclosure.document_type == "Passport"
        assert result.transitions == [
            VerifierState.IDLE,
            VerifierState.ACQUIRING,
            VerifierState.DECODING,
            VerifierState.STRUCTURAL_CHECK,
            VerifierState.REVOCATION_CHECK,
            VerifierState.SIGNATURE_CHECK,
            VerifierState.VERIFIED,
        ]
        assert all(result.checks.values())
        print("✅ Valid disclosure verified")

    def test_forgery_detected(self):
        data = self.envelope.to_dict()
        data["fields"][0]["value"] = "Bob"

        result = self.verifier.verify_qr_data(json.dumps(data))

        assert result.status == VerifierState.FAILED
        assert result.failure == FailureKind.TAMPERED_OR_FORGED
        assert result.reason
        print("✅ Tampered disclosure detected")

    def test_wrong_signer_detected(self):
        data = self.envelope.to_dict()
        data["sharedBy"] = "did:x:2"

        result = self.verifier.verify_qr_data(json.dumps(data))
        assert result.failure == FailureKind.TAMPERED_OR_FORGED

    def test_known_identifier_can_forge(self):
        # Shared-secret model: knowing sharedBy is enough to sign
        data = self.envelope.to_dict()
        data["fields"][0]["value"] = "Mallory"
        forged = SignedEnvelope.from_dict(data).disclosure
        data["signature"] = SignatureEngine().sign(canonical_serialize(forged), ACTOR)

        assert self.verifier.verify_qr_data(json.dumps(data)).is_valid == True

    def test_revoked_never_reaches_signature_check(self):
        self.registry.revoke("c1")

        result = self.verifier.verify_envelope(self.envelope)

        assert result.status == VerifierState.FAILED
        assert result.failure == FailureKind.REVOKED
        assert VerifierState.SIGNATURE_CHECK not in result.transitions
        assert result.checks["signature"] == False

        self.registry.reinstate("c1")
        assert self.verifier.verify_envelope(self.envelope).is_valid == True

    def test_bundle_revocation_propagation(self):
        bundle = Bundle(name="Mixed", fields=[
            BundleField("c1", "Passport", "Name", "Alice"),
            BundleField("c2", "Degree", "University", "MIT"),
        ])
        envelope = self.builder.build_bundle_disclosure(bundle, ACTOR)
        assert self.verifier.verify_envelope(envelope).is_valid == True

        self.registry.revoke("c2")
        result = self.verifier.verify_envelope(envelope)

        assert result.failure == FailureKind.REVOKED
        assert result.disclosure.bundle_name == "Mixed"

    def test_malformed_payload(self):
        result = self.verifier.verify_qr_data("hello world")

        assert result.status == VerifierState.FAILED
        assert result.failure == FailureKind.MALFORMED_PAYLOAD
        assert result.transitions[-2] == VerifierState.DECODING

    def test_invalid_schema(self):
        result = self.verifier.verify_qr_data('{"sharedBy": "did:x:1", "fields": []}')

        assert result.failure == FailureKind.INVALID_SCHEMA
        assert result.transitions[-2] == VerifierState.STRUCTURAL_CHECK

    def test_verify_image(self):
        image = self.codec.render(self.envelope)
        result = self.verifier.verify_image(image)

        assert result.is_valid == True
        assert result.fields == [Field("Name", "Alice")]

    def test_image_without_code_is_terminal(self):
        result = self.verifier.verify_image(Image.new("RGB", (200, 200), "white"))

        assert result.status == VerifierState.FAILED
        assert result.failure == FailureKind.NO_CODE_FOUND
        assert result.transitions == [
            VerifierState.IDLE, VerifierState.ACQUIRING, VerifierState.FAILED
        ]

    def test_attempt_reenters_through_idle(self):
        attempt = self.verifier.new_attempt()
        attempt.process_qr_data("garbage")
        assert attempt.state == VerifierState.FAILED

        result = attempt.process_qr_data(self.codec.encode(self.envelope))

        assert attempt.state == VerifierState.VERIFIED
        assert result.is_valid == True
        assert attempt.history[:5] == [
            VerifierState.IDLE,
            VerifierState.ACQUIRING,
            VerifierState.DECODING,
            VerifierState.FAILED,
            VerifierState.IDLE,
        ]

    def test_acquisition_mid_flight_rejected(self):
        attempt = self.verifier.new_attempt()
        attempt.state = VerifierState.SIGNATURE_CHECK

        with pytest.raises(InvalidTransition):
            attempt.process_qr_data(self.codec.encode(self.envelope))

    def test_attempts_are_independent(self):
        first = self.verifier.verify_qr_data("garbage")
        second = self.verifier.verify_envelope(self.envelope)

        assert first.status == VerifierState.FAILED
        assert second.status == VerifierState.VERIFIED
        assert first.transitions[-1] == VerifierState.FAILED

    def test_result_to_dict(self):
        data = self.verifier.verify_envelope(self.envelope).to_dict()

        assert data["status"] == "verified"
        assert data["isValid"] == True
        assert data["kind"] == "single"
        assert data["disclosure"]["fields"] == [{"key": "Name", "value": "Alice"}]


class TestCameraScanning:
    """Test continuous camera acquisition and cancellation"""

    def setup_method(self):
        self.registry = RevocationRegistry()
        self.codec = TransferCodec()
        self.verifier = CredentialVerifier(self.registry, codec=self.codec)
        builder = DisclosureBuilder(clock=fixed_clock)
        self.envelope = builder.build_credential_disclosure(passport(), {"Name"}, ACTOR)

    def qr_frame(self) -> np.ndarray:
        rgb = np.array(self.codec.render(self.envelope).convert("RGB"))
        return rgb[:, :, ::-1].copy()

    def test_scan_continues_until_code_found(self):
        device = FakeCaptureDevice([blank_frame(), None, blank_frame(), self.qr_frame()])
        scanner = CameraScanner(self.codec, lambda: device, frame_interval=0)

        result = asyncio.run(self.verifier.verify_camera(scanner))

        assert result.is_valid == True
        assert device.reads == 4
        assert scanner.frames_scanned == 3
        assert device.released == True
        assert VerifierState.FAILED not in result.transitions

    def test_cancel_stops_loop_and_releases_device(self):
        device = FakeCaptureDevice()
        scanner = CameraScanner(self.codec, lambda: device, frame_interval=0.001)
        attempt = self.verifier.new_attempt()

        async def run():
            task = asyncio.create_task(attempt.verify_camera(scanner))
            await asyncio.sleep(0.05)
            assert attempt.state == VerifierState.ACQUIRING
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            reads_at_cancel = device.reads
            await asyncio.sleep(0.05)
            return reads_at_cancel

        reads_at_cancel = asyncio.run(run())

        assert device.released == True
        assert device.reads == reads_at_cancel
        assert attempt.state == VerifierState.IDLE
        print(f"✅ Camera released after {reads_at_cancel} frame(s)")

    def test_scanner_start_and_cancel(self):
        device = FakeCaptureDevice()
        scanner = CameraScanner(self.codec, lambda: device, frame_interval=0.001)

        async def run():
            task = scanner.start()
            await asyncio.sleep(0.02)
            assert scanner.is_running == True
            await scanner.cancel()
            return task

        task = asyncio.run(run())

        assert task.cancelled() == True
        assert scanner.is_running == False
        assert device.released == True

    def test_camera_unavailable(self):
        def broken_camera():
            raise CameraUnavailable("no camera")

        scanner = CameraScanner(self.codec, broken_camera, frame_interval=0)
        result = asyncio.run(self.verifier.verify_camera(scanner))

        assert result.status == VerifierState.FAILED
        assert result.failure == FailureKind.CAMERA_UNAVAILABLE

    def test_camera_open_error_is_unavailable(self):
        def crashing_camera():
            raise RuntimeError("driver crashed")

        scanner = CameraScanner(self.codec, crashing_camera, frame_interval=0)

        with pytest.raises(CameraUnavailable):
            asyncio.run(scanner.scan())

    def test_device_lost_during_scan(self):
        device = LostCaptureDevice()
        scanner = CameraScanner(self.codec, lambda: device, frame_interval=0)
        attempt = self.verifier.new_attempt()

        result = asyncio.run(attempt.verify_camera(scanner))

        assert result.status == VerifierState.FAILED
        assert result.failure == FailureKind.CAMERA_UNAVAILABLE
        assert attempt.state == VerifierState.FAILED
        assert device.released == True

        # The attempt can start over after the failure
        retry = attempt.process_qr_data(self.codec.encode(self.envelope))
        assert retry.is_valid == True
        print("✅ Lost camera fails the attempt and releases the device")

    def test_scan_keeps_event_loop_responsive(self):
        device = SlowCaptureDevice([blank_frame(), blank_frame(), self.qr_frame()], delay=0.05)
        scanner = CameraScanner(self.codec, lambda: device, frame_interval=0)

        async def run():
            ticks = 0
            task = asyncio.create_task(self.verifier.verify_camera(scanner))
            while not task.done():
                ticks += 1
                await asyncio.sleep(0.005)
            return await task, ticks

        result, ticks = asyncio.run(run())

        assert result.is_valid == True
        assert device.reads == 3
        assert ticks >= 10

    def test_frame_count_resets_between_scans(self):
        devices = iter([
            FakeCaptureDevice([blank_frame(), self.qr_frame()]),
            FakeCaptureDevice([self.qr_frame()]),
        ])
        scanner = CameraScanner(self.codec, lambda: next(devices), frame_interval=0)

        asyncio.run(scanner.scan())
        assert scanner.frames_scanned == 2

        asyncio.run(scanner.scan())
        assert scanner.frames_scanned == 1


class FailingAnalyzer(DocumentAnalyzer):
    def analyze(self, image_bytes, mime_type):
        raise RuntimeError("analyzer offline")


class TestVaultService:
    """Test VaultService integration"""

    def setup_method(self):
        self.service = VaultService(store=CredentialStore())
        self.digital_id = self.service.create_digital_id()

    def test_digital_id(self):
        assert self.digital_id.startswith("did:pixel:")
        assert self.service.digital_id == self.digital_id

    def test_add_document(self):
        credential = self.service.add_document(b"fake-image", "image/png")

        assert credential.document_type == "Mock Identity Card"
        assert credential.file_data_url.startswith("data:image/png;base64,")
        assert credential.ipfs_hash.startswith("ipfs://")
        assert self.service.get_credential(credential.id).fields == credential.fields

    def test_analyzer_failure_falls_back(self):
        service = VaultService(store=CredentialStore(), analyzer=FailingAnalyzer())
        service.create_digital_id()

        credential = service.add_document(b"fake-image", "image/jpeg")
        assert credential.document_type == "Fallback Document"

    def test_share_and_verify_credential(self):
        credential = self.service.add_document(b"fake-image", "image/png")

        envelope = self.service.share_credential(credential.id, ["Full Name"])
        result = self.service.verify_qr_data(self.service.codec.encode(envelope))

        assert result.is_valid == True
        assert result.fields == [Field("Full Name", "Jane Doe")]
        assert result.disclosure.shared_by == self.digital_id

    def test_bundle_flow_with_revocation(self):
        first = self.service.add_document(b"one", "image/png")
        second = self.service.add_credential(Credential(
            document_type="Degree",
            fields=[Field("University", "MIT")]
        ))

        bundle = self.service.create_bundle("Job", [
            (first.id, "Full Name"),
            (second.id, "University"),
            (first.id, "Full Name"),
        ])
        assert len(bundle.fields) == 2

        envelope = self.service.share_bundle(bundle.id)
        raw = self.service.codec.encode(envelope)
        assert self.service.verify_qr_data(raw).is_valid == True

        self.service.revoke_credential(second.id)
        assert self.service.verify_qr_data(raw).failure == FailureKind.REVOKED

        self.service.reinstate_credential(second.id)
        assert self.service.verify_qr_data(raw).is_valid == True

    def test_bundle_validation(self):
        credential = self.service.add_document(b"one", "image/png")

        with pytest.raises(ValueError):
            self.service.create_bundle("  ", [(credential.id, "Full Name")])
        with pytest.raises(EmptySelection):
            self.service.create_bundle("Empty", [])
        with pytest.raises(CredentialNotFound):
            self.service.create_bundle("Ghost", [("missing", "Full Name")])
        with pytest.raises(KeyError):
            self.service.create_bundle("Bad key", [(credential.id, "Nope")])

    def test_bundle_survives_credential_deletion(self):
        credential = self.service.add_document(b"one", "image/png")
        bundle = self.service.create_bundle("Keep", [(credential.id, "Full Name")])

        self.service.delete_credential(credential.id)

        envelope = self.service.share_bundle(bundle.id)
        assert self.service.verify_qr_data(self.service.codec.encode(envelope)).is_valid == True

    def test_share_requires_digital_id(self):
        service = VaultService(store=CredentialStore())
        credential = service.add_credential(passport())

        with pytest.raises(VaultLocked):
            service.share_credential(credential.id, ["Name"])
        with pytest.raises(VaultLocked):
            service.add_document(b"one", "image/png")

    def test_lock_keeps_revocation_list(self):
        credential = self.service.add_document(b"one", "image/png")
        self.service.revoke_credential(credential.id)

        self.service.lock()

        assert self.service.list_credentials() == []
        assert self.service.list_bundles() == []
        assert self.service.registry.is_revoked(credential.id) == True

    def test_credential_statuses(self):
        active = self.service.add_document(b"one", "image/png")
        revoked = self.service.add_document(b"two", "image/png")
        self.service.revoke_credential(revoked.id)

        statuses = {s["credentialId"]: s for s in self.service.credential_statuses()}

        assert statuses[active.id]["status"] == "active"
        assert statuses[revoked.id]["status"] == "revoked"
        assert statuses[revoked.id]["revocationDate"] is not None

    def test_revoke_unknown_credential(self):
        with pytest.raises(CredentialNotFound):
            self.service.revoke_credential("missing")

    def test_share_qr(self):
        credential = self.service.add_document(b"one", "image/png")
        envelope = self.service.share_credential(credential.id, ["Full Name"])

        shared = self.service.share_qr(envelope)

        assert shared["qrDataUrl"].startswith("data:image/png;base64,")
        assert json.loads(shared["payload"]) == shared["envelope"]

    def test_persistence(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "vault.json"
            service = VaultService(store=CredentialStore(path))
            service.create_digital_id()
            credential = service.add_document(b"one", "image/png")
            service.revoke_credential(credential.id)

            reloaded = VaultService(store=CredentialStore(path))

            assert reloaded.digital_id == service.digital_id
            assert reloaded.get_credential(credential.id).document_type == "Mock Identity Card"
            assert reloaded.registry.is_revoked(credential.id) == True

    def test_statistics(self):
        credential = self.service.add_document(b"one", "image/png")
        self.service.create_bundle("Stats", [(credential.id, "Full Name")])
        self.service.revoke_credential(credential.id)

        stats = self.service.get_statistics()

        assert stats["credentials"] == {"total": 1, "revoked": 1}
        assert stats["bundles"] == 1
        assert stats["revocations"]["total_revoked"] == 1
