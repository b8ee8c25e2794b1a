"""
Signature Engine - keyed digest over serialized disclosures

Scheme: SHA-256(message || secret), lowercase hex.

Trust model
-----------
This is a shared-secret scheme, not public-key signing. The secret is
the holder's own digital id, the same value carried in the payload's
``sharedBy``. Anyone who knows that id can verify a disclosure, and
anyone who knows it can also forge one. Replacing it with asymmetric
signing changes the wire format; any such replacement keeps the
verify(message, signature, claimed_signer) call shape.
"""

import asyncio
import hashlib
import logging

from cryptography.hazmat.primitives import constant_time

logger = logging.getLogger("SignatureEngine")


class SignatureEngine:
    """
    Computes and verifies keyed digests

    Features:
    - Deterministic signing (no nonce, no timestamp in the derivation)
    - Constant-time verification
    - Async variants that run the digest off the event loop
    """

    ALGORITHM = "sha256-concat"

    # ==================== SIGNING ====================

    def sign(self, message: str, secret: str) -> str:
        """
        Sign a serialized message

        Args:
            message: Canonical serialization of a payload
            secret: Signing secret (the holder's digital id)

        Returns:
            Lowercase hex digest
        """
        digest = hashlib.sha256((message + secret).encode("utf-8"))
        return digest.hexdigest()

    async def sign_async(self, message: str, secret: str) -> str:
        return await asyncio.to_thread(self.sign, message, secret)

    # ==================== VERIFICATION ====================

    def verify(self, message: str, signature: str, secret: str) -> bool:
        """
        Verify a signature by recomputing it

        Args:
            message: Canonical serialization of the payload without signature
            signature: Hex signature from the envelope
            secret: Claimed signer (the payload's sharedBy)

        Returns:
            True only on exact match
        """
        if not isinstance(signature, str):
            return False

        expected = self.sign(message, secret)
        is_valid = constant_time.bytes_eq(
            expected.encode("utf-8"),
            signature.encode("utf-8")
        )
        if not is_valid:
            logger.debug("Signature mismatch for signer %s", secret)
        return is_valid

    async def verify_async(self, message: str, signature: str, secret: str) -> bool:
        return await asyncio.to_thread(self.verify, message, signature, secret)
