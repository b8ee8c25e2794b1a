"""
Disclosure Builder
==================

Builds signed selective disclosures from vault credentials and bundles.

A disclosure carries only the selected fields, the holder's digital id
(``sharedBy``) and a timestamp. It is serialized canonically and signed
with the holder's id as the secret (see signature_engine for the trust
model).
"""

import json
import logging
from typing import Optional, Iterable, Callable, Union

from .models import (
    Credential,
    Bundle,
    SingleDisclosure,
    BundleDisclosure,
    SignedEnvelope,
    utc_now_iso,
)
from .signature_engine import SignatureEngine
from .exceptions import EmptySelection

logger = logging.getLogger("DisclosureBuilder")


def canonical_serialize(payload: Union[SingleDisclosure, BundleDisclosure, dict]) -> str:
    """
    Serialize a disclosure to the exact string that gets signed

    Compact JSON, UTF-8, key order fixed by the disclosure model. The
    same disclosure always serializes to the same string.
    """
    data = payload if isinstance(payload, dict) else payload.to_dict()
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


class DisclosureBuilder:
    """
    Constructs and signs disclosure envelopes

    Features:
    - Single-credential disclosure with field selection
    - Bundle disclosure (bundle membership is the selection)
    - Async variants using the async digest
    """

    def __init__(
        self,
        signature_engine: Optional[SignatureEngine] = None,
        clock: Optional[Callable[[], str]] = None
    ):
        self.signature_engine = signature_engine or SignatureEngine()
        self.clock = clock or utc_now_iso

    # ==================== PAYLOAD ASSEMBLY ====================

    def credential_payload(
        self,
        credential: Credential,
        selected_field_keys: Iterable[str],
        actor_id: str
    ) -> SingleDisclosure:
        """
        Assemble the unsigned single-credential payload

        Raises:
            EmptySelection: if no credential field matches the selection
        """
        selected = set(selected_field_keys)
        fields = tuple(f for f in credential.fields if f.key in selected)

        if not fields:
            raise EmptySelection(
                f"No fields of credential {credential.id} selected for disclosure"
            )

        return SingleDisclosure(
            credential_id=credential.id,
            document_type=credential.document_type,
            shared_by=actor_id,
            timestamp=self.clock(),
            fields=fields
        )

    def bundle_payload(self, bundle: Bundle, actor_id: str) -> BundleDisclosure:
        """
        Assemble the unsigned bundle payload

        Raises:
            EmptySelection: if the bundle holds no fields
        """
        if not bundle.fields:
            raise EmptySelection(f"Bundle '{bundle.name}' has no fields")

        return BundleDisclosure(
            bundle_name=bundle.name,
            shared_by=actor_id,
            timestamp=self.clock(),
            fields=tuple(bundle.fields)
        )

    # ==================== SIGNED DISCLOSURES ====================

    def build_credential_disclosure(
        self,
        credential: Credential,
        selected_field_keys: Iterable[str],
        actor_id: str
    ) -> SignedEnvelope:
        """
        Build a signed disclosure of selected credential fields

        Args:
            credential: Source credential
            selected_field_keys: Keys to disclose; order follows the credential
            actor_id: Holder's digital id, also the signing secret

        Returns:
            SignedEnvelope
        """
        payload = self.credential_payload(credential, selected_field_keys, actor_id)
        signature = self.signature_engine.sign(canonical_serialize(payload), actor_id)
        logger.info(
            "Built disclosure of %d field(s) from credential %s",
            len(payload.fields), credential.id
        )
        return SignedEnvelope(disclosure=payload, signature=signature)

    def build_bundle_disclosure(self, bundle: Bundle, actor_id: str) -> SignedEnvelope:
        """Build a signed disclosure of every field in a bundle"""
        payload = self.bundle_payload(bundle, actor_id)
        signature = self.signature_engine.sign(canonical_serialize(payload), actor_id)
        logger.info(
            "Built bundle disclosure '%s' with %d field(s)",
            bundle.name, len(payload.fields)
        )
        return SignedEnvelope(disclosure=payload, signature=signature)

    async def build_credential_disclosure_async(
        self,
        credential: Credential,
        selected_field_keys: Iterable[str],
        actor_id: str
    ) -> SignedEnvelope:
        payload = self.credential_payload(credential, selected_field_keys, actor_id)
        signature = await self.signature_engine.sign_async(
            canonical_serialize(payload), actor_id
        )
        return SignedEnvelope(disclosure=payload, signature=signature)

    async def build_bundle_disclosure_async(
        self,
        bundle: Bundle,
        actor_id: str
    ) -> SignedEnvelope:
        payload = self.bundle_payload(bundle, actor_id)
        signature = await self.signature_engine.sign_async(
            canonical_serialize(payload), actor_id
        )
        return SignedEnvelope(disclosure=payload, signature=signature)
