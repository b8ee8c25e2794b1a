"""
Revocation Registry
===================

Maps credential ids to revocation metadata. Stands in for a public
revocation ledger: issuer tooling writes to it, the verifier reads it.

One instance is created and injected into both roles. When a store is
given, the whole ``revocationList`` collection is written back after
each change (last writer wins).
"""

import logging
import threading
from typing import Optional, Iterable, List, Dict

from .models import RevocationEntry, utc_now_iso
from .credential_store import CredentialStore, REVOCATION_KEY

logger = logging.getLogger("RevocationRegistry")


class RevocationRegistry:
    """
    Revocation status of credentials

    Features:
    - Idempotent revoke
    - Reinstate (removes every entry for the id)
    - Single and any-of lookups
    """

    def __init__(self, store: Optional[CredentialStore] = None):
        self.store = store
        self._lock = threading.Lock()
        self._entries: List[RevocationEntry] = []

        if store is not None:
            self._entries = [
                RevocationEntry.from_dict(e) for e in store.get(REVOCATION_KEY, [])
            ]

    def _persist(self):
        if self.store is not None:
            self.store.set(REVOCATION_KEY, [e.to_dict() for e in self._entries])

    # ==================== ISSUER ACTIONS ====================

    def revoke(self, credential_id: str) -> RevocationEntry:
        """
        Revoke a credential

        Revoking an already revoked id is a no-op.

        Returns:
            The (new or existing) revocation entry
        """
        with self._lock:
            for entry in self._entries:
                if entry.credential_id == credential_id:
                    return entry

            entry = RevocationEntry(
                credential_id=credential_id,
                revocation_date=utc_now_iso()
            )
            self._entries.append(entry)
            self._persist()

        logger.info("Revoked credential %s", credential_id)
        return entry

    def reinstate(self, credential_id: str) -> bool:
        """
        Remove all revocation entries for a credential

        Returns:
            True if the credential was revoked before the call
        """
        with self._lock:
            remaining = [e for e in self._entries if e.credential_id != credential_id]
            changed = len(remaining) != len(self._entries)
            if changed:
                self._entries = remaining
                self._persist()

        if changed:
            logger.info("Reinstated credential %s", credential_id)
        return changed

    # ==================== QUERIES ====================

    def is_revoked(self, credential_id: str) -> bool:
        with self._lock:
            return any(e.credential_id == credential_id for e in self._entries)

    def is_any_revoked(self, credential_ids: Iterable[str]) -> bool:
        """True if at least one of the ids is revoked (bundle semantics)"""
        ids = set(credential_ids)
        with self._lock:
            return any(e.credential_id in ids for e in self._entries)

    def get_entry(self, credential_id: str) -> Optional[RevocationEntry]:
        with self._lock:
            for entry in self._entries:
                if entry.credential_id == credential_id:
                    return entry
        return None

    def list_entries(self) -> List[RevocationEntry]:
        with self._lock:
            return list(self._entries)

    def revoked_ids(self) -> set:
        with self._lock:
            return {e.credential_id for e in self._entries}

    def get_statistics(self) -> Dict[str, int]:
        return {"total_revoked": len(self.revoked_ids())}
