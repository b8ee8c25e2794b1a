"""
Vault Exceptions
================

Error taxonomy shared by the holder, issuer and verifier roles.

Verifier-side failures (NoCodeFound, MalformedPayload, InvalidSchema,
Revoked, TamperedOrForged, CameraUnavailable) are never fatal: the
verifier turns them into a FAILED result carrying a readable reason.
"""


class VaultError(Exception):
    """Base exception for all vault errors"""
    pass


# ==================== DISCLOSURE ====================

class EmptySelection(VaultError):
    """A disclosure was requested with no fields selected"""
    pass


class PayloadTooLarge(VaultError):
    """Encoded envelope exceeds the QR code capacity"""
    pass


# ==================== VERIFICATION ====================

class NoCodeFound(VaultError):
    """No QR code could be located in the supplied image or frame"""
    pass


class MalformedPayload(VaultError):
    """Scanned data is not a JSON object"""
    pass


class InvalidSchema(VaultError):
    """Payload is JSON but does not have the envelope shape"""
    pass


class Revoked(VaultError):
    """The credential (or one credential of a bundle) has been revoked"""
    pass


class TamperedOrForged(VaultError):
    """Signature does not match the payload"""
    pass


class CameraUnavailable(VaultError):
    """The capture device could not be opened"""
    pass


class InvalidTransition(VaultError):
    """Verifier state machine was driven out of order"""
    pass


# ==================== VAULT ====================

class CredentialNotFound(VaultError):
    pass


class BundleNotFound(VaultError):
    pass


class VaultLocked(VaultError):
    """Operation needs an unlocked digital id"""
    pass
