"""
config.py - Central settings for the identity vault
"""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class VaultSettings(BaseSettings):
    # Storage (None keeps everything in memory)
    STORE_PATH: Optional[Path] = None

    # Identity
    DID_METHOD: str = "pixel"
    ISSUER_NAME: str = "Identity Vault Issuer"

    # QR rendering
    QR_ERROR_CORRECTION: str = "M"  # L(7%), M(15%), Q(25%), H(30%)
    QR_MAX_VERSION: int = 40        # 177x177 modules
    QR_BOX_SIZE: int = 10
    QR_BORDER: int = 4

    # Camera scanning
    CAMERA_INDEX: int = 0
    CAMERA_FRAME_INTERVAL: float = 1 / 60  # one frame per display refresh

    # API
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB
    LOG_LEVEL: str = "INFO"

    class Config:
        env_prefix = "VAULT_"
        env_file = ".env"


settings = VaultSettings()
