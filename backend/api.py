import logging
from typing import List
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, UploadFile, HTTPException, Form
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import uvicorn

from vault_system import VaultService
from vault_system.config import settings
from vault_system.exceptions import (
    VaultError,
    EmptySelection,
    PayloadTooLarge,
    CredentialNotFound,
    BundleNotFound,
    VaultLocked,
)

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger("VaultAPI")

vault_service = None

ERROR_STATUS = {
    EmptySelection: 400,
    PayloadTooLarge: 413,
    CredentialNotFound: 404,
    BundleNotFound: 404,
    VaultLocked: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    global vault_service
    logger.info("Starting Identity Vault API...")
    vault_service = VaultService()
    logger.info(f"Vault service initialized (store: {settings.STORE_PATH or 'memory'})")
    yield
    logger.info("Shutting down...")

app = FastAPI(title="Identity Vault API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _service() -> VaultService:
    if vault_service is None:
        raise HTTPException(status_code=503, detail="Vault service not initialized")
    return vault_service


def _http_error(error: Exception) -> HTTPException:
    status = ERROR_STATUS.get(type(error), 400)
    return HTTPException(status_code=status, detail=str(error))


async def _read_image(file: UploadFile) -> bytes:
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="File must be an image")

    content = await file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(status_code=400, detail="File too large")
    return content


# ============================================================
# IDENTITY ENDPOINTS
# ============================================================

@app.post("/api/identity/create")
async def create_identity():
    """Create and unlock a new digital id"""
    digital_id = _service().create_digital_id()
    return {"digitalId": digital_id}


@app.post("/api/identity/unlock")
async def unlock_identity(digital_id: str = Form(...)):
    try:
        return {"digitalId": _service().unlock(digital_id)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/identity/lock")
async def lock_identity():
    """Forget the digital id, credentials and bundles (revocations are kept)"""
    _service().lock()
    return {"locked": True}


# ============================================================
# CREDENTIAL ENDPOINTS
# ============================================================

@app.post("/api/credential/add")
async def add_credential(file: UploadFile = File(...)):
    """
    Ingest a document image as a credential

    Fields are extracted by the configured document analyzer.
    """
    content = await _read_image(file)
    try:
        credential = _service().add_document(content, file.content_type)
    except VaultError as e:
        raise _http_error(e)
    return credential.to_dict()


@app.get("/api/credentials")
async def list_credentials():
    return {"credentials": [c.to_dict() for c in _service().list_credentials()]}


@app.delete("/api/credential/{credential_id}")
async def delete_credential(credential_id: str):
    try:
        _service().delete_credential(credential_id)
    except VaultError as e:
        raise _http_error(e)
    return {"deleted": credential_id}


@app.post("/api/credential/{credential_id}/share")
async def share_credential(credential_id: str, field_keys: List[str] = Form(...)):
    """
    Build a signed selective disclosure and its QR code

    Args:
        credential_id: Credential to disclose from
        field_keys: Keys of the fields to disclose
    """
    service = _service()
    try:
        envelope = await service.share_credential_async(credential_id, field_keys)
        return service.share_qr(envelope)
    except VaultError as e:
        raise _http_error(e)


# ============================================================
# BUNDLE ENDPOINTS
# ============================================================

class BundleFieldSelection(BaseModel):
    credentialId: str
    key: str


class BundleRequest(BaseModel):
    name: str
    fields: List[BundleFieldSelection]


@app.post("/api/bundle/create")
async def create_bundle(request: BundleRequest):
    selections = [(f.credentialId, f.key) for f in request.fields]
    try:
        bundle = _service().create_bundle(request.name, selections)
    except VaultError as e:
        raise _http_error(e)
    except (ValueError, KeyError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return bundle.to_dict()


@app.get("/api/bundles")
async def list_bundles():
    return {"bundles": [b.to_dict() for b in _service().list_bundles()]}


@app.delete("/api/bundle/{bundle_id}")
async def delete_bundle(bundle_id: str):
    try:
        _service().delete_bundle(bundle_id)
    except VaultError as e:
        raise _http_error(e)
    return {"deleted": bundle_id}


@app.post("/api/bundle/{bundle_id}/share")
async def share_bundle(bundle_id: str):
    service = _service()
    try:
        envelope = await service.share_bundle_async(bundle_id)
        return service.share_qr(envelope)
    except VaultError as e:
        raise _http_error(e)


# ============================================================
# ISSUER TOOLS - simulated public revocation ledger
# ============================================================

@app.get("/api/issuer/credentials")
async def issuer_credentials():
    return {"credentials": _service().credential_statuses()}


@app.post("/api/issuer/revoke/{credential_id}")
async def revoke_credential(credential_id: str):
    try:
        entry = _service().revoke_credential(credential_id)
    except VaultError as e:
        raise _http_error(e)
    return entry.to_dict()


@app.post("/api/issuer/reinstate/{credential_id}")
async def reinstate_credential(credential_id: str):
    try:
        was_revoked = _service().reinstate_credential(credential_id)
    except VaultError as e:
        raise _http_error(e)
    return {"credentialId": credential_id, "reinstated": was_revoked}


# ============================================================
# VERIFIER ENDPOINTS
# ============================================================

@app.post("/api/verify/image")
async def verify_image(file: UploadFile = File(...)):
    """Verify a disclosure from an uploaded QR code image"""
    content = await _read_image(file)
    return _service().verify_image(content).to_dict()


@app.post("/api/verify/payload")
async def verify_payload(payload: str = Form(...)):
    """Verify a disclosure from the raw scanned QR text"""
    return _service().verify_qr_data(payload).to_dict()


@app.get("/api/info")
async def get_info():
    return {
        "available": vault_service is not None,
        "statistics": _service().get_statistics()
    }


if __name__ == "__main__":
    uvicorn.run("backend.api:app", host="0.0.0.0", port=8000)
