"""
Redeems the in-memory backend's signed URLs.

Only mounted when ``blob_backend`` is ``memory``; with S3 the client talks
to the bucket directly.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from aethervault.api.deps import get_gateway
from aethervault.services.access_gateway import AccessGateway
from aethervault.services.blob_store import MemoryBlobStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/blobs", tags=["blobs"])


def get_memory_store(gateway: AccessGateway = Depends(get_gateway)) -> MemoryBlobStore:
    store = gateway.lifecycle.blob_store
    if not isinstance(store, MemoryBlobStore):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return store


def _require_signature(store: MemoryBlobStore, method: str, key: str, url_method: str, expires: int, signature: str):
    if url_method != method or not store.verify_signature(method, key, expires, signature):
        logger.warning(f"Rejected {method} for blob {key}: bad or expired signature")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired URL")


@router.put("/{key:path}", status_code=status.HTTP_204_NO_CONTENT)
async def put_blob(
    key: str,
    request: Request,
    method: str = Query(...),
    expires: int = Query(...),
    signature: str = Query(...),
    store: MemoryBlobStore = Depends(get_memory_store),
):
    _require_signature(store, "PUT", key, method, expires, signature)
    body = await request.body()
    store.put(key, body)
    logger.info(f"Stored {len(body)} bytes for blob {key}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{key:path}")
def get_blob(
    key: str,
    method: str = Query(...),
    expires: int = Query(...),
    signature: str = Query(...),
    store: MemoryBlobStore = Depends(get_memory_store),
):
    _require_signature(store, "GET", key, method, expires, signature)
    data = store.get(key)
    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blob not found")
    return Response(content=data, media_type="application/octet-stream")
