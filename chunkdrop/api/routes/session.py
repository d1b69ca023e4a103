from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ...config import ENCODING_NAME, SESSION_RATE_LIMIT
from ...models.requests import SessionCreateRequest
from ...models.session import SessionStatus
from ...services.session_registry import SessionRegistry
from ...utils.exceptions import SessionError
from ..dependencies import get_rate_limit_dependency, get_session_registry

router = APIRouter(prefix="/api/session")


@router.post("", dependencies=get_rate_limit_dependency(SESSION_RATE_LIMIT))
def create_session(
    payload: Optional[SessionCreateRequest] = None,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Create an upload session.

    Args:
        payload (SessionCreateRequest, optional): Session policy fields
        registry (SessionRegistry): Registry dependency

    Returns:
        dict: Response containing:
            - success (bool): Always true
            - sessionId (str): Identifier of the new session
            - uploadUrl (str): Page the depositor opens to upload the file
            - pollUrl (str): Status endpoint the consumer polls

    Example:
        Response format:
        {
            "success": true,
            "sessionId": "q3V9xk1T0bYc8aLm",
            "uploadUrl": "/upload/q3V9xk1T0bYc8aLm",
            "pollUrl": "/api/session/q3V9xk1T0bYc8aLm/status"
        }
    """
    payload = payload or SessionCreateRequest()
    session = registry.create(payload.to_policy())

    return {
        "success": True,
        "sessionId": session.id,
        "uploadUrl": f"/upload/{session.id}",
        "pollUrl": f"/api/session/{session.id}/status",
    }


@router.get("/{session_id}")
def get_session_config(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    """Return the session policy so the upload page can render it."""
    try:
        session = registry.get(session_id)
    except SessionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    policy = session.policy
    return {
        "id": session.id,
        "config": {
            "title": policy.title,
            "allowedTypes": sorted(policy.allowed_extensions),
            "maxSize": policy.max_size_bytes,
            "smartCut": policy.smart_cut,
            "cleanOutput": policy.sanitize_output,
        },
        "status": registry.status_of(session).value,
    }


@router.get("/{session_id}/status")
def get_session_status(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    """
    Report whether the file is ready, polled by the consumer.

    Returns:
        dict: ``status`` and ``ready``; once a file is uploaded also
        ``filename``, ``filesize``, ``encoding``, ``totalChunks`` and ``chunksDelivered``
    """
    try:
        session = registry.get(session_id)
    except SessionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    with session.lock:
        if not session.is_ready:
            return {"status": SessionStatus.WAITING.value, "ready": False}

        return {
            "status": session.status.value,
            "ready": True,
            "filename": session.file.original_name,
            "filesize": session.file.original_size_bytes,
            "encoding": ENCODING_NAME,
            "totalChunks": session.total_chunks,
            "chunksDelivered": session.delivered_count,
        }


@router.get("/{session_id}/chunk/{index}")
def get_chunk(session_id: str, index: int, registry: SessionRegistry = Depends(get_session_registry)):
    """Fetch one encoded chunk by position."""
    try:
        delivery = registry.deliver_chunk(session_id, index)
    except SessionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return {
        "index": delivery.index,
        "totalChunks": delivery.total_chunks,
        "isLast": delivery.is_last,
        "data": delivery.data,
    }


@router.get("/{session_id}/all")
def get_all_chunks(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    """
    Fetch every chunk at once, keyed ``c0`` to ``cN``, and claim the session.

    Example:
        Response format:
        {
            "filename": "save.json",
            "encoding": "gzip+base64",
            "totalChunks": 2,
            "c0": "H4sIAAAAAAAA...",
            "c1": "H4sIAAAAAAAA..."
        }
    """
    try:
        bundle = registry.deliver_all(session_id)
    except SessionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    response = {
        "filename": bundle.filename,
        "encoding": ENCODING_NAME,
        "totalChunks": bundle.total_chunks,
    }
    for i, chunk in enumerate(bundle.chunks):
        response[f"c{i}"] = chunk

    return response
