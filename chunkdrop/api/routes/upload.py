import html
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse

from ...config import MAX_FILE_SIZE, UPLOAD_RATE_LIMIT
from ...services.session_registry import SessionRegistry
from ...utils.exceptions import SessionError
from ..dependencies import get_rate_limit_dependency, get_session_registry

router = APIRouter()


@router.post("/api/upload/{session_id}", dependencies=get_rate_limit_dependency(UPLOAD_RATE_LIMIT))
async def upload_file(
    session_id: str,
    file: Annotated[UploadFile, File(description="File to deposit into the session")],
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Handle the single file upload of a session and encode it into chunks.

    Args:
        session_id (str): Target session
        file (UploadFile): Uploaded file
        registry (SessionRegistry): Registry dependency

    Returns:
        dict: Response containing:
            - success (bool): Always true
            - filename (str): Original filename
            - originalSize (int): Uploaded size in bytes
            - compressedSize (int): Total characters over all encoded chunks
            - chunks (int): Number of chunks
            - compressionRatio (str): Size saving as a percentage

    Raises:
        HTTPException: 404 for an unknown session, 400 when the session already
            holds a file or the file is empty, too large or of a disallowed type

    Example:
        Response format:
        {
            "success": true,
            "filename": "save.json",
            "originalSize": 12000,
            "compressedSize": 3140,
            "chunks": 2,
            "compressionRatio": "73.8%"
        }
    """
    try:
        # Read at most one byte past the global cap
        contents = await file.read(MAX_FILE_SIZE + 1)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to read file: {str(e)}",
        )

    try:
        summary = await run_in_threadpool(
            registry.attach_upload,
            session_id,
            contents,
            file.filename or "",
            file.content_type or "application/octet-stream",
        )
    except SessionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return {
        "success": True,
        "filename": summary.original_name,
        "originalSize": summary.original_size,
        "compressedSize": summary.encoded_size,
        "chunks": summary.chunk_count,
        "compressionRatio": f"{summary.compression_ratio * 100:.1f}%",
    }


@router.get("/upload/{session_id}")
def upload_page(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    """
    Render a simple HTML upload form for a session.

    Returns:
        HTMLResponse: Basic HTML form posting to the upload endpoint
    """
    try:
        session = registry.get(session_id)
    except SessionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    accept = ",".join(sorted(session.policy.allowed_extensions))
    content = f"""
    <body>
    <h1>{html.escape(session.policy.title)}</h1>
    <form action="/api/upload/{html.escape(session.id)}" enctype="multipart/form-data" method="post">
    <input name="file" type="file" accept="{html.escape(accept)}">
    <input type="submit">
    </form>
    </body>
    """
    return HTMLResponse(content=content)
