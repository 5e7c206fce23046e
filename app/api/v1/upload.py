"""Serving of stored chat attachments."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import FileResponse

from app.api.dependencies import get_session
from app.chat.registry import SessionHandle
from app.core.exceptions import UploadError

router = APIRouter(prefix="/upload", tags=["upload"])


@router.get("/files/{chat_id}/{filename}")
async def get_file(
    chat_id: str,
    filename: str,
    request: Request,
    session: Annotated[SessionHandle, Depends(get_session)],
):
    """Serve an attachment of a chat the caller participates in."""
    if not any(chat.id == chat_id for chat in session.synchronizer.chats):
        member_ids = await session.synchronizer.queries.member_chat_ids(
            session.synchronizer.current_user.id
        )
        if chat_id not in member_ids:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    storage = request.app.state.storage
    try:
        file_path = storage.resolve(f"{chat_id}/{filename}")
    except UploadError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    if not file_path.exists() or not file_path.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found",
        )

    return FileResponse(file_path, filename=filename)
