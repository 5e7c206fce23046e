"""Chat inbox endpoints driving the caller's session synchronizer."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from app.api.dependencies import get_session
from app.chat.registry import SessionHandle
from app.chat.schemas import CreateChatRequest, FilterRequest, OutgoingAttachment
from app.core.messages import (
    CHAT_CREATE_FAILED,
    CHAT_NOT_FOUND,
    ERROR_BAD_REQUEST,
    MESSAGE_SEND_FAILED,
)


router = APIRouter(prefix="/chat", tags=["chat"])

Session = Annotated[SessionHandle, Depends(get_session)]


@router.get("/state")
def get_state(session: Session):
    """Full view of the session: chats, active chat, messages and filters."""
    return session.synchronizer.snapshot()


@router.get("/chats")
def list_chats(session: Session):
    return [chat.model_dump(mode="json") for chat in session.synchronizer.chats]


@router.post("/chats", status_code=status.HTTP_201_CREATED)
async def create_chat(payload: CreateChatRequest, session: Session):
    """Create a chat with the caller and the given participants, then open it."""
    chat = await session.synchronizer.create_chat(payload.name, payload.participant_ids)
    if chat is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=CHAT_CREATE_FAILED)
    return chat.model_dump(mode="json")


@router.post("/chats/{chat_id}/select")
async def select_chat(chat_id: str, session: Session):
    chat = await session.synchronizer.select_chat_by_id(chat_id)
    if chat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=CHAT_NOT_FOUND)
    return session.synchronizer.snapshot()


@router.get("/messages")
def list_messages(session: Session):
    """Messages of the active chat, oldest first."""
    return [message.model_dump(mode="json") for message in session.synchronizer.messages]


@router.post("/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    session: Session,
    content: str = Form(""),
    file: Optional[UploadFile] = File(None),
):
    """Send a message, with an optional attachment, to the active chat.

    The message reaches the session's message list through the live feed.
    """
    synchronizer = session.synchronizer
    if synchronizer.active_chat is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No active chat")

    attachment = None
    if file is not None and file.filename:
        attachment = OutgoingAttachment(
            filename=file.filename,
            data=await file.read(),
            content_type=file.content_type,
        )

    if not content.strip() and attachment is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=ERROR_BAD_REQUEST)

    message = await synchronizer.send_message(content, attachment)
    if message is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MESSAGE_SEND_FAILED)
    return message.model_dump(mode="json")


@router.post("/filters")
async def apply_filters(payload: FilterRequest, session: Session):
    """Filter the chat list. Each supplied dimension replaces the list in turn."""
    await session.synchronizer.apply_filters(
        search_text=payload.search_text,
        label_id=payload.label_id,
        assignee_id=payload.assignee_id,
    )
    return [chat.model_dump(mode="json") for chat in session.synchronizer.chats]


@router.get("/labels")
def list_labels(session: Session):
    return [label.model_dump(mode="json") for label in session.synchronizer.labels]


@router.get("/notifications")
def drain_notifications(session: Session):
    """Pending notifications for clients without a WebSocket connection."""
    return [notification.to_dict() for notification in session.notifier.drain()]
