import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_session
from app.chat.notifications import error, info
from app.chat.registry import SessionHandle
from app.chat.schemas import AddUserRequest
from app.core.exceptions import ChatAppError
from app.core.messages import (
    TEST_USER_ADDED,
    TEST_USER_ADDED_DESCRIPTION,
    USER_ADD_FAILED,
    USER_ADDED,
    USER_ADDED_DESCRIPTION,
)


logger = logging.getLogger("app.api.users")

router = APIRouter(prefix="/users", tags=["users"])

Session = Annotated[SessionHandle, Depends(get_session)]


@router.get("")
async def list_users(session: Session):
    users = await session.directory.list_users()
    return [user.model_dump(mode="json") for user in users]


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_user(payload: AddUserRequest, session: Session):
    """Create a sign-in identity and profile for a new user."""
    try:
        user = await session.directory.add_user(
            payload.email, payload.full_name, payload.phone_number
        )
    except ChatAppError as e:
        session.notifier.notify(error(USER_ADD_FAILED, str(e)))
        raise

    session.notifier.notify(info(USER_ADDED, USER_ADDED_DESCRIPTION))
    await session.synchronizer.load_directory()
    return user.model_dump(mode="json")


@router.post("/default", status_code=status.HTTP_201_CREATED)
async def add_default_user(session: Session):
    """Create the built-in test user."""
    try:
        user = await session.directory.add_default_user()
    except ChatAppError as e:
        session.notifier.notify(error(USER_ADD_FAILED, str(e)))
        raise

    session.notifier.notify(info(TEST_USER_ADDED, TEST_USER_ADDED_DESCRIPTION))
    await session.synchronizer.load_directory()
    return user.model_dump(mode="json")
