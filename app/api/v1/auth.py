import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.dependencies import get_registry, oauth2_scheme
from app.chat.registry import SessionRegistry
from app.core.database import get_db
from app.core.messages import AUTH_INVALID_CREDENTIALS, AUTH_LOGOUT_SUCCESS
from app.core.security import create_access_token, verify_password
from app.models.user import Identity


logger = logging.getLogger("app.api.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    """Exchange email and password for an access token."""
    email = form_data.username.strip()
    identity = db.scalars(select(Identity).where(Identity.email == email)).first()
    if not identity or not verify_password(form_data.password, identity.password_hash):
        logger.info("Login failed: email=%s", email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=AUTH_INVALID_CREDENTIALS,
        )

    logger.info("Login succeeded: identity_id=%s", identity.id)
    return {
        "access_token": create_access_token(identity.id),
        "token_type": "bearer",
    }


@router.post("/logout")
async def logout(
    token: Annotated[str, Depends(oauth2_scheme)],
    registry: Annotated[SessionRegistry, Depends(get_registry)],
):
    """Sign out and tear down the live session bound to this token."""
    await registry.close(token)
    return {"detail": AUTH_LOGOUT_SUCCESS}
