from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from app.chat.registry import SessionHandle, SessionRegistry
from app.core.exceptions import AuthError


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


async def get_session(
    token: Annotated[str, Depends(oauth2_scheme)],
    registry: Annotated[SessionRegistry, Depends(get_registry)],
) -> SessionHandle:
    """Resolve the caller's chat session, starting it on first use."""
    try:
        return await registry.open(token)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
