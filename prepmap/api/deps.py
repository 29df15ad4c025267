"""
FastAPI dependencies: the shared facade and the caller's identity.

Identity is supplied upstream (gateway or session layer) as opaque headers;
no authorization decisions are made here.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from prepmap.orchestration.query_facade import QueryFacade

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"


class Identity(BaseModel):
    """Caller identity as supplied by the identity collaborator."""

    user_id: str
    role: Optional[str] = None


def get_facade(request: Request) -> QueryFacade:
    """Facade built during application startup."""
    facade = getattr(request.app.state, "facade", None)
    if facade is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Roadmap engine not initialized",
        )
    return facade


async def get_identity(
    user_id: Annotated[Optional[str], Header(alias=USER_ID_HEADER)] = None,
    role: Annotated[Optional[str], Header(alias=USER_ROLE_HEADER)] = None,
) -> Identity:
    """Current caller or raise 401."""
    if not user_id or not user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return Identity(user_id=user_id.strip(), role=role)


Facade = Annotated[QueryFacade, Depends(get_facade)]
CurrentUser = Annotated[Identity, Depends(get_identity)]
