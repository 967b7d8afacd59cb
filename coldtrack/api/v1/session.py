from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from coldtrack.core.dependencies import get_client, get_selection, get_session
from coldtrack.core.errors import AuthError, TransportError
from coldtrack.core.logging import get_logger
from coldtrack.core.session import SessionContext, login
from coldtrack.realtime.selection import SelectionStateMachine
from coldtrack.services.backend_client import BackendClient


router = APIRouter(tags=["Session"])
logger = get_logger(__name__)


class LoginRequest(BaseModel):
    token: str = Field(min_length=1)


@router.post("/session", status_code=status.HTTP_201_CREATED)
async def start_session(
    body: LoginRequest,
    session: SessionContext = Depends(get_session),
    client: BackendClient = Depends(get_client),
    selection: SelectionStateMachine = Depends(get_selection),
):
    """
    Verify an identity token with the backend and begin the session.

    Returns 401 if the backend rejects the token. A selection restore that
    could not run before sign-in is finished here.
    """
    user = await login(session, client, body.token)

    try:
        await selection.resume()
    except (AuthError, TransportError) as e:
        logger.warning("session.selection_restore_failed", error=str(e))

    return {
        "data": {
            "user": user.model_dump(),
            "expires_at": session.expires_at.isoformat() if session.expires_at else None,
            "is_admin": session.is_admin,
            "is_manager": session.is_manager,
            "is_deputy": session.is_deputy,
        }
    }


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    session: SessionContext = Depends(get_session),
):
    """End the session. Calling it without a session is a no-op."""
    session.end()
