from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING

from jose import jwt, JWTError

from coldtrack.core.errors import AuthError
from coldtrack.core.logging import get_logger
from coldtrack.schemas import UserProfile

if TYPE_CHECKING:
    from coldtrack.services.backend_client import BackendClient


logger = get_logger(__name__)


def token_expiry(token: str) -> Optional[datetime]:
    """
    Read the `exp` claim of an identity token without verifying it.

    The identity provider signs the token; the backend verifies it. This is
    only used to stop sending a token that has visibly expired.

    Returns:
        Expiry as an aware UTC datetime, or None if the token carries no
        readable `exp` claim
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None

    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


class SessionContext:
    """
    Identity of the signed-in user.

    Set at login with `begin()`, cleared at logout with `end()`. Every
    request-issuing component receives this object explicitly and reads the
    bearer token from it at send time.
    """

    def __init__(self) -> None:
        self._token: Optional[str] = None
        self._user: Optional[UserProfile] = None
        self._expires_at: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self._token is not None

    @property
    def user(self) -> Optional[UserProfile]:
        return self._user

    @property
    def expires_at(self) -> Optional[datetime]:
        return self._expires_at

    @property
    def is_admin(self) -> bool:
        return self._user is not None and self._user.role == "ADMIN"

    @property
    def is_manager(self) -> bool:
        return self._user is not None and self._user.role == "ENCARGADO"

    @property
    def is_deputy(self) -> bool:
        return self._user is not None and self._user.role == "SUBJEFE"

    def begin(self, token: str, user: Optional[UserProfile] = None) -> None:
        if not token:
            raise AuthError("Token de identidad vacío.")
        self._token = token
        self._user = user
        self._expires_at = token_expiry(token)
        logger.info(
            "session.started",
            user_id=user.id if user else None,
            role=user.role if user else None,
            expires_at=self._expires_at.isoformat() if self._expires_at else None,
        )

    def end(self) -> None:
        if self._token is not None:
            logger.info("session.ended", user_id=self._user.id if self._user else None)
        self._token = None
        self._user = None
        self._expires_at = None

    def bearer_token(self) -> str:
        """
        Token to attach to the next request.

        Raises:
            AuthError: No session, or the token's own expiry has passed
        """
        if self._token is None:
            raise AuthError("No hay una sesión activa.")
        if self._expires_at is not None and self._expires_at <= datetime.now(timezone.utc):
            logger.warning("session.token_expired", expires_at=self._expires_at.isoformat())
            raise AuthError()
        return self._token


async def login(session: SessionContext, client: "BackendClient", token: str) -> UserProfile:
    """
    Verify an identity token with the backend and begin the session.

    Raises:
        AuthError: The backend rejected the token
        TransportError: The backend could not be reached
    """
    user = await client.verify_token(token)
    session.begin(token, user)
    return user
