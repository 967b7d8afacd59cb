"""
REST backend client.
Every request is authenticated from the SessionContext and every failure is
mapped onto the monitor's error taxonomy.
"""
import asyncio
from typing import Any, Generator, Optional, Union

import httpx
from pydantic import ValidationError

from coldtrack.core.config import settings
from coldtrack.core.errors import AuthError, BackendTimeout, TransportError
from coldtrack.core.logging import get_logger
from coldtrack.core.session import SessionContext
from coldtrack.schemas import (
    AnalyticsResult,
    BranchRef,
    DateRangeQuery,
    EventFilter,
    EventRecord,
    ExecutiveSummary,
    SensorRef,
    UserProfile,
)


logger = get_logger(__name__)

MAX_RETRY_DELAY_SECONDS = 8.0


class SessionAuth(httpx.Auth):
    """Attach the session's bearer token to each outgoing request."""

    def __init__(self, session: SessionContext):
        self.session = session

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        # Unauthenticated requests still go out; the backend answers 401.
        if self.session.active:
            request.headers["Authorization"] = f"Bearer {self.session.bearer_token()}"
        yield request


def _unwrap_list(body: Any) -> list:
    """List endpoints answer either a bare list or a paginated {"results": [...]}."""
    if isinstance(body, dict) and "results" in body:
        return body["results"]
    if isinstance(body, list):
        return body
    raise TransportError("Respuesta inesperada del servidor")


class BackendClient:
    """
    Typed client for the ColdTrack REST backend.

    Usage:
        async with BackendClient(session) as client:
            branches = await client.list_branches(active_only=True)
    """

    def __init__(
        self,
        session: SessionContext,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self.max_retries = settings.api_max_retries if max_retries is None else max_retries
        self.retry_backoff = settings.api_retry_backoff_seconds if retry_backoff is None else retry_backoff
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.api_url,
            headers={"Content-Type": "application/json"},
            timeout=settings.api_timeout_seconds if timeout is None else timeout,
            auth=SessionAuth(session),
            transport=transport,
        )

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[Any] = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body (None for 204).

        Connection failures are retried up to `max_retries` times with a
        doubling delay. Timeouts and 401s are never retried.

        Raises:
            AuthError: 401 from the backend
            BackendTimeout: No answer within the configured timeout
            TransportError: Network failure, error status or malformed body
        """
        retry_delay = self.retry_backoff
        attempt = 0

        while True:
            try:
                response = await self._client.request(method, path, params=params, json=json)
                break
            except httpx.TimeoutException as e:
                logger.warning("api.timeout", method=method, path=path, error=str(e))
                raise BackendTimeout("El servidor no respondió a tiempo") from e
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    logger.error("api.unreachable", method=method, path=path, error=str(e), attempts=attempt + 1)
                    raise TransportError(f"No se pudo conectar con el servidor: {e}") from e
                attempt += 1
                logger.warning(
                    "api.retrying",
                    method=method,
                    path=path,
                    error=str(e),
                    attempt=attempt,
                    retry_in=retry_delay,
                )
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, MAX_RETRY_DELAY_SECONDS)

        if response.status_code == httpx.codes.UNAUTHORIZED:
            logger.warning("api.session_expired", method=method, path=path)
            raise AuthError()

        if response.is_error:
            logger.warning(
                "api.error_status",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise TransportError(
                f"El servidor respondió {response.status_code}",
                status_code=response.status_code,
            )

        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            logger.warning("api.malformed_body", method=method, path=path)
            raise TransportError("Respuesta inesperada del servidor") from e

    @staticmethod
    def _parse(model, data: Any):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning("api.unexpected_shape", model=model.__name__, error=str(e))
            raise TransportError("Respuesta inesperada del servidor") from e

    def _parse_list(self, model, body: Any) -> list:
        return [self._parse(model, item) for item in _unwrap_list(body)]

    # Auth

    async def verify_token(self, token: str) -> UserProfile:
        body = await self._request("POST", "/auth/verify-token/", json={"token": token})
        user = body.get("user") if isinstance(body, dict) else None
        return self._parse(UserProfile, user)

    async def get_current_user(self) -> UserProfile:
        body = await self._request("GET", "/auth/me/")
        return self._parse(UserProfile, body)

    # Branches

    async def list_branches(self, active_only: bool = False) -> list[BranchRef]:
        path = "/sucursales/activas/" if active_only else "/sucursales/"
        return self._parse_list(BranchRef, await self._request("GET", path))

    async def create_branch(self, data: dict) -> BranchRef:
        return self._parse(BranchRef, await self._request("POST", "/sucursales/", json=data))

    async def update_branch(self, branch_id: int, data: dict) -> BranchRef:
        return self._parse(BranchRef, await self._request("PUT", f"/sucursales/{branch_id}/", json=data))

    async def delete_branch(self, branch_id: int) -> None:
        await self._request("DELETE", f"/sucursales/{branch_id}/")

    # Sensors (camaras)

    async def list_sensors(self, branch_id: Optional[Union[int, str]] = None) -> list[SensorRef]:
        params = {"sucursal_id": str(branch_id)} if branch_id is not None else None
        return self._parse_list(SensorRef, await self._request("GET", "/camaras/", params=params))

    async def get_sensor(self, sensor_id: int) -> SensorRef:
        return self._parse(SensorRef, await self._request("GET", f"/camaras/{sensor_id}/"))

    async def get_live_status(self, sensor_id: int) -> dict:
        return await self._request("GET", f"/camaras/{sensor_id}/live_status/")

    async def create_sensor(self, data: dict) -> SensorRef:
        return self._parse(SensorRef, await self._request("POST", "/camaras/", json=data))

    async def update_sensor(self, sensor_id: int, data: dict) -> SensorRef:
        return self._parse(SensorRef, await self._request("PUT", f"/camaras/{sensor_id}/", json=data))

    async def delete_sensor(self, sensor_id: int) -> None:
        await self._request("DELETE", f"/camaras/{sensor_id}/")

    # Users

    async def list_users(self, params: Optional[dict] = None) -> list[UserProfile]:
        return self._parse_list(UserProfile, await self._request("GET", "/users/", params=params))

    async def create_user(self, data: dict) -> UserProfile:
        return self._parse(UserProfile, await self._request("POST", "/users/", json=data))

    async def update_user(self, user_id: int, data: dict) -> UserProfile:
        return self._parse(UserProfile, await self._request("PUT", f"/users/{user_id}/", json=data))

    async def delete_user(self, user_id: int) -> None:
        await self._request("DELETE", f"/users/{user_id}/")

    # Events

    async def list_events(self, filters: Optional[EventFilter] = None) -> list[EventRecord]:
        params = filters.to_params() if filters else None
        return self._parse_list(EventRecord, await self._request("GET", "/eventos/", params=params))

    async def update_event(self, event_id: int, data: dict) -> EventRecord:
        return self._parse(EventRecord, await self._request("PATCH", f"/eventos/{event_id}/", json=data))

    # Executive analytics

    async def get_executive_analytics(
        self,
        query: DateRangeQuery,
        camera_id: Union[int, str] = "todas",
    ) -> AnalyticsResult:
        params = {
            "fechaInicio": query.start_date.isoformat(),
            "fechaFin": query.end_date.isoformat(),
            "camaraId": str(camera_id),
        }
        body = await self._request("GET", "/dashboard/analisis-ejecutivo/", params=params)
        return self._parse(AnalyticsResult, body)

    async def save_executive_summary(self, summary: ExecutiveSummary) -> dict:
        payload = summary.model_dump(mode="json", by_alias=True)
        return await self._request("POST", "/dashboard/guardar-resumen-ejecutivo/", json=payload)

    async def list_executive_summaries(self, params: Optional[dict] = None) -> dict:
        body = await self._request("GET", "/dashboard/resumenes-ejecutivos/", params=params)
        return body or {"total": 0}
