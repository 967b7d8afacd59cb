"""
Executive analytics request coordinator.

Validates the date range, queries the backend and decides which response
may update the displayed result. Only the most recently issued query can
commit; anything older is discarded when it resolves.
"""
import asyncio
import time
from typing import Optional, Union

from coldtrack.api.v1.metrics import analytics_queries_total, analytics_query_latency_seconds
from coldtrack.core.config import settings
from coldtrack.core.errors import (
    AuthError,
    BackendTimeout,
    ColdTrackError,
    QueryError,
    QueryErrorKind,
    TransportError,
)
from coldtrack.core.logging import get_logger
from coldtrack.core.session import SessionContext
from coldtrack.schemas import AnalyticsResult, DateRangeQuery, ExecutiveSummary, SummaryAuthor
from coldtrack.services.backend_client import BackendClient
from coldtrack.services.interpretation import Interpretation, interpret_kpis


logger = get_logger(__name__)


def validate_range(query: DateRangeQuery) -> None:
    """
    Raises:
        QueryError(missing_range): Either bound is empty
        QueryError(inverted_range): start_date is after end_date
    """
    if query.start_date is None or query.end_date is None:
        raise QueryError(QueryErrorKind.MISSING_RANGE)
    if query.start_date > query.end_date:
        raise QueryError(QueryErrorKind.INVERTED_RANGE)


class AnalyticsCoordinator:
    """
    Owns the displayed AnalyticsResult.

    Each `execute` takes a new sequence token. A response is committed only
    if its token is still the latest when it resolves; otherwise it is
    dropped, success or failure alike.
    """

    def __init__(
        self,
        client: BackendClient,
        session: SessionContext,
        timeout: Optional[float] = None,
    ):
        self.client = client
        self.session = session
        self.timeout = settings.api_timeout_seconds if timeout is None else timeout
        self.result: Optional[AnalyticsResult] = None
        self.query: Optional[DateRangeQuery] = None
        self.camera_id: Union[int, str] = "todas"
        self.error: Optional[QueryError] = None
        self.loading = False
        self._seq = 0

    @property
    def sequence(self) -> int:
        return self._seq

    def is_current(self, token: int) -> bool:
        return token == self._seq

    async def execute(
        self,
        query: DateRangeQuery,
        camera_id: Union[int, str] = "todas",
    ) -> Optional[AnalyticsResult]:
        """
        Run one analytics query.

        Returns:
            The committed result, or None if a newer query superseded this one

        Raises:
            QueryError: Invalid range (nothing dispatched, state untouched),
                or the backend call failed while this query was current
        """
        try:
            validate_range(query)
        except QueryError as e:
            analytics_queries_total.labels(outcome="rejected").inc()
            logger.info("analytics.query_rejected", kind=e.kind.value)
            raise

        self._seq += 1
        token = self._seq

        # Clear before dispatch so the previous range never shows as current
        self.result = None
        self.query = None
        self.error = None
        self.loading = True

        logger.info(
            "analytics.query_started",
            token=token,
            start_date=query.start_date.isoformat(),
            end_date=query.end_date.isoformat(),
            camera_id=str(camera_id),
        )

        started = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self.client.get_executive_analytics(query, camera_id),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, AuthError, TransportError) as e:
            if not self.is_current(token):
                self._discard(token, outcome="error")
                return None

            failure = BackendTimeout("El servidor no respondió a tiempo") if isinstance(e, asyncio.TimeoutError) else e
            error = QueryError.from_exception(failure)
            self.error = error
            self.loading = False
            analytics_queries_total.labels(outcome="error").inc()
            logger.warning("analytics.query_failed", token=token, kind=error.kind.value, error=str(e))
            raise error from e
        except BaseException:
            if self.is_current(token):
                self.loading = False
            raise
        finally:
            analytics_query_latency_seconds.observe(time.monotonic() - started)

        if not self.is_current(token):
            self._discard(token, outcome="success")
            return None

        self.result = result
        self.query = query
        self.camera_id = camera_id
        self.loading = False
        analytics_queries_total.labels(outcome="success").inc()

        logger.info(
            "analytics.query_committed",
            token=token,
            total_events=result.kpis.total_events,
            average_temperature=result.kpis.average_temperature,
        )
        return result

    def _discard(self, token: int, outcome: str) -> None:
        analytics_queries_total.labels(outcome="superseded").inc()
        logger.info("analytics.query_superseded", token=token, latest=self._seq, outcome=outcome)

    def interpretations(self) -> dict[str, Interpretation]:
        if self.result is None:
            return {}
        return interpret_kpis(self.result.kpis)

    def clear(self) -> None:
        """Drop the displayed result and invalidate any query in flight."""
        self._seq += 1
        self.result = None
        self.query = None
        self.error = None
        self.loading = False

    async def save_summary(self, title: Optional[str] = None, notes: str = "") -> dict:
        """
        Store the displayed result as an executive summary.

        Raises:
            ColdTrackError: Nothing is displayed yet
            AuthError: No active session
            TransportError: The backend refused or could not be reached
        """
        if self.result is None or self.query is None:
            raise ColdTrackError("No hay datos para guardar. Realice primero una búsqueda.")

        user = self.session.user
        if not self.session.active or user is None:
            raise AuthError("No está autenticado. Por favor inicie sesión para guardar resúmenes.")

        start, end = self.query.start_date, self.query.end_date
        summary = ExecutiveSummary(
            start_date=start,
            end_date=end,
            title=title or f"Análisis {start.isoformat()} al {end.isoformat()}",
            notes=notes or "",
            data=self.result,
            author=SummaryAuthor(
                email=user.email,
                name=user.name or user.email.split("@")[0],
                uid=str(user.id),
            ),
        )

        response = await self.client.save_executive_summary(summary)
        logger.info("analytics.summary_saved", title=summary.title, user_id=user.id)
        return response or {}
