"""
FastAPI dependencies resolving the components created in the app lifespan.
"""
from fastapi import Depends, Request

from coldtrack.core.errors import AuthError
from coldtrack.core.session import SessionContext
from coldtrack.realtime.selection import SelectionStateMachine
from coldtrack.services.analytics import AnalyticsCoordinator
from coldtrack.services.backend_client import BackendClient
from coldtrack.workers.reporting import ReportSink


def get_session(request: Request) -> SessionContext:
    return request.app.state.session


def get_client(request: Request) -> BackendClient:
    return request.app.state.client


def get_selection(request: Request) -> SelectionStateMachine:
    return request.app.state.selection


def get_coordinator(request: Request) -> AnalyticsCoordinator:
    return request.app.state.coordinator


def get_report_sink(request: Request) -> ReportSink:
    return request.app.state.report_sink


async def require_session(
    session: SessionContext = Depends(get_session),
) -> SessionContext:
    """
    Reject the request unless a user is signed in.

    Raises:
        AuthError: No active session
    """
    if not session.active:
        raise AuthError("No está autenticado. Inicie sesión para continuar.")
    return session
