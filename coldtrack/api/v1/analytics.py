"""
Executive analytics API endpoints.
Runs date-range queries, stores summaries and serves report downloads.
"""
from datetime import date
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
from pydantic import BaseModel

from coldtrack.core.dependencies import get_coordinator, get_report_sink, require_session
from coldtrack.core.logging import get_logger
from coldtrack.schemas import DateRangeQuery
from coldtrack.services.analytics import AnalyticsCoordinator
from coldtrack.services.interpretation import (
    conclusions,
    recommendations,
    variance_trend,
)
from coldtrack.workers.reporting import MEDIA_TYPES, ReportSink


router = APIRouter(prefix="/analytics", tags=["Analytics"])
logger = get_logger(__name__)


class AnalyticsQueryRequest(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    camera_id: Union[int, str] = "todas"


class SummaryRequest(BaseModel):
    title: Optional[str] = None
    notes: str = ""


def _render_result(coordinator: AnalyticsCoordinator) -> dict:
    result = coordinator.result
    kpis = result.kpis
    return {
        "query": {
            "start_date": coordinator.query.start_date.isoformat(),
            "end_date": coordinator.query.end_date.isoformat(),
            "camera_id": str(coordinator.camera_id),
        },
        "result": result.model_dump(mode="json", by_alias=True),
        "interpretation": {
            name: item.to_dict() for name, item in coordinator.interpretations().items()
        },
        "variance_trend": {
            "temperature": variance_trend(kpis.temperature_variance),
            "events": variance_trend(kpis.events_variance),
            "defrost": variance_trend(kpis.defrost_variance),
            "failure": variance_trend(kpis.failure_variance),
            "normal": variance_trend(kpis.normal_variance),
        },
        "conclusions": conclusions(kpis),
        "recommendations": recommendations(kpis),
    }


@router.post("/query")
async def run_query(
    body: AnalyticsQueryRequest,
    coordinator: AnalyticsCoordinator = Depends(get_coordinator),
    _=Depends(require_session),
):
    """
    Run an executive analytics query for a date range.

    Returns 422 for a missing or inverted range (no backend call is made),
    504 if the backend times out and 502 for other backend failures.
    If a newer query was issued meanwhile, `data` is null and `superseded`
    is true.
    """
    query = DateRangeQuery(start_date=body.start_date, end_date=body.end_date)

    result = await coordinator.execute(query, body.camera_id)

    if result is None:
        return {"data": None, "superseded": True}

    return {"data": _render_result(coordinator), "superseded": False}


@router.get("/result")
async def get_result(
    coordinator: AnalyticsCoordinator = Depends(get_coordinator),
):
    """Currently displayed result. Returns 404 while nothing is displayed."""
    if coordinator.result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No hay resultados para mostrar",
        )

    return {"data": _render_result(coordinator)}


@router.post("/summaries", status_code=status.HTTP_201_CREATED)
async def save_summary(
    body: SummaryRequest,
    coordinator: AnalyticsCoordinator = Depends(get_coordinator),
    _=Depends(require_session),
):
    """Store the displayed result as an executive summary."""
    response = await coordinator.save_summary(body.title, body.notes)
    return {"data": response}


@router.get("/report")
async def download_report(
    format: str = Query("pdf", pattern="^(pdf|excel|json)$"),
    coordinator: AnalyticsCoordinator = Depends(get_coordinator),
    sink: ReportSink = Depends(get_report_sink),
):
    """
    Emit a report for the displayed result and return it as a download.

    Returns 404 while nothing is displayed and 500 if emission fails.
    """
    if coordinator.result is None or coordinator.query is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No hay datos para exportar. Realice primero una búsqueda.",
        )

    outcome = sink.emit(
        coordinator.result,
        coordinator.query,
        fmt=format,
        camera_id=coordinator.camera_id,
    )

    if not outcome.ok:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=outcome.error,
        )

    return FileResponse(
        path=outcome.path,
        media_type=MEDIA_TYPES[format],
        filename=outcome.filename,
    )
