"""
Executive analytics wire models.

The backend speaks Spanish camelCase; attributes are English and every
field accepts either spelling.
"""
from datetime import date
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DateRangeQuery(BaseModel):
    """
    Date range requested from the executive analytics endpoint.

    Both bounds are optional here so that an incomplete range reaches the
    coordinator and is rejected with a specific error kind.
    """
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class KPISet(_WireModel):
    """Headline KPIs, each paired with its % variance against the prior period."""
    average_temperature: float = Field(alias="temperaturaPromedio")
    temperature_variance: float = Field(alias="variacionTemperatura")
    total_events: int = Field(alias="totalEventos")
    events_variance: float = Field(alias="variacionEventos")
    defrost_hours: float = Field(alias="horasDeshielo")
    defrost_variance: float = Field(alias="variacionDeshielo")
    failure_hours: float = Field(alias="horasFalla")
    failure_variance: float = Field(alias="variacionFalla")
    percent_normal: float = Field(alias="porcentajeNormal")
    normal_variance: float = Field(alias="variacionNormal")


class PeriodBucket(_WireModel):
    period: str = Field(alias="periodo")
    events: int = Field(default=0, alias="eventos")
    failure_hours: float = Field(default=0.0, alias="horasFalla")
    critical_hours: float = Field(default=0.0, alias="horasCriticas")


class PeriodSeries(_WireModel):
    """Adaptive comparison/trend series; granularity is diaria, semanal or mensual."""
    granularity: str = Field(default="adaptativa", alias="tipo")
    title: Optional[str] = Field(default=None, alias="titulo")
    buckets: list[PeriodBucket] = Field(default_factory=list, alias="datos")


class StateShare(_WireModel):
    state: str = Field(alias="estado")
    value: float = Field(default=0.0, alias="valor")
    percentage: float = Field(default=0.0, alias="porcentaje")


class CriticalEvent(_WireModel):
    id: Union[int, str]
    camera: str = Field(alias="camara")
    kind: str = Field(alias="tipo")
    duration: Optional[str] = Field(default=None, alias="duracion")
    max_temperature: Optional[float] = Field(default=None, alias="tempMaxima")
    state: str = Field(alias="estado")


class EventBreakdown(_WireModel):
    distribution: list[StateShare] = Field(default_factory=list, alias="distribucion")
    critical_events: list[CriticalEvent] = Field(default_factory=list, alias="eventosCriticos")


class DailyTemperature(_WireModel):
    day: str = Field(alias="fecha")
    average: float = Field(alias="tempPromedio")
    maximum: float = Field(alias="tempMaxima")


class CameraEventRank(_WireModel):
    id: Union[int, str]
    name: str = Field(alias="nombre")
    events: int = Field(alias="eventos")


class CameraFailureRank(_WireModel):
    id: Union[int, str]
    name: str = Field(alias="nombre")
    failure_hours: float = Field(alias="horasFalla")


class CameraRankings(_WireModel):
    most_events: list[CameraEventRank] = Field(default_factory=list, alias="masEventos")
    most_failure_hours: list[CameraFailureRank] = Field(default_factory=list, alias="masFallas")


class AnalyticsResult(_WireModel):
    """Everything the executive view renders for one date range."""
    kpis: KPISet
    comparison: PeriodSeries = Field(default_factory=PeriodSeries, alias="comparacionAdaptativa")
    trend: PeriodSeries = Field(default_factory=PeriodSeries, alias="tendenciaAdaptativa")
    event_distribution: EventBreakdown = Field(default_factory=EventBreakdown, alias="analisisEventos")
    temperature_series: list[DailyTemperature] = Field(default_factory=list, alias="temperaturas")
    camera_rankings: CameraRankings = Field(default_factory=CameraRankings, alias="rankingCamaras")


class SummaryAuthor(_WireModel):
    email: str
    name: str = Field(alias="nombre")
    uid: str


class ExecutiveSummary(_WireModel):
    """Payload stored by the save-summary endpoint."""
    start_date: date = Field(alias="fechaInicio")
    end_date: date = Field(alias="fechaFin")
    title: str = Field(alias="titulo")
    notes: str = Field(default="", alias="observaciones")
    data: AnalyticsResult = Field(alias="datos")
    author: SummaryAuthor = Field(alias="usuarioInfo")
