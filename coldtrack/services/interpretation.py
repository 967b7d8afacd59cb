"""
KPI interpretation rules.

The same functions feed the on-screen badges and the narrative of generated
reports, so both surfaces always agree on category boundaries.

Boundaries (inclusive on the better side):
- average temperature: <= -5 excellent, <= -2 good, <= 4 caution, > 4 critical
- total events:        <= 10 low, <= 50 normal, <= 100 elevated, > 100 excessive
- failure hours:       == 0 none, <= 2 minor, <= 8 considerable, > 8 urgent
- percent normal:      >= 95 excellent, >= 90 good, < 90 deficient
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Union

from coldtrack.schemas import KPISet


class Rating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    CAUTION = "caution"
    CRITICAL = "critical"
    LOW = "low"
    NORMAL = "normal"
    ELEVATED = "elevated"
    EXCESSIVE = "excessive"
    NONE = "none"
    MINOR = "minor"
    CONSIDERABLE = "considerable"
    URGENT = "urgent"
    DEFICIENT = "deficient"


@dataclass(frozen=True)
class Interpretation:
    rating: Rating
    label: str
    description: str
    color: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["rating"] = self.rating.value
        return data


# Critical temperature line drawn on the daily temperature chart
CRITICAL_TEMPERATURE_C = 4.0


def interpret_temperature(value: float) -> Interpretation:
    if value <= -5:
        return Interpretation(Rating.EXCELLENT, "Excelente", "Temperatura óptima para conservación.", "green")
    if value <= -2:
        return Interpretation(Rating.GOOD, "Bueno", "Temperatura aceptable, dentro del rango seguro.", "green")
    if value <= CRITICAL_TEMPERATURE_C:
        return Interpretation(Rating.CAUTION, "Precaución", "Temperatura elevada, requiere monitoreo.", "yellow")
    return Interpretation(Rating.CRITICAL, "Crítico", "Temperatura peligrosa, riesgo de deterioro.", "red")


def interpret_events(count: int) -> Interpretation:
    if count <= 10:
        return Interpretation(Rating.LOW, "Bajo", "Actividad normal del sistema.", "green")
    if count <= 50:
        return Interpretation(Rating.NORMAL, "Normal", "Actividad dentro de parámetros esperados.", "green")
    if count <= 100:
        return Interpretation(Rating.ELEVATED, "Alto", "Mayor actividad, revisar programación.", "yellow")
    return Interpretation(Rating.EXCESSIVE, "Excesivo", "Actividad excesiva, requiere revisión técnica.", "red")


def interpret_failure_hours(hours: float) -> Interpretation:
    if hours == 0:
        return Interpretation(Rating.NONE, "Sin fallas", "Sin fallas registradas en el período.", "green")
    if hours <= 2:
        return Interpretation(Rating.MINOR, "Fallas menores", "Fallas menores, dentro de lo esperado.", "yellow")
    if hours <= 8:
        return Interpretation(Rating.CONSIDERABLE, "Considerable", "Tiempo considerable fuera de servicio.", "red")
    return Interpretation(
        Rating.URGENT, "Urgente", "Tiempo excesivo de fallas, requiere intervención urgente.", "red"
    )


def interpret_normal_operation(percent: float) -> Interpretation:
    if percent >= 95:
        return Interpretation(Rating.EXCELLENT, "Excelente", "Excelente rendimiento operativo.", "green")
    if percent >= 90:
        return Interpretation(Rating.GOOD, "Bueno", "Buen rendimiento, dentro de estándares.", "yellow")
    return Interpretation(Rating.DEFICIENT, "Deficiente", "Rendimiento por debajo del óptimo.", "red")


def interpret_kpis(kpis: KPISet) -> dict[str, Interpretation]:
    return {
        "average_temperature": interpret_temperature(kpis.average_temperature),
        "total_events": interpret_events(kpis.total_events),
        "failure_hours": interpret_failure_hours(kpis.failure_hours),
        "percent_normal": interpret_normal_operation(kpis.percent_normal),
    }


def variance_trend(variance: float) -> str:
    """A rise against the previous period is flagged as worse."""
    return "up" if variance > 0 else "down"


def format_variance(variance: float) -> str:
    sign = "+" if variance > 0 else ""
    return f"{sign}{format_number(variance)}% vs período anterior"


def period_unit(granularity: str) -> str:
    """Plural unit word for an adaptive series granularity."""
    if granularity == "diaria":
        return "días"
    if granularity == "semanal":
        return "semanas"
    return "meses"


def format_number(value: Union[int, float]) -> str:
    """Render without trailing zeros: 4.0 -> '4', -3.25 -> '-3.25'."""
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def conclusions(kpis: KPISet) -> list[str]:
    temperature = interpret_temperature(kpis.average_temperature)
    if temperature.rating == Rating.EXCELLENT:
        thermal = "es excelente para conservación."
    elif temperature.rating == Rating.GOOD:
        thermal = "se mantiene en rango seguro."
    else:
        thermal = "requiere monitoreo y posible ajuste."

    return [
        "Eficiencia General: El sistema operó normalmente durante el "
        f"{format_number(kpis.percent_normal)}% del tiempo analizado.",
        "Control Térmico: La temperatura promedio de "
        f"{format_number(kpis.average_temperature)}°C {thermal}",
        f"Actividad del Sistema: Se registraron {kpis.total_events} eventos, incluyendo "
        f"{format_number(kpis.defrost_hours)}h de mantenimiento y "
        f"{format_number(kpis.failure_hours)}h de fallas.",
    ]


def recommendations(kpis: KPISet) -> list[str]:
    items = [
        "Monitoreo Continuo: Mantener vigilancia constante de parámetros críticos.",
        "Capacitación: Asegurar que el personal comprenda los indicadores de alerta.",
        "Planificación: Programar mantenimiento preventivo basado en estos patrones.",
    ]
    if kpis.failure_hours > 5:
        items.append("Prioridad Alta: Implementar plan de mantenimiento correctivo urgente.")
    if interpret_temperature(kpis.average_temperature).rating not in (Rating.EXCELLENT, Rating.GOOD):
        items.append("Revisión Técnica: Evaluar calibración del sistema de refrigeración.")
    if interpret_normal_operation(kpis.percent_normal).rating == Rating.DEFICIENT:
        items.append("Optimización: Analizar causas de baja eficiencia operativa.")
    return items
