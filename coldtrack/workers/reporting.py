"""
Report emission for executive analytics: PDF, Excel and JSON.
Rendering only reads the finalized result; it never touches displayed state.
"""
import io
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas as pdf_canvas
from reportlab.platypus import (
    SimpleDocTemplate,
    Table,
    TableStyle,
    Paragraph,
    Spacer,
    PageBreak,
    Image,
)
from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill

from coldtrack.api.v1.metrics import reports_emitted_total
from coldtrack.core.config import settings
from coldtrack.core.errors import ReportError
from coldtrack.core.logging import get_logger
from coldtrack.schemas import AnalyticsResult, DateRangeQuery
from coldtrack.services.interpretation import (
    CRITICAL_TEMPERATURE_C,
    conclusions,
    format_number,
    format_variance,
    interpret_events,
    interpret_failure_hours,
    interpret_kpis,
    interpret_normal_operation,
    interpret_temperature,
    period_unit,
    recommendations,
)


logger = get_logger(__name__)

REPORT_FORMATS = ("pdf", "excel", "json")
FILE_EXTENSIONS = {"pdf": "pdf", "excel": "xlsx", "json": "json"}
MEDIA_TYPES = {
    "pdf": "application/pdf",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "json": "application/json",
}

BRAND_BLUE = "#1e40af"
FOOTER_TEXT = "Sistema ColdTrack - Reporte Confidencial"


def artifact_name(query: DateRangeQuery, fmt: str) -> str:
    """Reporte_Ejecutivo_{start}_{end}.{ext}"""
    return (
        f"Reporte_Ejecutivo_{query.start_date.isoformat()}_{query.end_date.isoformat()}"
        f".{FILE_EXTENSIONS[fmt]}"
    )


class NumberedCanvas(pdf_canvas.Canvas):
    """Canvas that stamps 'Página i de n' once the page count is known."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total: int) -> None:
        width, _ = A4
        self.setFont("Helvetica", 8)
        self.setFillColor(colors.HexColor("#4b5563"))
        self.drawString(2 * cm, 1 * cm, FOOTER_TEXT)
        self.drawRightString(width - 2 * cm, 1 * cm, f"Página {self._pageNumber} de {total}")


def _table_style(header_color: str, font_size: int = 9) -> TableStyle:
    return TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor(header_color)),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), font_size),
        ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f3f4f6')]),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
    ])


def generate_pdf(
    result: AnalyticsResult,
    query: DateRangeQuery,
    snapshot: Optional[bytes] = None,
    camera_id: Union[int, str] = "todas",
) -> bytes:
    """
    Generate the executive PDF report.

    Args:
        result: Finalized analytics result
        query: Date range the result was computed for
        snapshot: Optional PNG capture of the dashboard charts
        camera_id: Camera filter the result was computed for

    Returns:
        PDF file as bytes
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, topMargin=2*cm, bottomMargin=2*cm)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'CustomTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor(BRAND_BLUE),
        alignment=TA_CENTER,
        spaceAfter=30,
    )

    heading_style = ParagraphStyle(
        'CustomHeading',
        parent=styles['Heading2'],
        fontSize=16,
        textColor=colors.HexColor(BRAND_BLUE),
        spaceAfter=12,
    )

    note_style = ParagraphStyle(
        'ChartNote',
        parent=styles['Normal'],
        fontSize=9,
        textColor=colors.HexColor('#4b5563'),
        spaceBefore=6,
    )

    kpis = result.kpis
    story = []

    # Page 1: Cover
    story.append(Spacer(1, 3*cm))
    story.append(Paragraph("Reporte Ejecutivo de Cámaras de Frío", title_style))
    story.append(Spacer(1, 1*cm))

    cover_data = [
        ["Período:", f"{query.start_date.isoformat()} al {query.end_date.isoformat()}"],
        ["Cámaras:", "Todas" if str(camera_id) == "todas" else str(camera_id)],
        ["Generado:", datetime.now().strftime('%Y-%m-%d %H:%M')],
    ]

    cover_table = Table(cover_data, colWidths=[5*cm, 10*cm])
    cover_table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
        ('FONTSIZE', (0, 0), (-1, -1), 12),
        ('TEXTCOLOR', (0, 0), (0, -1), colors.HexColor('#4b5563')),
        ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 12),
    ]))
    story.append(cover_table)
    story.append(PageBreak())

    # Page 2: Executive summary
    story.append(Paragraph("Resumen Ejecutivo", heading_style))
    story.append(Spacer(1, 0.5*cm))

    badges = interpret_kpis(kpis)
    summary_data = [
        ["Indicador", "Valor", "Variación", "Evaluación"],
        ["Temperatura Promedio", f"{format_number(kpis.average_temperature)}°C",
         format_variance(kpis.temperature_variance), badges["average_temperature"].label],
        ["Total de Eventos", str(kpis.total_events),
         format_variance(kpis.events_variance), badges["total_events"].label],
        ["Horas de Deshielo", f"{format_number(kpis.defrost_hours)}h",
         format_variance(kpis.defrost_variance), "-"],
        ["Horas de Falla", f"{format_number(kpis.failure_hours)}h",
         format_variance(kpis.failure_variance), badges["failure_hours"].label],
        ["Operación Normal", f"{format_number(kpis.percent_normal)}%",
         format_variance(kpis.normal_variance), badges["percent_normal"].label],
    ]

    summary_table = Table(summary_data, colWidths=[4.5*cm, 3*cm, 5*cm, 3.5*cm])
    summary_table.setStyle(_table_style(BRAND_BLUE, font_size=10))
    story.append(summary_table)
    story.append(Spacer(1, 0.5*cm))

    temperature = interpret_temperature(kpis.average_temperature)
    analysis = [
        f"<b>Temperatura Promedio:</b> {format_number(kpis.average_temperature)}°C - "
        f"{temperature.label}. {temperature.description}",
        f"<b>Total de Eventos:</b> {kpis.total_events}. {interpret_events(kpis.total_events).description}",
        f"<b>Horas de Deshielo:</b> {format_number(kpis.defrost_hours)}h de mantenimiento programado.",
        f"<b>Horas de Falla:</b> {format_number(kpis.failure_hours)}h. "
        f"{interpret_failure_hours(kpis.failure_hours).description}",
        f"<b>Operación Normal:</b> {format_number(kpis.percent_normal)}%. "
        f"{interpret_normal_operation(kpis.percent_normal).description}",
    ]
    for line in analysis:
        story.append(Paragraph(line, styles['Normal']))
        story.append(Spacer(1, 0.2*cm))

    story.append(PageBreak())

    # Page 3: Charts
    story.append(Paragraph("Análisis Gráfico", heading_style))

    if snapshot:
        image = Image(io.BytesIO(snapshot))
        max_width, max_height = 17*cm, 10*cm
        ratio = min(max_width / image.imageWidth, max_height / image.imageHeight, 1.0)
        image.drawWidth = image.imageWidth * ratio
        image.drawHeight = image.imageHeight * ratio
        story.append(image)
        story.append(Spacer(1, 0.5*cm))

    comparison = result.comparison
    if comparison.buckets:
        story.append(Paragraph(
            f"<b>Comparación por Períodos ({escape(comparison.granularity)})</b>", styles['Heading3']
        ))
        rows = [["Período", "Eventos", "Horas en Falla"]]
        for bucket in comparison.buckets:
            rows.append([bucket.period, str(bucket.events), format_number(bucket.failure_hours)])
        table = Table(rows, colWidths=[6*cm, 4*cm, 4*cm])
        table.setStyle(_table_style('#3b82f6'))
        story.append(table)
        story.append(Paragraph(
            "Compara la actividad del sistema entre diferentes "
            f"{period_unit(comparison.granularity)} del período seleccionado.",
            note_style,
        ))
        story.append(Spacer(1, 0.5*cm))

    trend = result.trend
    if trend.buckets:
        story.append(Paragraph(
            f"<b>Tendencia Temporal ({escape(trend.granularity)})</b>", styles['Heading3']
        ))
        rows = [["Período", "Eventos", "Horas Críticas"]]
        for bucket in trend.buckets:
            rows.append([bucket.period, str(bucket.events), format_number(bucket.critical_hours)])
        table = Table(rows, colWidths=[6*cm, 4*cm, 4*cm])
        table.setStyle(_table_style('#6366f1'))
        story.append(table)
        story.append(Paragraph(
            "Líneas ascendentes indican aumento en problemas, descendentes sugieren mejora.",
            note_style,
        ))
        story.append(Spacer(1, 0.5*cm))

    distribution = result.event_distribution.distribution
    if distribution:
        story.append(Paragraph("<b>Distribución de Estados Operativos</b>", styles['Heading3']))
        rows = [["Estado", "Porcentaje"]]
        for share in distribution:
            rows.append([share.state, f"{format_number(share.percentage)}%"])
        table = Table(rows, colWidths=[7*cm, 4*cm])
        table.setStyle(_table_style('#10b981'))
        story.append(table)
        story.append(Spacer(1, 0.5*cm))

    if result.temperature_series:
        story.append(Paragraph("<b>Evolución de Temperaturas</b>", styles['Heading3']))
        rows = [["Fecha", "Promedio (°C)", "Máxima (°C)", "Umbral Crítico (°C)"]]
        for day in result.temperature_series:
            rows.append([
                day.day,
                format_number(day.average),
                format_number(day.maximum),
                format_number(CRITICAL_TEMPERATURE_C),
            ])
        table = Table(rows, colWidths=[4*cm, 3.5*cm, 3.5*cm, 4*cm])
        table.setStyle(_table_style('#f59e0b'))
        story.append(table)
        story.append(Paragraph(
            f"Temperaturas sobre {format_number(CRITICAL_TEMPERATURE_C)}°C son críticas.",
            note_style,
        ))

    story.append(PageBreak())

    # Page 4: Cameras that need attention
    rankings = result.camera_rankings
    story.append(Paragraph("Cámaras que Requieren Atención", heading_style))

    if rankings.most_events:
        rows = [["#", "Cámara", "Eventos"]]
        for index, camera in enumerate(rankings.most_events, start=1):
            rows.append([str(index), camera.name, str(camera.events)])
        table = Table(rows, colWidths=[1.5*cm, 8*cm, 4*cm])
        table.setStyle(_table_style(BRAND_BLUE))
        story.append(Paragraph("<b>Más Eventos</b>", styles['Heading3']))
        story.append(table)
        story.append(Spacer(1, 0.5*cm))

    if rankings.most_failure_hours:
        rows = [["#", "Cámara", "Horas en Falla"]]
        for index, camera in enumerate(rankings.most_failure_hours, start=1):
            rows.append([str(index), camera.name, f"{format_number(camera.failure_hours)}h"])
        table = Table(rows, colWidths=[1.5*cm, 8*cm, 4*cm])
        table.setStyle(_table_style('#dc2626'))
        story.append(Paragraph("<b>Más Horas en Falla</b>", styles['Heading3']))
        story.append(table)
        story.append(Spacer(1, 0.5*cm))

    critical_events = result.event_distribution.critical_events
    if critical_events:
        story.append(Paragraph("<b>Eventos que Requieren Seguimiento</b>", styles['Heading3']))
        rows = [["Cámara", "Tipo", "Duración", "Temp. Máx.", "Estado"]]
        for event in critical_events[:50]:  # Limit to 50 events
            rows.append([
                event.camera,
                "Falla Crítica" if event.kind == "FALLA" else "Deshielo Prolongado",
                event.duration or "-",
                f"{format_number(event.max_temperature)}°C" if event.max_temperature is not None else "-",
                "En Curso" if event.state == "EN_CURSO" else "Resuelto",
            ])
        table = Table(rows, colWidths=[4*cm, 3.5*cm, 3*cm, 2.5*cm, 2.5*cm])
        table.setStyle(_table_style('#dc2626', font_size=8))
        story.append(table)

    story.append(PageBreak())

    # Page 5: Conclusions
    story.append(Paragraph("Conclusiones", heading_style))
    story.append(Paragraph("<b>Resumen del Estado Operativo:</b>", styles['Normal']))
    story.append(Spacer(1, 0.2*cm))
    for line in conclusions(kpis):
        story.append(Paragraph(f"• {escape(line)}", styles['Normal']))
        story.append(Spacer(1, 0.15*cm))

    story.append(Spacer(1, 0.5*cm))
    story.append(Paragraph("<b>Recomendaciones Estratégicas:</b>", styles['Normal']))
    story.append(Spacer(1, 0.2*cm))
    for line in recommendations(kpis):
        story.append(Paragraph(f"• {escape(line)}", styles['Normal']))
        story.append(Spacer(1, 0.15*cm))

    doc.build(story, canvasmaker=NumberedCanvas)

    pdf_bytes = buffer.getvalue()
    buffer.close()

    return pdf_bytes


def _style_header(row, color: str) -> None:
    for cell in row:
        cell.font = Font(bold=True, color="ffffff")
        cell.fill = PatternFill(start_color=color, end_color=color, fill_type="solid")
        cell.alignment = Alignment(horizontal="left")


def generate_excel(
    result: AnalyticsResult,
    query: DateRangeQuery,
    camera_id: Union[int, str] = "todas",
) -> bytes:
    """
    Generate the executive Excel report.

    Returns:
        Excel file as bytes
    """
    wb = Workbook()

    # Remove default sheet
    if 'Sheet' in wb.sheetnames:
        wb.remove(wb['Sheet'])

    kpis = result.kpis
    badges = interpret_kpis(kpis)

    # Sheet 1: Summary
    ws_summary = wb.create_sheet("Resumen")
    ws_summary.append(["Reporte Ejecutivo de Cámaras de Frío"])
    ws_summary.append([])
    ws_summary.append(["Período", f"{query.start_date.isoformat()} al {query.end_date.isoformat()}"])
    ws_summary.append(["Cámaras", "Todas" if str(camera_id) == "todas" else str(camera_id)])
    ws_summary.append(["Generado", datetime.now().strftime('%Y-%m-%d %H:%M')])
    ws_summary.append([])
    ws_summary.append(["Indicador", "Valor", "Variación (%)", "Evaluación"])
    ws_summary.append(["Temperatura Promedio (°C)", kpis.average_temperature, kpis.temperature_variance,
                       badges["average_temperature"].label])
    ws_summary.append(["Total de Eventos", kpis.total_events, kpis.events_variance,
                       badges["total_events"].label])
    ws_summary.append(["Horas de Deshielo", kpis.defrost_hours, kpis.defrost_variance, ""])
    ws_summary.append(["Horas de Falla", kpis.failure_hours, kpis.failure_variance,
                       badges["failure_hours"].label])
    ws_summary.append(["Operación Normal (%)", kpis.percent_normal, kpis.normal_variance,
                       badges["percent_normal"].label])

    ws_summary['A1'].font = Font(size=16, bold=True, color="1e40af")
    _style_header(ws_summary[7], "1e40af")

    # Sheet 2: Comparison
    ws_comparison = wb.create_sheet("Comparación")
    ws_comparison.append(["Período", "Eventos", "Horas en Falla"])
    for bucket in result.comparison.buckets:
        ws_comparison.append([bucket.period, bucket.events, bucket.failure_hours])
    _style_header(ws_comparison[1], "3b82f6")

    # Sheet 3: Trend
    ws_trend = wb.create_sheet("Tendencia")
    ws_trend.append(["Período", "Eventos", "Horas Críticas"])
    for bucket in result.trend.buckets:
        ws_trend.append([bucket.period, bucket.events, bucket.critical_hours])
    _style_header(ws_trend[1], "6366f1")

    # Sheet 4: Distribution
    ws_distribution = wb.create_sheet("Distribución")
    ws_distribution.append(["Estado", "Valor", "Porcentaje"])
    for share in result.event_distribution.distribution:
        ws_distribution.append([share.state, share.value, share.percentage])
    _style_header(ws_distribution[1], "10b981")

    # Sheet 5: Temperatures
    ws_temperatures = wb.create_sheet("Temperaturas")
    ws_temperatures.append(["Fecha", "Promedio (°C)", "Máxima (°C)", "Umbral Crítico (°C)"])
    for day in result.temperature_series:
        ws_temperatures.append([day.day, round(day.average, 2), round(day.maximum, 2), CRITICAL_TEMPERATURE_C])
    _style_header(ws_temperatures[1], "f59e0b")

    # Sheet 6: Rankings
    ws_rankings = wb.create_sheet("Ranking")
    ws_rankings.append(["Ranking", "Posición", "Cámara", "Valor"])
    for index, camera in enumerate(result.camera_rankings.most_events, start=1):
        ws_rankings.append(["Más Eventos", index, camera.name, camera.events])
    for index, camera in enumerate(result.camera_rankings.most_failure_hours, start=1):
        ws_rankings.append(["Más Horas en Falla", index, camera.name, camera.failure_hours])
    _style_header(ws_rankings[1], "dc2626")

    # Sheet 7: Critical events
    ws_events = wb.create_sheet("Eventos Críticos")
    ws_events.append(["ID", "Cámara", "Tipo", "Duración", "Temp. Máxima (°C)", "Estado"])
    for event in result.event_distribution.critical_events:
        ws_events.append([
            str(event.id),
            event.camera,
            event.kind,
            event.duration or "",
            event.max_temperature,
            event.state,
        ])
    _style_header(ws_events[1], "dc2626")

    buffer = io.BytesIO()
    wb.save(buffer)
    excel_bytes = buffer.getvalue()
    buffer.close()

    return excel_bytes


def generate_json(
    result: AnalyticsResult,
    query: DateRangeQuery,
    camera_id: Union[int, str] = "todas",
) -> bytes:
    payload = {
        "fechaInicio": query.start_date.isoformat(),
        "fechaFin": query.end_date.isoformat(),
        "camaraId": str(camera_id),
        "generado": datetime.now().isoformat(timespec="seconds"),
        "datos": result.model_dump(mode="json", by_alias=True),
        "interpretacion": {name: item.to_dict() for name, item in interpret_kpis(result.kpis).items()},
        "conclusiones": conclusions(result.kpis),
        "recomendaciones": recommendations(result.kpis),
    }
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


@dataclass
class ReportOutcome:
    ok: bool
    filename: Optional[str] = None
    path: Optional[Path] = None
    size_bytes: int = 0
    error: Optional[str] = None


class ReportSink:
    """
    Turns a finalized AnalyticsResult into a downloadable artifact.

    `render` raises ReportError; `emit` writes the artifact and reports
    failures through the returned outcome instead of raising.
    """

    def __init__(self, output_dir: Optional[str] = None):
        self.output_dir = Path(output_dir or settings.report_output_dir)

    def render(
        self,
        result: AnalyticsResult,
        query: DateRangeQuery,
        fmt: str = "pdf",
        snapshot: Optional[bytes] = None,
        camera_id: Union[int, str] = "todas",
    ) -> bytes:
        if fmt not in REPORT_FORMATS:
            raise ReportError(f"Formato de reporte no soportado: {fmt}")
        if query.start_date is None or query.end_date is None:
            raise ReportError("El reporte requiere un rango de fechas completo.")

        try:
            if fmt == "pdf":
                return generate_pdf(result, query, snapshot, camera_id)
            if fmt == "excel":
                return generate_excel(result, query, camera_id)
            return generate_json(result, query, camera_id)
        except Exception as e:
            raise ReportError(f"Error al generar el reporte {fmt.upper()}: {e}") from e

    def emit(
        self,
        result: AnalyticsResult,
        query: DateRangeQuery,
        fmt: str = "pdf",
        snapshot: Optional[bytes] = None,
        camera_id: Union[int, str] = "todas",
    ) -> ReportOutcome:
        logger.info(
            "report.start",
            format=fmt,
            start_date=str(query.start_date),
            end_date=str(query.end_date),
        )

        try:
            file_bytes = self.render(result, query, fmt, snapshot, camera_id)
            filename = artifact_name(query, fmt)
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path = self.output_dir / filename
            path.write_bytes(file_bytes)
        except (ReportError, OSError) as e:
            reports_emitted_total.labels(format=fmt, status="failed").inc()
            logger.error("report.failed", format=fmt, error=str(e), exc_info=True)
            return ReportOutcome(ok=False, error=str(e))

        reports_emitted_total.labels(format=fmt, status="complete").inc()
        logger.info("report.success", format=fmt, path=str(path), size_bytes=len(file_bytes))

        return ReportOutcome(ok=True, filename=filename, path=path, size_bytes=len(file_bytes))
