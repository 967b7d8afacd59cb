from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EventRecord(BaseModel):
    """Defrost cycle or failure recorded by the backend."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    kind: str = Field(alias="tipo")
    state: str = Field(alias="estado")
    camera_name: Optional[str] = Field(default=None, alias="camara_nombre")
    branch_name: Optional[str] = Field(default=None, alias="sucursal_nombre")
    started_at: datetime = Field(alias="fecha_inicio")
    ended_at: Optional[datetime] = Field(default=None, alias="fecha_fin")
    duration_minutes: Optional[float] = Field(default=None, alias="duracion_minutos")
    max_temperature: Optional[float] = Field(default=None, alias="temp_max_c")


class EventFilter(BaseModel):
    """Query filters accepted by the event list endpoint."""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    branch_id: Optional[int] = None
    camera_id: Optional[int] = None
    kind: Optional[str] = None

    def to_params(self) -> dict[str, str]:
        params = {
            "fecha_desde": self.date_from.isoformat() if self.date_from else None,
            "fecha_hasta": self.date_to.isoformat() if self.date_to else None,
            "sucursal_id": str(self.branch_id) if self.branch_id is not None else None,
            "camara_id": str(self.camera_id) if self.camera_id is not None else None,
            "tipo": self.kind,
        }
        return {key: value for key, value in params.items() if value}
