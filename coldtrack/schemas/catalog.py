from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BranchRef(BaseModel):
    """Branch (sucursal) as listed by the backend."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int
    name: str = Field(alias="nombre")
    active: bool = Field(default=True, alias="activa")
    address: Optional[str] = Field(default=None, alias="direccion")


class SensorRef(BaseModel):
    """Refrigeration unit (camara) owned by exactly one branch."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int
    name: str = Field(alias="nombre")
    branch_id: int = Field(alias="sucursal")
    feed_path: str = Field(alias="firebase_path")
    active: bool = Field(default=True, alias="activa")
    code: Optional[str] = Field(default=None, alias="codigo")
    kind: Optional[str] = Field(default=None, alias="tipo")


class UserProfile(BaseModel):
    """User as returned by the token verification endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    email: str
    name: Optional[str] = Field(default=None, alias="nombre")
    role: str = Field(default="SUBJEFE", alias="rol")
    branch_id: Optional[int] = Field(default=None, alias="sucursal_id")
    active: bool = Field(default=True, alias="activo")
