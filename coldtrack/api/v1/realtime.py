from typing import Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from coldtrack.core.dependencies import get_client, get_selection, require_session
from coldtrack.core.logging import get_logger
from coldtrack.realtime.selection import SelectionStateMachine
from coldtrack.services.backend_client import BackendClient


router = APIRouter(prefix="/realtime", tags=["Realtime"])
logger = get_logger(__name__)


class BranchSelection(BaseModel):
    branch_id: Union[int, str]


class SensorSelection(BaseModel):
    sensor_id: Union[int, str]


@router.get("/branches")
async def list_branches(
    active_only: bool = True,
    client: BackendClient = Depends(get_client),
    _=Depends(require_session),
):
    branches = await client.list_branches(active_only=active_only)
    return {"data": [b.model_dump() for b in branches]}


@router.get("/state")
async def get_state(
    selection: SelectionStateMachine = Depends(get_selection),
):
    """
    Current selection with its sensors, latest reading and history.

    History points are ordered oldest first and bounded by `history_size`.
    """
    return {"data": selection.snapshot()}


@router.put("/branch")
async def select_branch(
    body: BranchSelection,
    selection: SelectionStateMachine = Depends(get_selection),
    _=Depends(require_session),
):
    """Select a branch; cancels any live subscription and loads its sensors."""
    await selection.select_branch(body.branch_id)
    return {"data": selection.snapshot()}


@router.put("/sensor")
async def select_sensor(
    body: SensorSelection,
    selection: SelectionStateMachine = Depends(get_selection),
    _=Depends(require_session),
):
    """
    Select a sensor of the active branch and start its live feed.

    Returns 409 if no branch is selected or the sensor is not in it.
    """
    await selection.select_sensor(body.sensor_id)
    return {"data": selection.snapshot()}
