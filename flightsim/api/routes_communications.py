# flightsim/api/routes_communications.py
"""
Communication routes.

History (``/communications``) holds delivered messages; the queue holds
scheduled ones that the tick moves into history when due.
"""

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from ..errors import ValidationError
from ..llm.client import get_llm_client
from ..logging import get_scenario_logger
from ..scenario.communications import (
    FlightContext,
    generate_atc_message,
    generate_crew_message,
    save_message,
)
from ..settings import settings
from ..store.definitions import COMMUNICATION_TYPES, CommunicationDefinition
from ..store.repository import ScenarioRepository
from .dependencies import get_repository
from .envelope import RequestModel, ok

router = APIRouter(prefix="/scenarios", tags=["communications"])


class CommunicationRequest(RequestModel):
    """
    Add a message to history.

    With ``generate`` set, the message text comes from the model using
    the flight context fields; otherwise ``type``/``sender``/``message``
    are stored as given.
    """
    scenario_id: str = Field(alias="scenarioId")
    generate: Optional[Literal["atc", "crew"]] = None
    type: str = "system"
    sender: Optional[str] = None
    message: Optional[str] = None
    is_important: bool = Field(default=False, alias="isImportant")
    callsign: Optional[str] = None
    phase: Optional[str] = None
    altitude: Optional[float] = None
    heading: Optional[float] = None
    weather: Optional[str] = None
    next_waypoint: Optional[str] = Field(default=None, alias="nextWaypoint")
    special_instructions: Optional[str] = Field(default=None, alias="specialInstructions")
    crew_member: Optional[str] = Field(default=None, alias="crewMember")
    system_status: Optional[str] = Field(default=None, alias="systemStatus")
    reply_to_atc: Optional[str] = Field(default=None, alias="replyToAtc")


class QueueItemRequest(RequestModel):
    scenario_id: str = Field(alias="scenarioId")
    type: str = "system"
    sender: Optional[str] = None
    message: str = Field(min_length=1)
    is_important: bool = Field(default=False, alias="isImportant")
    trigger_condition: Optional[str] = Field(default=None, alias="triggerCondition")
    trigger_time: Optional[int] = Field(default=None, alias="triggerTime", ge=0)


class QueuePatchRequest(RequestModel):
    item_id: str = Field(alias="itemId")
    is_sent: bool = Field(alias="isSent")


class QueueItemPatchRequest(RequestModel):
    is_sent: bool = Field(alias="isSent")


def _flight_context(request: CommunicationRequest) -> FlightContext:
    if not request.callsign or not request.phase:
        raise ValidationError("callsign and phase are required to generate a message")
    return FlightContext(
        callsign=request.callsign,
        phase=request.phase,
        altitude=request.altitude,
        heading=request.heading,
        weather=request.weather,
        next_waypoint=request.next_waypoint,
        special_instructions=request.special_instructions,
    )


def _mark_sent(repo: ScenarioRepository, item_id: str, is_sent: bool) -> Dict[str, Any]:
    """Sending copies the item to history once; unsending only clears the flag."""
    item = repo.get_queue_item(item_id)
    with repo.unit_of_work():
        if is_sent:
            repo.send_queue_item(item)
        else:
            item.is_sent = False
            item.sent_at = None
            repo.session.flush()
    get_scenario_logger(__name__, item.scenario_id).info(
        "queue_item_updated", item_id=item.id, is_sent=is_sent
    )
    return item.to_dict()


@router.get("/communications")
async def list_communications(
    scenario_id: str = Query(alias="scenarioId"),
    limit: int = Query(default=settings.communication_history_limit, ge=1),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """The latest ``limit`` delivered messages, oldest first."""
    repo.get_scenario(scenario_id)
    return ok([c.to_dict() for c in repo.list_communications(scenario_id, limit=limit)])


@router.post("/communications", status_code=201)
def add_communication(
    request: CommunicationRequest,
    repo: ScenarioRepository = Depends(get_repository),
    llm=Depends(get_llm_client),
) -> Dict[str, Any]:
    repo.get_scenario(request.scenario_id)

    if request.generate == "atc":
        generated = generate_atc_message(llm, _flight_context(request))
        return ok(save_message(repo, request.scenario_id, generated).to_dict())
    if request.generate == "crew":
        generated = generate_crew_message(
            llm,
            _flight_context(request),
            crew_member=request.crew_member or "First Officer",
            system_status=request.system_status,
            reply_to_atc=request.reply_to_atc,
        )
        return ok(save_message(repo, request.scenario_id, generated).to_dict())

    if request.type not in COMMUNICATION_TYPES:
        raise ValidationError(f"type must be one of {list(COMMUNICATION_TYPES)}")
    if not request.message or not request.sender:
        raise ValidationError("sender and message are required")
    with repo.unit_of_work():
        communication = repo.add_communication(
            request.scenario_id,
            type=request.type,
            sender=request.sender,
            message=request.message,
            is_important=request.is_important,
        )
    return ok(communication.to_dict())


@router.get("/communications/queue")
async def list_queue(
    scenario_id: str = Query(alias="scenarioId"),
    is_sent: Optional[bool] = Query(default=None, alias="isSent"),
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    repo.get_scenario(scenario_id)
    return ok([item.to_dict() for item in repo.list_queue(scenario_id, is_sent=is_sent)])


@router.post("/communications/queue", status_code=201)
async def enqueue_communication(
    request: QueueItemRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Schedule a message; without ``triggerTime`` it waits for a manual send."""
    repo.get_scenario(request.scenario_id)
    definition = CommunicationDefinition.from_dict(
        request.model_dump(exclude={"scenario_id"}, exclude_none=True)
    )
    with repo.unit_of_work():
        item = repo.create_queue_item(
            request.scenario_id, definition, trigger_time=definition.trigger_time
        )
    return ok(item.to_dict())


@router.patch("/communications/queue")
async def patch_queue(
    request: QueuePatchRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    return ok(_mark_sent(repo, request.item_id, request.is_sent))


@router.get("/communications/queue/{item_id}")
async def get_queue_item(
    item_id: str,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    return ok(repo.get_queue_item(item_id).to_dict())


@router.patch("/communications/queue/{item_id}")
async def patch_queue_item(
    item_id: str,
    request: QueueItemPatchRequest,
    repo: ScenarioRepository = Depends(get_repository),
) -> Dict[str, Any]:
    return ok(_mark_sent(repo, item_id, request.is_sent))
