# flightsim/scenario/communications.py
"""
ATC and crew radio message generation.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..db.models import Communication
from ..errors import ValidationError
from ..logging import get_scenario_logger
from ..store.repository import ScenarioRepository

FLIGHT_PHASES = ("taxi", "takeoff", "climb", "cruise", "descent", "approach", "landing")
CREW_MEMBERS = ("Captain", "First Officer", "Flight Engineer", "Cabin Crew")

ATC_FACILITY_BY_PHASE = {
    "taxi": "Ground",
    "takeoff": "Tower",
    "landing": "Tower",
    "climb": "Approach",
    "descent": "Approach",
    "approach": "Approach",
    "cruise": "Center",
}

ATC_IMPORTANT_WORDS = ("IMMEDIATELY", "EMERGENCY", "CAUTION", "WARNING", "TRAFFIC")
CREW_IMPORTANT_WORDS = ("MAYDAY", "PAN PAN", "EMERGENCY", "WARNING", "ALERT")

ATC_SYSTEM_PROMPT = (
    "You are an air traffic controller. Generate realistic ATC communications "
    "using proper phraseology and protocols."
)
CREW_SYSTEM_PROMPT = (
    "You are a flight crew member. Generate realistic cockpit communications "
    "using proper aviation terminology and protocols."
)


@dataclass
class FlightContext:
    callsign: str
    phase: str
    altitude: Optional[float] = None
    heading: Optional[float] = None
    weather: Optional[str] = None
    next_waypoint: Optional[str] = None
    special_instructions: Optional[str] = None

    def __post_init__(self):
        if self.phase not in FLIGHT_PHASES:
            raise ValidationError(f"phase must be one of {list(FLIGHT_PHASES)}")


@dataclass
class GeneratedMessage:
    type: str
    sender: str
    message: str
    is_important: bool


def _context_lines(context: FlightContext) -> List[str]:
    lines = []
    if context.altitude is not None:
        lines.append(f"Current altitude is {context.altitude:g} feet.")
    if context.heading is not None:
        lines.append(f"Current heading is {context.heading:g} degrees.")
    if context.weather:
        lines.append(f"Weather conditions: {context.weather}.")
    if context.next_waypoint:
        lines.append(f"Next waypoint is {context.next_waypoint}.")
    return lines


def is_important(message: str, keywords, situation: Optional[str] = None, situation_words=("emergency",)) -> bool:
    upper = message.upper()
    if any(word in upper for word in keywords):
        return True
    return bool(situation) and any(word in situation.lower() for word in situation_words)


def atc_facility(phase: str) -> str:
    return ATC_FACILITY_BY_PHASE.get(phase, "Tower")


def build_atc_prompt(context: FlightContext) -> List[Dict[str, str]]:
    facility = atc_facility(context.phase)
    lines = [
        f"Generate a realistic ATC communication for {context.callsign} during the {context.phase} phase.",
        f"The ATC facility is {facility}.",
        *_context_lines(context),
    ]
    if context.special_instructions:
        lines.append(f"Special instructions: {context.special_instructions}.")
    lines.append("Use proper aviation phraseology. Keep the message concise and realistic.")
    lines.append("Reply with the ATC message only, no explanation or commentary.")
    return [
        {"role": "system", "content": ATC_SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(lines)},
    ]


def build_crew_prompt(
    context: FlightContext,
    crew_member: str,
    system_status: Optional[str] = None,
    reply_to_atc: Optional[str] = None,
) -> List[Dict[str, str]]:
    lines = [
        f"Generate a realistic {crew_member} communication for {context.callsign} "
        f"during the {context.phase} phase.",
        *_context_lines(context),
    ]
    if system_status:
        lines.append(f"System status: {system_status}.")
    if reply_to_atc:
        lines.append(f'This is in response to ATC: "{reply_to_atc}"')
        lines.append("Include a proper readback of critical information.")
    if context.special_instructions:
        lines.append(f"Special situation: {context.special_instructions}.")
    lines.append("Use proper aviation terminology. Keep the message concise and realistic.")
    lines.append("Reply with the crew communication only, no explanation or commentary.")
    return [
        {"role": "system", "content": CREW_SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(lines)},
    ]


def generate_atc_message(llm, context: FlightContext) -> GeneratedMessage:
    """ATC message from the facility responsible for the current phase."""
    message = llm.generate(build_atc_prompt(context)).strip()
    return GeneratedMessage(
        type="atc",
        sender=atc_facility(context.phase),
        message=message,
        is_important=is_important(message, ATC_IMPORTANT_WORDS, context.special_instructions),
    )


def generate_crew_message(
    llm,
    context: FlightContext,
    crew_member: str,
    system_status: Optional[str] = None,
    reply_to_atc: Optional[str] = None,
) -> GeneratedMessage:
    """Cockpit or cabin message from one crew member."""
    if crew_member not in CREW_MEMBERS:
        raise ValidationError(f"crew_member must be one of {list(CREW_MEMBERS)}")
    message = llm.generate(
        build_crew_prompt(context, crew_member, system_status, reply_to_atc)
    ).strip()
    return GeneratedMessage(
        type="crew",
        sender=crew_member,
        message=message,
        is_important=is_important(
            message,
            CREW_IMPORTANT_WORDS,
            context.special_instructions,
            situation_words=("emergency", "failure"),
        ),
    )


def save_message(repo: ScenarioRepository, scenario_id: str, generated: GeneratedMessage) -> Communication:
    """Append a generated message straight to the scenario's history."""
    repo.get_scenario(scenario_id)
    with repo.unit_of_work():
        communication = repo.add_communication(
            scenario_id,
            type=generated.type,
            sender=generated.sender,
            message=generated.message,
            is_important=generated.is_important,
        )
    get_scenario_logger(__name__, scenario_id).info(
        "communication_generated",
        type=generated.type,
        sender=generated.sender,
        is_important=generated.is_important,
    )
    return communication
