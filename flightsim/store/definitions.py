# flightsim/store/definitions.py
"""
Input records for creating scenarios.

Both the HTTP layer and the scenario generator hand the repository plain
dicts; ``from_dict`` fills every missing field with the creation default.

Client input is strict: a malformed number raises ``ValidationError``.
Model output is parsed with ``lenient=True``, where a malformed number is
logged and replaced by its default.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from ..logging import get_logger

logger = get_logger(__name__)

COMMUNICATION_TYPES = ("atc", "crew", "system")


def _rejected(key: str, value: Any, message: str, default, lenient: bool):
    if not lenient:
        raise ValidationError(f"{key} {message}, got {value!r}")
    logger.warning("definition_field_defaulted", field=key, value=str(value))
    return default


def _number(data: Dict[str, Any], key: str, default, lenient: bool = False):
    value = data.get(key)
    if value is None or value == "":
        return default
    try:
        return type(default)(value)
    except (TypeError, ValueError):
        return _rejected(key, value, "must be a number", default, lenient)


def _text(data: Dict[str, Any], key: str, default: str) -> str:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    return str(value)


def _records(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _optional_int(data: Dict[str, Any], key: str, lenient: bool = False) -> Optional[int]:
    value = data.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return _rejected(key, value, "must be an integer", None, lenient)


@dataclass
class WaypointDefinition:
    name: str
    position_x: float
    position_y: float
    sequence: int
    is_active: bool = False
    is_passed: bool = False
    eta: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int, lenient: bool = False) -> "WaypointDefinition":
        return cls(
            name=_text(data, "name", "Unnamed waypoint"),
            position_x=_number(data, "position_x", 0.0, lenient),
            position_y=_number(data, "position_y", 0.0, lenient),
            sequence=_number(data, "sequence", index + 1, lenient),
            is_active=bool(data.get("is_active", False)),
            is_passed=bool(data.get("is_passed", False)),
            eta=data.get("eta"),
        )


@dataclass
class OptionDefinition:
    text: str
    consequences: str
    is_recommended: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OptionDefinition":
        return cls(
            text=_text(data, "text", "No option text"),
            consequences=_text(data, "consequences", "No consequences specified"),
            is_recommended=bool(data.get("is_recommended", False)),
        )


@dataclass
class DecisionDefinition:
    title: str
    description: str
    options: List[OptionDefinition] = field(default_factory=list)
    time_limit: Optional[int] = None
    is_urgent: bool = False
    trigger_condition: str = "Manual trigger"
    trigger_time: Optional[int] = None  # seconds; relative meaning depends on caller

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        trigger_condition: str = "Manual trigger",
        lenient: bool = False,
    ) -> "DecisionDefinition":
        return cls(
            title=_text(data, "title", "Unnamed decision"),
            description=_text(data, "description", ""),
            options=[OptionDefinition.from_dict(o) for o in _records(data, "options")],
            time_limit=_optional_int(data, "time_limit", lenient),
            is_urgent=bool(data.get("is_urgent", False)),
            trigger_condition=_text(data, "trigger_condition", trigger_condition),
            trigger_time=_optional_int(data, "trigger_time", lenient),
        )


@dataclass
class CommunicationDefinition:
    type: str
    sender: str
    message: str
    is_important: bool = False
    trigger_condition: str = "Manual trigger"
    trigger_time: Optional[int] = None

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        trigger_condition: str = "Manual trigger",
        lenient: bool = False,
    ) -> "CommunicationDefinition":
        comm_type = _text(data, "type", "system").lower()
        if comm_type not in COMMUNICATION_TYPES:
            comm_type = "system"
        return cls(
            type=comm_type,
            sender=_text(data, "sender", "System"),
            message=_text(data, "message", "No message content"),
            is_important=bool(data.get("is_important", False)),
            trigger_condition=_text(data, "trigger_condition", trigger_condition),
            trigger_time=_optional_int(data, "trigger_time", lenient),
        )


@dataclass
class ScenarioDefinition:
    """Everything needed to create a scenario and its children in one unit."""
    title: str
    description: str = "No description provided"
    aircraft: str = "Unknown aircraft"
    departure: str = "Unknown departure"
    arrival: str = "Unknown arrival"
    initial_altitude: float = 30000.0
    initial_heading: float = 0.0
    initial_fuel: float = 10000.0
    max_fuel: float = 20000.0
    fuel_burn_rate: float = 50.0
    waypoints: List[WaypointDefinition] = field(default_factory=list)
    weather: Any = None  # list of weather cells or a condition object
    decisions: List[DecisionDefinition] = field(default_factory=list)
    communications: List[CommunicationDefinition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], lenient: bool = False) -> "ScenarioDefinition":
        """
        Build a definition, applying defaults for every missing field.

        Raises:
            ValidationError: title missing, or a numeric field is not a
                number and ``lenient`` is off
        """
        if not isinstance(data, dict):
            raise ValidationError("Scenario data must be an object")
        title = data.get("title")
        if not title or not str(title).strip():
            raise ValidationError("Scenario title is required")

        weather = data.get("weather_cells")
        if weather is None:
            weather = data.get("weather")

        return cls(
            title=str(title).strip(),
            description=_text(data, "description", "No description provided"),
            aircraft=_text(data, "aircraft", "Unknown aircraft"),
            departure=_text(data, "departure", "Unknown departure"),
            arrival=_text(data, "arrival", "Unknown arrival"),
            initial_altitude=_number(data, "initial_altitude", 30000.0, lenient),
            initial_heading=_number(data, "initial_heading", 0.0, lenient),
            initial_fuel=_number(data, "initial_fuel", 10000.0, lenient),
            max_fuel=_number(data, "max_fuel", 20000.0, lenient),
            fuel_burn_rate=_number(data, "fuel_burn_rate", 50.0, lenient),
            waypoints=[
                WaypointDefinition.from_dict(w, i, lenient)
                for i, w in enumerate(_records(data, "waypoints"))
            ],
            weather=weather,
            decisions=[
                DecisionDefinition.from_dict(d, lenient=lenient)
                for d in _records(data, "decisions")
            ],
            communications=[
                CommunicationDefinition.from_dict(c, lenient=lenient)
                for c in _records(data, "communications")
            ],
        )
