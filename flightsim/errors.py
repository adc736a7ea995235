# flightsim/errors.py
"""
Error taxonomy for the scenario engine.

Every error carries the HTTP status the API layer responds with.
"""

from typing import Optional


class ScenarioEngineError(Exception):
    """Base class for all engine errors."""

    status_code = 500


class ValidationError(ScenarioEngineError):
    """Missing or invalid input. Caller must correct it; never retried."""

    status_code = 400


class NotFoundError(ScenarioEngineError):
    """An entity ID did not resolve."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} not found: {entity_id}")


class StorageError(ScenarioEngineError):
    """Underlying store failure."""

    status_code = 500


class ConcurrencyError(StorageError):
    """Optimistic version check on a scenario runtime row failed."""

    status_code = 409


class NoCurrentStateError(ScenarioEngineError):
    """Parameter simulation was asked to advance a scenario with no parameters."""

    status_code = 404

    def __init__(self, scenario_id: str):
        self.scenario_id = scenario_id
        super().__init__(f"No aircraft parameters recorded for scenario {scenario_id}")


class GenerationParseError(ScenarioEngineError):
    """Language-model output could not be turned into JSON."""

    status_code = 502

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(message)


class DecisionProcessingError(ScenarioEngineError):
    """A step inside decision processing failed; the whole call was rolled back."""

    status_code = 500
