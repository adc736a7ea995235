# flightsim/scenario/tick.py
"""
Scenario Tick Processor and clock control.

A client calls ``process_tick`` about once a second for a running
scenario. Steps, each in its own transaction:

1. skip if the scenario has no runtime row or is paused
2. advance elapsed seconds (failure aborts the tick)
3. simulate aircraft parameters (failure logged, tick continues)
4. activate decision nodes whose trigger time has been reached
5. send queued communications whose trigger time has been reached

Steps 4 and 5 log and skip individual failures. A tick based on a stale
read of the runtime row fails with ConcurrencyError rather than
double-applying time.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..db.models import ScenarioTiming
from ..errors import NoCurrentStateError, ValidationError
from ..logging import get_scenario_logger
from ..store.repository import ScenarioRepository
from .decision_tree import DecisionTree
from .parameters import FlightParameters, advance_parameters, seed_parameters


@dataclass
class TickResult:
    """What one tick did."""
    scenario_id: str
    processed: bool
    elapsed_seconds: Optional[int] = None
    is_paused: Optional[bool] = None
    parameters: Optional[FlightParameters] = None
    activated_node_ids: List[str] = field(default_factory=list)
    sent_communication_ids: List[str] = field(default_factory=list)
    failed_steps: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "processed": self.processed,
            "elapsed_seconds": self.elapsed_seconds,
            "is_paused": self.is_paused,
            "parameters": self.parameters.to_dict() if self.parameters else None,
            "activated_node_ids": self.activated_node_ids,
            "sent_communication_ids": self.sent_communication_ids,
            "failed_steps": self.failed_steps,
        }


# ============================================================
# CLOCK CONTROL
# ============================================================

def start_timing(repo: ScenarioRepository, scenario_id: str) -> ScenarioTiming:
    """Create a fresh running clock at zero."""
    repo.get_scenario(scenario_id)
    with repo.unit_of_work():
        return repo.create_timing(scenario_id)


def set_paused(repo: ScenarioRepository, scenario_id: str, paused: bool) -> ScenarioTiming:
    timing = repo.get_timing(scenario_id)
    with repo.unit_of_work():
        repo.update_timing(timing, is_paused=paused)
    get_scenario_logger(__name__, scenario_id).info(
        "scenario_paused" if paused else "scenario_resumed",
        elapsed_seconds=timing.elapsed_seconds,
    )
    return timing


def pause_scenario(repo: ScenarioRepository, scenario_id: str) -> ScenarioTiming:
    return set_paused(repo, scenario_id, True)


def resume_scenario(repo: ScenarioRepository, scenario_id: str) -> ScenarioTiming:
    return set_paused(repo, scenario_id, False)


def update_timing(
    repo: ScenarioRepository,
    scenario_id: str,
    elapsed_seconds: Optional[int] = None,
    is_paused: Optional[bool] = None,
) -> ScenarioTiming:
    """
    Set the clock directly, creating it if needed.

    Raises:
        ValidationError: elapsed_seconds would move the clock backwards
    """
    timing = repo.find_timing(scenario_id)
    if timing is None:
        timing = start_timing(repo, scenario_id)

    patch: Dict[str, Any] = {}
    if elapsed_seconds is not None:
        if elapsed_seconds < timing.elapsed_seconds:
            raise ValidationError(
                f"elapsed_seconds cannot decrease ({timing.elapsed_seconds} -> {elapsed_seconds})"
            )
        patch["elapsed_seconds"] = elapsed_seconds
    if is_paused is not None:
        patch["is_paused"] = is_paused

    with repo.unit_of_work():
        repo.update_timing(timing, **patch)
    return timing


# ============================================================
# TICK
# ============================================================

class TickProcessor:
    """
    Advances one scenario by one tick.

    Usage:
        processor = TickProcessor(repo, DecisionTree(repo, generator))
        result = processor.process_tick(scenario_id, seconds_elapsed=1)
    """

    def __init__(self, repo: ScenarioRepository, tree: DecisionTree):
        self.repo = repo
        self.tree = tree

    def process_tick(self, scenario_id: str, seconds_elapsed: int = 1) -> TickResult:
        if seconds_elapsed < 0:
            raise ValidationError("seconds_elapsed must be non-negative")

        log = get_scenario_logger(__name__, scenario_id)
        result = TickResult(scenario_id=scenario_id, processed=False)

        timing = self.repo.find_timing(scenario_id)
        if timing is None:
            log.debug("tick_skipped", reason="no_timing")
            return result
        if timing.is_paused:
            log.debug("tick_skipped", reason="paused")
            result.elapsed_seconds = timing.elapsed_seconds
            result.is_paused = True
            return result

        # Clock first; anything failing here aborts the tick
        with self.repo.unit_of_work():
            self.repo.update_timing(
                timing,
                elapsed_seconds=timing.elapsed_seconds + seconds_elapsed,
                is_paused=False,
            )
        elapsed = timing.elapsed_seconds
        result.processed = True
        result.elapsed_seconds = elapsed
        result.is_paused = False

        result.parameters = self._simulate(scenario_id, seconds_elapsed, result, log)
        self._activate_due_nodes(scenario_id, elapsed, result, log)
        self._send_due_communications(scenario_id, elapsed, result, log)

        log.debug(
            "tick_processed",
            elapsed_seconds=elapsed,
            activated_nodes=len(result.activated_node_ids),
            sent_communications=len(result.sent_communication_ids),
        )
        return result

    def _simulate(self, scenario_id: str, seconds_elapsed: int, result: TickResult, log):
        try:
            with self.repo.unit_of_work():
                try:
                    return advance_parameters(self.repo, scenario_id, seconds_elapsed)
                except NoCurrentStateError:
                    log.warning("parameters_missing_on_tick")
                    seed_parameters(self.repo, scenario_id)
                    return advance_parameters(self.repo, scenario_id, seconds_elapsed)
        except Exception as exc:
            # The clock keeps running even if the simulator fails
            log.error("parameter_simulation_failed", exc_info=True, error=str(exc))
            result.failed_steps.append("parameters")
            return None

    def _activate_due_nodes(self, scenario_id: str, elapsed: int, result: TickResult, log):
        try:
            due = self.repo.list_due_nodes(scenario_id, elapsed)
        except Exception as exc:
            log.error("due_node_query_failed", exc_info=True, error=str(exc))
            result.failed_steps.append("decision_nodes")
            return
        for node in due:
            node_id = node.id
            try:
                if self.tree.activate_node(node):
                    result.activated_node_ids.append(node_id)
            except Exception as exc:
                log.error("node_activation_failed", exc_info=True, node_id=node_id, error=str(exc))
                result.failed_steps.append(f"decision_node:{node_id}")

    def _send_due_communications(self, scenario_id: str, elapsed: int, result: TickResult, log):
        try:
            due = self.repo.list_due_communications(scenario_id, elapsed)
        except Exception as exc:
            log.error("due_communication_query_failed", exc_info=True, error=str(exc))
            result.failed_steps.append("communications")
            return
        for item in due:
            item_id = item.id
            try:
                with self.repo.unit_of_work():
                    sent = self.repo.send_queue_item(item)
                if sent is not None:
                    result.sent_communication_ids.append(item_id)
            except Exception as exc:
                log.error("communication_send_failed", exc_info=True, queue_item_id=item_id, error=str(exc))
                result.failed_steps.append(f"communication:{item_id}")
