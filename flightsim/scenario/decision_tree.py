# flightsim/scenario/decision_tree.py
"""
Decision Tree Advancer.

Each DecisionNode is a state; the chosen DecisionOption is the edge.
Answering a decision either follows an existing child node for
(current node, option) or asks a BranchGenerator to invent one, which is
then stored so the same path never needs generating again.

Invariants:
- at most one node per scenario is active; a displaced node takes its
  unanswered decision with it
- a node's communications and parameter changes are applied once
  (``effects_applied``), however often the node is activated
- a completed decision is never reactivated
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from ..db.models import Decision, DecisionNode, DecisionOption, Scenario
from ..errors import (
    DecisionProcessingError,
    GenerationParseError,
    ValidationError,
)
from ..llm.client import get_llm_client
from ..llm.extract import generate_json
from ..logging import get_scenario_logger
from ..store.definitions import CommunicationDefinition, DecisionDefinition
from ..store.repository import ScenarioRepository
from .impact import resolve_choice
from .parameters import FlightParameters, ParameterChange, current_parameters, update_parameters

GENERATED_COMMUNICATION_TRIGGER = "Generated from decision"
GENERATED_DECISION_TRIGGER = "Generated from previous decision"

# Flight-control fields a generated branch may change
BRANCH_PARAMETER_FIELDS = ("altitude", "heading", "speed", "vertical_speed", "fuel_burn_rate")


@dataclass
class BranchContext:
    """What a generator knows when inventing the next branch."""
    scenario_title: str
    scenario_description: str
    decision_title: str
    decision_description: str
    option_text: str
    option_consequences: str
    option_recommended: bool
    parameters: FlightParameters
    elapsed_seconds: int = 0


@dataclass
class GeneratedBranch:
    """Effects of a choice plus the optional follow-up decision."""
    parameter_changes: ParameterChange = field(default_factory=ParameterChange)
    communications: List[CommunicationDefinition] = field(default_factory=list)
    next_decision: Optional[DecisionDefinition] = None

    @classmethod
    def from_model_output(cls, data: Dict[str, Any]) -> "GeneratedBranch":
        """
        Build a branch from the model's JSON object.

        A next decision without options is dropped (it could never be answered).
        """
        raw_changes = data.get("parameter_changes")
        if not isinstance(raw_changes, dict):
            raw_changes = {}
        changes = ParameterChange.from_dict(
            {k: v for k, v in raw_changes.items() if k in BRANCH_PARAMETER_FIELDS}
        )

        raw_comms = data.get("communications")
        if not isinstance(raw_comms, list):
            raw_comms = []
        communications = [
            CommunicationDefinition.from_dict(
                c, trigger_condition=GENERATED_COMMUNICATION_TRIGGER, lenient=True
            )
            for c in raw_comms
            if isinstance(c, dict)
        ]

        next_decision = None
        raw_next = data.get("next_decision")
        if isinstance(raw_next, dict):
            next_decision = DecisionDefinition.from_dict(
                raw_next, trigger_condition=GENERATED_DECISION_TRIGGER, lenient=True
            )
            if not next_decision.options:
                next_decision = None

        return cls(
            parameter_changes=changes,
            communications=communications,
            next_decision=next_decision,
        )


class BranchGenerator(Protocol):
    """Produces the branch that follows a choice with no stored child node."""

    def generate_branch(self, context: BranchContext) -> GeneratedBranch:
        ...


BRANCH_SYSTEM_PROMPT = (
    "You are a flight simulation scenario creator. Continue a training "
    "scenario realistically after the pilot's decision, with clear decision points."
)


class LLMBranchGenerator:
    """
    BranchGenerator backed by a language model.

    Without an explicit client the global one is created on first use, so
    paths that never generate need no provider credentials.
    """

    def __init__(self, llm=None):
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm_client()
        return self._llm

    def build_prompt(self, context: BranchContext) -> List[Dict[str, str]]:
        params = context.parameters
        prompt = f"""
Scenario: {context.scenario_title}
{context.scenario_description}

Aircraft state:
- Altitude: {params.altitude} feet
- Heading: {params.heading} degrees
- Speed: {params.speed} knots
- Fuel: {params.fuel} lbs

The pilot faced this decision: {context.decision_title}
{context.decision_description}

They chose: {context.option_text}
Expected consequences: {context.option_consequences}
This {"was" if context.option_recommended else "was not"} the recommended option.

Describe what happens next. Respond with JSON only:
{{
  "parameter_changes": {{"altitude": number or null, "heading": number or null, "fuel_burn_rate": number or null}},
  "communications": [
    {{"type": "atc" | "crew" | "system", "sender": "string", "message": "string", "is_important": boolean}}
  ],
  "next_decision": {{
    "title": "string",
    "description": "string",
    "time_limit": seconds or null,
    "is_urgent": boolean,
    "options": [{{"text": "string", "consequences": "string", "is_recommended": boolean}}],
    "trigger_time": seconds from now (0 for immediately)
  }}
}}
Set "next_decision" to null if the scenario reaches a natural end.
""".strip()
        return [
            {"role": "system", "content": BRANCH_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    def generate_branch(self, context: BranchContext) -> GeneratedBranch:
        result = generate_json(self.llm, self.build_prompt(context))
        return GeneratedBranch.from_model_output(result.data)


class CannedBranchGenerator:
    """
    Deterministic BranchGenerator replaying fixed branches in order.

    Once the list is exhausted it returns ``default`` (a leaf by default).
    Every context it receives is kept in ``calls``.
    """

    def __init__(
        self,
        branches: Optional[List[GeneratedBranch]] = None,
        default: Optional[GeneratedBranch] = None,
    ):
        self._branches = list(branches or [])
        self.default = default or GeneratedBranch()
        self.calls: List[BranchContext] = []

    def generate_branch(self, context: BranchContext) -> GeneratedBranch:
        self.calls.append(context)
        if self._branches:
            return self._branches.pop(0)
        return self.default


@dataclass
class DecisionOutcome:
    """Result of answering a decision."""
    response_id: str
    node_id: Optional[str]
    next_decision_id: Optional[str]
    generated: bool
    activated: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response_id": self.response_id,
            "node_id": self.node_id,
            "next_decision_id": self.next_decision_id,
            "generated": self.generated,
            "activated": self.activated,
        }


@dataclass
class DecisionTreeView:
    nodes: List[DecisionNode]
    current_node_id: Optional[str]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DecisionTree:
    """
    Moves a scenario through its decision nodes.

    Usage:
        tree = DecisionTree(repo, LLMBranchGenerator(get_llm_client()))
        outcome = tree.process_decision(scenario_id, decision_id, option_id)
    """

    def __init__(self, repo: ScenarioRepository, generator: BranchGenerator):
        self.repo = repo
        self.generator = generator

    def load(self, scenario_id: str) -> DecisionTreeView:
        """All nodes in creation order plus the active one."""
        self.repo.get_scenario(scenario_id)
        nodes = self.repo.list_nodes(scenario_id)
        current = next((n.id for n in nodes if n.is_active), None)
        return DecisionTreeView(nodes=nodes, current_node_id=current)

    # ============================================================
    # ACTIVATION
    # ============================================================

    def activate_node(self, node: DecisionNode) -> bool:
        """
        Make ``node`` the scenario's active node.

        Deactivates any other active node together with its unanswered
        decision, activates this node's decision unless it was already
        answered, and applies the node's effects the first time.
        Activating an active node does nothing.

        Returns:
            True if the node was activated by this call
        """
        if node.is_active:
            return False

        log = get_scenario_logger(__name__, node.scenario_id).bind(node_id=node.id)
        with self.repo.unit_of_work():
            for other in self.repo.list_nodes(node.scenario_id, is_active=True):
                if other.id != node.id and other.decision_id is not None:
                    displaced = self.repo.get_decision(other.decision_id)
                    if not displaced.is_completed:
                        displaced.is_active = False
            self.repo.deactivate_nodes(node.scenario_id, except_node_id=node.id)
            node.is_active = True
            if node.activated_at is None:
                node.activated_at = _now()

            decision_id = None
            if node.decision_id is not None:
                decision = self.repo.get_decision(node.decision_id)
                if not decision.is_completed:
                    decision.is_active = True
                    decision_id = decision.id

            self._apply_node_effects(node)
            self._set_position(node.scenario_id, node.id, decision_id)

        log.info("decision_node_activated", decision_id=decision_id)
        return True

    def deactivate_node(self, node: DecisionNode) -> None:
        """Deactivate a node and its unanswered decision."""
        with self.repo.unit_of_work():
            node.is_active = False
            if node.decision_id is not None:
                decision = self.repo.get_decision(node.decision_id)
                decision.is_active = False
            timing = self.repo.find_timing(node.scenario_id)
            if timing is not None and timing.current_node_id == node.id:
                self.repo.update_timing(timing, current_node_id=None, current_decision_id=None)
            self.repo.session.flush()

    def set_node_active(self, node_id: str, is_active: bool) -> DecisionNode:
        node = self.repo.get_node(node_id)
        if is_active:
            self.activate_node(node)
        else:
            self.deactivate_node(node)
        return node

    def set_decision_active(self, decision_id: str, is_active: bool) -> Decision:
        """
        Activate or deactivate a decision directly.

        A decision owned by a node is activated through that node so the
        one-active-node rule and the node's effects still apply.
        """
        decision = self.repo.get_decision(decision_id)
        if is_active and decision.is_completed:
            raise ValidationError(f"Decision {decision_id} was already answered")
        node = self.repo.find_node_for_decision(decision_id)
        if node is not None and not (is_active and node.is_active):
            if is_active:
                self.activate_node(node)
            else:
                self.deactivate_node(node)
            return decision

        with self.repo.unit_of_work():
            decision.is_active = is_active
            timing = self.repo.find_timing(decision.scenario_id)
            if is_active and timing is not None:
                self.repo.update_timing(timing, current_decision_id=decision.id)
            elif timing is not None and timing.current_decision_id == decision.id:
                self.repo.update_timing(timing, current_decision_id=None)
            self.repo.session.flush()
        return decision

    def _apply_node_effects(self, node: DecisionNode) -> None:
        """Send the node's communications and apply its parameter changes, once."""
        if node.effects_applied:
            return
        for item_id in node.communications_to_trigger or []:
            self.repo.send_queue_item(self.repo.get_queue_item(item_id))

        changes = dict(node.parameter_changes or {})
        weather = changes.pop("weather", None)
        change = ParameterChange.from_dict(changes)
        if not change.is_empty():
            update_parameters(self.repo, node.scenario_id, change)
        if weather is not None:
            self.repo.set_weather(node.scenario_id, weather)

        node.effects_applied = True
        self.repo.session.flush()

    def _set_position(self, scenario_id: str, node_id: Optional[str], decision_id: Optional[str]) -> None:
        timing = self.repo.find_timing(scenario_id)
        if timing is not None:
            self.repo.update_timing(timing, current_node_id=node_id, current_decision_id=decision_id)

    # ============================================================
    # ANSWERING DECISIONS
    # ============================================================

    def process_decision(self, scenario_id: str, decision_id: str, option_id: str) -> DecisionOutcome:
        """
        Record a choice and advance the tree.

        Either the whole step is stored (response, completed decision,
        node transition, generated content) or nothing is.

        Raises:
            NotFoundError: scenario, decision or option unknown
            ValidationError: mismatched IDs or decision already answered
            DecisionProcessingError: any later failure (generation or storage)
        """
        log = get_scenario_logger(__name__, scenario_id).bind(
            decision_id=decision_id, option_id=option_id
        )
        scenario = self.repo.get_scenario(scenario_id)
        decision, option = resolve_choice(self.repo, scenario_id, decision_id, option_id)
        if decision.is_completed:
            raise ValidationError(f"Decision {decision_id} was already answered")

        try:
            # The branch hangs off the node that presented this decision
            current = self.repo.find_active_node(scenario_id)
            parent = self.repo.find_node_for_decision(decision.id) or current
            parent_id = parent.id if parent is not None else None
            child = self.repo.find_child_node(scenario_id, parent_id, option.id)

            branch = None
            if child is None:
                branch = self.generator.generate_branch(
                    self._branch_context(scenario, decision, option)
                )

            with self.repo.unit_of_work():
                response = self.repo.record_response(scenario_id, decision.id, option.id)
                decision.is_active = False
                decision.is_completed = True
                if parent is not None:
                    parent.is_active = False
                if current is None or current is parent:
                    self._set_position(scenario_id, None, None)

                if child is not None:
                    activated = self.activate_node(child)
                    node = child
                else:
                    node, activated = self._store_branch(scenario, option, parent_id, branch)
        except GenerationParseError as exc:
            log.error("branch_generation_failed", error=str(exc))
            raise DecisionProcessingError(f"Could not generate next branch: {exc}") from exc
        except Exception as exc:
            log.error("decision_processing_failed", exc_info=True, error=str(exc))
            raise DecisionProcessingError(f"Failed to process decision: {exc}") from exc

        outcome = DecisionOutcome(
            response_id=response.id,
            node_id=node.id,
            next_decision_id=node.decision_id,
            generated=child is None,
            activated=activated,
        )
        log.info(
            "decision_processed",
            node_id=outcome.node_id,
            next_decision_id=outcome.next_decision_id,
            generated=outcome.generated,
            activated=outcome.activated,
        )
        return outcome

    def _branch_context(self, scenario: Scenario, decision: Decision, option: DecisionOption) -> BranchContext:
        timing = self.repo.find_timing(scenario.id)
        return BranchContext(
            scenario_title=scenario.title,
            scenario_description=scenario.description,
            decision_title=decision.title,
            decision_description=decision.description,
            option_text=option.text,
            option_consequences=option.consequences,
            option_recommended=option.is_recommended,
            parameters=current_parameters(self.repo, scenario.id),
            elapsed_seconds=timing.elapsed_seconds if timing is not None else 0,
        )

    def _store_branch(
        self,
        scenario: Scenario,
        option: DecisionOption,
        parent_id: Optional[str],
        branch: GeneratedBranch,
    ):
        """
        Persist a generated branch as a new child node.

        With no trigger delay the node is activated now. Otherwise its
        communications and parameter changes still apply now, and the node
        (with its decision) waits for the tick that reaches its trigger time.
        """
        timing = self.repo.find_timing(scenario.id)
        elapsed = timing.elapsed_seconds if timing is not None else 0

        comm_ids = [
            self.repo.create_queue_item(scenario.id, comm).id
            for comm in branch.communications
        ]

        next_decision = None
        delay = 0
        if branch.next_decision is not None:
            next_decision = self.repo.create_decision(scenario.id, branch.next_decision)
            delay = max(0, branch.next_decision.trigger_time or 0)

        node = self.repo.create_node(
            scenario.id,
            decision_id=next_decision.id if next_decision is not None else None,
            parent_node_id=parent_id,
            option_id=option.id,
            trigger_time=elapsed + delay,
            communications_to_trigger=comm_ids,
            parameter_changes=branch.parameter_changes.to_dict() or None,
        )

        if delay == 0:
            return node, self.activate_node(node)
        self._apply_node_effects(node)
        return node, False
