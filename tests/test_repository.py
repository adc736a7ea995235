# tests/test_repository.py
"""
Test the scenario repository.

Round-trip of a full scenario, creation defaults, unit-of-work rollback,
storage error translation and the runtime row's version check.
"""

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from flightsim.db.models import Decision, Scenario, ScenarioTiming
from flightsim.errors import ConcurrencyError, NotFoundError, StorageError, ValidationError
from flightsim.scenario.lifecycle import (
    activate_scenario,
    create_scenario,
    deactivate_scenario,
    scenario_detail,
)
from flightsim.settings import settings
from flightsim.store.definitions import CommunicationDefinition


class TestScenarioRoundTrip:
    """A created scenario loads back with the same children."""

    def test_counts_and_order(self, repo, scenario_id):
        scenario = repo.load_scenario(scenario_id)
        assert scenario.title == "Storm Approach"
        assert [w.name for w in scenario.waypoints] == ["BPK", "POL"]
        assert [w.sequence for w in scenario.waypoints] == [1, 2]
        assert [d.title for d in scenario.decisions] == ["Cell on the arrival", "Hold or divert"]
        assert all(len(d.options) == 2 for d in scenario.decisions)
        assert scenario.decisions[0].options[0].text == "Request deviation west"
        assert scenario.decisions[0].options[0].is_recommended is True
        assert len(scenario.queued_communications) == 2
        assert scenario.weather.weather_data[0]["intensity"] == "moderate"

    def test_detail_dict(self, repo, scenario_id):
        detail = scenario_detail(repo, scenario_id)
        assert detail["id"] == scenario_id
        assert len(detail["waypoints"]) == 2
        assert detail["decisions"][1]["options"][1]["text"] == "Divert to Liverpool"
        assert detail["communications"][0]["sender"] == "London Control"
        assert detail["weather"][0]["type"] == "thunderstorm"

    def test_root_nodes_and_queue_schedule(self, repo, scenario_id):
        """Unscheduled decisions and messages are spaced by the configured intervals."""
        nodes = repo.list_nodes(scenario_id)
        assert [n.trigger_time for n in nodes] == [
            settings.decision_interval_seconds,
            2 * settings.decision_interval_seconds,
        ]
        assert all(n.parent_node_id is None and n.option_id is None for n in nodes)
        assert not any(n.is_active for n in nodes)

        queue = repo.list_queue(scenario_id)
        assert [item.trigger_time for item in queue] == [0, 100]
        assert not any(item.is_sent for item in queue)


class TestCreationDefaults:
    """Missing fields fall back to documented defaults."""

    def test_title_required(self, repo):
        with pytest.raises(ValidationError):
            create_scenario(repo, {"description": "no title"})
        assert repo.list_scenarios() == []

    def test_minimal_scenario(self, repo):
        scenario = create_scenario(repo, {
            "title": "Bare",
            "waypoints": [{}],
            "decisions": [{"options": [{}]}],
            "communications": [{"type": "radio"}],
        })
        assert scenario.aircraft == "Unknown aircraft"
        assert scenario.initial_fuel == 10000.0
        assert scenario.fuel_burn_rate == 50.0

        loaded = repo.load_scenario(scenario.id)
        assert loaded.waypoints[0].name == "Unnamed waypoint"
        decision = loaded.decisions[0]
        assert decision.title == "Unnamed decision"
        assert decision.trigger_condition == "Manual trigger"
        assert decision.options[0].text == "No option text"
        assert decision.options[0].consequences == "No consequences specified"
        item = loaded.queued_communications[0]
        assert (item.type, item.sender, item.message) == ("system", "System", "No message content")

    def test_explicit_trigger_time_kept(self, repo):
        scenario = create_scenario(repo, {
            "title": "Timed",
            "decisions": [{"title": "Now", "trigger_time": 5, "options": [{"text": "ok"}]}],
        })
        assert repo.list_nodes(scenario.id)[0].trigger_time == 5

    def test_bad_number_rejected(self, repo):
        with pytest.raises(ValidationError):
            create_scenario(repo, {"title": "Broken", "initial_fuel": "lots"})


class TestUnitOfWork:
    """Writes commit together or not at all."""

    def test_exception_rolls_back(self, repo, scenario_id):
        with pytest.raises(RuntimeError):
            with repo.unit_of_work():
                repo.create_queue_item(
                    scenario_id,
                    CommunicationDefinition(type="system", sender="System", message="lost"),
                )
                raise RuntimeError("boom")
        assert [i.message for i in repo.list_queue(scenario_id) if i.message == "lost"] == []

    def test_nested_units_commit_once(self, repo, scenario_id):
        with repo.unit_of_work():
            with repo.unit_of_work():
                repo.update_scenario(scenario_id, description="changed")
            repo.session.rollback()  # inner exit must not have committed
        assert repo.get_scenario(scenario_id).description != "changed"

    def test_partial_scenario_creation_rolls_back(self, repo, scenario_data, monkeypatch):
        def fail(*args, **kwargs):
            raise StorageError("queue unavailable")

        monkeypatch.setattr(repo, "create_queue_item", fail)
        with pytest.raises(StorageError):
            create_scenario(repo, scenario_data)
        assert repo.session.scalars(select(Scenario)).all() == []
        assert repo.session.scalars(select(Decision)).all() == []


class TestStorageErrors:
    def test_not_found(self, repo):
        with pytest.raises(NotFoundError) as exc_info:
            repo.get_decision("missing")
        assert exc_info.value.entity == "Decision"

    def test_sqlalchemy_error_becomes_storage_error(self, repo, scenario_id, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(repo.session, "scalars", broken)
        with pytest.raises(StorageError):
            repo.list_waypoints(scenario_id)

    def test_stale_runtime_write_is_concurrency_error(self, repo, active_scenario_id):
        """A write based on an outdated version of the runtime row is refused."""
        timing = repo.get_timing(active_scenario_id)
        repo.session.execute(
            update(ScenarioTiming)
            .where(ScenarioTiming.id == timing.id)
            .values(version=ScenarioTiming.version + 1)
            .execution_options(synchronize_session=False)
        )
        with pytest.raises(ConcurrencyError):
            repo.update_timing(timing, elapsed_seconds=5)


class TestRecords:
    """Smaller repository behaviors."""

    def test_activating_waypoint_deactivates_others(self, repo, scenario_id):
        first, second = repo.list_waypoints(scenario_id)
        repo.update_waypoint(first.id, is_active=True)
        repo.update_waypoint(second.id, is_active=True)
        assert [w.is_active for w in repo.list_waypoints(scenario_id)] == [False, True]

    def test_sending_twice_creates_one_history_entry(self, repo, scenario_id):
        item = repo.list_queue(scenario_id)[0]
        assert repo.send_queue_item(item) is not None
        assert repo.send_queue_item(item) is None
        history = repo.list_communications(scenario_id)
        assert len(history) == 1
        assert history[0].queue_item_id == item.id

    def test_history_limit_returns_latest_in_order(self, repo, scenario_id):
        for n in range(5):
            repo.add_communication(scenario_id, type="system", sender="System", message=f"m{n}")
        assert [c.message for c in repo.list_communications(scenario_id, limit=2)] == ["m3", "m4"]

    def test_evaluation_is_replaced(self, repo, scenario_id):
        fields = dict(
            efficiency_score=50, passenger_comfort_score=50, overall_score=50,
            strengths=[], areas_for_improvement=[], recommendations=[],
        )
        repo.save_evaluation(scenario_id, safety_score=10, **fields)
        repo.save_evaluation(scenario_id, safety_score=90, **fields)
        assert repo.find_evaluation(scenario_id).safety_score == 90


class TestLifecycle:
    def test_activate_seeds_runtime(self, repo, scenario_id):
        activate_scenario(repo, scenario_id)
        assert repo.get_scenario(scenario_id).is_active
        assert repo.list_waypoints(scenario_id)[0].is_active
        assert repo.find_parameters(scenario_id).fuel == 15000.0
        state = repo.find_current_state(scenario_id)
        assert (state.safety_score, state.fuel_remaining) == (100.0, 15000.0)
        timing = repo.get_timing(scenario_id)
        assert (timing.elapsed_seconds, timing.is_paused) == (0, False)

    def test_reactivation_keeps_single_initial_state(self, repo, scenario_id):
        activate_scenario(repo, scenario_id)
        activate_scenario(repo, scenario_id)
        assert len(repo.list_states(scenario_id)) == 1

    def test_deactivate_clears_runtime(self, repo, active_scenario_id, tree):
        tree.activate_node(repo.list_nodes(active_scenario_id)[0])
        deactivate_scenario(repo, active_scenario_id)
        assert not repo.get_scenario(active_scenario_id).is_active
        assert repo.find_active_node(active_scenario_id) is None
        assert repo.list_decisions(active_scenario_id, is_active=True) == []
        assert repo.find_timing(active_scenario_id) is None
