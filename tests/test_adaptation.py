# tests/test_adaptation.py
"""
Test difficulty adaptation.

Only content that has not happened yet is adjusted: time limits of
decisions on never-activated nodes, delays of unsent messages, weather.
"""

import pytest

from flightsim.errors import GenerationParseError
from flightsim.scenario.adaptation import (
    AdaptationPlan,
    adapt_scenario_difficulty,
    adjust_weather_cells,
)
from flightsim.scenario.tick import update_timing


def plan(**overrides) -> dict:
    values = {
        "difficulty_adjustment": "increase",
        "time_pressure_adjustment": "increase",
        "communication_frequency_adjustment": "maintain",
        "weather_intensity_adjustment": "maintain",
        "explanation": "Pilot is coping well",
    }
    values.update(overrides)
    return values


class TestAdaptationPlan:
    def test_unknown_values_become_maintain(self):
        result = AdaptationPlan.from_model_output({"difficulty_adjustment": "MUCH HARDER", "weather_intensity_adjustment": "Increase"})
        assert result.difficulty_adjustment == "maintain"
        assert result.weather_intensity_adjustment == "increase"
        assert result.time_pressure_adjustment == "maintain"


class TestWeatherCells:
    def test_increase_steps_up_and_grows(self):
        cells = [{"intensity": "moderate", "size": 0.9}, {"intensity": "heavy", "size": 0.5}]
        adjusted = adjust_weather_cells(cells, "increase")
        assert [c["intensity"] for c in adjusted] == ["heavy", "heavy"]
        assert adjusted[0]["size"] == 1.0
        assert adjusted[1]["size"] == pytest.approx(0.6)
        assert cells[0]["intensity"] == "moderate"

    def test_decrease_steps_down_and_shrinks(self):
        adjusted = adjust_weather_cells([{"intensity": "light", "size": 0.11}], "decrease")
        assert adjusted == [{"intensity": "light", "size": 0.1}]

    def test_maintain_leaves_cells(self):
        cells = [{"intensity": "moderate", "size": 0.5}]
        assert adjust_weather_cells(cells, "maintain") is cells


class TestAdaptScenario:
    """End to end through the repository."""

    def test_no_responses_uses_neutral_ratio(self, repo, llm, active_scenario_id):
        llm.queue(plan())
        adaptation = adapt_scenario_difficulty(repo, llm, active_scenario_id)
        assert adaptation.performance_ratio == 0.5
        assert "no decisions yet" in llm.last_prompt

    def test_time_pressure_tightens_pending_decisions(self, repo, llm, tree, active_scenario_id):
        first_node, second_node = repo.list_nodes(active_scenario_id)
        tree.activate_node(first_node)
        llm.queue(plan())

        adapt_scenario_difficulty(repo, llm, active_scenario_id)

        assert repo.get_decision(first_node.decision_id).time_limit == 30
        assert repo.get_decision(second_node.decision_id).time_limit == 48

    def test_maintained_difficulty_keeps_time_limits(self, repo, llm, active_scenario_id):
        llm.queue(plan(difficulty_adjustment="maintain"))
        adapt_scenario_difficulty(repo, llm, active_scenario_id)
        assert [d.time_limit for d in repo.list_decisions(active_scenario_id)] == [30, 60]

    def test_communication_frequency_scales_remaining_delay(self, repo, llm, active_scenario_id):
        update_timing(repo, active_scenario_id, elapsed_seconds=20)
        llm.queue(plan(communication_frequency_adjustment="decrease"))

        adapt_scenario_difficulty(repo, llm, active_scenario_id)

        first, second = repo.list_queue(active_scenario_id)
        assert first.trigger_time == 0
        assert second.trigger_time == 20 + round(80 * 1.2)

    def test_weather_intensified(self, repo, llm, active_scenario_id):
        llm.queue(plan(weather_intensity_adjustment="increase"))
        adapt_scenario_difficulty(repo, llm, active_scenario_id)
        cell = repo.find_weather(active_scenario_id).weather_data[0]
        assert cell["intensity"] == "heavy"
        assert cell["size"] == pytest.approx(0.6)

    def test_recent_performance_ratio(self, repo, llm, active_scenario_id):
        first, second = repo.list_decisions(active_scenario_id)
        repo.record_response(active_scenario_id, first.id, first.options[0].id)
        repo.record_response(active_scenario_id, second.id, second.options[1].id)
        repo.session.commit()
        llm.queue(plan(difficulty_adjustment="decrease", time_pressure_adjustment="decrease"))

        adaptation = adapt_scenario_difficulty(repo, llm, active_scenario_id)

        assert adaptation.performance_ratio == 0.5
        assert "Divert to Liverpool" in llm.last_prompt
        assert [a.id for a in repo.list_adaptations(active_scenario_id)] == [adaptation.id]

    def test_unparseable_reply_changes_nothing(self, repo, llm, active_scenario_id):
        llm.queue("Make it harder.")
        with pytest.raises(GenerationParseError):
            adapt_scenario_difficulty(repo, llm, active_scenario_id)
        assert repo.list_adaptations(active_scenario_id) == []
