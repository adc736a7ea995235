# tests/test_evaluation.py
"""
Test the scenario evaluator and the performance report.
"""

import pytest

from flightsim.errors import GenerationParseError, NotFoundError
from flightsim.scenario.evaluation import (
    evaluate_scenario,
    generate_performance_report,
    get_evaluation,
    parse_evaluation,
    summarize_decisions,
)
from flightsim.scenario.lifecycle import create_scenario

EVALUATION = {
    "safety_score": 88,
    "efficiency_score": 104,
    "passenger_comfort_score": 71.5,
    "overall_score": 80,
    "strengths": ["Early weather avoidance"],
    "areas_for_improvement": ["Fuel planning"],
    "recommendations": ["Review holding fuel calculations"],
}


@pytest.fixture
def four_decision_scenario(repo) -> str:
    """Four answered decisions, three of them with the recommended option."""
    scenario = create_scenario(repo, {
        "title": "Four Choices",
        "decisions": [
            {
                "title": f"Decision {n}",
                "options": [
                    {"text": f"Good {n}", "is_recommended": True},
                    {"text": f"Poor {n}", "is_recommended": False},
                ],
            }
            for n in range(1, 5)
        ],
    })
    for index, decision in enumerate(repo.list_decisions(scenario.id)):
        option = decision.options[1] if index == 3 else decision.options[0]
        repo.record_response(scenario.id, decision.id, option.id)
    repo.session.commit()
    return scenario.id


class TestSummary:
    def test_ratio_three_of_four(self, repo, four_decision_scenario):
        summary = summarize_decisions(repo.list_responses(four_decision_scenario))
        assert (summary.recommended, summary.total) == (3, 4)
        assert summary.recommended_ratio == 0.75

    def test_no_decisions(self):
        assert summarize_decisions([]).recommended_ratio == 0.0


class TestEvaluateScenario:
    """One stored evaluation per scenario."""

    def test_ratio_reaches_prompt(self, repo, llm, four_decision_scenario):
        llm.queue(EVALUATION)
        evaluate_scenario(repo, llm, four_decision_scenario)
        assert "Recommended ratio: 0.75" in llm.last_prompt
        assert "Recommended choices: 3/4 (75%)" in llm.last_prompt
        assert "Poor 4" in llm.last_prompt

    def test_scores_clamped_and_stored(self, repo, llm, four_decision_scenario):
        llm.queue(EVALUATION)
        evaluation = evaluate_scenario(repo, llm, four_decision_scenario)
        assert evaluation.efficiency_score == 100
        assert evaluation.passenger_comfort_score == 71.5
        assert evaluation.recommendations == ["Review holding fuel calculations"]
        assert get_evaluation(repo, four_decision_scenario).id == evaluation.id

    def test_second_evaluation_replaces_first(self, repo, llm, four_decision_scenario):
        llm.queue(EVALUATION, {**EVALUATION, "overall_score": 60})
        evaluate_scenario(repo, llm, four_decision_scenario)
        evaluate_scenario(repo, llm, four_decision_scenario)
        assert get_evaluation(repo, four_decision_scenario).overall_score == 60

    def test_unparseable_reply_stores_nothing(self, repo, llm, four_decision_scenario):
        llm.queue("Great flying overall!")
        with pytest.raises(GenerationParseError):
            evaluate_scenario(repo, llm, four_decision_scenario)
        with pytest.raises(NotFoundError):
            get_evaluation(repo, four_decision_scenario)

    def test_missing_score_rejected(self):
        with pytest.raises(GenerationParseError):
            parse_evaluation({**EVALUATION, "overall_score": None})


class TestPerformanceReport:
    def test_report_uses_evaluation(self, repo, llm, four_decision_scenario):
        llm.queue(EVALUATION, "# Executive Summary\nSolid session.")
        evaluate_scenario(repo, llm, four_decision_scenario)

        report = generate_performance_report(repo, llm, four_decision_scenario)

        assert report.startswith("# Executive Summary")
        assert "Early weather avoidance" in llm.last_prompt

    def test_report_requires_evaluation(self, repo, llm, four_decision_scenario):
        with pytest.raises(NotFoundError):
            generate_performance_report(repo, llm, four_decision_scenario)
