# tests/test_api.py
"""
Test the HTTP surface.

Every body is an envelope: {"success": true, "data": ...} or
{"success": false, "error": "..."} with 400/404/500 status codes.
"""

import inspect

import pytest
from fastapi.routing import APIRoute

from flightsim.llm.client import get_llm_client
from flightsim.main import app
from flightsim.scenario.decision_tree import GeneratedBranch
from flightsim.store.definitions import DecisionDefinition, OptionDefinition


def data(response):
    body = response.json()
    assert body["success"] is True, body
    return body["data"]


def error(response, status_code):
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["success"] is False
    assert body["error"]
    return body["error"]


@pytest.fixture
def created(client, scenario_data):
    response = client.post("/scenarios", json=scenario_data)
    assert response.status_code == 201
    return data(response)


@pytest.fixture
def running(client, created):
    response = client.patch("/scenarios", json={"id": created["id"], "action": "activate"})
    assert data(response)["is_active"] is True
    return created["id"]


class TestEnvelope:
    """Error translation."""

    def test_missing_title_is_400(self, client):
        assert "title" in error(client.post("/scenarios", json={"aircraft": "A320"}), 400)

    def test_unknown_scenario_is_404(self, client):
        error(client.get("/scenarios/does-not-exist"), 404)

    def test_missing_query_parameter_is_400(self, client):
        error(client.get("/scenarios/parameters"), 400)

    def test_unknown_route_is_404(self, client):
        error(client.get("/nowhere"), 404)

    def test_bad_action_is_400(self, client, created):
        error(client.patch("/scenarios", json={"id": created["id"], "action": "explode"}), 400)

    def test_unexpected_error_is_500(self, client, created, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("database on fire")

        monkeypatch.setattr("flightsim.scenario.lifecycle.scenario_detail", broken)
        assert error(client.get(f"/scenarios/{created['id']}"), 500) == "Internal server error"

    def test_health(self, client):
        assert data(client.get("/health"))["status"] == "ok"


class TestScenarioRoutes:
    def test_create_and_load(self, client, created):
        loaded = data(client.get(f"/scenarios/{created['id']}"))
        assert loaded["title"] == "Storm Approach"
        assert [w["name"] for w in loaded["waypoints"]] == ["BPK", "POL"]
        assert len(loaded["decisions"][0]["options"]) == 2

    def test_list_filters_active(self, client, created, running):
        assert [s["id"] for s in data(client.get("/scenarios", params={"active": "true"}))] == [running]

    def test_deactivate(self, client, running):
        result = data(client.patch("/scenarios", json={"id": running, "action": "deactivate"}))
        assert result["is_active"] is False
        error(client.get("/scenarios/timing", params={"scenarioId": running}), 404)

    def test_generate_from_prompt(self, client, llm):
        llm.queue({"title": "Bird strike", "decisions": []})
        result = data(client.post("/scenarios/generate", json={"prompt": "Bird strike on departure"}))
        assert result["title"] == "Bird strike"

    def test_generate_needs_route(self, client):
        error(client.post("/scenarios/generate", json={"aircraft": "A320"}), 400)


class TestRuntimeRoutes:
    def test_parameters(self, client, running):
        params = data(client.get("/scenarios/parameters", params={"scenarioId": running}))
        assert params["fuel"] == 15000

        patched = data(client.patch("/scenarios/parameters", json={"scenarioId": running, "altitude": 10000}))
        assert patched["altitude"] == 10000
        assert patched["fuel"] == 15000

    def test_parameter_suggestion_applied(self, client, llm, running):
        llm.queue({"altitude": 10000, "speed": 250, "heading": None})
        result = data(client.post(
            "/scenarios/parameters/suggest",
            json={"scenarioId": running, "situation": "Rapid decompression", "apply": True},
        ))
        assert result["changes"] == {"altitude": 10000.0, "speed": 250.0}
        assert result["parameters"]["altitude"] == 10000

    def test_tick_and_timing(self, client, running):
        result = data(client.post("/scenarios/timing/tick", json={"scenarioId": running, "secondsElapsed": 60}))
        assert result["elapsed_seconds"] == 60
        assert len(result["activated_node_ids"]) == 1
        assert len(result["sent_communication_ids"]) == 1
        assert result["parameters"]["fuel"] == pytest.approx(14950)

        timing = data(client.get("/scenarios/timing", params={"scenarioId": running}))
        assert timing["elapsed_seconds"] == 60
        assert timing["current_decision_id"] is not None

    def test_timing_patch_cannot_go_backwards(self, client, running):
        data(client.patch("/scenarios/timing", json={"scenarioId": running, "elapsedSeconds": 30}))
        error(client.patch("/scenarios/timing", json={"scenarioId": running, "elapsedSeconds": 10}), 400)

    def test_pause_and_resume(self, client, running):
        assert data(client.post("/scenarios/timing/pause", json={"scenarioId": running}))["is_paused"] is True
        tick = data(client.post("/scenarios/timing/tick", json={"scenarioId": running}))
        assert tick["processed"] is False
        assert data(client.post("/scenarios/timing/resume", json={"scenarioId": running}))["is_paused"] is False


class TestDecisionRoutes:
    def test_answer_decision(self, client, branch_generator, running):
        branch_generator.default = GeneratedBranch(next_decision=DecisionDefinition(
            title="Second cell",
            description="Another cell ahead",
            options=[OptionDefinition("Climb", "Above the tops", is_recommended=True)],
        ))
        client.post("/scenarios/timing/tick", json={"scenarioId": running, "secondsElapsed": 60})
        decision = data(client.get("/scenarios/decisions", params={"scenarioId": running, "isActive": "true"}))[0]

        outcome = data(client.post("/scenarios/decisions/responses", json={
            "scenarioId": running,
            "decisionId": decision["id"],
            "optionId": decision["options"][0]["id"],
        }))

        assert outcome["generated"] is True
        assert outcome["activated"] is True
        active = data(client.get("/scenarios/decisions", params={"scenarioId": running, "isActive": "true"}))
        assert [d["title"] for d in active] == ["Second cell"]

        responses = data(client.get("/scenarios/decisions/responses", params={"scenarioId": running}))
        assert responses[0]["option_text"] == "Request deviation west"
        assert responses[0]["is_recommended"] is True

        nodes = data(client.get("/scenarios/decision-nodes", params={"scenarioId": running, "isActive": "true"}))
        assert [n["id"] for n in nodes] == [outcome["node_id"]]

    def test_unknown_option_is_404(self, client, running):
        decision = data(client.get("/scenarios/decisions", params={"scenarioId": running}))[0]
        error(client.post("/scenarios/decisions/responses", json={
            "scenarioId": running, "decisionId": decision["id"], "optionId": "missing",
        }), 404)

    def test_time_limit_patch(self, client, running):
        decision = data(client.get("/scenarios/decisions", params={"scenarioId": running}))[0]
        patched = data(client.patch(f"/scenarios/decisions/{decision['id']}", json={"timeLimit": 45}))
        assert patched["time_limit"] == 45

    def test_node_activation(self, client, running):
        nodes = data(client.get("/scenarios/decision-nodes", params={"scenarioId": running, "triggerTime": 60}))
        assert len(nodes) == 1
        data(client.patch("/scenarios/decision-nodes", json={
            "scenarioId": running, "nodeId": nodes[0]["id"], "isActive": True,
        }))
        tree = data(client.get("/scenarios/decision-tree", params={"scenarioId": running}))
        assert tree["current_node_id"] == nodes[0]["id"]


class TestCommunicationRoutes:
    def test_manual_message(self, client, running):
        result = data(client.post("/scenarios/communications", json={
            "scenarioId": running, "type": "crew", "sender": "Captain", "message": "Seatbelt signs on",
        }))
        assert result["sender"] == "Captain"
        history = data(client.get("/scenarios/communications", params={"scenarioId": running}))
        assert [c["message"] for c in history] == ["Seatbelt signs on"]

    def test_generated_atc_message(self, client, llm, running):
        llm.queue("BAW12, hold as published, expect further clearance 1420")
        result = data(client.post("/scenarios/communications", json={
            "scenarioId": running, "generate": "atc", "callsign": "BAW12", "phase": "approach",
        }))
        assert result["sender"] == "Approach"

    def test_queue_marked_sent_once(self, client, running):
        queue = data(client.get("/scenarios/communications/queue", params={"scenarioId": running, "isSent": "false"}))
        item_id = queue[1]["id"]
        for _ in range(2):
            assert data(client.patch(f"/scenarios/communications/queue/{item_id}", json={"isSent": True}))["is_sent"]
        history = data(client.get("/scenarios/communications", params={"scenarioId": running}))
        assert [c["queue_item_id"] for c in history] == [item_id]


class TestStateRoutes:
    def test_current_and_history(self, client, running):
        state = data(client.get("/scenarios/state", params={"scenarioId": running}))
        assert state["safety_score"] == 100

        data(client.post("/scenarios/state", json={
            "scenarioId": running,
            "safetyScore": 150, "efficiencyScore": 90, "passengerComfortScore": 80,
            "timeDeviation": 2, "fuelRemaining": 14000,
        }))
        history = data(client.get("/scenarios/state", params={"scenarioId": running, "history": "true"}))
        assert [s["safety_score"] for s in history] == [100, 100]
        assert history[-1]["efficiency_score"] == 90

    def test_impact_calculation(self, client, llm, running):
        decision = data(client.get("/scenarios/decisions", params={"scenarioId": running}))[0]
        llm.queue({
            "safety_impact": -4, "efficiency_impact": 2, "passenger_comfort_impact": -6,
            "time_impact": 0, "fuel_impact": 100, "description": "Turbulence",
        })
        result = data(client.post("/scenarios/state", json={
            "scenarioId": running, "decisionId": decision["id"], "optionId": decision["options"][1]["id"],
        }))
        assert result["state"]["safety_score"] == 96
        assert result["impact"]["description"] == "Turbulence"

    def test_unparseable_impact_is_502(self, client, llm, running):
        decision = data(client.get("/scenarios/decisions", params={"scenarioId": running}))[0]
        llm.queue("no idea")
        error(client.post("/scenarios/state", json={
            "scenarioId": running, "decisionId": decision["id"], "optionId": decision["options"][0]["id"],
        }), 502)

    def test_adaptation(self, client, llm, running):
        llm.queue({"difficulty_adjustment": "maintain", "explanation": "Steady"})
        result = data(client.post("/scenarios/adaptations", json={"scenarioId": running}))
        assert result["explanation"] == "Steady"
        assert len(data(client.get("/scenarios/adaptations", params={"scenarioId": running}))) == 1


class TestEvaluationRoutes:
    def test_evaluate_then_report(self, client, llm, running):
        error(client.get(f"/scenarios/{running}/evaluation"), 404)
        llm.queue(
            {
                "safety_score": 90, "efficiency_score": 85, "passenger_comfort_score": 80, "overall_score": 86,
                "strengths": ["Calm"], "areas_for_improvement": [], "recommendations": [],
            },
            "# Executive Summary\nGood.",
        )
        assert data(client.post(f"/scenarios/{running}/evaluation"))["overall_score"] == 86
        assert data(client.get(f"/scenarios/{running}/evaluation"))["strengths"] == ["Calm"]
        assert data(client.get(f"/scenarios/{running}/report"))["report"].startswith("# Executive")


class TestModelHandlers:
    """Handlers that wait on the language model must not block the event loop."""

    def test_model_handlers_run_in_threadpool(self):
        model_routes = [
            route for route in app.routes
            if isinstance(route, APIRoute)
            and (
                any(dep.call is get_llm_client for dep in route.dependant.dependencies)
                or route.endpoint.__name__ == "respond_to_decision"
            )
        ]
        assert len(model_routes) == 8
        for route in model_routes:
            assert not inspect.iscoroutinefunction(route.endpoint), route.path
