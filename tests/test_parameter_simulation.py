# tests/test_parameter_simulation.py
"""
Test the parameter simulator.

simulate_parameters is pure; the seeding/advance helpers go through the
repository.
"""

import math

import pytest

from flightsim.errors import NoCurrentStateError
from flightsim.scenario.parameters import (
    FlightParameters,
    ParameterChange,
    advance_parameters,
    apply_parameter_changes,
    current_parameters,
    simulate_parameters,
    suggest_parameter_changes,
    update_parameters,
)
from flightsim.settings import settings


def cruise(**overrides) -> FlightParameters:
    values = dict(
        latitude=51.47,
        longitude=-0.45,
        altitude=35000.0,
        heading=0.0,
        speed=450.0,
        vertical_speed=0.0,
        fuel=15000.0,
        fuel_burn_rate=50.0,
    )
    values.update(overrides)
    return FlightParameters(**values)


class TestFuelBurn:
    """Fuel burns linearly and never goes negative."""

    def test_one_minute_burns_one_rate(self):
        """50 lbs/min over 60 s leaves 14950 lbs."""
        result = simulate_parameters(cruise(), 60)
        assert result.fuel == pytest.approx(14950.0)

    @pytest.mark.parametrize("elapsed", [0, 1, 59, 3600, 10 ** 6])
    def test_fuel_never_negative(self, elapsed):
        result = simulate_parameters(cruise(fuel=100.0, fuel_burn_rate=80.0), elapsed)
        expected = max(0.0, 100.0 - 80.0 / 60 * elapsed)
        assert result.fuel == pytest.approx(expected)
        assert result.fuel >= 0

    def test_unknown_fuel_stays_unknown(self):
        assert simulate_parameters(cruise(fuel=None), 60).fuel is None

    def test_negative_elapsed_rejected(self):
        with pytest.raises(ValueError):
            simulate_parameters(cruise(), -1)


class TestMotion:
    """Flat-earth position and vertical-speed altitude updates."""

    def test_north_heading_moves_latitude_only(self):
        result = simulate_parameters(cruise(heading=0.0), 60)
        rate = 450.0 / 3600 / 60
        assert result.latitude == pytest.approx(51.47 + rate * 60)
        assert result.longitude == pytest.approx(-0.45)

    def test_east_heading_moves_longitude(self):
        result = simulate_parameters(cruise(heading=90.0), 60)
        rate = 450.0 / 3600 / 60
        assert result.longitude == pytest.approx(-0.45 + math.sin(math.radians(90)) * rate * 60)

    def test_no_speed_no_movement(self):
        result = simulate_parameters(cruise(speed=None), 600)
        assert (result.latitude, result.longitude) == (51.47, -0.45)

    def test_vertical_speed_changes_altitude(self):
        result = simulate_parameters(cruise(vertical_speed=-1500.0), 120)
        assert result.altitude == pytest.approx(32000.0)

    def test_input_not_mutated(self):
        params = cruise()
        simulate_parameters(params, 60)
        assert params.fuel == 15000.0


class TestParameterChange:
    """Partial updates; None means unchanged."""

    def test_from_dict_keeps_numeric_known_fields(self):
        change = ParameterChange.from_dict(
            {"altitude": "31000", "heading": None, "speed": True, "colour": 3, "vertical_speed": "fast"}
        )
        assert change.to_dict() == {"altitude": 31000.0}

    def test_apply_overlays_only_given_fields(self):
        result = apply_parameter_changes(cruise(), ParameterChange(heading=270.0))
        assert result.heading == 270.0
        assert result.altitude == 35000.0

    def test_empty_change(self):
        assert ParameterChange.from_dict(None).is_empty()


class TestStoredParameters:
    """Seeding and advancing the parameter row."""

    def test_advance_without_row_raises(self, repo, scenario_id):
        with pytest.raises(NoCurrentStateError):
            advance_parameters(repo, scenario_id, 1)

    def test_current_parameters_seeds_from_scenario(self, repo, scenario_id):
        params = current_parameters(repo, scenario_id)
        assert params.fuel == 15000.0
        assert params.altitude == 35000.0
        assert params.latitude == settings.default_latitude
        assert params.speed == settings.default_speed
        assert repo.find_parameters(scenario_id) is not None

    def test_advance_persists(self, repo, active_scenario_id):
        advance_parameters(repo, active_scenario_id, 60)
        repo.session.commit()
        assert repo.find_parameters(active_scenario_id).fuel == pytest.approx(14950.0)

    def test_update_parameters(self, repo, active_scenario_id):
        update_parameters(repo, active_scenario_id, ParameterChange(altitude=12000.0))
        assert repo.find_parameters(active_scenario_id).altitude == 12000.0


class TestParameterSuggestion:
    """The model may only change flight-control fields."""

    def test_position_and_fuel_ignored(self, llm):
        llm.queue({"altitude": 10000, "heading": None, "latitude": 1.0, "fuel": 5, "speed": 210})
        change = suggest_parameter_changes(llm, cruise(), "Engine fire on the left engine")
        assert change.to_dict() == {"altitude": 10000.0, "speed": 210.0}
        assert "Engine fire" in llm.last_prompt
