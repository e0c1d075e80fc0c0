"""Tests for the POST /api/simulations/run endpoint."""
from fastapi.testclient import TestClient

from scenario_engine.main import app

client = TestClient(app)

_SERIES = {
    "kpi_id": "oee",
    "points": [
        {"period": f"{2023 + i // 4}-Q{i % 4 + 1}", "value": 50 + 5 * i}
        for i in range(8)
    ],
}

_REQUEST = {
    "scenarios": [
        {
            "id": "base",
            "name": "Base case",
            "probability": 1.0,
            "actions": [{"action_id": "tpm", "assumed_completion": 80, "estimated_impact": 5}],
        },
    ],
    "monte_carlo": {"iterations": 200, "random_seed": 3},
    "sensitivity": {"parameters": [{"name": "impact_score", "variations": [-20, 0, 20]}]},
    "time_horizon": {"start": "2025-01-01", "end": "2025-06-30", "intervals": "monthly"},
    "kpi_series": [_SERIES],
    "kpi_targets": [{"kpi_id": "oee", "current_value": 85, "target": 150}],
    "impacts": [{"action_id": "tpm", "kpi_id": "oee", "impact_score": 0.5}],
    "actions": [{"action_id": "tpm", "priority": 1, "estimated_effort": 2, "estimated_impact": 5}],
}


def test_simulation_returns_200():
    response = client.post("/api/simulations/run", json=_REQUEST)
    assert response.status_code == 200


def test_simulation_response_structure():
    data = client.post("/api/simulations/run", json=_REQUEST).json()
    assert data["state"] == "completed"
    assert data["run_id"].startswith("run_")
    assert len(data["scenario_results"]) == 1
    scenario = data["scenario_results"][0]
    assert scenario["iterations"] == 200
    assert scenario["draws"] == []
    assert 0.0 <= scenario["risk"]["downside_probability"] <= 1.0
    assert scenario["kpi_projections"][0]["kpi_id"] == "oee"
    assert data["baselines"][0]["source"] == "forecast"
    assert data["sensitivity"]["parameters"][0]["parameter"] == "impact_score"
    assert data["timeline"]["horizon_intervals"] == 6
    assert data["timeline"]["actions"][0]["start_date"] == "2025-01-01"
    assert data["timeline"]["actions"][0]["end_date"] == "2025-02-28"
    assert data["timeline"]["critical_path"] == ["tpm"]
    assert data["timeline"]["total_duration_days"] == 59
    assert [h["state"] for h in data["history"]][-1] == "completed"


def test_simulation_draws_opt_in():
    request = {**_REQUEST, "monte_carlo": {"iterations": 200, "random_seed": 3, "include_draws": True}}
    scenario = client.post("/api/simulations/run", json=request).json()["scenario_results"][0]
    assert len(scenario["draws"]) == 200
    assert scenario["draws"] == sorted(scenario["draws"])


def test_simulation_invalid_request_returns_422():
    bad = {**_REQUEST, "monte_carlo": {"iterations": 0}}
    response = client.post("/api/simulations/run", json=bad)
    assert response.status_code == 422
    assert "iterations" in response.json()["detail"]


def test_simulation_empty_scenarios_returns_422():
    response = client.post("/api/simulations/run", json={**_REQUEST, "scenarios": []})
    assert response.status_code == 422
