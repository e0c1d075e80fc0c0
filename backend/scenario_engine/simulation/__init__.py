"""Simulation engine — scenario model, Monte Carlo, sensitivity, and scheduling."""
from scenario_engine.simulation.scenarios import CompiledScenario, compile_scenario, weighted_outcome
from scenario_engine.simulation.engine import CancellationToken, MonteCarloSimulator
from scenario_engine.simulation.sensitivity import SensitivityAnalyzer, analyze_sensitivity
from scenario_engine.simulation.optimizer import ActionSequenceOptimizer, optimize_action_sequence
from scenario_engine.simulation.validation import validate_request

__all__ = [
    "CompiledScenario",
    "compile_scenario",
    "weighted_outcome",
    "CancellationToken",
    "MonteCarloSimulator",
    "SensitivityAnalyzer",
    "analyze_sensitivity",
    "ActionSequenceOptimizer",
    "optimize_action_sequence",
    "validate_request",
]
