"""Request validation run before any simulation work starts."""
from __future__ import annotations

from scenario_engine.exceptions import ValidationError
from scenario_engine.models.simulation import SimulationRequest


def validate_request(request: SimulationRequest) -> None:
    """Raise ValidationError on the first rule the request breaks."""
    if not request.scenarios:
        raise ValidationError("At least one scenario is required")

    horizon = request.time_horizon
    if horizon.start >= horizon.end:
        raise ValidationError(
            f"Time horizon start {horizon.start} must be before end {horizon.end}"
        )

    mc = request.monte_carlo
    if mc.iterations <= 0:
        raise ValidationError(f"iterations must be positive, got {mc.iterations}")
    if not 0.0 < mc.confidence_level < 1.0:
        raise ValidationError(f"confidence_level must be in (0, 1), got {mc.confidence_level}")
    if mc.variability_factor < 0:
        raise ValidationError(f"variability_factor must be >= 0, got {mc.variability_factor}")

    for scenario in request.scenarios:
        if not 0.0 <= scenario.probability <= 1.0:
            raise ValidationError(
                f"Scenario {scenario.id}: probability must be in [0, 1], got {scenario.probability}"
            )
        for action in scenario.actions:
            if not 0.0 <= action.assumed_completion <= 100.0:
                raise ValidationError(
                    f"Scenario {scenario.id}, action {action.action_id}: "
                    f"assumed_completion must be in [0, 100], got {action.assumed_completion}"
                )

    for impact in request.impacts:
        if not 0.0 <= impact.impact_score <= 1.0:
            raise ValidationError(
                f"Impact {impact.action_id}->{impact.kpi_id}: "
                f"impact_score must be in [0, 1], got {impact.impact_score}"
            )

    for parameter in request.sensitivity.parameters:
        if any(v < -100.0 for v in parameter.variations):
            raise ValidationError(f"Parameter {parameter.name}: variations must be >= -100%")
    for sweep in request.sensitivity.ranges:
        if sweep.step <= 0 or sweep.min > sweep.max:
            raise ValidationError(
                f"Range for {sweep.parameter}: need step > 0 and min <= max"
            )
        if sweep.min < -100.0:
            raise ValidationError(f"Range for {sweep.parameter}: variations must be >= -100%")

    if request.max_concurrent is not None and request.max_concurrent < 1:
        raise ValidationError(f"max_concurrent must be >= 1, got {request.max_concurrent}")
    if request.interval_capacity is not None and request.interval_capacity <= 0:
        raise ValidationError(
            f"interval_capacity must be positive, got {request.interval_capacity}"
        )
