from fleet_planner.assignment.solver import (
    BlockPolicyEvaluator,
    ParetoSynthesizer,
    Policy,
    PolicyEvaluator,
    PolicySynthesizer,
    SynthesisResult,
    TargetPoint,
)
from fleet_planner.assignment.value_iteration import sparse_value_iteration
from fleet_planner.assignment.witness import WitnessAllocator, sample_policy_index

__all__ = [
    "BlockPolicyEvaluator",
    "ParetoSynthesizer",
    "Policy",
    "PolicyEvaluator",
    "PolicySynthesizer",
    "SynthesisResult",
    "TargetPoint",
    "sparse_value_iteration",
    "WitnessAllocator",
    "sample_policy_index",
]
