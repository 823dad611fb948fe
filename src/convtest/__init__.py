
from .dsl import copy, group, matrix, min_version, probe, suite, target
from .dag import TargetGraph
from .runner import run_targets, run_target
from .model import ExecutionResult, Probe, Status, Target

__all__ = [
    "copy",
    "group",
    "matrix",
    "min_version",
    "probe",
    "suite",
    "target",
    "TargetGraph",
    "run_targets",
    "run_target",
    "ExecutionResult",
    "Probe",
    "Status",
    "Target",
]
