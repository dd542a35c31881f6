"""核心类型与通用工具。"""

from .errors import GurobiUnavailableError, MalformedInstance, OracleFailure, SolverError
from .types import (
    INTEGRALITY_EPS,
    IMPROVEMENT_EPS,
    BoundOverride,
    BranchingRule,
    Customer,
    ExperimentReport,
    Formulation,
    InstanceData,
    LinearConstraint,
    NodeSelection,
    NodeStatus,
    ProofStatus,
    SolveResult,
    SolverConfig,
    TerminationReason,
    Variable,
)
from .route_utils import route_feasible, solution_feasible

__all__ = [
    "INTEGRALITY_EPS",
    "IMPROVEMENT_EPS",
    "BoundOverride",
    "BranchingRule",
    "Customer",
    "ExperimentReport",
    "Formulation",
    "GurobiUnavailableError",
    "InstanceData",
    "LinearConstraint",
    "MalformedInstance",
    "NodeSelection",
    "NodeStatus",
    "OracleFailure",
    "ProofStatus",
    "SolveResult",
    "SolverConfig",
    "SolverError",
    "TerminationReason",
    "Variable",
    "route_feasible",
    "solution_feasible",
]
