from __future__ import annotations

"""核心数据类型定义。

该模块统一描述：
- 输入实例结构（仓库、客户、需求、车辆容量与数量、距离矩阵）
- 线性松弛模型结构（变量、线性约束、节点局部变量界）
- 搜索树节点状态、搜索策略与配置
- 求解输出结构
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import MalformedInstance

# 松弛值与整数的距离不超过该值即视为整数。
INTEGRALITY_EPS = 1e-6
# 目标值至少改进该值才替换 incumbent；剪枝判定同样使用该值。
IMPROVEMENT_EPS = 1e-9

Edge = Tuple[int, int]
Bounds = Tuple[float, float]


@dataclass(frozen=True)
class Customer:
    """客户实体：编号、需求与坐标。"""
    customer_id: int
    demand: float
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class InstanceData:
    """求解所需的完整实例（加载后不可变）。

    约定：节点 0 为仓库，customers[i-1] 对应节点 i。
    dist 为 (n+1)x(n+1) 对称矩阵。
    """
    name: str
    depot: Tuple[float, float]
    customers: Tuple[Customer, ...]
    capacity: float
    num_vehicles: int
    dist: Tuple[Tuple[float, ...], ...]

    def __post_init__(self):
        n = len(self.customers)
        if self.capacity <= 0:
            raise MalformedInstance(f"vehicle capacity must be positive, got {self.capacity}")
        if self.num_vehicles < 1:
            raise MalformedInstance(f"vehicle count must be >= 1, got {self.num_vehicles}")
        for idx, c in enumerate(self.customers, start=1):
            if c.customer_id != idx:
                raise MalformedInstance(f"customer ids must be 1..n in order, got {c.customer_id} at position {idx}")
            if c.demand < 0:
                raise MalformedInstance(f"negative demand: customer={c.customer_id}, demand={c.demand}")
        if len(self.dist) != n + 1 or any(len(row) != n + 1 for row in self.dist):
            raise MalformedInstance(f"distance matrix must be {n + 1}x{n + 1}")
        for i in range(n + 1):
            for j in range(n + 1):
                d = self.dist[i][j]
                if d < 0 or math.isnan(d):
                    raise MalformedInstance(f"invalid distance dist[{i}][{j}]={d}")
                if abs(d - self.dist[j][i]) > 1e-9:
                    raise MalformedInstance(f"distance matrix is not symmetric at ({i}, {j})")

    @property
    def num_customers(self) -> int:
        return len(self.customers)

    def demand(self, node: int) -> float:
        """节点需求（仓库需求为 0）。"""
        if node == 0:
            return 0.0
        return self.customers[node - 1].demand

    @property
    def total_demand(self) -> float:
        return sum(c.demand for c in self.customers)


@dataclass(frozen=True)
class Variable:
    """决策变量：松弛中取 [lb, ub] 连续值，IP 中若 integral 则取整数。"""
    index: int
    name: str
    lb: float
    ub: float
    cost: float
    integral: bool = True


@dataclass(frozen=True)
class LinearConstraint:
    """线性约束 Σ coeff_i x_i (sense) rhs。

    sense 取 "<=", ">=", "==" 之一。
    """
    name: str
    coeffs: Tuple[Tuple[int, float], ...]
    sense: str
    rhs: float

    def __post_init__(self):
        if self.sense not in ("<=", ">=", "=="):
            raise ValueError(f"Unsupported constraint sense: {self.sense}")

    def lhs(self, values: Sequence[float]) -> float:
        return sum(coeff * values[idx] for idx, coeff in self.coeffs)

    def violation(self, values: Sequence[float]) -> float:
        """返回违反量（满足时为 0）。"""
        lhs = self.lhs(values)
        if self.sense == "<=":
            return max(0.0, lhs - self.rhs)
        if self.sense == ">=":
            return max(0.0, self.rhs - lhs)
        return abs(lhs - self.rhs)


@dataclass(frozen=True)
class BoundOverride:
    """节点相对父节点的变量界增量。"""
    var_index: int
    lb: float
    ub: float


@dataclass(frozen=True)
class Formulation:
    """基础线性模型（只读，所有 worker 共享）。

    节点模型 = 基础模型 + 从根累积的 BoundOverride；本对象从不原地修改。
    """
    name: str
    variables: Tuple[Variable, ...]
    constraints: Tuple[LinearConstraint, ...]

    @property
    def num_variables(self) -> int:
        return len(self.variables)

    def bounds_with(self, overrides: Mapping[int, Bounds]) -> List[Bounds]:
        """合并基础变量界与节点覆盖界。"""
        out = []
        for var in self.variables:
            out.append(overrides.get(var.index, (var.lb, var.ub)))
        return out

    def objective(self, values: Sequence[float]) -> float:
        return sum(var.cost * values[var.index] for var in self.variables)

    def is_integral(self, values: Sequence[float], tol: float = INTEGRALITY_EPS) -> bool:
        for var in self.variables:
            if not var.integral:
                continue
            v = values[var.index]
            if abs(v - round(v)) > tol:
                return False
        return True


class NodeStatus(str, Enum):
    """搜索树节点状态。"""
    UNVISITED = "UNVISITED"
    BOUNDED = "BOUNDED"
    BRANCHED = "BRANCHED"
    PRUNED = "PRUNED"
    INFEASIBLE = "INFEASIBLE"
    INTEGRAL = "INTEGRAL"


class ProofStatus(str, Enum):
    """最终解的证明状态。"""
    PROVEN_OPTIMAL = "PROVEN_OPTIMAL"
    TIMED_OUT_BEST_EFFORT = "TIMED_OUT_BEST_EFFORT"
    INFEASIBLE = "INFEASIBLE"


class TerminationReason(str, Enum):
    """搜索结束原因，映射到 ProofStatus。"""
    OPTIMAL = "OPTIMAL"
    TREE_EXHAUSTED = "TREE_EXHAUSTED"
    INFEASIBLE_INSTANCE = "INFEASIBLE_INSTANCE"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    CANCELLED = "CANCELLED"

    @property
    def proof_status(self) -> ProofStatus:
        if self is TerminationReason.OPTIMAL:
            return ProofStatus.PROVEN_OPTIMAL
        if self in (TerminationReason.TREE_EXHAUSTED, TerminationReason.INFEASIBLE_INSTANCE):
            return ProofStatus.INFEASIBLE
        return ProofStatus.TIMED_OUT_BEST_EFFORT


class NodeSelection(str, Enum):
    """节点选择策略。"""
    BEST_BOUND = "best_bound"
    DEPTH_FIRST = "depth_first"


class BranchingRule(str, Enum):
    """分支变量选择规则。"""
    MOST_FRACTIONAL = "most_fractional"
    FIRST_FRACTIONAL = "first_fractional"


@dataclass
class SolverConfig:
    """求解器全局配置（策略、预算、割平面与输出）。"""
    time_limit_s: float = 600.0
    max_nodes: int = 100000
    node_selection: str = "best_bound"
    branching_rule: str = "most_fractional"
    threads: int = 1
    enable_pruning: bool = True
    warm_start: bool = True
    separate_fractional: bool = True
    max_cut_rounds_root: int = 20
    max_cut_rounds_node: int = 5
    cut_violation_tol: float = 1e-6
    record_trace: bool = True
    output_dir: str = "outputs"


@dataclass
class SolveResult:
    """单实例求解结果（交给 Reporter）。"""
    status: str
    reason: str
    obj_primal: float
    obj_dual: float
    gap: float
    routes: List[Tuple[int, ...]]
    stats: Dict[str, float]
    incumbent_history: List[float] = field(default_factory=list)

    @property
    def has_solution(self) -> bool:
        return math.isfinite(self.obj_primal)


@dataclass
class ExperimentReport:
    """批量实验结果。"""
    batch_id: str
    results: List[SolveResult]
    summary: Dict[str, float]
    instance_ids: Optional[List[str]] = None
