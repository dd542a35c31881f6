from __future__ import annotations

"""圆整容量割（RCC）分离器。

对松弛解的支撑图（取值 > ε 的边，去掉仓库）求客户连通分量 S，
检查 x(δ(S)) >= 2·max(1, ⌈d(S)/Q⌉) 是否被违反：
- 整数解：该检查是精确的，无违反即为可行 CVRP 解；
- 分数解：作为启发式分离，用于收紧下界。
"""

import logging
from typing import Dict, List, Sequence, Set

from vrpbb.core.types import INTEGRALITY_EPS, LinearConstraint
from vrpbb.model.builder import CvrpModel, capacity_rhs
from .definitions import CutDefinition

logger = logging.getLogger(__name__)


def _components(model: CvrpModel, values: Sequence[float]) -> List[Set[int]]:
    """客户子图的连通分量（按最小客户编号排序，保证确定性）。"""
    n = model.instance.num_customers
    adj: Dict[int, Set[int]] = {c: set() for c in range(1, n + 1)}
    for idx, (i, j) in enumerate(model.edges):
        if i == 0 or values[idx] <= INTEGRALITY_EPS:
            continue
        adj[i].add(j)
        adj[j].add(i)

    seen: Set[int] = set()
    comps: List[Set[int]] = []
    for start in range(1, n + 1):
        if start in seen:
            continue
        comp = {start}
        stack = [start]
        while stack:
            u = stack.pop()
            for v in adj[u]:
                if v not in comp:
                    comp.add(v)
                    stack.append(v)
        seen |= comp
        comps.append(comp)
    return comps


def make_capacity_cut(model: CvrpModel, members) -> CutDefinition:
    """为客户子集构造容量割。"""
    members = frozenset(members)
    demand = sum(model.instance.demand(c) for c in members)
    rhs = capacity_rhs(model.instance, demand)
    row = LinearConstraint(
        name=f"rcc_{'_'.join(str(c) for c in sorted(members))}",
        coeffs=model.cut_coefficients(members),
        sense=">=",
        rhs=rhs,
    )
    return CutDefinition(members=members, rhs=rhs, constraint=row)


class CapacityCutSeparator:
    """连通分量启发式 RCC 分离器。

    调用方式：separator(values, integral) -> 违反的割列表。
    分数解仅在 separate_fractional 打开时分离。
    """

    def __init__(self, model: CvrpModel, violation_tol: float = 1e-6, separate_fractional: bool = True):
        self.model = model
        self.violation_tol = violation_tol
        self.separate_fractional = separate_fractional

    def __call__(self, values: Sequence[float], integral: bool) -> List[CutDefinition]:
        if not integral and not self.separate_fractional:
            return []
        n = self.model.instance.num_customers
        cuts: List[CutDefinition] = []
        for comp in _components(self.model, values):
            if len(comp) == n and n > 0:
                # S = 全体客户的割已在基础模型中。
                continue
            cut = make_capacity_cut(self.model, comp)
            if cut.constraint.violation(values) > self.violation_tol:
                cuts.append(cut)
        if cuts:
            logger.debug("separated %d capacity cuts (integral=%s)", len(cuts), integral)
        return cuts
