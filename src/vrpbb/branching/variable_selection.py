from __future__ import annotations

"""分支规则模块（变量二分支）。

核心思想：
- 在松弛解中挑选取值为分数的整数变量；
- most_fractional: 选择小数部分最接近 0.5 的变量，使两个子问题更均衡；
- first_fractional: 选择编号最小的分数变量；
- 同等情况下取编号最小者，保证结果可复现；
- 左支: x_j <= floor(v)；右支: x_j >= ceil(v)（0/1 变量即 x_j = 0 / x_j = 1）。
"""

import math
from typing import Mapping, Optional, Sequence, Tuple

from vrpbb.core.types import INTEGRALITY_EPS, BoundOverride, Bounds, BranchingRule, Formulation


def pick_branch_variable(
    formulation: Formulation,
    values: Sequence[float],
    rule: BranchingRule = BranchingRule.MOST_FRACTIONAL,
    tol: float = INTEGRALITY_EPS,
) -> Optional[int]:
    """从分数变量中选分支变量；解已整数时返回 None。"""
    candidate = None
    best_dist = math.inf
    for var in formulation.variables:
        if not var.integral:
            continue
        value = values[var.index]
        frac = value - math.floor(value)
        if min(frac, 1.0 - frac) <= tol:
            continue
        if rule is BranchingRule.FIRST_FRACTIONAL:
            return var.index
        dist = abs(frac - 0.5)
        # 严格小于：同距离时保留编号更小的变量。
        if dist < best_dist:
            best_dist = dist
            candidate = var.index
    return candidate


def split_bounds(
    var_index: int,
    value: float,
    current: Bounds,
) -> Tuple[BoundOverride, BoundOverride]:
    """根据分数取值生成左右子节点的界增量。"""
    lb, ub = current
    down = BoundOverride(var_index=var_index, lb=lb, ub=float(math.floor(value)))
    up = BoundOverride(var_index=var_index, lb=float(math.ceil(value)), ub=ub)
    return down, up


def current_bounds(formulation: Formulation, overrides: Mapping[int, Bounds], var_index: int) -> Bounds:
    """变量在当前节点的有效界。"""
    var = formulation.variables[var_index]
    return overrides.get(var_index, (var.lb, var.ub))
