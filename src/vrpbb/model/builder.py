from __future__ import annotations

"""CVRP 两下标（无向边）线性松弛模型构建。

模型对应经典 two-index 形式：
- 决策变量: x_e, e=(i,j), i<j；客户边取 {0,1}，仓库边 x_0j 取 {0,1,2}
  （x_0j=2 表示单客户路线 0-j-0）
- 约束: 客户度约束 x(δ(i)) = 2、车队约束 x(δ(0)) <= 2K、
  根容量割 x(δ(0)) >= 2·max(1, ⌈d(V)/Q⌉)
  超载客户 j（d_j > Q）另加 x(δ({j})) >= 2·⌈d_j/Q⌉，使实例在根节点即判定不可行
- 扩展: 子回路/容量割在搜索中惰性生成（见 vrpbb.cuts）

变量按 (i, j) 字典序编号，分支时的最小编号规则即以此为准。
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from vrpbb.core.route_utils import edge_key, edges_from_routes, routes_from_edges
from vrpbb.core.types import Edge, Formulation, InstanceData, LinearConstraint, Variable


def capacity_rhs(instance: InstanceData, demand: float) -> float:
    """容量割右端: 2·max(1, ⌈d(S)/Q⌉)。"""
    return 2.0 * max(1, math.ceil(demand / instance.capacity - 1e-9))


@dataclass(frozen=True)
class CvrpModel:
    """实例 + 基础模型 + 边索引映射。"""
    instance: InstanceData
    formulation: Formulation
    edges: Tuple[Edge, ...]
    edge_index: Dict[Edge, int]

    def cut_coefficients(self, members) -> Tuple[Tuple[int, float], ...]:
        """x(δ(S)) 的系数：恰有一个端点在 S 内的边。"""
        inside = set(members)
        return tuple(
            (idx, 1.0)
            for idx, (i, j) in enumerate(self.edges)
            if (i in inside) != (j in inside)
        )

    def edge_counts(self, values: Sequence[float]) -> Dict[Edge, int]:
        """把（整数）变量取值四舍五入为边使用次数。"""
        out: Dict[Edge, int] = {}
        for idx, edge in enumerate(self.edges):
            k = int(round(values[idx]))
            if k > 0:
                out[edge] = k
        return out

    def decode_routes(self, values: Sequence[float]) -> List[Tuple[int, ...]]:
        return routes_from_edges(self.edge_counts(values))

    def encode_routes(self, routes) -> List[float]:
        values = [0.0] * len(self.edges)
        for edge, k in edges_from_routes(routes).items():
            values[self.edge_index[edge]] += float(k)
        return values


def build_model(instance: InstanceData) -> CvrpModel:
    """构建 CVRP 根节点线性松弛模型。"""
    n = instance.num_customers
    variables: List[Variable] = []
    edges: List[Edge] = []
    edge_index: Dict[Edge, int] = {}
    for i in range(n + 1):
        for j in range(i + 1, n + 1):
            idx = len(edges)
            edges.append((i, j))
            edge_index[(i, j)] = idx
            variables.append(
                Variable(
                    index=idx,
                    name=f"x_{i}_{j}",
                    lb=0.0,
                    ub=2.0 if i == 0 else 1.0,
                    cost=float(instance.dist[i][j]),
                    integral=True,
                )
            )

    constraints: List[LinearConstraint] = []
    # 客户度约束：每个客户恰好一进一出。
    for i in range(1, n + 1):
        coeffs = tuple(
            (edge_index[edge_key(i, other)], 1.0) for other in range(n + 1) if other != i
        )
        constraints.append(LinearConstraint(name=f"degree_{i}", coeffs=coeffs, sense="==", rhs=2.0))

    if n > 0:
        depot_coeffs = tuple((edge_index[(0, j)], 1.0) for j in range(1, n + 1))
        # 车队约束：至多 K 条非空路线。
        constraints.append(
            LinearConstraint(name="fleet", coeffs=depot_coeffs, sense="<=", rhs=2.0 * instance.num_vehicles)
        )
        # 根容量割（S = 全体客户）：总需求超出车队容量时根松弛直接不可行。
        constraints.append(
            LinearConstraint(
                name="rcc_all",
                coeffs=depot_coeffs,
                sense=">=",
                rhs=capacity_rhs(instance, instance.total_demand),
            )
        )

    # 单客户需求超过 Q 时右端至少为 4，与度约束 x(δ({j})) = 2 冲突。
    for j in range(1, n + 1):
        demand = instance.demand(j)
        if demand > instance.capacity + 1e-9:
            coeffs = tuple(
                (edge_index[edge_key(j, other)], 1.0) for other in range(n + 1) if other != j
            )
            constraints.append(
                LinearConstraint(name=f"rcc_{j}", coeffs=coeffs, sense=">=", rhs=capacity_rhs(instance, demand))
            )

    formulation = Formulation(
        name=f"CVRP_{instance.name}",
        variables=tuple(variables),
        constraints=tuple(constraints),
    )
    return CvrpModel(
        instance=instance,
        formulation=formulation,
        edges=tuple(edges),
        edge_index=edge_index,
    )
