from __future__ import annotations

"""路线辅助函数：
- 路线载重与距离
- 可行性检查
- 边使用次数 <-> 路线序列 的互相转换
"""

from typing import Dict, Iterable, List, Sequence, Tuple

from .types import Edge, InstanceData


def edge_key(i: int, j: int) -> Edge:
    """无向边统一记为 (小编号, 大编号)。"""
    return (i, j) if i < j else (j, i)


def route_load(instance: InstanceData, seq: Sequence[int]) -> float:
    return sum(instance.demand(c) for c in seq)


def route_cost(instance: InstanceData, seq: Sequence[int]) -> float:
    """闭环路线 0 -> seq -> 0 的总距离（空路线为 0）。"""
    if not seq:
        return 0.0
    path = [0, *seq, 0]
    return sum(instance.dist[u][v] for u, v in zip(path, path[1:]))


def route_feasible(instance: InstanceData, seq: Sequence[int]) -> bool:
    """校验单条路线。

    检查项：
    1) 客户编号合法且不重复；
    2) 载重不超过车辆容量。
    """
    n = instance.num_customers
    if any(c < 1 or c > n for c in seq):
        return False
    if len(set(seq)) != len(seq):
        return False
    return route_load(instance, seq) <= instance.capacity + 1e-9


def solution_feasible(instance: InstanceData, routes: Iterable[Sequence[int]]) -> bool:
    """校验完整解：每个客户恰好访问一次、路线数不超过车辆数、每条路线可行。"""
    routes = [tuple(r) for r in routes if r]
    if len(routes) > instance.num_vehicles:
        return False
    visited: List[int] = []
    for r in routes:
        if not route_feasible(instance, r):
            return False
        visited.extend(r)
    return sorted(visited) == list(range(1, instance.num_customers + 1))


def edges_from_routes(routes: Iterable[Sequence[int]]) -> Dict[Edge, int]:
    """把路线序列转换为无向边使用次数（单客户路线的仓库边计 2 次）。"""
    counts: Dict[Edge, int] = {}
    for seq in routes:
        if not seq:
            continue
        path = [0, *seq, 0]
        for u, v in zip(path, path[1:]):
            key = edge_key(u, v)
            counts[key] = counts.get(key, 0) + 1
    return counts


def routes_from_edges(edge_counts: Dict[Edge, int]) -> List[Tuple[int, ...]]:
    """从整数边使用次数重建路线。

    仓库出发沿未使用边行走直到回到仓库；不与仓库相连的环（子回路）
    不会被还原，调用方需保证输入已通过容量割校验。
    """
    adj: Dict[int, List[int]] = {}
    for (u, v), k in sorted(edge_counts.items()):
        for _ in range(int(k)):
            adj.setdefault(u, []).append(v)
            adj.setdefault(v, []).append(u)

    routes: List[Tuple[int, ...]] = []
    while adj.get(0):
        cur = adj[0].pop(0)
        adj[cur].remove(0)
        seq = [cur]
        while cur != 0:
            nxt = adj[cur].pop(0)
            adj[nxt].remove(cur)
            cur = nxt
            if cur != 0:
                seq.append(cur)
        routes.append(tuple(seq))
    return routes
