from __future__ import annotations

"""初始 incumbent 构造模块。

当前策略：
- 从仓库出发按最近邻构造一条巨型回路（giant tour）；
- 对回路的每个旋转，按 first-fit 把客户依次装入 K 辆车；
- 过滤不可行划分，保留总距离最小者。

该模块只为搜索提供初始上界，不替代精确搜索。
"""

import logging
from typing import List, Optional, Tuple

from vrpbb.core.route_utils import route_cost, solution_feasible
from vrpbb.core.types import InstanceData

logger = logging.getLogger(__name__)


def nearest_neighbor_tour(instance: InstanceData) -> List[int]:
    """最近邻巨型回路（不含仓库），同距离时取编号较小者。"""
    unvisited = set(range(1, instance.num_customers + 1))
    tour: List[int] = []
    cur = 0
    while unvisited:
        nxt = min(unvisited, key=lambda c: (instance.dist[cur][c], c))
        tour.append(nxt)
        unvisited.remove(nxt)
        cur = nxt
    return tour


def _first_fit(instance: InstanceData, tour: List[int]) -> Optional[List[List[int]]]:
    """按回路顺序把客户放入第一辆装得下的车；有客户放不下则返回 None。"""
    routes: List[List[int]] = [[] for _ in range(instance.num_vehicles)]
    loads = [0.0] * instance.num_vehicles
    for c in tour:
        q = instance.demand(c)
        for k in range(instance.num_vehicles):
            if loads[k] + q <= instance.capacity + 1e-9:
                routes[k].append(c)
                loads[k] += q
                break
        else:
            return None
    return routes


def build_initial_routes(instance: InstanceData) -> Optional[Tuple[List[Tuple[int, ...]], float]]:
    """返回 (路线, 总距离)；找不到可行划分时返回 None。"""
    if instance.num_customers == 0:
        return [], 0.0

    tour = nearest_neighbor_tour(instance)
    best: Optional[Tuple[List[Tuple[int, ...]], float]] = None
    for shift in range(len(tour)):
        rotated = tour[shift:] + tour[:shift]
        partition = _first_fit(instance, rotated)
        if partition is None:
            continue
        routes = [tuple(r) for r in partition if r]
        if not solution_feasible(instance, routes):
            continue
        cost = sum(route_cost(instance, r) for r in routes)
        if best is None or cost < best[1]:
            best = (routes, cost)

    if best is None:
        logger.info("no feasible giant-tour partition for %s", instance.name)
    else:
        logger.info("initial routes for %s: cost=%.4f routes=%d", instance.name, best[1], len(best[0]))
    return best
