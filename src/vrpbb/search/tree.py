from __future__ import annotations

"""搜索树存储：节点池（arena）与共享活跃节点队列。

- NodeArena: 按编号寻址的节点池。节点只记录父节点编号和相对父节点的
  变量界增量；节点及其全部子节点都退出活跃集合后即从池中释放。
- NodeQueue: 多 worker 共享的优先队列。保证每个节点恰好被弹出一次，
  并跟踪正在处理的节点数以判定搜索是否结束。
"""

import heapq
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from vrpbb.core.types import BoundOverride, Bounds, NodeSelection, NodeStatus

RETIRED = frozenset(
    {NodeStatus.BRANCHED, NodeStatus.PRUNED, NodeStatus.INFEASIBLE, NodeStatus.INTEGRAL}
)


@dataclass
class Node:
    """分支树节点。

    lower_bound 在首次求解前继承自父节点，求解后更新为本节点松弛值。
    """
    node_id: int
    parent_id: Optional[int]
    depth: int
    deltas: Tuple[BoundOverride, ...]
    lower_bound: float
    status: NodeStatus = NodeStatus.UNVISITED
    live_children: int = 0


class NodeArena:
    """线程安全的节点池。"""

    def __init__(self):
        self._lock = threading.Lock()
        self._nodes: Dict[int, Node] = {}
        self._next_id = 0
        self.created = 0
        self.freed = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def create(self, parent_id: Optional[int], deltas: Tuple[BoundOverride, ...], lower_bound: float) -> Node:
        with self._lock:
            depth = 0
            if parent_id is not None:
                parent = self._nodes[parent_id]
                parent.live_children += 1
                depth = parent.depth + 1
            node = Node(
                node_id=self._next_id,
                parent_id=parent_id,
                depth=depth,
                deltas=tuple(deltas),
                lower_bound=lower_bound,
            )
            self._nodes[node.node_id] = node
            self._next_id += 1
            self.created += 1
            return node

    def get(self, node_id: int) -> Node:
        with self._lock:
            return self._nodes[node_id]

    def overrides(self, node_id: int) -> Dict[int, Bounds]:
        """从节点回溯到根累积变量界；越深的增量越紧，优先保留。"""
        out: Dict[int, Bounds] = {}
        with self._lock:
            cur: Optional[int] = node_id
            while cur is not None:
                node = self._nodes[cur]
                for d in reversed(node.deltas):
                    if d.var_index not in out:
                        out[d.var_index] = (d.lb, d.ub)
                cur = node.parent_id
        return out

    def mark(self, node_id: int, status: NodeStatus, lower_bound: Optional[float] = None) -> None:
        """更新节点状态；进入终态时尝试释放节点及其已完成的祖先。"""
        with self._lock:
            node = self._nodes[node_id]
            node.status = status
            if lower_bound is not None:
                node.lower_bound = lower_bound
            if status in RETIRED:
                self._release(node)

    def _release(self, node: Node) -> None:
        while node.status in RETIRED and node.live_children == 0:
            del self._nodes[node.node_id]
            self.freed += 1
            if node.parent_id is None:
                return
            node = self._nodes[node.parent_id]
            node.live_children -= 1


def node_priority(selection: NodeSelection, lower_bound: float, depth: int, node_id: int) -> Tuple:
    """节点优先级编码。

    - best_bound: 按下界最小优先，同下界按创建顺序；
    - depth_first: 深度优先（depth 越大越优先），同深度按下界。
    """
    if selection is NodeSelection.DEPTH_FIRST:
        return (-depth, lower_bound, node_id)
    return (lower_bound, node_id)


class NodeQueue:
    """共享活跃节点队列。

    pop 在队列为空但仍有节点在处理时阻塞等待（处理中的节点可能产生子节点）；
    队列为空且无处理中节点、已请求停止或弹出数达到 max_pops 时返回 None。
    """

    def __init__(self, selection: NodeSelection, max_pops: Optional[int] = None):
        self.selection = selection
        self.max_pops = max_pops
        self.limit_reached = False
        self._cond = threading.Condition()
        self._heap: List[Tuple[Tuple, int, Node]] = []
        self._in_flight = 0
        self._stopped = False
        self.popped = 0

    def push(self, node: Node) -> None:
        key = node_priority(self.selection, node.lower_bound, node.depth, node.node_id)
        with self._cond:
            heapq.heappush(self._heap, (key, node.node_id, node))
            self._cond.notify()

    def pop(self, wait_s: float = 0.05) -> Optional[Node]:
        with self._cond:
            while True:
                if self._stopped:
                    return None
                if self._heap:
                    if self.max_pops is not None and self.popped >= self.max_pops:
                        self.limit_reached = True
                        return None
                    _, _, node = heapq.heappop(self._heap)
                    self._in_flight += 1
                    self.popped += 1
                    return node
                if self._in_flight == 0:
                    return None
                self._cond.wait(timeout=wait_s)

    def task_done(self) -> None:
        with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()

    def stop(self) -> None:
        with self._cond:
            self._stopped = True
            self._cond.notify_all()

    @property
    def stopped(self) -> bool:
        with self._cond:
            return self._stopped

    def pending(self) -> List[Node]:
        """队列中剩余（未处理）节点的快照。"""
        with self._cond:
            return [item[2] for item in self._heap]

    def exhausted(self) -> bool:
        with self._cond:
            return not self._heap and self._in_flight == 0
