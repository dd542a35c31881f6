from __future__ import annotations

"""LP 松弛分支定界引擎。

节点状态机：
    UNVISITED --(oracle)--> INFEASIBLE | BOUNDED
    BOUNDED --> INTEGRAL（提交 incumbent） | PRUNED（下界不优于 incumbent） | BRANCHED

主循环（每个 worker 相同）：
1) 从共享队列弹出节点（best-bound 或 depth-first）；
2) 继承下界已不优于 incumbent 则直接剪枝；
3) 调用 oracle 求松弛，必要时分离割并重解；
4) 不可行 -> 丢弃；整数 -> 尝试更新 incumbent；
5) 否则选分支变量，生成两个子节点，子节点继承父下界，
   继承下界不优于 incumbent 的子节点不调用 oracle 直接剪枝；
6) 队列耗尽（证明最优/不可行）或预算用尽（返回当前最优）时结束；
   预算用尽时若剩余节点下界均不优于 incumbent，同样视为证明最优。

多线程时，队列与 incumbent 是仅有的共享可变状态；剪枝读取的 incumbent
可能略旧，只会少剪、不会错剪。
"""

import logging
import math
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from vrpbb.branching.variable_selection import current_bounds, pick_branch_variable, split_bounds
from vrpbb.core.errors import OracleFailure
from vrpbb.core.types import (
    IMPROVEMENT_EPS,
    Bounds,
    BranchingRule,
    Formulation,
    NodeSelection,
    NodeStatus,
    ProofStatus,
    SolverConfig,
    TerminationReason,
)
from vrpbb.cuts.definitions import CutDefinition, CutPool
from vrpbb.oracle.base import Relaxation, RelaxationOracle
from .incumbent import IncumbentStore
from .tree import Node, NodeArena, NodeQueue

logger = logging.getLogger(__name__)

Separator = Callable[[Sequence[float], bool], List[CutDefinition]]


@dataclass
class SearchOutcome:
    """搜索结束时的结果快照。"""
    reason: TerminationReason
    objective: float
    solution: Optional[Tuple[float, ...]]
    best_bound: float
    stats: Dict[str, float]
    trace: List[dict] = field(default_factory=list)
    incumbent_history: List[float] = field(default_factory=list)

    @property
    def status(self) -> ProofStatus:
        return self.reason.proof_status


class BranchAndBound:
    """分支定界搜索。

    调用方式：
    1) 传入只读基础模型、oracle 与配置（可选：割分离器、共享 incumbent、取消事件）；
    2) solve() 运行搜索并返回 SearchOutcome；
    3) oracle 非不可行类错误以 OracleFailure 形式抛给调用方。
    """

    def __init__(
        self,
        formulation: Formulation,
        oracle: RelaxationOracle,
        cfg: Optional[SolverConfig] = None,
        separator: Optional[Separator] = None,
        incumbent: Optional[IncumbentStore] = None,
        cut_pool: Optional[CutPool] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.formulation = formulation
        self.oracle = oracle
        self.cfg = cfg or SolverConfig()
        self.selection = NodeSelection(self.cfg.node_selection)
        self.rule = BranchingRule(self.cfg.branching_rule)
        if self.cfg.threads < 1:
            raise ValueError(f"threads must be >= 1, got {self.cfg.threads}")
        self.separator = separator
        self.incumbent = incumbent if incumbent is not None else IncumbentStore()
        self.cut_pool = cut_pool if cut_pool is not None else CutPool()
        self.cancel_event = cancel_event or threading.Event()

        self.arena = NodeArena()
        self.queue = NodeQueue(self.selection, max_pops=self.cfg.max_nodes)
        self._lock = threading.Lock()
        self._stats: Counter = Counter()
        self._trace: List[dict] = []
        self._errors: List[BaseException] = []
        self._stop_reason: Optional[TerminationReason] = None
        self._root_infeasible = False
        self._root_bound = -math.inf
        self._deadline = math.inf

    # ------------------------------------------------------------------
    # 驱动
    # ------------------------------------------------------------------
    def solve(self) -> SearchOutcome:
        t0 = time.monotonic()
        self._deadline = t0 + self.cfg.time_limit_s
        logger.info(
            "branch-and-bound start: vars=%d rows=%d selection=%s rule=%s threads=%d",
            self.formulation.num_variables,
            len(self.formulation.constraints),
            self.selection.value,
            self.rule.value,
            self.cfg.threads,
        )

        root = self.arena.create(None, (), -math.inf)
        self.queue.push(root)

        if self.cfg.threads == 1:
            self._worker(0)
        else:
            workers = [
                threading.Thread(target=self._worker, args=(i,), name=f"bnb-worker-{i}")
                for i in range(self.cfg.threads)
            ]
            for w in workers:
                w.start()
            for w in workers:
                w.join()

        if self._errors:
            raise self._errors[0]

        outcome = self._outcome(time.monotonic() - t0)
        logger.info(
            "branch-and-bound finished: reason=%s objective=%s bound=%s nodes=%d",
            outcome.reason.value,
            outcome.objective,
            outcome.best_bound,
            int(outcome.stats["nodes_processed"]),
        )
        return outcome

    def cancel(self) -> None:
        """外部取消：停止派发新节点，处理中的节点正常收尾。"""
        self.cancel_event.set()

    def _worker(self, worker_id: int) -> None:
        while True:
            if self._budget_exhausted():
                self.queue.stop()
                return
            node = self.queue.pop()
            if node is None:
                return
            try:
                self._process(node)
            except Exception as exc:  # 交给 solve() 在主线程重新抛出
                logger.error("worker %d aborted at node %d: %s", worker_id, node.node_id, exc)
                with self._lock:
                    self._errors.append(exc)
                self.queue.stop()
                return
            finally:
                self.queue.task_done()

    def _budget_exhausted(self) -> bool:
        reason = None
        if self.cancel_event.is_set():
            reason = TerminationReason.CANCELLED
        elif time.monotonic() >= self._deadline:
            reason = TerminationReason.BUDGET_EXCEEDED
        if reason is None:
            return False
        with self._lock:
            if self._stop_reason is None:
                self._stop_reason = reason
                logger.info("stopping search: %s", reason.value)
        return True

    # ------------------------------------------------------------------
    # 单节点处理
    # ------------------------------------------------------------------
    def _prunable(self, lower_bound: float, incumbent: float) -> bool:
        if not self.cfg.enable_pruning:
            return False
        return lower_bound >= incumbent - IMPROVEMENT_EPS

    def _process(self, node: Node) -> None:
        if self._prunable(node.lower_bound, self.incumbent.objective()):
            self._retire(node, NodeStatus.PRUNED)
            return

        overrides = self.arena.overrides(node.node_id)
        relax, integral = self._bound(node, overrides)
        self._bump("nodes_processed")

        if not relax.feasible:
            if node.parent_id is None:
                self._root_infeasible = True
                logger.info("root relaxation infeasible")
            self._retire(node, NodeStatus.INFEASIBLE)
            return

        lb = max(relax.objective, node.lower_bound)
        self.arena.mark(node.node_id, NodeStatus.BOUNDED, lower_bound=lb)
        if node.parent_id is None:
            self._root_bound = lb
            logger.info("root bound %.6f", lb)

        if integral:
            # 整数松弛解即候选 incumbent，不再分支。
            values = self._rounded(relax.values)
            self.incumbent.try_improve(self.formulation.objective(values), values, source=f"node {node.node_id}")
            self._retire(node, NodeStatus.INTEGRAL, lb)
            return

        if self._prunable(lb, self.incumbent.objective()):
            self._retire(node, NodeStatus.PRUNED, lb)
            return

        var = pick_branch_variable(self.formulation, relax.values, self.rule)
        value = relax.values[var]
        down, up = split_bounds(var, value, current_bounds(self.formulation, overrides, var))
        logger.debug("node %d: branch on x[%d]=%.6f lb=%.6f", node.node_id, var, value, lb)

        incumbent = self.incumbent.objective()
        for delta in (down, up):
            child = self.arena.create(node.node_id, (delta,), lb)
            if self._prunable(lb, incumbent):
                self._bump("children_pruned_at_creation")
                self._retire(child, NodeStatus.PRUNED, lb)
            else:
                self.queue.push(child)
        self._retire(node, NodeStatus.BRANCHED, lb)

    def _bound(self, node: Node, overrides: Mapping[int, Bounds]) -> Tuple[Relaxation, bool]:
        """求节点松弛；有分离器时循环 “求解 -> 分离 -> 加割 -> 重解”。

        整数解必须分离到无违反割为止（否则不是可行解）；
        分数解最多分离 max_cut_rounds 轮。
        """
        max_rounds = self.cfg.max_cut_rounds_root if node.parent_id is None else self.cfg.max_cut_rounds_node
        rounds = 0
        while True:
            cuts = self.cut_pool.snapshot()
            relax = self.oracle.solve(self.formulation, overrides, cuts)
            self._bump("oracle_calls")
            if not relax.feasible:
                return relax, False
            integral = self.formulation.is_integral(relax.values)
            if self.separator is None:
                return relax, integral
            if not integral and rounds >= max_rounds:
                return relax, False

            values = self._rounded(relax.values) if integral else relax.values
            known = {row.name for row in cuts}
            found = self.separator(values, integral)
            if not found:
                return relax, integral
            fresh = [c for c in found if c.cut_id not in known]
            if not fresh:
                if integral:
                    raise OracleFailure(
                        f"relaxation at node {node.node_id} violates {len(found)} cuts it was solved with"
                    )
                return relax, False
            added = self.cut_pool.add(fresh)
            self._bump("cuts_added", added)
            rounds += 1

    def _rounded(self, values: Sequence[float]) -> Tuple[float, ...]:
        return tuple(
            float(round(v)) if var.integral else float(v)
            for var, v in zip(self.formulation.variables, values)
        )

    def _retire(self, node: Node, status: NodeStatus, lower_bound: Optional[float] = None) -> None:
        self.arena.mark(node.node_id, status, lower_bound)
        with self._lock:
            self._stats[f"nodes_{status.value.lower()}"] += 1
            self._stats["max_depth"] = max(self._stats["max_depth"], node.depth)
            if self.cfg.record_trace:
                self._trace.append(
                    {
                        "node_id": node.node_id,
                        "parent_id": -1 if node.parent_id is None else node.parent_id,
                        "depth": node.depth,
                        "status": status.value,
                        "lower_bound": node.lower_bound if lower_bound is None else lower_bound,
                        "incumbent": self.incumbent.objective(),
                    }
                )

    def _bump(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._stats[key] += amount

    # ------------------------------------------------------------------
    # 结果汇总
    # ------------------------------------------------------------------
    def _frontier_closed(self, incumbent: float) -> bool:
        return all(n.lower_bound >= incumbent - IMPROVEMENT_EPS for n in self.queue.pending())

    def _outcome(self, runtime: float) -> SearchOutcome:
        objective, solution = self.incumbent.current_best()
        if self._root_infeasible:
            reason = TerminationReason.INFEASIBLE_INSTANCE
        elif self.queue.exhausted():
            reason = TerminationReason.OPTIMAL if solution is not None else TerminationReason.TREE_EXHAUSTED
        elif solution is not None and self._frontier_closed(objective):
            # 剩余节点都会在弹出时被剪枝，预算耗尽也不影响最优性证明。
            reason = TerminationReason.OPTIMAL
        elif self._stop_reason is not None:
            reason = self._stop_reason
        else:
            reason = TerminationReason.BUDGET_EXCEEDED

        if reason is TerminationReason.OPTIMAL:
            best_bound = objective
        elif reason.proof_status is ProofStatus.INFEASIBLE:
            best_bound = math.inf
        else:
            pending = self.queue.pending()
            frontier = min((n.lower_bound for n in pending), default=self._root_bound)
            best_bound = min(frontier, objective)

        stats: Dict[str, float] = {
            "runtime_sec": runtime,
            "nodes_processed": 0.0,
            "nodes_created": float(self.arena.created),
            "nodes_open": float(len(self.queue.pending())),
            "oracle_calls": 0.0,
            "cuts_added": 0.0,
            "cut_pool_size": float(len(self.cut_pool)),
            "root_bound": self._root_bound,
            "node_limit_reached": float(self.queue.limit_reached),
        }
        with self._lock:
            for k, v in self._stats.items():
                stats[k] = float(v)
            trace = list(self._trace)

        return SearchOutcome(
            reason=reason,
            objective=objective,
            solution=solution,
            best_bound=best_bound,
            stats=stats,
            trace=trace,
            incumbent_history=self.incumbent.history(),
        )
