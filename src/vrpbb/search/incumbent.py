from __future__ import annotations

"""Incumbent 存储（当前最优整数可行解）。

唯一可变的共享解状态，所有读写都经过同一把锁：
- try_improve: 仅当候选目标值严格优于当前值时替换（比较并交换）；
- current_best: 返回 (目标值, 解) 的一致快照，不会读到半更新的状态；
- history: 依次被接受的目标值序列，单调下降。
"""

import logging
import math
import threading
import time
from typing import List, Optional, Sequence, Tuple

from vrpbb.core.types import IMPROVEMENT_EPS

logger = logging.getLogger(__name__)


class IncumbentStore:
    """线程安全的 incumbent 容器（最小化问题）。"""

    def __init__(self, tol: float = IMPROVEMENT_EPS):
        self.tol = tol
        self._lock = threading.Lock()
        self._objective = math.inf
        self._solution: Optional[Tuple[float, ...]] = None
        self._history: List[Tuple[float, float, str]] = []
        self._t0 = time.monotonic()

    def try_improve(self, objective: float, solution: Sequence[float], source: str = "search") -> bool:
        """候选严格更优时替换 incumbent，返回是否发生替换。"""
        candidate = tuple(float(v) for v in solution)
        with self._lock:
            if not objective < self._objective - self.tol:
                return False
            self._objective = float(objective)
            self._solution = candidate
            self._history.append((self._objective, time.monotonic() - self._t0, source))
        logger.info("new incumbent %.6f (source=%s)", objective, source)
        return True

    def current_best(self) -> Tuple[float, Optional[Tuple[float, ...]]]:
        with self._lock:
            return self._objective, self._solution

    def objective(self) -> float:
        with self._lock:
            return self._objective

    def has_solution(self) -> bool:
        with self._lock:
            return self._solution is not None

    def history(self) -> List[float]:
        """被接受的目标值序列（按接受顺序）。"""
        with self._lock:
            return [h[0] for h in self._history]
