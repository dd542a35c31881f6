from __future__ import annotations

"""Cut 数据结构与共享割池。"""

import threading
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Tuple

from vrpbb.core.types import LinearConstraint


@dataclass(frozen=True)
class CutDefinition:
    """圆整容量割 x(δ(S)) >= rhs。

    - members: 客户子集 S（不含仓库）
    - rhs: 2·max(1, ⌈d(S)/Q⌉)
    - constraint: 对应的线性行，供 oracle 直接使用
    """
    members: FrozenSet[int]
    rhs: float
    constraint: LinearConstraint

    @property
    def cut_id(self) -> str:
        return self.constraint.name


class CutPool:
    """全局有效割的共享池（只增不删，按客户子集去重）。

    割对所有节点全局有效，因此任意时刻加入只会抬高节点下界，
    不会使已算出的下界失效。
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cuts: Dict[FrozenSet[int], CutDefinition] = {}
        self._rows: Tuple[LinearConstraint, ...] = ()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cuts)

    def add(self, cuts: Iterable[CutDefinition]) -> int:
        """加入新割，返回实际新增数量。"""
        added = 0
        with self._lock:
            for cut in cuts:
                if cut.members in self._cuts:
                    continue
                self._cuts[cut.members] = cut
                added += 1
            if added:
                self._rows = tuple(c.constraint for c in self._cuts.values())
        return added

    def snapshot(self) -> Tuple[LinearConstraint, ...]:
        """当前割集合的不可变快照。"""
        with self._lock:
            return self._rows
