from __future__ import annotations

"""松弛 oracle 接口。

oracle 接收 (基础模型, 变量界覆盖, 附加割)，返回：
- OPTIMAL: 松弛最优值与全部变量取值；
- INFEASIBLE: 约束无可行点。
求解器内部错误必须抛出 OracleFailure，而不是伪装成不可行。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Sequence, Tuple

from vrpbb.core.types import Bounds, Formulation, LinearConstraint


class RelaxationStatus(str, Enum):
    OPTIMAL = "OPTIMAL"
    INFEASIBLE = "INFEASIBLE"


@dataclass(frozen=True)
class Relaxation:
    """一次松弛求解的结果。"""
    status: RelaxationStatus
    objective: float = float("inf")
    values: Tuple[float, ...] = field(default_factory=tuple)

    @property
    def feasible(self) -> bool:
        return self.status is RelaxationStatus.OPTIMAL

    @classmethod
    def optimal(cls, objective: float, values: Sequence[float]) -> "Relaxation":
        return cls(status=RelaxationStatus.OPTIMAL, objective=float(objective), values=tuple(values))

    @classmethod
    def infeasible(cls) -> "Relaxation":
        return cls(status=RelaxationStatus.INFEASIBLE)


def conflicting_bounds(overrides: Mapping[int, Bounds]) -> bool:
    """覆盖界出现 lb > ub 时无需调用求解器即可判定不可行。"""
    return any(lb > ub + 1e-12 for lb, ub in overrides.values())


class RelaxationOracle(ABC):
    """LP 松弛求解器的统一封装。

    要求：相同输入得到相同结果；内部可以缓存环境，
    但不能在不相关的模型之间泄漏状态；必须可被多个 worker 线程并发调用。
    """

    @abstractmethod
    def solve(
        self,
        formulation: Formulation,
        overrides: Mapping[int, Bounds],
        cuts: Sequence[LinearConstraint] = (),
    ) -> Relaxation:
        raise NotImplementedError

    def close(self) -> None:
        """释放求解器资源。"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
