"""松弛 oracle 子包：接口定义与 Gurobi 实现。"""

from .base import Relaxation, RelaxationOracle, RelaxationStatus
from .gurobi_oracle import GurobiOracle

__all__ = ["GurobiOracle", "Relaxation", "RelaxationOracle", "RelaxationStatus"]
