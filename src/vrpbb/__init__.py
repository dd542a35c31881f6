"""CVRP 精确求解包（LP 松弛 + 分支定界）。

公共 API:
- solve_cvrp: 内存实例求解
- solve_instance: 单实例求解（文本文件或数据库）
- run_experiment: 批量实验
- BranchAndBound / IncumbentStore: 通用整数规划搜索组件
"""

from .search.engine import BranchAndBound, SearchOutcome
from .search.incumbent import IncumbentStore
from .search.solver import run_experiment, solve_cvrp, solve_instance

__all__ = [
    "BranchAndBound",
    "IncumbentStore",
    "SearchOutcome",
    "run_experiment",
    "solve_cvrp",
    "solve_instance",
]
