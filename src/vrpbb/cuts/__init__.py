"""Cuts 子包：容量割定义、共享割池与分离器。"""

from .definitions import CutDefinition, CutPool
from .separators import CapacityCutSeparator, make_capacity_cut

__all__ = ["CapacityCutSeparator", "CutDefinition", "CutPool", "make_capacity_cut"]
