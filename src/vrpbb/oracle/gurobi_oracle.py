from __future__ import annotations

"""Gurobi LP 松弛 oracle。

每次调用都新建一个连续模型：
- 变量界 = 基础界 + 节点覆盖界
- 约束 = 基础约束 + 割池快照
求解后只返回 (状态, 目标值, 变量取值)，模型随即释放，不在调用间保留状态。
每个 worker 线程使用独立的 Gurobi 环境。
"""

import logging
import threading
from typing import List, Mapping, Sequence

from vrpbb.core.errors import GurobiUnavailableError, OracleFailure
from vrpbb.core.types import Bounds, Formulation, LinearConstraint
from .base import Relaxation, RelaxationOracle, conflicting_bounds

try:
    import gurobipy as gp
    from gurobipy import GRB
except Exception:  # pragma: no cover
    gp = None
    GRB = None

logger = logging.getLogger(__name__)


class GurobiOracle(RelaxationOracle):
    """gurobipy LP 封装。

    调用方式：
    1) 构造时检查 gurobipy 可用；
    2) solve 按需为当前线程创建环境并求解；
    3) close 释放全部环境。
    """

    def __init__(self, threads_per_solve: int = 1):
        if gp is None:
            raise GurobiUnavailableError("gurobipy is required for LP relaxation solving")
        self.threads_per_solve = threads_per_solve
        self._local = threading.local()
        self._envs: List["gp.Env"] = []
        self._envs_lock = threading.Lock()

    def _env(self):
        env = getattr(self._local, "env", None)
        if env is None:
            try:
                env = gp.Env(empty=True)
                env.setParam("OutputFlag", 0)
                env.start()
            except gp.GurobiError as exc:
                raise OracleFailure(f"cannot start Gurobi environment: {exc}") from exc
            self._local.env = env
            with self._envs_lock:
                self._envs.append(env)
        return env

    def solve(
        self,
        formulation: Formulation,
        overrides: Mapping[int, Bounds],
        cuts: Sequence[LinearConstraint] = (),
    ) -> Relaxation:
        if conflicting_bounds(overrides):
            return Relaxation.infeasible()

        try:
            model = gp.Model(formulation.name, env=self._env())
        except gp.GurobiError as exc:
            raise OracleFailure(f"cannot create Gurobi model: {exc}") from exc

        try:
            return self._solve_model(model, formulation, overrides, cuts)
        except gp.GurobiError as exc:
            raise OracleFailure(f"Gurobi error while solving {formulation.name}: {exc}") from exc
        finally:
            model.dispose()

    def _solve_model(self, model, formulation, overrides, cuts) -> Relaxation:
        model.Params.Threads = self.threads_per_solve
        bounds = formulation.bounds_with(overrides)
        x = [
            model.addVar(lb=lb, ub=ub, obj=var.cost, vtype=GRB.CONTINUOUS, name=var.name)
            for var, (lb, ub) in zip(formulation.variables, bounds)
        ]
        model.ModelSense = GRB.MINIMIZE

        for con in (*formulation.constraints, *cuts):
            expr = gp.LinExpr([c for _, c in con.coeffs], [x[i] for i, _ in con.coeffs])
            if con.sense == "<=":
                model.addLConstr(expr, GRB.LESS_EQUAL, con.rhs, name=con.name)
            elif con.sense == ">=":
                model.addLConstr(expr, GRB.GREATER_EQUAL, con.rhs, name=con.name)
            else:
                model.addLConstr(expr, GRB.EQUAL, con.rhs, name=con.name)

        model.optimize()
        status = model.Status
        if status == GRB.INF_OR_UNBD:
            # presolve 无法区分时关闭对偶约简重解。
            model.Params.DualReductions = 0
            model.optimize()
            status = model.Status

        if status == GRB.INFEASIBLE:
            return Relaxation.infeasible()
        if status != GRB.OPTIMAL:
            raise OracleFailure(f"unexpected Gurobi status {status} for {formulation.name}")

        values = [var.X for var in x]
        return Relaxation.optimal(model.ObjVal, values)

    def close(self) -> None:
        with self._envs_lock:
            envs, self._envs = self._envs, []
            self._local = threading.local()
        for env in envs:
            env.dispose()
        logger.debug("disposed %d Gurobi environments", len(envs))
