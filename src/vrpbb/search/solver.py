from __future__ import annotations

"""CVRP 顶层求解编排模块。

该文件负责把所有子模块连接成可运行的端到端流程：
1) 读取/接收实例并构建两下标松弛模型；
2) 构造初始 incumbent（可选）；
3) 运行分支定界（LP 松弛 + 容量割）；
4) 解码路线、汇总指标并落盘输出。

对外主入口：
- solve_cvrp: 内存实例求解
- solve_instance: 单实例（文件或数据库）求解
- run_experiment: 批量实验
"""

import csv
import json
import logging
import math
import threading
from pathlib import Path
from typing import List, Optional

from vrpbb.core.errors import GurobiUnavailableError, OracleFailure
from vrpbb.core.route_utils import route_cost, route_load, solution_feasible
from vrpbb.core.types import ExperimentReport, InstanceData, SolveResult, SolverConfig
from vrpbb.cuts.definitions import CutPool
from vrpbb.cuts.separators import CapacityCutSeparator
from vrpbb.data.loader import load_batch_instances, load_instance, load_instance_file
from vrpbb.model.builder import build_model
from vrpbb.model.initializer import build_initial_routes
from vrpbb.oracle.base import RelaxationOracle
from vrpbb.oracle.gurobi_oracle import GurobiOracle
from .engine import BranchAndBound
from .incumbent import IncumbentStore

logger = logging.getLogger(__name__)


def _safe_gap(ub: float, lb: float) -> float:
    """计算相对 gap。

    公式: gap = (UB - LB) / |UB|。
    若 UB 无穷或接近 0，返回 inf（UB=LB=0 时返回 0），避免数值异常。
    """
    if math.isinf(ub) or math.isinf(lb):
        return float("inf")
    if abs(ub) < 1e-9:
        return 0.0 if abs(ub - lb) < 1e-9 else float("inf")
    return max(0.0, (ub - lb) / abs(ub))


def _mkdir(path: str) -> Path:
    """创建输出目录（不存在则递归创建）。"""
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def _write_trace(output_dir: Path, trace_rows: List[dict]) -> None:
    """写节点轨迹，用于复现实验与性能诊断。"""
    path = output_dir / "trace.csv"
    if not trace_rows:
        path.write_text("", encoding="utf-8")
        return
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(trace_rows[0].keys()))
        writer.writeheader()
        writer.writerows(trace_rows)


def _write_routes(output_dir: Path, instance: InstanceData, result: SolveResult) -> None:
    """写最终路线解，便于人工检查和后处理。"""
    path = output_dir / "routes.csv"
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=["vehicle_id", "customer_seq", "load", "dist"])
        writer.writeheader()
        for k, seq in enumerate(result.routes):
            writer.writerow(
                {
                    "vehicle_id": k,
                    "customer_seq": "-".join(str(c) for c in seq),
                    "load": route_load(instance, seq),
                    "dist": route_cost(instance, seq),
                }
            )


def _write_metrics(output_dir: Path, result: SolveResult) -> None:
    """写核心指标（运行时间、节点数、割数量等）。"""
    path = output_dir / "metrics.csv"
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=["metric", "value"])
        writer.writeheader()
        for k, v in result.stats.items():
            writer.writerow({"metric": k, "value": v})


def _write_solution_json(output_dir: Path, result: SolveResult) -> None:
    """写结构化 JSON 解文件，便于程序消费。"""
    path = output_dir / "solution.json"
    payload = {
        "status": result.status,
        "reason": result.reason,
        "obj_primal": result.obj_primal if result.has_solution else None,
        "obj_dual": result.obj_dual,
        "gap": result.gap,
        "stats": result.stats,
        "incumbent_history": result.incumbent_history,
        "routes": [list(r) for r in result.routes],
    }
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def _write_sol(output_dir: Path, instance: InstanceData, result: SolveResult) -> None:
    """写 .sol 文件：首行 `<cost> <1|0>`，其后每行一条 `0 ... 0` 路线。"""
    path = output_dir / f"{instance.name}.sol"
    optimal = 1 if result.status == "PROVEN_OPTIMAL" else 0
    lines = [f"{result.obj_primal:.2f} {optimal}"]
    for seq in result.routes:
        lines.append(" ".join(str(c) for c in (0, *seq, 0)))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def write_outputs(output_dir: str, instance: InstanceData, result: SolveResult, trace_rows: List[dict]) -> Path:
    outdir = _mkdir(output_dir)
    _write_solution_json(outdir, result)
    _write_routes(outdir, instance, result)
    _write_trace(outdir, trace_rows)
    _write_metrics(outdir, result)
    if result.has_solution:
        _write_sol(outdir, instance, result)
    return outdir


def solve_cvrp(
    instance: InstanceData,
    cfg: SolverConfig,
    oracle: Optional[RelaxationOracle] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SolveResult:
    """内存实例求解入口。

    该函数实现完整流程：
    - 构建模型与割分离器；
    - 可选地用巨型回路划分提供初始 incumbent；
    - 运行分支定界；
    - 把最优边向量解码为路线并落盘。
    """
    model = build_model(instance)
    incumbent = IncumbentStore()

    if cfg.warm_start:
        initial = build_initial_routes(instance)
        if initial is not None:
            routes, cost = initial
            incumbent.try_improve(cost, model.encode_routes(routes), source="warm_start")

    separator = CapacityCutSeparator(
        model,
        violation_tol=cfg.cut_violation_tol,
        separate_fractional=cfg.separate_fractional,
    )

    owns_oracle = oracle is None
    if oracle is None:
        oracle = GurobiOracle()
    try:
        engine = BranchAndBound(
            model.formulation,
            oracle,
            cfg,
            separator=separator,
            incumbent=incumbent,
            cut_pool=CutPool(),
            cancel_event=cancel_event,
        )
        outcome = engine.solve()
    finally:
        if owns_oracle:
            oracle.close()

    routes = model.decode_routes(outcome.solution) if outcome.solution is not None else []
    if outcome.solution is not None and not solution_feasible(instance, routes):
        raise OracleFailure(f"incumbent for {instance.name} does not decode into feasible routes: {routes}")

    has_solution = outcome.solution is not None
    obj_primal = outcome.objective if has_solution else float("inf")
    stats = dict(outcome.stats)
    stats["num_routes"] = float(len(routes))

    result = SolveResult(
        status=outcome.status.value,
        reason=outcome.reason.value,
        obj_primal=obj_primal,
        obj_dual=outcome.best_bound,
        gap=_safe_gap(obj_primal, outcome.best_bound),
        routes=routes,
        stats=stats,
        incumbent_history=outcome.incumbent_history,
    )
    logger.info(
        "%s: status=%s reason=%s obj=%.4f bound=%.4f routes=%d",
        instance.name, result.status, result.reason, result.obj_primal, result.obj_dual, len(routes),
    )

    if cfg.output_dir:
        write_outputs(cfg.output_dir, instance, result, outcome.trace)
    return result


def solve_instance(
    instance_path: str = "",
    cfg: Optional[SolverConfig] = None,
    instance_id: str = "",
    db_path: str = "instances.db",
    csv_dir: str = "",
) -> SolveResult:
    """单实例求解入口：给定文本文件路径，或给定数据库中的 instance_id。"""
    cfg = cfg or SolverConfig()
    if instance_path:
        instance = load_instance_file(instance_path)
    else:
        instance = load_instance(instance_id=instance_id, db_path=db_path, csv_dir=csv_dir)
    return solve_cvrp(instance, cfg)


def load_solver_config(cfg_path: str) -> SolverConfig:
    """读取求解配置（JSON），未知字段忽略。"""
    cfg = SolverConfig()
    if not cfg_path:
        return cfg
    data = json.loads(Path(cfg_path).read_text(encoding="utf-8"))
    for k, v in data.items():
        if hasattr(cfg, k):
            setattr(cfg, k, v)
        else:
            logger.warning("ignoring unknown config key: %s", k)
    return cfg


def _error_result(status: str, exc: Exception) -> SolveResult:
    return SolveResult(
        status=status,
        reason="ERROR",
        obj_primal=float("inf"),
        obj_dual=float("inf"),
        gap=float("inf"),
        routes=[],
        stats={"error": str(exc)},
    )


def run_experiment(batch_id: str, cfg_path: str, db_path: str = "instances.db", csv_dir: str = "") -> ExperimentReport:
    """批量实验入口。

    对 batch 中每个实例调用 solve_instance，
    最终汇总平均目标值、平均 gap 并输出 report.json。
    """
    cfg = load_solver_config(cfg_path)
    instances = load_batch_instances(db_path, batch_id)
    results: List[SolveResult] = []

    for iid in instances:
        outdir = Path(cfg.output_dir) / batch_id / iid
        cfg_i = SolverConfig(**{**cfg.__dict__})
        cfg_i.output_dir = str(outdir)
        try:
            res = solve_instance(cfg=cfg_i, instance_id=iid, db_path=db_path, csv_dir=csv_dir)
        except GurobiUnavailableError as exc:
            res = _error_result("ERROR_GUROBI", exc)
        except OracleFailure as exc:
            logger.error("instance %s aborted: %s", iid, exc)
            res = _error_result("ERROR_ORACLE", exc)
        results.append(res)

    solved = [r for r in results if r.status in {"PROVEN_OPTIMAL", "TIMED_OUT_BEST_EFFORT"} and r.has_solution]
    summary = {
        "instances": float(len(results)),
        "solved_like": float(len(solved)),
        "proven_optimal": float(sum(1 for r in results if r.status == "PROVEN_OPTIMAL")),
        "infeasible": float(sum(1 for r in results if r.status == "INFEASIBLE")),
        "avg_primal": sum(r.obj_primal for r in solved) / max(1, len(solved)),
        "avg_gap": sum(r.gap for r in solved if math.isfinite(r.gap)) / max(1, len([r for r in solved if math.isfinite(r.gap)])),
    }

    report = ExperimentReport(batch_id=batch_id, results=results, summary=summary, instance_ids=instances)
    out = Path(cfg.output_dir) / batch_id
    out.mkdir(parents=True, exist_ok=True)
    (out / "report.json").write_text(
        json.dumps(
            {
                "batch_id": report.batch_id,
                "summary": report.summary,
                "results": [
                    {
                        "instance_id": iid,
                        "status": r.status,
                        "reason": r.reason,
                        "obj_primal": r.obj_primal if r.has_solution else None,
                        "obj_dual": r.obj_dual,
                        "gap": r.gap,
                        "stats": r.stats,
                    }
                    for iid, r in zip(instances, report.results)
                ],
            },
            ensure_ascii=False,
            indent=2,
        ),
        encoding="utf-8",
    )
    return report
