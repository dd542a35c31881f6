from __future__ import annotations

"""单实例求解 CLI。

命令行参数 -> SolverConfig -> solve_instance -> 打印简要结果。
"""

import argparse
import json
import logging
import sys

from vrpbb.core.errors import GurobiUnavailableError, MalformedInstance, OracleFailure
from vrpbb.search.solver import load_solver_config, solve_instance


def main() -> None:
    """CLI 主入口。"""
    parser = argparse.ArgumentParser(description="Solve one CVRP instance with LP-based branch-and-bound")
    parser.add_argument("instance", nargs="?", default="", help="instance text file")
    parser.add_argument("--instance-id", default="")
    parser.add_argument("--db-path", default="instances.db")
    parser.add_argument("--csv-dir", default="")
    parser.add_argument("--config", default="")
    parser.add_argument("-t", "--time-limit", type=float, default=None, help="solver timeout in seconds")
    parser.add_argument("--max-nodes", type=int, default=None)
    parser.add_argument("--threads", type=int, default=None)
    parser.add_argument("--node-selection", choices=["best_bound", "depth_first"], default=None)
    parser.add_argument("-o", "--output-dir", default="outputs")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if not args.instance and not args.instance_id:
        parser.error("either an instance file or --instance-id is required")

    cfg = load_solver_config(args.config)
    cfg.output_dir = args.output_dir
    if args.time_limit is not None:
        cfg.time_limit_s = args.time_limit
    if args.max_nodes is not None:
        cfg.max_nodes = args.max_nodes
    if args.threads is not None:
        cfg.threads = args.threads
    if args.node_selection is not None:
        cfg.node_selection = args.node_selection

    try:
        result = solve_instance(
            instance_path=args.instance,
            cfg=cfg,
            instance_id=args.instance_id,
            db_path=args.db_path,
            csv_dir=args.csv_dir,
        )
    except (FileNotFoundError, MalformedInstance, OracleFailure, GurobiUnavailableError) as exc:
        logging.getLogger(__name__).error("solve failed: %s", exc)
        sys.exit(1)

    print(
        json.dumps(
            {
                "status": result.status,
                "reason": result.reason,
                "obj_primal": result.obj_primal if result.has_solution else None,
                "gap": result.gap,
                "routes": [list(r) for r in result.routes],
            },
            ensure_ascii=False,
        )
    )


if __name__ == "__main__":
    main()
