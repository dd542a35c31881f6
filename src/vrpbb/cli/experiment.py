from __future__ import annotations

"""批量实验 CLI。"""

import argparse
import json
import logging

from vrpbb.search.solver import run_experiment


def main() -> None:
    """读取参数并运行 run_experiment。"""
    parser = argparse.ArgumentParser(description="Run batch experiment for the CVRP branch-and-bound solver")
    parser.add_argument("--batch-id", required=True)
    parser.add_argument("--config", required=True)
    parser.add_argument("--db-path", default="instances.db")
    parser.add_argument("--csv-dir", default="")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    report = run_experiment(args.batch_id, args.config, db_path=args.db_path, csv_dir=args.csv_dir)
    print(json.dumps(report.summary, ensure_ascii=False))


if __name__ == "__main__":
    main()
