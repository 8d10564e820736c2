#!/usr/bin/env python
"""Compare flat-scan and hierarchical search on a seeded dataset.

Usage:
    python scripts/run_strategy_benchmark.py --config configs/strategy_benchmark.template.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys


# Ensure local package import works when the script is executed directly.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from driver_proximity.benchmark import run_benchmark_from_config


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run reproducible strategy benchmark")
    parser.add_argument(
        "--config",
        type=str,
        required=True,
        help="Path to YAML config file (configs/*.yaml)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log per-query timings at DEBUG level",
    )
    return parser


def main() -> None:
    args = _build_arg_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    run_dir = run_benchmark_from_config(args.config)

    summary_path = run_dir / "summary.json"
    with summary_path.open("r", encoding="utf-8") as handle:
        summary = json.load(handle)

    print(f"Benchmark complete: {run_dir}")
    for strategy, stats in summary["strategies"].items():
        print(
            f"  {strategy}:",
            {
                "latency_ms_p50": round(stats["latency_ms_p50"], 3),
                "latency_ms_p99": round(stats["latency_ms_p99"], 3),
                "results_mean": stats["results_mean"],
            },
        )
    print("Equivalence failures:", summary["equivalence_failures"])


if __name__ == "__main__":
    main()
