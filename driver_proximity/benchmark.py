"""Reproducible flat-scan vs. hierarchical benchmark runs."""

from __future__ import annotations

from dataclasses import dataclass
import datetime as dt
import json
from pathlib import Path
import platform
import re
import subprocess
import sys
import time
from typing import Any

import numpy as np
import pandas as pd
import yaml

from .config import ConfigError, ProximityConfig
from .models import Point, Strategy
from .service import ProximityService


@dataclass(frozen=True)
class BenchmarkConfig:
    """Resolved config for one reproducible benchmark run."""

    run_name: str
    output_root: Path
    seed: int | None
    center_longitude: float
    center_latitude: float
    n_primary: int
    n_synthetic: int
    primary_spread_deg: float
    synthetic_spread_deg: float
    n_queries: int
    query_jitter_deg: float
    radius_km: float
    count: int
    prefer_primary: bool
    strategies: tuple[Strategy, ...]
    check_equivalence: bool
    proximity: ProximityConfig

    def to_serializable_dict(self) -> dict[str, Any]:
        """Return config as plain Python types for YAML/JSON output."""
        return {
            "run": {
                "name": self.run_name,
                "output_root": str(self.output_root),
                "seed": self.seed,
            },
            "dataset": {
                "center": {"longitude": self.center_longitude, "latitude": self.center_latitude},
                "n_primary": self.n_primary,
                "n_synthetic": self.n_synthetic,
                "primary_spread_deg": self.primary_spread_deg,
                "synthetic_spread_deg": self.synthetic_spread_deg,
            },
            "queries": {
                "n_queries": self.n_queries,
                "jitter_deg": self.query_jitter_deg,
                "radius_km": self.radius_km,
                "count": self.count,
                "prefer_primary": self.prefer_primary,
                "strategies": [s.value for s in self.strategies],
                "check_equivalence": self.check_equivalence,
            },
            "proximity": self.proximity.to_serializable_dict(),
        }


def load_benchmark_config(config_path: str | Path) -> BenchmarkConfig:
    """Load and validate YAML config for a benchmark run."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")

    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle)

    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")

    run = _as_dict(raw.get("run"), "run")
    dataset = _as_dict(raw.get("dataset"), "dataset")
    queries = _as_dict(raw.get("queries"), "queries")
    proximity = ProximityConfig.from_mapping(_as_dict(raw.get("proximity"), "proximity"))

    run_name = str(run.get("name", "strategy_benchmark"))
    if not run_name.strip():
        raise ConfigError("run.name must be a non-empty string")

    output_root = Path(str(run.get("output_root", "runs"))).expanduser().resolve()
    seed = run.get("seed")
    if seed is not None:
        seed = int(seed)

    center = _as_dict(_require(dataset, "center", "dataset"), "dataset.center")
    center_longitude = float(_require(center, "longitude", "dataset.center"))
    center_latitude = float(_require(center, "latitude", "dataset.center"))
    if not (-180.0 <= center_longitude <= 180.0 and -90.0 <= center_latitude <= 90.0):
        raise ConfigError("dataset.center is outside valid longitude/latitude ranges")

    n_primary = int(dataset.get("n_primary", 50))
    n_synthetic = int(dataset.get("n_synthetic", 10000))
    if n_primary < 0 or n_synthetic < 0:
        raise ConfigError("dataset.n_primary and dataset.n_synthetic must be >= 0")

    primary_spread_deg = float(dataset.get("primary_spread_deg", 0.05))
    synthetic_spread_deg = float(dataset.get("synthetic_spread_deg", 0.05))
    if primary_spread_deg < 0 or synthetic_spread_deg < 0:
        raise ConfigError("dataset spreads must be >= 0")

    n_queries = int(queries.get("n_queries", 100))
    if n_queries <= 0:
        raise ConfigError("queries.n_queries must be > 0")

    query_jitter_deg = float(queries.get("jitter_deg", 0.02))
    radius_km = float(queries.get("radius_km", 5.0))
    if radius_km <= 0:
        raise ConfigError("queries.radius_km must be > 0")

    count = int(queries.get("count", 10))
    if count <= 0:
        raise ConfigError("queries.count must be > 0")

    strategies_raw = queries.get("strategies", [s.value for s in Strategy])
    if not isinstance(strategies_raw, list) or not strategies_raw:
        raise ConfigError("queries.strategies must be a non-empty list")
    try:
        strategies = tuple(dict.fromkeys(Strategy.parse(s) for s in strategies_raw))
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    return BenchmarkConfig(
        run_name=run_name,
        output_root=output_root,
        seed=seed,
        center_longitude=center_longitude,
        center_latitude=center_latitude,
        n_primary=n_primary,
        n_synthetic=n_synthetic,
        primary_spread_deg=primary_spread_deg,
        synthetic_spread_deg=synthetic_spread_deg,
        n_queries=n_queries,
        query_jitter_deg=query_jitter_deg,
        radius_km=radius_km,
        count=count,
        prefer_primary=bool(queries.get("prefer_primary", True)),
        strategies=strategies,
        check_equivalence=bool(queries.get("check_equivalence", True)),
        proximity=proximity,
    )


def run_benchmark(config: BenchmarkConfig) -> Path:
    """Seed a dataset, run every query through each strategy, and return the run dir."""
    config.output_root.mkdir(parents=True, exist_ok=True)

    timestamp = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    run_dir = config.output_root / f"{_slugify(config.run_name)}_{timestamp}"
    run_dir.mkdir(parents=False, exist_ok=False)

    config_dir = run_dir / "config"
    logs_dir = run_dir / "logs"
    config_dir.mkdir(parents=True, exist_ok=True)
    logs_dir.mkdir(parents=True, exist_ok=True)

    steps_log_path = logs_dir / "steps.jsonl"
    _append_step_log(
        steps_log_path,
        event="run_start",
        payload={"run_name": config.run_name, "seed": config.seed},
    )

    rng = np.random.default_rng(config.seed)
    service = ProximityService.from_config(config.proximity)

    primary_points, synthetic_points = _generate_points(config, service, rng)
    seed_started = time.perf_counter()
    service.gateway.report_many(primary_points)
    service.seed_synthetic(synthetic_points)
    _append_step_log(
        steps_log_path,
        event="dataset_seeded",
        payload={
            "n_primary": len(primary_points),
            "n_synthetic": len(synthetic_points),
            "seed_ms": _elapsed_ms(seed_started),
        },
    )

    index_build_ms = None
    if Strategy.HIERARCHICAL in config.strategies or config.check_equivalence:
        build_started = time.perf_counter()
        n_indexed = service.build_index()
        index_build_ms = _elapsed_ms(build_started)
        _append_step_log(
            steps_log_path,
            event="index_built",
            payload={
                "resolution": service.cell_index.resolution,
                "n_indexed": int(n_indexed),
                "n_cells": len(service.cell_index.membership_snapshot()),
                "build_ms": index_build_ms,
            },
        )

    query_centers = _generate_query_centers(config, rng)
    rows = _run_queries(config, service, query_centers)
    _append_step_log(steps_log_path, event="queries_complete", payload={"n_rows": len(rows)})

    equivalence_failures = 0
    if config.check_equivalence:
        equivalence_failures = _check_equivalence(config, service, query_centers)
        _append_step_log(
            steps_log_path,
            event="equivalence_checked",
            payload={"n_queries": len(query_centers), "n_mismatches": equivalence_failures},
        )

    queries_df = pd.DataFrame(rows)
    summary = _compute_summary(
        config=config,
        queries_df=queries_df,
        n_points=len(service.point_store),
        index_build_ms=index_build_ms,
        equivalence_failures=equivalence_failures,
    )

    _write_yaml(config_dir / "config_resolved.yaml", config.to_serializable_dict())
    _write_json(config_dir / "metadata.json", _build_metadata(config=config, run_dir=run_dir))
    _write_json(run_dir / "summary.json", summary)
    queries_df.to_csv(run_dir / "queries.csv", index=False)
    _append_step_log(
        steps_log_path,
        event="run_complete",
        payload={"n_queries": int(config.n_queries), "equivalence_failures": int(equivalence_failures)},
    )

    return run_dir


def run_benchmark_from_config(config_path: str | Path) -> Path:
    """Convenience wrapper: load config, execute benchmark, and return run dir."""
    return run_benchmark(load_benchmark_config(config_path))


def _as_dict(value: Any, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{name} must be a mapping")
    return value


def _require(mapping: dict[str, Any], key: str, section: str) -> Any:
    if key not in mapping:
        raise ConfigError(f"missing required key '{key}' in section '{section}'")
    return mapping[key]


def _jittered(
    rng: np.random.Generator,
    n: int,
    longitude: float,
    latitude: float,
    spread_deg: float,
) -> tuple[np.ndarray, np.ndarray]:
    lons = np.clip(longitude + rng.uniform(-spread_deg, spread_deg, size=n), -180.0, 180.0)
    lats = np.clip(latitude + rng.uniform(-spread_deg, spread_deg, size=n), -90.0, 90.0)
    return lons, lats


def _generate_points(
    config: BenchmarkConfig,
    service: ProximityService,
    rng: np.random.Generator,
) -> tuple[list[Point], list[Point]]:
    lons, lats = _jittered(rng, config.n_primary, config.center_longitude, config.center_latitude, config.primary_spread_deg)
    primary = [
        Point(id=f"driver_{i:05d}", longitude=float(lons[i]), latitude=float(lats[i]))
        for i in range(config.n_primary)
    ]

    lons, lats = _jittered(
        rng, config.n_synthetic, config.center_longitude, config.center_latitude, config.synthetic_spread_deg
    )
    synthetic = [
        Point(id=service.classifier.synthetic_id(i), longitude=float(lons[i]), latitude=float(lats[i]))
        for i in range(config.n_synthetic)
    ]
    return primary, synthetic


def _generate_query_centers(config: BenchmarkConfig, rng: np.random.Generator) -> list[tuple[float, float]]:
    lons, lats = _jittered(rng, config.n_queries, config.center_longitude, config.center_latitude, config.query_jitter_deg)
    return [(float(lon), float(lat)) for lon, lat in zip(lons, lats)]


def _run_queries(
    config: BenchmarkConfig,
    service: ProximityService,
    query_centers: list[tuple[float, float]],
) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for query_index, (lon, lat) in enumerate(query_centers):
        for strategy in config.strategies:
            started = time.perf_counter()
            hits = service.search(
                lon,
                lat,
                config.radius_km,
                config.count,
                strategy=strategy,
                prefer_primary=config.prefer_primary,
            )
            latency_ms = _elapsed_ms(started)

            n_synthetic = sum(1 for hit in hits if service.classifier.is_synthetic(hit.id))
            rows.append(
                {
                    "query_index": query_index,
                    "strategy": strategy.value,
                    "longitude": lon,
                    "latitude": lat,
                    "n_results": len(hits),
                    "n_primary": len(hits) - n_synthetic,
                    "n_synthetic": n_synthetic,
                    "nearest_km": hits[0].distance_km if hits else None,
                    "latency_ms": latency_ms,
                }
            )
    return rows


def _check_equivalence(
    config: BenchmarkConfig,
    service: ProximityService,
    query_centers: list[tuple[float, float]],
) -> int:
    mismatches = 0
    for lon, lat in query_centers:
        flat = service.engine.candidates(lon, lat, config.radius_km, strategy=Strategy.FLAT_SCAN)
        cells = service.engine.candidates(lon, lat, config.radius_km, strategy=Strategy.HIERARCHICAL)
        if {hit.id for hit in flat} != {hit.id for hit in cells}:
            mismatches += 1
    return mismatches


def _compute_summary(
    config: BenchmarkConfig,
    queries_df: pd.DataFrame,
    n_points: int,
    index_build_ms: float | None,
    equivalence_failures: int,
) -> dict[str, Any]:
    per_strategy: dict[str, Any] = {}
    for strategy in config.strategies:
        subset = queries_df[queries_df["strategy"] == strategy.value] if len(queries_df) else queries_df
        latencies = subset["latency_ms"].to_numpy(dtype=np.float64) if len(subset) else np.zeros(0)
        per_strategy[strategy.value] = {
            "n_queries": int(len(subset)),
            "latency_ms_mean": float(latencies.mean()) if len(latencies) else 0.0,
            "latency_ms_p50": float(np.median(latencies)) if len(latencies) else 0.0,
            "latency_ms_p90": float(np.percentile(latencies, 90)) if len(latencies) else 0.0,
            "latency_ms_p99": float(np.percentile(latencies, 99)) if len(latencies) else 0.0,
            "results_mean": float(subset["n_results"].mean()) if len(subset) else 0.0,
            "primary_results_mean": float(subset["n_primary"].mean()) if len(subset) else 0.0,
        }

    return {
        "n_points": int(n_points),
        "n_primary": int(config.n_primary),
        "n_synthetic": int(config.n_synthetic),
        "n_queries": int(config.n_queries),
        "radius_km": float(config.radius_km),
        "count": int(config.count),
        "index_build_ms": index_build_ms,
        "equivalence_checked": bool(config.check_equivalence),
        "equivalence_failures": int(equivalence_failures),
        "strategies": per_strategy,
    }


def _build_metadata(config: BenchmarkConfig, run_dir: Path) -> dict[str, Any]:
    now = dt.datetime.now(dt.timezone.utc).isoformat()

    metadata = {
        "timestamp_utc": now,
        "run_dir": str(run_dir),
        "seed": config.seed,
        "python_version": sys.version,
        "platform": platform.platform(),
        "git_commit": _try_git_commit(),
    }
    return metadata


def _try_git_commit() -> str | None:
    try:
        completed = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        return completed.stdout.strip() or None
    except (OSError, subprocess.CalledProcessError):
        return None


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, sort_keys=False)
        handle.write("\n")


def _write_yaml(path: Path, payload: dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False)


def _append_step_log(path: Path, event: str, payload: dict[str, Any]) -> None:
    entry = {
        "timestamp_utc": dt.datetime.now(dt.timezone.utc).isoformat(),
        "event": event,
        "payload": payload,
    }
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(entry, sort_keys=False))
        handle.write("\n")


def _slugify(text: str) -> str:
    normalized = re.sub(r"[^A-Za-z0-9._-]+", "_", text.strip())
    normalized = normalized.strip("_")
    return normalized or "item"
