"""Configuration parsing and validation.

This module contains:
- load_workload_config(): entry point building a seeded Workload from TOML
- validate_config(): collects errors and warnings from a raw config dict

All preconditions of the key samplers are checked here, so a Workload
built from a validated config never fails to generate.
"""

from __future__ import annotations

import logging

import tomllib

from txnbench.workload import Workload, WorkloadConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration error
# ---------------------------------------------------------------------------

class ConfigurationError(Exception):
    """Fatal configuration error(s)."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("\n".join(errors))


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_workload_config(
    config_path: str,
    *,
    seed_override: int | None = None,
) -> Workload:
    """Load a workload from a TOML file.

    Args:
        config_path: Path to TOML configuration file.
        seed_override: If provided, overrides workload.seed.

    Returns:
        Seeded Workload ready to generate.
    """
    with open(config_path, "rb") as f:
        raw = tomllib.load(f)

    if seed_override is not None:
        raw.setdefault("workload", {})["seed"] = seed_override

    errors, warnings = validate_config(raw)
    if errors:
        raise ConfigurationError(errors)
    for warning in warnings:
        logger.warning(warning)

    config = build_workload_config(raw)
    seed = raw.get("workload", {}).get("seed")
    return Workload(config, seed=seed)


def build_workload_config(raw: dict) -> WorkloadConfig:
    """Build WorkloadConfig from [workload] and [partition] sections."""
    wl = raw.get("workload", {})
    partition = raw.get("partition", {})

    partitions_per_txn = None
    thread_count = 1
    if partition.get("enabled", False):
        thread_count = partition.get("thread_count", 1)
        partitions_per_txn = min(partition.get("k", 1), thread_count)

    return WorkloadConfig(
        dbsize=wl.get("dbsize", 1000000),
        readsetsize=wl.get("readsetsize", 0),
        writesetsize=wl.get("writesetsize", 0),
        duration=float(wl.get("duration", 0.0)),
        partitions_per_txn=partitions_per_txn,
        thread_count=thread_count,
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config: dict) -> tuple[list[str], list[str]]:
    """Validate configuration and return errors/warnings.

    Returns:
        (errors, warnings) where:
        - errors: List of fatal configuration errors
        - warnings: List of non-fatal warnings
    """
    errors = []
    warnings = []

    wl = config.get('workload', {})
    dbsize = wl.get('dbsize', 1000000)
    readsetsize = wl.get('readsetsize', 0)
    writesetsize = wl.get('writesetsize', 0)
    duration = wl.get('duration', 0.0)
    seed = wl.get('seed')

    for name, value in (('dbsize', dbsize), ('readsetsize', readsetsize),
                        ('writesetsize', writesetsize)):
        if not _is_int(value):
            errors.append(f"workload.{name} must be an integer, got {type(value).__name__}")
    if errors:
        return errors, warnings

    if dbsize <= 0:
        errors.append(f"workload.dbsize must be > 0, got {dbsize}")
    if readsetsize < 0:
        errors.append(f"workload.readsetsize must be >= 0, got {readsetsize}")
    if writesetsize < 0:
        errors.append(f"workload.writesetsize must be >= 0, got {writesetsize}")

    total = readsetsize + writesetsize
    if total > dbsize:
        errors.append(
            f"workload.readsetsize + workload.writesetsize ({total}) must be <= dbsize ({dbsize})"
        )
    elif total == 0:
        warnings.append("workload.readsetsize and workload.writesetsize are both 0; transactions touch no keys")

    if not isinstance(duration, (int, float)) or isinstance(duration, bool):
        errors.append(f"workload.duration must be a number, got {type(duration).__name__}")
    elif duration < 0:
        errors.append(f"workload.duration must be >= 0, got {duration}")

    if seed is not None and not _is_int(seed):
        errors.append(f"workload.seed must be an integer, got {type(seed).__name__}")

    partition = config.get('partition', {})
    if partition.get('enabled', False):
        thread_count = partition.get('thread_count', 1)
        k = partition.get('k', 1)

        if not _is_int(thread_count) or not _is_int(k):
            errors.append("partition.thread_count and partition.k must be integers")
            return errors, warnings

        if thread_count <= 0:
            errors.append(f"partition.thread_count must be > 0, got {thread_count}")
            return errors, warnings
        if k <= 0:
            errors.append(f"partition.k must be > 0, got {k}")
            return errors, warnings

        if k > thread_count:
            warnings.append(f"partition.k ({k}) > thread_count ({thread_count}); will be clamped to {thread_count}")
            k = thread_count

        if dbsize < thread_count:
            errors.append(f"workload.dbsize ({dbsize}) must be >= partition.thread_count ({thread_count})")
            return errors, warnings

        chunk_size = dbsize // thread_count
        if total < k:
            errors.append(
                f"workload.readsetsize + workload.writesetsize ({total}) must be >= partition.k ({k}) "
                f"so every target partition is covered"
            )
        elif total > k * chunk_size:
            errors.append(
                f"workload.readsetsize + workload.writesetsize ({total}) exceeds the {k * chunk_size} "
                f"keys available in {k} partitions of {chunk_size}"
            )

        unreachable = dbsize - chunk_size * thread_count
        if unreachable:
            warnings.append(
                f"dbsize ({dbsize}) is not a multiple of thread_count ({thread_count}); "
                f"the last {unreachable} keys are never generated"
            )

        if thread_count == 1:
            warnings.append("partition.thread_count = 1 is meaningless (single partition); consider disabling partition mode")

    return errors, warnings
