from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from threadpoolctl import threadpool_limits

__all__ = [
    "THREAD_ENV_VARS",
    "ExecSettings",
    "resolve_exec_settings",
    "configure_exec",
    "effective_worker_count",
    "thread_caps_snapshot",
    "exec_metadata",
]

THREAD_ENV_VARS = (
    "OMP_NUM_THREADS",
    "OPENBLAS_NUM_THREADS",
    "MKL_NUM_THREADS",
    "NUMEXPR_NUM_THREADS",
)

_THREADPOOL_CONTROLLER: threadpool_limits | None = None


@dataclass(frozen=True)
class ExecSettings:
    """Process-level parallelism for a calibration run.

    Restarts and subjects are spread over ``workers`` processes; each process
    is capped at ``blas_threads`` BLAS threads so the pool does not
    oversubscribe the machine.
    """

    workers: int
    blas_threads: int


def resolve_exec_settings(
    requested_workers: int | None,
    *,
    cpu_count: int | None = None,
) -> ExecSettings:
    """Return worker and thread caps without mutating global state."""

    workers = effective_worker_count(requested_workers, cpu_count=cpu_count)
    return ExecSettings(workers=workers, blas_threads=1)


def _apply_thread_caps(max_threads: int) -> None:
    global _THREADPOOL_CONTROLLER
    capped = max(1, int(max_threads))
    for key in THREAD_ENV_VARS:
        os.environ[key] = str(capped)
    if _THREADPOOL_CONTROLLER is not None:
        _THREADPOOL_CONTROLLER.restore_original_limits()
    _THREADPOOL_CONTROLLER = threadpool_limits(limits=capped)


def configure_exec(
    requested_workers: int | None,
    *,
    cpu_count: int | None = None,
) -> ExecSettings:
    """Resolve settings and cap BLAS threads in this process and its children."""

    settings = resolve_exec_settings(requested_workers, cpu_count=cpu_count)
    _apply_thread_caps(settings.blas_threads)
    return settings


def effective_worker_count(requested_workers: int | None, cpu_count: int | None = None) -> int:
    """Explicit positive requests win; otherwise one worker per CPU."""

    if requested_workers is not None and requested_workers > 0:
        return int(requested_workers)
    cpus = cpu_count if cpu_count is not None else os.cpu_count()
    if cpus is None or cpus <= 0:
        cpus = 1
    return max(1, int(cpus))


def thread_caps_snapshot() -> dict[str, str]:
    return {var: os.environ[var] for var in THREAD_ENV_VARS if var in os.environ}


def exec_metadata(settings: ExecSettings) -> Mapping[str, object]:
    """Execution metadata for run.json payloads."""

    return {
        "workers": settings.workers,
        "blas_threads": settings.blas_threads,
        "thread_caps": thread_caps_snapshot(),
    }
