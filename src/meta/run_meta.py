from __future__ import annotations

import hashlib
import json
import subprocess
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

__all__ = ["RunMeta", "code_signature", "write_run_meta"]


@dataclass
class RunMeta:
    """Provenance for a single modeling or contrast run.

    Fields are flat and JSON-serialisable.
    """

    git_sha: str
    code_signature: str
    created_at: str
    label: str | None
    n_subjects: int | None
    n_failed: int | None

    # Resolved configuration as captured by the driver
    config_snapshot: Mapping[str, Any] | None

    # Execution metadata (workers, thread caps)
    execution: Mapping[str, Any] | None

    # Hashes of generated artifacts for provenance
    artifact_sha256: dict[str, str]


_DEFAULT_SIGNATURE_GLOBS = [
    "src/statespace/*.py",
    "src/contrasts/*.py",
    "src/data/*.py",
]


def code_signature(targets: Iterable[str | Path] | None = None) -> str:
    """SHA-256 over the model, calibration and contrast sources."""

    root = Path(__file__).resolve().parents[2]
    paths: list[Path] = []
    if targets is None:
        for pattern in _DEFAULT_SIGNATURE_GLOBS:
            paths.extend(sorted(root.glob(pattern)))
    else:
        for item in targets:
            path = Path(item)
            paths.append(path if path.is_absolute() else (root / path))

    seen: set[Path] = set()
    ordered: list[Path] = []
    for path in paths:
        resolved = path.resolve()
        if resolved in seen or not resolved.is_file():
            continue
        seen.add(resolved)
        ordered.append(resolved)

    h = hashlib.sha256()
    for path in ordered:
        h.update(_sha256_of_file(path).encode("ascii"))
    h.update("::".join(p.name for p in ordered).encode("utf-8"))
    return h.hexdigest()


def _git_sha() -> str:
    """Return the git SHA for the current repository, or 'unknown'."""

    try:
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"], text=True, stderr=subprocess.DEVNULL
        )
    except (OSError, subprocess.CalledProcessError):
        return "unknown"
    return out.strip()


def _sha256_of_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def _collect_artifact_hashes(directory: Path, patterns: Iterable[str]) -> dict[str, str]:
    hashes: dict[str, str] = {}
    for pattern in patterns:
        for path in sorted(directory.glob(pattern)):
            if path.is_file():
                hashes[path.name] = _sha256_of_file(path)
    return hashes


def write_run_meta(
    output_dir: str | Path,
    *,
    config: Mapping[str, Any] | None = None,
    label: str | None = None,
    n_subjects: int | None = None,
    n_failed: int | None = None,
    execution: Mapping[str, Any] | None = None,
    code_signature_hash: str | None = None,
    artifact_patterns: Iterable[str] = ("*.csv", "*.json", "*.md"),
) -> Path:
    """Create ``run.json`` in ``output_dir``.

    Parameters
    ----------
    output_dir
        Directory holding the run's tables and figures.
    config
        Resolved configuration mapping captured by the driver.
    label
        Descriptive label for the run.
    n_subjects, n_failed
        Subject counts for modeling runs.
    execution
        Worker and thread-cap metadata (see ``meta.runtime.exec_metadata``).
    code_signature_hash
        Precomputed signature; computed from the source tree when omitted.
    artifact_patterns
        Glob patterns of artifacts to hash. ``run.json`` itself is skipped.

    Returns
    -------
    pathlib.Path
        Path to the written ``run.json``.
    """

    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)

    artifacts = _collect_artifact_hashes(out_path, artifact_patterns)
    artifacts.pop("run.json", None)

    meta = RunMeta(
        git_sha=_git_sha(),
        code_signature=code_signature_hash or code_signature(),
        created_at=datetime.now(timezone.utc).isoformat(),
        label=str(label) if label is not None else None,
        n_subjects=int(n_subjects) if n_subjects is not None else None,
        n_failed=int(n_failed) if n_failed is not None else None,
        config_snapshot=dict(config) if config is not None else None,
        execution=dict(execution) if execution is not None else None,
        artifact_sha256=artifacts,
    )

    meta_path = out_path / "run.json"
    with meta_path.open("w", encoding="utf-8") as fh:
        json.dump(asdict(meta), fh, indent=2, default=str)
    return meta_path
