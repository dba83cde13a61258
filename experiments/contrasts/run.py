from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from contrasts.draws import PosteriorDrawSet, load_draws_npz
from contrasts.summary import contrast_report, group_mean_summary
from meta.run_meta import write_run_meta
from report.tables import contrasts_frame, table_contrasts

_LOGGER = logging.getLogger(__name__)


def _parse_pairs(value: str) -> list[tuple[int, int]]:
    """Parse ``"1-0,2-0"`` into column-index pairs."""

    pairs: list[tuple[int, int]] = []
    for chunk in value.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = chunk.split("-")
        if len(parts) != 2:
            raise argparse.ArgumentTypeError(f"Pair {chunk!r} must be formatted as g1-g2.")
        try:
            pairs.append((int(parts[0]), int(parts[1])))
        except ValueError as exc:
            raise argparse.ArgumentTypeError(str(exc))
    if not pairs:
        raise argparse.ArgumentTypeError("At least one group pair is required.")
    return pairs


def _parse_int_list(value: str) -> list[int]:
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def _parse_names(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Type S / Type M diagnostics from posterior draws.")
    parser.add_argument("--draws", type=Path, required=True, help="NPZ export with mu, y_sim and group_sim.")
    parser.add_argument(
        "--pairs",
        type=_parse_pairs,
        default=None,
        help="Comma separated 0-based column pairs g1-g2 (default: every pair i-j with i > j).",
    )
    parser.add_argument("--names", type=_parse_names, default=None, help="Comma separated group names.")
    parser.add_argument(
        "--group-labels",
        type=_parse_int_list,
        default=None,
        help="Comma separated labels used in group_sim (default: stored labels or 1..G).",
    )
    parser.add_argument("--threshold", type=float, default=0.0, help="Minimum |true difference| for Type M.")
    parser.add_argument("--cred-mass", type=float, default=0.89, help="HDI credible mass (default: 0.89).")
    parser.add_argument(
        "--n-per-group",
        type=_parse_int_list,
        default=None,
        help="Comma separated group sizes; enables Cohen's d when sigma draws exist.",
    )
    parser.add_argument("--label", type=str, default=None, help="Optional run label recorded in run.json.")
    parser.add_argument(
        "--out",
        type=Path,
        default=Path("reports/contrasts-latest"),
        help="Output directory (default: reports/contrasts-latest).",
    )
    parser.add_argument("--verbose", action="store_true", help="Log per-contrast summaries.")
    return parser.parse_args(argv)


def _default_pairs(draws: PosteriorDrawSet) -> list[tuple[int, int]]:
    return [(i, j) for i in range(draws.n_groups) for j in range(i)]


def main(argv: Sequence[str] | None = None) -> Path:
    args = parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    draws = load_draws_npz(args.draws, group_labels=args.group_labels)
    pairs = args.pairs or _default_pairs(draws)
    out_dir = args.out
    out_dir.mkdir(parents=True, exist_ok=True)

    reports = []
    for group1, group2 in pairs:
        report = contrast_report(
            draws,
            group1,
            group2,
            names=args.names,
            threshold=float(args.threshold),
            cred_mass=float(args.cred_mass),
            n_per_group=args.n_per_group,
        )
        if report.type_s.rate is None:
            _LOGGER.warning("contrast %s: no defined draws for Type S", report.label)
        _LOGGER.info(
            "contrast %s: type_s=%s type_m_median=%s",
            report.label,
            report.type_s.rate,
            report.type_m.median,
        )
        reports.append(report)

    payload = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "draws": str(args.draws),
        "n_draws": draws.n_draws,
        "n_groups": draws.n_groups,
        "group_labels": list(draws.group_labels or ()),
        "threshold": float(args.threshold),
        "cred_mass": float(args.cred_mass),
        "contrasts": [report.to_dict() for report in reports],
    }
    (out_dir / "contrasts.json").write_text(json.dumps(payload, indent=2), encoding="utf-8")
    table_contrasts(contrasts_frame(reports), output_dir=out_dir)
    group_mean_summary(draws, names=args.names, cred_mass=float(args.cred_mass)).to_csv(
        out_dir / "group_means.csv", index=False
    )

    write_run_meta(
        out_dir,
        config={key: (str(value) if isinstance(value, Path) else value) for key, value in vars(args).items()},
        label=args.label,
    )
    print(json.dumps({"event": "contrasts_complete", "out_dir": str(out_dir), "contrasts": len(reports)}), flush=True)
    return out_dir


if __name__ == "__main__":  # pragma: no cover
    main()
