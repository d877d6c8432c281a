"""CI validation: verify an exported experiment report is complete and sane.

This script is the final gate in CI. It reads the exported report JSON and
asserts structural and logical invariants. If anything is wrong, it exits
non-zero and fails the build.

Usage:
    python ci/validate_analytics.py
    python ci/validate_analytics.py --data data/report.json
"""

import argparse
import json
import sys
from pathlib import Path

REQUIRED_TOP_KEYS = {"experiment_id", "weights", "variants"}
REPORT_FIELDS = {
    "entity_id",
    "impressions",
    "clicks",
    "ctr",
    "most_viewed_slide",
    "interaction_breakdown",
    "slide_impressions",
}


def validate(data: dict) -> list[str]:
    """Return a list of validation errors (empty = pass)."""
    errors = []

    # --- Top-level structure ---
    for key in sorted(REQUIRED_TOP_KEYS):
        if key not in data:
            errors.append(f"Missing top-level key: {key}")

    if errors:
        return errors  # Can't continue without structure

    exp_id = data["experiment_id"]
    variants = data["variants"]
    if not variants:
        errors.append(f"Experiment {exp_id} has no variant reports")
        return errors

    if set(variants) != set(data["weights"]):
        errors.append(
            f"Experiment {exp_id} variant reports {sorted(variants)} "
            f"!= configured variants {sorted(data['weights'])}"
        )

    for variant_id, report in variants.items():
        missing = REPORT_FIELDS - set(report.keys())
        if missing:
            errors.append(f"Variant {variant_id} report missing fields: {sorted(missing)}")
            continue

        impressions = report["impressions"]
        clicks = report["clicks"]
        if impressions < 0 or clicks < 0:
            errors.append(f"Variant {variant_id} has negative counts")

        expected_ctr = round(clicks / impressions, 4) if impressions > 0 else 0.0
        if abs(report["ctr"] - expected_ctr) > 1e-9:
            errors.append(
                f"Variant {variant_id} ctr {report['ctr']} inconsistent with "
                f"{clicks} clicks / {impressions} impressions"
            )

        histogram = report["slide_impressions"]
        if sum(histogram.values()) != impressions:
            errors.append(f"Variant {variant_id} slide_impressions do not add up to impressions")

        most_viewed = report["most_viewed_slide"]
        if most_viewed is None:
            if histogram:
                errors.append(f"Variant {variant_id} missing most_viewed_slide")
        elif str(most_viewed) not in {str(k) for k in histogram}:
            errors.append(f"Variant {variant_id} most_viewed_slide {most_viewed} not in histogram")

    return errors


def main() -> None:
    parser = argparse.ArgumentParser(description="Validate an exported experiment report")
    parser.add_argument(
        "--data",
        default="data/report.json",
        help="Path to exported report JSON",
    )
    opts = parser.parse_args()

    path = Path(opts.data)
    if not path.exists():
        print(f"FAIL: {opts.data} not found. Run 'python -m variantlab.analysis.export' first.")
        sys.exit(1)

    data = json.loads(path.read_text())
    errors = validate(data)

    if errors:
        print(f"FAIL: {len(errors)} validation error(s):")
        for e in errors:
            print(f"  - {e}")
        sys.exit(1)

    print("PASS: Experiment report validated")
    print(f"  Experiment: {data['experiment_id']}")
    for variant_id, report in data["variants"].items():
        print(f"  {variant_id}: {report['impressions']:,} impressions, ctr={report['ctr']:.4f}")


if __name__ == "__main__":
    main()
