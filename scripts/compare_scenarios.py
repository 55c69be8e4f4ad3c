#!/usr/bin/env python3
"""Compare the scenarios of one or two saved sweep responses (run_sweep.py --output)."""

import argparse
import json
from pathlib import Path

import pandas as pd

from netplan.sweep.report import scenario_dicts_to_frame


def load_response(path: Path) -> pd.DataFrame:
    """Load a saved batch response into a per-scenario frame."""
    with open(path, encoding="utf-8") as f:
        payload = json.load(f)
    if "scenarios" not in payload:
        raise SystemExit(f"{path} is not a successful sweep response")
    return scenario_dicts_to_frame(payload["scenarios"])


def print_scenarios(frame: pd.DataFrame, label: str) -> None:
    print("=" * 60)
    print(f"SCENARIOS: {label}")
    print("=" * 60)
    print(f"{'Nodes':<6} {'Transport':>15} {'Network':>15} {'Service':>9} {'Savings %':>10}")
    print("-" * 60)
    for nodes, row in frame.iterrows():
        if not row["ok"]:
            print(f"{nodes:<6} FAILED  {row['error']}")
            continue
        print(
            f"{nodes:<6} {row['total_transport_cost_all_years']:>15,.0f} "
            f"{row['total_network_cost_all_years']:>15,.0f} "
            f"{row['service_level']:>8.1%} {row['transport_savings_percent']:>+10.1f}"
        )


def compare_frames(frame_a: pd.DataFrame, frame_b: pd.DataFrame, label_a: str, label_b: str) -> None:
    """Side-by-side network cost for node counts present in both responses."""
    print("\n" + "=" * 60)
    print(f"NETWORK COST: {label_a} vs {label_b}")
    print("=" * 60)

    joined = frame_a[["total_network_cost_all_years"]].join(
        frame_b[["total_network_cost_all_years"]], how="inner", lsuffix="_a", rsuffix="_b"
    )
    print(f"{'Nodes':<6} {label_a:>15} {label_b:>15} {'Diff':>15}")
    print("-" * 54)
    for nodes, row in joined.iterrows():
        a = row["total_network_cost_all_years_a"]
        b = row["total_network_cost_all_years_b"]
        print(f"{nodes:<6} {a:>15,.0f} {b:>15,.0f} {b - a:>+15,.0f}")


def main():
    parser = argparse.ArgumentParser(description="Compare saved sweep responses")
    parser.add_argument("response_a", type=Path, help="Path to a saved sweep response")
    parser.add_argument("response_b", type=Path, nargs="?", help="Optional second response")
    parser.add_argument("--label-a", default="Response A", help="Label for first response")
    parser.add_argument("--label-b", default="Response B", help="Label for second response")
    args = parser.parse_args()

    frame_a = load_response(args.response_a)
    print_scenarios(frame_a, args.label_a)

    if args.response_b is not None:
        frame_b = load_response(args.response_b)
        print()
        print_scenarios(frame_b, args.label_b)
        compare_frames(frame_a, frame_b, args.label_a, args.label_b)


if __name__ == "__main__":
    main()
