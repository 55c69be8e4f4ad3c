"""
Network Planner Sweep Runner.

Usage:
    python run_sweep.py request.json                       # Print summary
    python run_sweep.py request.json -o response.json      # Save full response
    python run_sweep.py request.json --workers 4           # Parallel scenarios
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from netplan.service.batch import run_batch


def _print_summary(payload: dict) -> None:
    summary = payload["batch_summary"]
    print("\n" + "=" * 60)
    print("SCENARIO SWEEP")
    print("=" * 60)
    print(
        f"Scenarios run: {summary['scenarios_run']}  "
        f"(successful {summary['successful_scenarios']}, failed {summary['failed_scenarios']})"
    )

    print(f"\n{'Nodes':<6} {'Total Cost':>18} {'Service':>9} {'Opened':>7}  Facilities / Error")
    print("-" * 60)
    for s in payload["scenarios"]:
        kpis = s["kpis"]
        detail = ", ".join(s["facilities_used"]) if s["ok"] else f"{s['error_type']}: {s['error']}"
        cost = kpis["total_network_cost_all_years"]
        cost_text = f"{cost:,.0f}" if cost is not None else "n/a"
        print(
            f"{s['nodes']:<6} {cost_text:>18} "
            f"{kpis['service_level']:>8.1%} {kpis['facilities_opened']:>7}  {detail}"
        )

    baseline = payload["baseline_integration"]
    best = payload["best"]
    print()
    if best is None:
        print("No successful scenario.")
    else:
        print(
            f"Best: {best['nodes']} nodes, ${summary['best_scenario_cost']:,.0f} total, "
            f"transport savings {baseline['best_savings_percent']:.1f}% vs "
            f"${baseline['transport_baseline_all_years']:,.0f} baseline"
        )
    if baseline["baseline_fallback_used"]:
        print("Note: historical baseline unavailable, default baseline used.")


def main() -> None:
    """Run a batch sweep from a JSON request file."""
    parser = argparse.ArgumentParser(
        description="Multi-year logistics network sweep",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_sweep.py requests/sample_request.json
  python run_sweep.py request.json --output data/output/response.json --workers 3
        """,
    )
    parser.add_argument("request", type=Path, help="Path to a batch request JSON file")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the full JSON response here",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Scenarios solved in parallel (default: 1)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    with open(args.request, encoding="utf-8") as f:
        body = json.load(f)

    print(f"Running sweep for {args.request} (workers={args.workers})...")
    start_time = time.time()
    response = run_batch(body, max_workers=args.workers)
    duration = time.time() - start_time
    print(f"\nSweep completed in {duration:.2f} seconds (HTTP {response.status_code}).")

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(response.payload, f, indent=2, allow_nan=False)
        print(f"Response saved to {args.output}")

    if response.status_code != 200:
        print(f"Request failed: {response.payload['error']}")
        sys.exit(1)

    _print_summary(response.payload)


if __name__ == "__main__":
    main()
