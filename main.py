"""
main.py
--------
Entry point for the Merchant Analytics Core.

Generates a reproducible demo history for one merchant, runs the full
analytics pipeline (forecasts, anomalies, alerts, insights) and prints a
summary. Result tables can optionally be written to CSV.

Usage (from the project root):
    python main.py

    # With optional arguments:
    python main.py --days 90 --seed 7
    python main.py --mode metric_history --spike 1.8
    python main.py --output-dir outputs/
"""

import sys
import os
import argparse
import logging
from datetime import date, datetime

import numpy as np

# Ensure project root is on path (for VS Code runs from any working directory)
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from config.config_loader import DETECTOR_MODES, get_currency_config
from core.models import AnalyticsReport
from core.series import format_metric_value
from fixtures.demo_data import generate_competitor_field, generate_daily_snapshots, inject_spike
from pipeline import MerchantAnalyticsPipeline


# =============================================================================
# LOGGING SETUP
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("main")


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Merchant Analytics Core: forecasts, anomalies and insights for a demo merchant."
    )
    parser.add_argument(
        "--merchant", type=str, default="Carrefour Demo",
        help="Merchant name for the generated history."
    )
    parser.add_argument(
        "--days", type=int, default=60,
        help="Days of history to generate, including today. Default: 60."
    )
    parser.add_argument(
        "--end-date", type=date.fromisoformat, default=None,
        help="Last day of the generated history (YYYY-MM-DD). Defaults to today."
    )
    parser.add_argument(
        "--seed", type=int, default=42,
        help="Random seed for the demo data. Default: 42."
    )
    parser.add_argument(
        "--horizon", type=int, default=None,
        help="Forecast horizon in days. Defaults to config value (7)."
    )
    parser.add_argument(
        "--mode", type=str, default="day_aligned", choices=list(DETECTOR_MODES),
        help="Anomaly detector. Default: day_aligned."
    )
    parser.add_argument(
        "--spike", type=float, default=None,
        help="Multiply the last day's volume by this factor to provoke anomalies."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Write forecast, anomaly and insight tables as CSV to this directory."
    )
    return parser.parse_args()


# =============================================================================
# MAIN
# =============================================================================

def main():
    args = parse_args()

    if args.days < 2:
        logger.error(f"--days must be at least 2, got {args.days}.")
        sys.exit(1)

    # --- Generate demo data ---
    rng = np.random.default_rng(args.seed)
    end_date = args.end_date or date.today()
    snapshots = generate_daily_snapshots(args.merchant, end_date, args.days, rng)
    if args.spike is not None:
        snapshots = inject_spike(snapshots, args.spike)
        logger.info(f"Injected x{args.spike} volume spike on {end_date.isoformat()}.")

    historical, current = snapshots[:-1], snapshots[-1]
    competitors = generate_competitor_field(current, rng)
    logger.info(
        f"Generated {len(snapshots):,} days for {args.merchant} "
        f"and {len(competitors) - 1} competitors (seed={args.seed})."
    )

    # --- Run pipeline ---
    pipeline = MerchantAnalyticsPipeline(detector_mode=args.mode, days_ahead=args.horizon)
    report = pipeline.run(current, historical, competitors, generated_at=datetime.now())

    # --- Print summary ---
    _print_summary(report)

    # --- Optional: CSV output ---
    if args.output_dir:
        os.makedirs(args.output_dir, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        tables = {
            "forecasts": pipeline.forecasts_to_frame(report),
            "anomalies": pipeline.anomalies_to_frame(report),
            "insights": pipeline.insights_to_frame(report),
        }
        for name, frame in tables.items():
            path = os.path.join(args.output_dir, f"{name}_{timestamp}.csv")
            frame.to_csv(path, index=False)
            logger.info(f"{name.capitalize()} saved to: {path} ({len(frame):,} rows)")


def _print_summary(report: AnalyticsReport):
    """Prints a clean summary to the console."""
    currency = get_currency_config()

    print("\n" + "=" * 80)
    print(f"  MERCHANT ANALYTICS: {report.merchant_name}")
    print("=" * 80)

    print("\n  Forecasts:")
    print("  " + "-" * 60)
    for metric, fc in report.forecasts.items():
        first, last = fc.forecast[0], fc.forecast[-1]
        print(
            f"    {metric:15s}  {first.date} .. {last.date}  "
            f"next={format_metric_value(metric, first.value, currency):>16s}  "
            f"MAPE={fc.accuracy_metrics.mape:5.1f}%"
        )
    for metric, reason in report.skipped_forecasts.items():
        print(f"    {metric:15s}  skipped: {reason}")

    print("\n  Anomalies:")
    print("  " + "-" * 60)
    if not report.anomalies:
        print("    None.")
    for anomaly in report.anomalies:
        print(f"    [{anomaly.severity.upper():8s}] {anomaly.metric:15s} z={anomaly.deviation_stddev:+.2f}")
        print(f"      {anomaly.explanation}")

    if report.alerts:
        print("\n  Alerts:")
        print("  " + "-" * 60)
        for alert in report.alerts:
            print(f"    [{alert.severity.upper():8s}] {alert.title}  -> {', '.join(alert.channels_sent)}")

    print("\n  Insights:")
    print("  " + "-" * 60)
    if not report.insights:
        print("    None.")
    for insight in report.insights:
        print(f"    [{insight.severity.upper():6s}] {insight.title}")
        print(f"      {insight.description}")
    print("=" * 80 + "\n")


if __name__ == "__main__":
    main()
