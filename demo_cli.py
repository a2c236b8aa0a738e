#!/usr/bin/env python3
"""
demo_cli.py — Standalone command-line demo
============================================
Replays a recorded or synthetic PPG stream through the pipeline WITHOUT
the FastAPI server.  Useful for quick testing, demos, and debugging.

Usage:
    python demo_cli.py --synthetic --bpm 72 --duration 20 --noise 0.05
    python demo_cli.py --csv recording.csv --systolic 120 --diastolic 80

The CSV must hold `timestamp_ms,intensity` rows (a header row is allowed).
Samples are fed in frame-sized batches, one processing cycle per batch,
and a reading is printed once per second of signal.

⚠️  DISCLAIMER: This is a WELLNESS ESTIMATION tool — NOT a medical device.
"""

import argparse
import csv
import sys

import numpy as np

from config import SAMPLE_RATE_HZ
from ppg.pipeline import CycleResult, VitalSignsPipeline
from ppg.synthetic import synthetic_ppg
from utils.errors import InvalidCalibration
from utils.logger import get_logger

logger = get_logger("demo_cli")


def pretty_print(label: str, value, unit: str = "") -> None:
    """Colourised terminal output."""
    print(f"  \033[1;36m{label:<28}\033[0m \033[1;33m{value}\033[0m {unit}")


def load_csv(path: str) -> tuple[np.ndarray, np.ndarray]:
    """Read `timestamp_ms,intensity` rows; non-numeric rows are skipped."""
    timestamps, values = [], []
    with open(path, newline="", encoding="utf-8") as f:
        for row in csv.reader(f):
            if len(row) < 2:
                continue
            try:
                t, v = float(row[0]), float(row[1])
            except ValueError:
                continue
            timestamps.append(t)
            values.append(v)
    return np.array(timestamps), np.array(values)


def print_cycle(second: int, result: CycleResult) -> None:
    reading = result.reading
    print(f"\n  ── t = {second:>3d} s ──")
    if not reading.is_valid:
        pretty_print("Status", "insufficient signal — place finger on lens")
        pretty_print("Confidence", f"{reading.confidence:.2f}")
        return
    pretty_print("Heart Rate", reading.heart_rate, "BPM")
    pretty_print("SpO2 (ESTIMATED)", reading.spo2 if reading.spo2 is not None else "—", "%")
    if reading.systolic is not None:
        pretty_print("Blood Pressure (ESTIMATED)", f"{reading.systolic:.0f}/{reading.diastolic:.0f}", "mmHg")
    pretty_print("RMSSD", reading.rmssd_ms, "ms")
    pretty_print("Irregular beats", reading.arrhythmia_count)
    pretty_print("Confidence", f"{reading.confidence:.2f}")
    if reading.detector_degraded:
        print("    ⚠️  Detector degraded — adjust finger pressure or lighting.")
    if result.rejected:
        pretty_print("Rejected samples", result.rejected)


def main():
    parser = argparse.ArgumentParser(description="PPG Vital Signs CLI Demo")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--csv", type=str, help="CSV of timestamp_ms,intensity rows")
    source.add_argument("--synthetic", action="store_true", help="Generate a synthetic stream (default)")
    parser.add_argument("--bpm", type=float, default=75.0, help="Synthetic heart rate")
    parser.add_argument("--duration", type=float, default=20.0, help="Synthetic duration (seconds)")
    parser.add_argument("--fs", type=float, default=SAMPLE_RATE_HZ, help="Sample rate (Hz)")
    parser.add_argument("--noise", type=float, default=0.0, help="Synthetic noise std")
    parser.add_argument("--shape", type=str, default="pulse", choices=["sine", "pulse"])
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--systolic", type=int, default=None, help="Calibration systolic (mmHg)")
    parser.add_argument("--diastolic", type=int, default=None, help="Calibration diastolic (mmHg)")
    parser.add_argument("--batch", type=int, default=1, help="Samples per processing cycle")
    args = parser.parse_args()

    print("\n" + "=" * 60)
    print("  PPG VITAL SIGNS — CLI DEMO")
    print("=" * 60)
    print("  ⚠️  This is a WELLNESS ESTIMATION tool — NOT medical grade.")
    print("=" * 60 + "\n")

    if args.csv:
        try:
            timestamps, values = load_csv(args.csv)
        except OSError as e:
            print(f"  ERROR: could not read {args.csv}: {e}")
            sys.exit(1)
        if timestamps.shape[0] == 0:
            print(f"  ERROR: no samples in {args.csv}.")
            sys.exit(1)
        print(f"  Source       : {args.csv} ({timestamps.shape[0]} samples)")
    else:
        timestamps, values = synthetic_ppg(
            duration_s=args.duration,
            fs=args.fs,
            bpm=args.bpm,
            noise=args.noise,
            shape=args.shape,
            seed=args.seed,
        )
        print(f"  Source       : synthetic {args.shape}, {args.bpm:.0f} BPM, "
              f"{args.duration:.0f} s, noise={args.noise}")

    pipeline = VitalSignsPipeline(sample_rate_hz=args.fs)

    if args.systolic is not None and args.diastolic is not None:
        try:
            record = pipeline.calibrate(args.systolic, args.diastolic)
            print(f"  Calibration  : {record.systolic}/{record.diastolic} mmHg")
        except InvalidCalibration as e:
            print(f"  ERROR: invalid calibration: {e}")
            sys.exit(1)

    # ── Replay ───────────────────────────────────────────────────────────
    batch = max(1, args.batch)
    logger.info("Replaying %d samples in batches of %d…", timestamps.shape[0], batch)
    start = float(timestamps[0])
    next_report = 1
    result = None
    for i in range(0, timestamps.shape[0], batch):
        chunk = zip(timestamps[i:i + batch], values[i:i + batch])
        result = pipeline.process(chunk)
        elapsed_s = (float(timestamps[min(i + batch, timestamps.shape[0]) - 1]) - start) / 1000.0
        if elapsed_s >= next_report:
            print_cycle(next_report, result)
            next_report += 1

    if result is None:
        print("  No samples processed.")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("  FINAL READING")
    print("=" * 60)
    print_cycle(next_report - 1, result)
    print(f"\n  Peaks in window: {len(result.peaks)} "
          f"({sum(p.arrhythmia for p in result.peaks)} flagged irregular)")

    print("\n" + "=" * 60)
    print("  ⚠️  DISCLAIMER: All values above are ESTIMATES.")
    print("      Do NOT use for medical diagnosis or treatment.")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
