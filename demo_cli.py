#!/usr/bin/env python3
"""
demo_cli.py — Terminal demo of the vitals pipeline
===================================================
Runs the full PPG pipeline WITHOUT the FastAPI server, fed either by the
synthetic generator or by a local camera (fingertip over the lens).
Handy for trying parameters and watching per-beat DEBUG logs.

Usage:
    python demo_cli.py --source synthetic --bpm 68 --duration 40
    python demo_cli.py --source camera --age 42 --duration 45

⚠️  DISCLAIMER: See model/bp_model.py and model/spo2.py for full disclaimers.
    Every number it prints is an estimate for wellness use only.
"""

import argparse
import sys
import time

from camera.capture import CameraSampleSource
from model.bp_model import available_models
from ppg.pipeline import PipelineConfig, VitalSignsPipeline, VitalSignsSnapshot
from ppg.quality import available_strategies
from ppg.streaming import PipelineWorker
from ppg.synthetic import synthetic_ppg
from utils.logger import get_logger, set_level

logger = get_logger("demo_cli")

_RULE = "=" * 60


def _banner(*lines: str) -> None:
    print("\n" + _RULE)
    for line in lines:
        print(f"  {line}")
    print(_RULE + "\n")


def _section(title: str) -> None:
    print(f"\n  ── {title} ──")


def pretty_print(label: str, value, unit: str = "") -> None:
    """One aligned, coloured result line."""
    cyan, yellow, plain = "\033[1;36m", "\033[1;33m", "\033[0m"
    print(f"  {cyan}{label:<28}{plain} {yellow}{value}{plain} {unit}")


def run_synthetic(pipeline: VitalSignsPipeline, args) -> VitalSignsSnapshot | None:
    """Feed a synthetic recording straight through the pipeline."""
    samples = synthetic_ppg(
        duration_s=args.duration,
        bpm=args.bpm,
        rr_jitter_ms=args.jitter,
        noise=args.noise,
        seed=args.seed,
    )
    snapshot = None
    for i, sample in enumerate(samples):
        snapshot = pipeline.process(sample)
        if args.realtime:
            time.sleep(1.0 / pipeline.config.sample_rate)
        if (i + 1) % 150 == 0:
            print(f"  t={sample.timestamp_ms / 1000:5.1f}s  HR={snapshot.heart_rate.bpm:3d} BPM  "
                  f"quality={snapshot.heart_rate.quality:3d}")
    return snapshot


def run_camera(pipeline: VitalSignsPipeline, args) -> VitalSignsSnapshot | None:
    """Stream camera samples through a worker thread for `args.duration` seconds."""
    worker = PipelineWorker(pipeline)
    camera = CameraSampleSource(sink=worker.submit)
    if not camera.open():
        print("ERROR: no camera available, nothing to record.")
        sys.exit(1)
    worker.start()

    print("  Cover the camera lens (and flash, if any) with your fingertip and stay still…\n")
    start = time.time()
    try:
        while time.time() - start < args.duration:
            time.sleep(1.0)
            snapshot = worker.latest.get()
            if snapshot is None:
                continue
            print(f"  t={time.time() - start:5.1f}s  HR={snapshot.heart_rate.bpm:3d} BPM  "
                  f"quality={snapshot.heart_rate.quality:3d}  ({snapshot.quality_reason.value})")
    except KeyboardInterrupt:
        print("\n  Stopped early (Ctrl-C).")
    finally:
        camera.release()
        worker.stop()

    print(f"\n  Captured {camera.frame_count} frames, {worker.channel.dropped} dropped.\n")
    if worker.error:
        print(f"  ERROR: {worker.error}")
        sys.exit(1)
    return worker.latest.get()


def print_results(snapshot: VitalSignsSnapshot) -> None:
    _banner("RESULTS")
    _section("Pulse")
    pretty_print("Heart Rate", snapshot.heart_rate.bpm or "--", "BPM")
    pretty_print("  Signal quality", snapshot.heart_rate.quality, "/ 100")
    pretty_print("  Quality flag", snapshot.quality_reason.value)
    pretty_print("  Perfusion index", f"{snapshot.perfusion_index:.2f}", "%")
    pretty_print("  Irregular rhythm", "yes" if snapshot.heart_rate.is_irregular else "no")

    _section("Variability (HRV)")
    if snapshot.hrv is not None:
        hrv = snapshot.hrv
        pretty_print("SDNN", f"{hrv.temporal.sdnn:.1f}", "ms")
        pretty_print("RMSSD", f"{hrv.temporal.rmssd:.1f}", "ms")
        pretty_print("pNN50", f"{hrv.temporal.pnn50:.1f}", "%")
        pretty_print("LF/HF", f"{hrv.frequency.lf_hf_ratio:.2f}")
        pretty_print("DFA α1", f"{hrv.non_linear.dfa_alpha1:.2f}")
        pretty_print("Intervals used", hrv.num_intervals)
    else:
        print("    ⚠️  Fewer than 20 clean beat intervals, HRV not computed.")

    _section("SpO2, estimated")
    if snapshot.spo2 is not None and snapshot.spo2.is_valid:
        pretty_print("SpO2", f"{snapshot.spo2.spo2:.0f}", "%")
        pretty_print("  Confidence", f"{snapshot.spo2.confidence:.0f}", "%")
        pretty_print("  Ratio R", f"{snapshot.spo2.ratio_r:.3f}")
        if snapshot.spo2.invalid_reason.value != "NONE":
            pretty_print("  Flag", snapshot.spo2.invalid_reason.value)
    else:
        reason = snapshot.spo2.invalid_reason.value if snapshot.spo2 else "calibrating"
        print(f"    ⚠️  SpO2 unavailable ({reason}).")

    _section("Blood pressure, estimated")
    bp = snapshot.blood_pressure
    pretty_print("Systolic", bp.systolic, "mmHg")
    pretty_print("Diastolic", bp.diastolic, "mmHg")
    pretty_print("MAP", bp.map, "mmHg")
    pretty_print("Confidence", f"{bp.confidence:.2f}")

    _section("Stress, estimated")
    if snapshot.stress is not None:
        pretty_print("Level", snapshot.stress["level"])
        pretty_print("Score", snapshot.stress["score"], "/ 100")
        pretty_print("Confidence", snapshot.stress["confidence"])
        print(f"    {snapshot.stress['description']}")
    else:
        print("    ⚠️  Needs HRV — record for longer.")

    _banner("⚠️  Estimates from a phone-style camera, not clinical readings.",
            "   See a clinician for anything that worries you.")


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description="Camera-PPG Vital Signs CLI Demo")
    parser.add_argument("--source", choices=["synthetic", "camera"], default="synthetic")
    parser.add_argument("--age", type=int, default=35, help="Subject age in years (BP correction)")
    parser.add_argument("--duration", type=float, default=40.0, help="Recording duration (seconds)")
    parser.add_argument("--quality-strategy", choices=available_strategies(), default="periodicity")
    parser.add_argument("--bp-model", choices=available_models(), default="additive")
    parser.add_argument("--channel", choices=["red", "green", "blue"], default="red")
    parser.add_argument("--bpm", type=float, default=72.0, help="Synthetic heart rate")
    parser.add_argument("--jitter", type=float, default=25.0, help="Synthetic RR variability (ms)")
    parser.add_argument("--noise", type=float, default=0.3, help="Synthetic sensor noise")
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--realtime", action="store_true", help="Pace synthetic samples in real time")
    parser.add_argument("--verbose", action="store_true", help="Per-beat DEBUG logging")
    args = parser.parse_args(argv)
    if args.verbose:
        set_level("DEBUG")

    _banner("CAMERA-PPG VITAL SIGNS  ·  terminal demo",
            "⚠️  Wellness estimates only, not a medical device.")

    config = PipelineConfig(
        age=args.age,
        ppg_channel=args.channel,
        quality_strategy=args.quality_strategy,
        bp_model=args.bp_model,
    )
    pipeline = VitalSignsPipeline(config)

    print(f"  Source       : {args.source}")
    print(f"  Duration     : {args.duration:.0f} s")
    print(f"  Quality      : {args.quality_strategy}")
    print(f"  BP model     : {args.bp_model}\n")

    if args.source == "camera":
        snapshot = run_camera(pipeline, args)
    else:
        snapshot = run_synthetic(pipeline, args)

    if snapshot is None:
        print("  ERROR: No samples were processed.")
        sys.exit(1)
    print_results(snapshot)


if __name__ == "__main__":
    main()
