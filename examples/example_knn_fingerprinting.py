"""
Example: KNN Fingerprinting in Signal Space

Localizes query fingerprints by searching a calibration set of located
fingerprints for the k nearest entries in RSSI space and averaging their
positions with inverse-distance weights:

    D²(q, f) = Σ (rssi_q - rssi_f)²     over shared access points
    x̂ = Σ w_i x_i / Σ w_i,  w_i = 1 / (D_i + ε)

The calibration set is loaded from disk when --data is given, otherwise it is
generated inline.
"""

import argparse
import logging
import time
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from rfloc.fingerprinting import (
    Fingerprint,
    RadioSourceKNearestFinder,
    load_calibration_dataset,
    load_radio_sources,
    weighted_knn_position,
)
from rfloc.sim import generate_access_points, generate_calibration_grid, generate_fingerprint


def build_inline_calibration(area=20.0, spacing=2.0, n_aps=6, shadowing_std=2.0, seed=42):
    """Generate access points and a calibration grid in memory."""
    rng = np.random.default_rng(seed)
    aps = generate_access_points(n_aps, (area, area), rng)
    calibration = generate_calibration_grid(aps, (area, area), spacing, rng, shadowing_std)
    return aps, calibration


def evaluate(finder, aps, k_values, n_queries=100, shadowing_std=2.0, area=20.0, seed=7):
    """Localize random queries for several k and return errors per k."""
    rng = np.random.default_rng(seed)
    truths = rng.uniform(0.0, area, size=(n_queries, 2))
    queries = [
        Fingerprint(tuple(generate_fingerprint(t, aps, rng, shadowing_std))) for t in truths
    ]

    errors = {}
    for k in k_values:
        errs = []
        for truth, query in zip(truths, queries):
            neighbours, d2 = finder.find_k_nearest_to_with_distances(query, k)
            estimate = weighted_knn_position(neighbours, d2)
            errs.append(np.linalg.norm(estimate - truth))
        errors[k] = np.array(errs)
    return truths, errors


def plot_results(errors, output_file=None):
    """Plot error CDF per k."""
    fig, ax = plt.subplots(figsize=(8, 5))
    for k, errs in errors.items():
        sorted_errors = np.sort(errs)
        cdf = np.arange(1, len(sorted_errors) + 1) / len(sorted_errors)
        ax.plot(sorted_errors, cdf, linewidth=2, label=f"k={k}")
    ax.set_xlabel("Position Error (m)")
    ax.set_ylabel("CDF")
    ax.set_title("KNN Fingerprinting Error CDF")
    ax.grid(True, alpha=0.3)
    ax.legend()
    plt.tight_layout()

    if output_file:
        Path(output_file).parent.mkdir(parents=True, exist_ok=True)
        plt.savefig(output_file, dpi=150, bbox_inches="tight")
        print(f"\n✓ Figure saved: {output_file}")
    return fig


def main():
    """Run KNN fingerprinting example."""
    parser = argparse.ArgumentParser(
        description="KNN fingerprinting in signal space",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Inline generated calibration grid
  python -m examples.example_knn_fingerprinting

  # Pre-generated dataset
  python -m examples.example_knn_fingerprinting --data data/sim/rssi_fingerprint_grid
        """
    )
    parser.add_argument("--data", type=str, default=None, help="Calibration dataset directory")
    parser.add_argument("--k", type=int, nargs="+", default=[1, 3, 5], help="k values to test")
    parser.add_argument("--queries", type=int, default=100, help="Number of test queries")
    parser.add_argument("--shadowing-std", type=float, default=2.0, help="Query shadowing std (dB)")
    parser.add_argument("--plot", action="store_true", help="Show error CDF plot")
    parser.add_argument("--output", type=str, default=None, help="Output file for figure")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    print("=" * 70)
    print("KNN Fingerprinting in Signal Space")
    print("=" * 70)

    if args.data:
        calibration = load_calibration_dataset(args.data)
        aps = load_radio_sources(args.data)
        area = float(np.max([f.position for f in calibration]))
    else:
        area = 20.0
        aps, calibration = build_inline_calibration(area=area, shadowing_std=args.shadowing_std)

    finder = RadioSourceKNearestFinder(calibration)
    print(f"\nCalibration set: {len(finder)} fingerprints, {len(aps)} access points")

    start = time.time()
    _, errors = evaluate(finder, aps, args.k, args.queries, args.shadowing_std, area)
    elapsed = time.time() - start

    print(f"\n{'k':<6} {'RMSE (m)':<12} {'Median (m)':<12} {'Max (m)':<12}")
    print("-" * 42)
    for k, errs in errors.items():
        rmse = np.sqrt(np.mean(errs**2))
        print(f"{k:<6} {rmse:<12.3f} {np.median(errs):<12.3f} {errs.max():<12.3f}")
    print(f"\nElapsed: {elapsed:.2f} s")

    if args.plot or args.output:
        plot_results(errors, args.output)
        if args.plot:
            plt.show()


if __name__ == "__main__":
    main()
