"""
Example: Linear, Nonlinear and Robust RSSI Lateration

Positions a receiver from RSSI readings of access points with a known
transmitted power. A fraction of readings is corrupted by large Gaussian
errors (e.g. NLOS or multipath), and the estimators are compared:

    - Linear: closed-form lateration on every reading
    - NonLinear: Levenberg-Marquardt on every reading
    - Robust: sample consensus (RANSAC, LMedS, MSAC, PROSAC, PROMedS)
      followed by refinement over the inliers
"""

import argparse
import logging
import time

import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from rfloc.errors import EstimationFailedError
from rfloc.fingerprinting import Fingerprint
from rfloc.positioning import (
    LinearPositionEstimator,
    NonLinearPositionEstimator,
    RobustMethod,
    RobustPositionEstimator,
)
from rfloc.sim import generate_access_points, generate_fingerprint, perturb_readings


def make_estimators(aps, fingerprint, seed):
    """Build one estimator per method on the same inputs."""
    # Quality scores favour readings with stronger RSSI
    reading_scores = np.array([r.rssi for r in fingerprint.readings])
    estimators = {
        "Linear": LinearPositionEstimator(aps, fingerprint),
        "NonLinear": NonLinearPositionEstimator(aps, fingerprint),
    }
    for method in RobustMethod:
        estimators[method.name] = RobustPositionEstimator(
            aps,
            fingerprint,
            method=method,
            stop_threshold=None if method.uses_median else 0.5,
            source_quality_scores=np.zeros(len(aps)),
            fingerprint_reading_quality_scores=reading_scores,
            seed=seed,
        )
    return estimators


def run_trials(n_trials, n_aps, outlier_fraction, outlier_std, area=50.0, seed=42, verbose=False):
    """Run Monte Carlo trials and collect errors per estimator."""
    rng = np.random.default_rng(seed)
    errors = {}
    trials = tqdm(range(n_trials), desc="  Trials", leave=False, unit="trial", disable=not verbose)
    for trial in trials:
        aps = generate_access_points(n_aps, (area, area), rng, min_exponent=1.6, max_exponent=2.0)
        truth = rng.uniform(0.0, area, size=2)
        readings = generate_fingerprint(truth, aps)
        readings, _ = perturb_readings(readings, outlier_fraction, outlier_std, rng)
        fingerprint = Fingerprint(tuple(readings))

        for name, estimator in make_estimators(aps, fingerprint, seed + trial).items():
            try:
                position = estimator.estimate()
                error = np.linalg.norm(position - truth)
            except EstimationFailedError:
                error = np.nan
            errors.setdefault(name, []).append(error)
    return {name: np.array(errs) for name, errs in errors.items()}


def plot_results(errors, output_file=None):
    """Boxplot of errors per estimator (log scale)."""
    fig, ax = plt.subplots(figsize=(10, 5))
    names = list(errors.keys())
    data = [np.maximum(errors[n][~np.isnan(errors[n])], 1e-9) for n in names]
    bp = ax.boxplot(data, patch_artist=True, showfliers=False)
    for patch in bp["boxes"]:
        patch.set_alpha(0.6)
    ax.set_xticks(np.arange(1, len(names) + 1))
    ax.set_xticklabels(names)
    ax.set_yscale("log")
    ax.set_ylabel("Position Error (m)")
    ax.set_title("RSSI Lateration with Outliers")
    ax.grid(True, alpha=0.3, axis="y")
    plt.tight_layout()

    if output_file:
        plt.savefig(output_file, dpi=150, bbox_inches="tight")
        print(f"\n✓ Figure saved: {output_file}")
    return fig


def main():
    """Run lateration comparison."""
    parser = argparse.ArgumentParser(
        description="Linear, nonlinear and robust RSSI lateration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default: 100 APs, 20% outliers with 10 dB errors
  python -m examples.example_robust_positioning

  # Harder case
  python -m examples.example_robust_positioning --outlier-fraction 0.4 --outlier-std 20
        """
    )
    parser.add_argument("--trials", type=int, default=20, help="Monte Carlo trials")
    parser.add_argument("--n-aps", type=int, default=100, help="Access points per trial")
    parser.add_argument("--outlier-fraction", type=float, default=0.2, help="Fraction of outliers")
    parser.add_argument("--outlier-std", type=float, default=10.0, help="Outlier RSSI error std (dB)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--plot", action="store_true", help="Show error boxplot")
    parser.add_argument("--output", type=str, default=None, help="Output file for figure")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--quiet", action="store_true", help="Hide the progress bar")
    args = parser.parse_args()

    if not 0 <= args.outlier_fraction < 1:
        parser.error("Outlier fraction must be in [0, 1)")

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    print("=" * 70)
    print("RSSI Lateration with Outliers")
    print("=" * 70)
    print(f"  Trials          : {args.trials}")
    print(f"  Access points   : {args.n_aps}")
    print(f"  Outliers        : {args.outlier_fraction:.0%} (σ = {args.outlier_std} dB)")

    start = time.time()
    errors = run_trials(
        args.trials, args.n_aps, args.outlier_fraction, args.outlier_std,
        seed=args.seed, verbose=not args.quiet,
    )
    elapsed = time.time() - start

    print(f"\n{'Estimator':<12} {'Median (m)':<14} {'Max (m)':<14} {'Failures':<10}")
    print("-" * 52)
    for name, errs in errors.items():
        ok = errs[~np.isnan(errs)]
        median = np.median(ok) if len(ok) else np.nan
        worst = ok.max() if len(ok) else np.nan
        print(f"{name:<12} {median:<14.3e} {worst:<14.3e} {np.isnan(errs).sum():<10d}")
    print(f"\nElapsed: {elapsed:.2f} s")

    if args.plot or args.output:
        plot_results(errors, args.output)
        if args.plot:
            plt.show()


if __name__ == "__main__":
    main()
