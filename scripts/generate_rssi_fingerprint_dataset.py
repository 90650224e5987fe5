"""Generate a synthetic RSSI calibration dataset.

Creates an indoor calibration dataset with:
    - WiFi access points with known position and transmitted power
    - A grid of reference points, each with one RSSI fingerprint
    - Friis (log-distance) path loss with Gaussian shadowing
    - Optional per-AP path-loss exponents drawn from a range

Saves to: data/sim/rssi_fingerprint_grid/
    fingerprints.json  : located fingerprints
    sources.json       : located access points with power model
    config.json        : generation parameters
"""

import argparse
import json
from pathlib import Path
from typing import Tuple

import numpy as np

from rfloc.fingerprinting import save_calibration_dataset, summarize_dataset
from rfloc.rf import WIFI_2_4_GHZ
from rfloc.sim import generate_access_points, generate_calibration_grid


# ============================================================================
# PRESET CONFIGURATIONS
# ============================================================================

PRESETS = {
    'baseline': {
        'description': 'Free-space exponent, moderate shadowing',
        'min_exponent': 2.0,
        'max_exponent': 2.0,
        'shadowing_std': 2.0,
    },
    'indoor': {
        'description': 'Indoor exponents in [1.6, 2.0], strong shadowing',
        'min_exponent': 1.6,
        'max_exponent': 2.0,
        'shadowing_std': 4.0,
    },
    'noiseless': {
        'description': 'No shadowing (exact Friis model)',
        'min_exponent': 2.0,
        'max_exponent': 2.0,
        'shadowing_std': 0.0,
    },
}


# ============================================================================
# DATA GENERATION
# ============================================================================

def generate_dataset(
    output_dir: str = "data/sim/rssi_fingerprint_grid",
    seed: int = 42,
    area_size: Tuple[float, float] = (50.0, 50.0),
    grid_spacing: float = 5.0,
    n_aps: int = 8,
    tx_power: float = -50.0,
    min_exponent: float = 2.0,
    max_exponent: float = 2.0,
    shadowing_std: float = 2.0,
) -> None:
    """Generate and save the calibration dataset.

    Args:
        output_dir: Output directory path.
        seed: Random seed for reproducibility.
        area_size: (width, height) in meters.
        grid_spacing: Distance between reference points (meters).
        n_aps: Number of access points.
        tx_power: Transmitted power of every AP (dBm).
        min_exponent: Lower bound of the path-loss exponent.
        max_exponent: Upper bound of the path-loss exponent.
        shadowing_std: Gaussian shadowing std (dB).
    """
    rng = np.random.default_rng(seed)

    print(f"\n{'='*70}")
    print("Generating RSSI Fingerprint Dataset")
    print(f"{'='*70}")

    output_path = Path(output_dir)

    print("\n1. Placing access points...")
    aps = generate_access_points(
        n_aps, area_size, rng, tx_power=tx_power,
        min_exponent=min_exponent, max_exponent=max_exponent,
    )
    print(f"   {len(aps)} APs, tx power {tx_power} dBm")

    print("\n2. Surveying reference points...")
    fingerprints = generate_calibration_grid(aps, area_size, grid_spacing, rng, shadowing_std)
    print(f"   {len(fingerprints)} reference points (spacing {grid_spacing} m)")

    print("\n3. Saving dataset...")
    save_calibration_dataset(fingerprints, output_path, sources=aps)

    config = {
        "dataset_info": {
            "description": "Synthetic RSSI calibration dataset",
            "seed": seed,
            "num_fingerprints": len(fingerprints),
        },
        "area": {"width": area_size[0], "height": area_size[1], "grid_spacing": grid_spacing},
        "access_points": {
            "count": n_aps,
            "tx_power_dbm": tx_power,
            "frequency_hz": WIFI_2_4_GHZ,
            "path_loss_exponent_range": [min_exponent, max_exponent],
        },
        "shadowing_std_db": shadowing_std,
    }
    with open(output_path / "config.json", "w") as f:
        json.dump(config, f, indent=2)

    n_fp, n_sources, n_readings = summarize_dataset(fingerprints)
    print(f"\n{'='*70}")
    print("Dataset generation complete!")
    print(f"{'='*70}")
    print(f"Output directory: {output_path.absolute()}")
    print("\nFiles created:")
    print("  - fingerprints.json : Located fingerprints")
    print("  - sources.json      : Located access points")
    print("  - config.json       : Dataset configuration")
    print("\nDataset statistics:")
    print(f"  Fingerprints    : {n_fp}")
    print(f"  Sources         : {n_sources}")
    print(f"  Readings        : {n_readings}")
    print()


# ============================================================================
# COMMAND-LINE INTERFACE
# ============================================================================

def main():
    """Main entry point with CLI argument parsing."""
    parser = argparse.ArgumentParser(
        description="Generate a synthetic RSSI calibration dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate with default parameters
  python %(prog)s

  # Use a preset configuration
  python %(prog)s --preset indoor

  # Custom parameters
  python %(prog)s --n-aps 12 --grid-spacing 2.5 --shadowing-std 3.0

Available presets: """ + ", ".join(PRESETS.keys())
    )

    parser.add_argument(
        '--preset',
        type=str,
        choices=PRESETS.keys(),
        help='Use preset configuration (overrides individual parameters)'
    )
    parser.add_argument(
        '--output',
        type=str,
        default='data/sim/rssi_fingerprint_grid',
        help='Output directory (default: data/sim/rssi_fingerprint_grid)'
    )
    parser.add_argument(
        '--seed',
        type=int,
        default=42,
        help='Random seed for reproducibility (default: 42)'
    )

    area_group = parser.add_argument_group('Area Parameters')
    area_group.add_argument('--width', type=float, default=50.0, help='Area width in m (default: 50)')
    area_group.add_argument('--height', type=float, default=50.0, help='Area height in m (default: 50)')
    area_group.add_argument(
        '--grid-spacing', type=float, default=5.0, help='Reference point spacing in m (default: 5)'
    )

    radio_group = parser.add_argument_group('Radio Parameters')
    radio_group.add_argument('--n-aps', type=int, default=8, help='Number of APs (default: 8)')
    radio_group.add_argument(
        '--tx-power', type=float, default=-50.0, help='Transmitted power in dBm (default: -50)'
    )
    radio_group.add_argument(
        '--min-exponent', type=float, default=2.0, help='Min path-loss exponent (default: 2.0)'
    )
    radio_group.add_argument(
        '--max-exponent', type=float, default=2.0, help='Max path-loss exponent (default: 2.0)'
    )
    radio_group.add_argument(
        '--shadowing-std', type=float, default=2.0, help='Shadowing std in dB (default: 2.0)'
    )

    args = parser.parse_args()

    if args.preset:
        preset_config = PRESETS[args.preset]
        print(f"\nUsing preset: '{args.preset}'")
        print(f"Description: {preset_config['description']}")
        for key, value in preset_config.items():
            if key != 'description':
                setattr(args, key, value)

    if args.grid_spacing <= 0:
        parser.error("Grid spacing must be positive")
    if args.n_aps < 3:
        parser.error("At least 3 APs are required")
    if not 0 < args.min_exponent <= args.max_exponent:
        parser.error("Path-loss exponents must satisfy 0 < min <= max")

    generate_dataset(
        output_dir=args.output,
        seed=args.seed,
        area_size=(args.width, args.height),
        grid_spacing=args.grid_spacing,
        n_aps=args.n_aps,
        tx_power=args.tx_power,
        min_exponent=args.min_exponent,
        max_exponent=args.max_exponent,
        shadowing_std=args.shadowing_std,
    )


if __name__ == "__main__":
    main()
