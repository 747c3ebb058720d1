"""
calibrate_noise.py
==================
Regenerate the noise multiplier schedules.

Tabulates approximate R² over a grid of multipliers for each predictor
and solves for the multipliers hitting the target R² values. The
results should match PRESENCE_NOISE_SCHEDULE and RATE_NOISE_SCHEDULE in
zipsim/calibration.py.
"""
import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent))
from zipsim.calibration import (
    PRESENCE_NOISE_SCHEDULE,
    RATE_NOISE_SCHEDULE,
    TARGET_R2,
    calibrate_noise,
    calibrate_schedule,
)

CONFIG = {
    'n_samples': 10000,
    'random_state': 42,
    'grid': np.round(np.arange(0.5, 1.0001, 0.05), 2),
}


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='Calibrate noise multipliers')
    parser.add_argument('--n-samples', type=int, help='Override calibration sample size')
    parser.add_argument('--seed', type=int, help='Override random seed')
    args = parser.parse_args()

    if args.n_samples:
        CONFIG['n_samples'] = args.n_samples
    if args.seed is not None:
        CONFIG['random_state'] = args.seed

    stored = {'presence': PRESENCE_NOISE_SCHEDULE, 'rate': RATE_NOISE_SCHEDULE}

    print("=" * 60)
    print("NOISE CALIBRATION")
    print("=" * 60)
    print(f"  n_samples: {CONFIG['n_samples']}, seed: {CONFIG['random_state']}")
    print(f"  Target R²: {TARGET_R2}")

    for predictor in ('presence', 'rate'):
        print("\n" + "-" * 60)
        print(f"{predictor.upper()} PREDICTOR")
        print("-" * 60)
        table = calibrate_noise(
            CONFIG['grid'], predictor=predictor,
            n_samples=CONFIG['n_samples'], random_state=CONFIG['random_state'],
        )
        print(table.to_string(index=False, float_format=lambda v: f"{v:.4f}"))

        schedule = calibrate_schedule(
            TARGET_R2, predictor=predictor,
            n_samples=CONFIG['n_samples'], random_state=CONFIG['random_state'],
        )
        print(f"\n  Calibrated schedule: {tuple(round(m, 3) for m in schedule)}")
        print(f"  Stored schedule:     {stored[predictor]}")

    print("\n" + "=" * 60)
