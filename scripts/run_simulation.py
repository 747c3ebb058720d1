"""
run_simulation.py
=================
ZIP smoothing simulation study: additive model vs location-scale model.

Key Design:
- Each setting fixes count magnitude and covariate correlation
- Each setting runs its noise scenarios (3 paired or 9 crossed)
- Both procedures are fitted to the same replicate datasets
- Results are cached as one parquet snapshot keyed by a config hash
"""
import sys
import warnings
from pathlib import Path

# Suppress numerical warnings from individual replicate fits
warnings.filterwarnings('ignore')

# Add parent to path for zipsim import
sys.path.insert(0, str(Path(__file__).parent.parent))
import zipsim
from zipsim import SimulationConfig, compare_results, comparison_table
from zipsim.storage import load_or_run_simulation


# ============================================================================
# CONFIGURATION
# ============================================================================
CONFIG = {
    # Experimental design
    'n_replicates': 50,
    'n_samples': 100,
    'cross_noise_levels': False,

    # Settings: count magnitude x covariate correlation
    'settings': {
        'independent/low-counts': {'correlation': None, 'rate_scale': 0.5},
        'independent/high-counts': {'correlation': None, 'rate_scale': 1.0},
        'correlated/low-counts': {'correlation': 0.9, 'rate_scale': 0.5},
    },

    # Fixed parameters
    'base_seed': 42,
    'max_cycles': 30,

    # Parallelization
    'n_jobs': -1,  # -1 = all cores, 1 = sequential
    'backend': 'loky',  # 'loky' (default), 'threading', or 'multiprocessing'

    # Output
    'output_dir': Path(__file__).parent / "output",
}


def build_settings(config):
    """SimulationConfig per setting name."""
    return {
        name: SimulationConfig(
            n_replicates=config['n_replicates'],
            n_samples=config['n_samples'],
            cross_noise_levels=config['cross_noise_levels'],
            base_seed=config['base_seed'],
            max_cycles=config['max_cycles'],
            n_jobs=config['n_jobs'],
            backend=config['backend'],
            verbose=1,
            **overrides,
        )
        for name, overrides in config['settings'].items()
    }


def print_summary(table):
    """Print the scenario comparison table."""
    print("\n" + "=" * 80)
    print("PAIRED COMPARISON (location-scale minus additive, one-sided t-test)")
    print("=" * 80)

    for setting, group in table.groupby('setting', sort=False):
        print(f"\n{setting}")
        print("-" * 80)
        print(f"{'Scenario':<28} {'n':>4} {'rate Δ':>9} {'p':>7} "
              f"{'pres Δ':>9} {'p':>7}")
        for _, row in group.iterrows():
            print(f"{row['scenario']:<28} {row['n_pairs']:>4} "
                  f"{row['mean_rate_diff']:>9.4f} {row['rate_p_value']:>7.3f} "
                  f"{row['mean_presence_diff']:>9.4f} {row['presence_p_value']:>7.3f}")

    print("\n" + "-" * 80)
    print("CONVERGENCE / FAILURE RATES")
    print("-" * 80)
    print(f"{'Setting':<26} {'Scenario':<28} {'add conv':>8} {'ls conv':>8} "
          f"{'add fail':>8} {'ls fail':>8}")
    for _, row in table.iterrows():
        print(f"{row['setting']:<26} {row['scenario']:<28} "
              f"{row['additive_converged']:>8.2f} {row['location_scale_converged']:>8.2f} "
              f"{row['additive_failed']:>8.2f} {row['location_scale_failed']:>8.2f}")

    print("\n" + "=" * 80)


# ============================================================================
# MAIN
# ============================================================================
if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='Run the ZIP smoothing simulation study')
    parser.add_argument('--replicates', type=int, help='Override n_replicates')
    parser.add_argument('--n-samples', type=int, help='Override n_samples')
    parser.add_argument('--cross', action='store_true',
                        help='Cross presence and rate noise levels (9 scenarios)')
    parser.add_argument('--n-jobs', type=int, help='Override joblib workers')
    parser.add_argument('--settings', nargs='+', choices=list(CONFIG['settings']),
                        help='Run only these settings')
    parser.add_argument('--output-dir', type=Path, help='Snapshot directory')
    parser.add_argument('--force', action='store_true', help='Ignore cached snapshot')
    parser.add_argument('--sequential', action='store_true',
                        help='Run without joblib (debug mode)')
    args = parser.parse_args()

    if args.replicates:
        CONFIG['n_replicates'] = args.replicates
    if args.n_samples:
        CONFIG['n_samples'] = args.n_samples
    if args.cross:
        CONFIG['cross_noise_levels'] = True
    if args.n_jobs:
        CONFIG['n_jobs'] = args.n_jobs
    if args.settings:
        CONFIG['settings'] = {k: CONFIG['settings'][k] for k in args.settings}
    if args.output_dir:
        CONFIG['output_dir'] = args.output_dir

    print("=" * 80)
    print(f"ZIP SMOOTHING SIMULATION STUDY (zipsim {zipsim.__version__})")
    print("Additive model vs location-scale model")
    print("=" * 80)
    print()
    print("Configuration:")
    print(f"  Settings: {list(CONFIG['settings'])}")
    print(f"  Replicates: {CONFIG['n_replicates']}")
    print(f"  Sample size: {CONFIG['n_samples']}")
    print(f"  Noise levels crossed: {CONFIG['cross_noise_levels']}")
    print(f"  Parallel workers: {CONFIG['n_jobs']}")
    print()

    results = load_or_run_simulation(
        build_settings(CONFIG),
        CONFIG['output_dir'],
        force=args.force,
        parallel=not args.sequential,
    )

    records = []
    for name, result in results.items():
        records.extend(compare_results(result, setting=name))
    table = comparison_table(records)
    print_summary(table)

    table.to_csv(Path(CONFIG['output_dir']) / 'comparison_table.csv', index=False)

    print("SIMULATION COMPLETE")
    print(f"Results saved to: {CONFIG['output_dir']}")
    print("=" * 80)
