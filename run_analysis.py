import warnings

import pandas as pd

from shooting_analysis.config import Config
from shooting_analysis.exploration.incident_summary import (
    borough_location_independence,
    incidents_by_borough,
    incidents_by_hour,
    location_mix_by_borough,
)
from shooting_analysis.features.build_features import DataPreparer
from shooting_analysis.models.multinomial_logit import MultinomialFitter
from shooting_analysis.utils.errors import ConvergenceFailure, PotentialSeparation


def load_incidents(path):
    """Raw NYPD export; every column read as text so '(null)' markers survive."""
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def main():
    Config.initialize_folders()

    print("=" * 80)
    print("  NYC SHOOTING INCIDENTS: LOCATION TYPE ANALYSIS")
    print("=" * 80)

    # --- STEP 1: PREPARATION ---
    print("\n→ Step 1: Loading and preparing incidents")
    print(f"   Source: {Config.DATA_PATH}")
    raw = load_incidents(Config.DATA_PATH)

    prepared, report = DataPreparer().prepare_with_report(raw)
    print(f"   Rows in: {report['n_rows_input']:,}")
    print(f"   Dropped (unknown location): {report['n_dropped_unknown_location']:,}")
    print(f"   Dropped (missing borough): {report['n_dropped_missing_borough']:,}")
    print(f"   Rows kept: {report['n_rows_final']:,}")

    # --- STEP 2: DESCRIPTIVES ---
    print("\n→ Step 2: Descriptive summaries")
    print(incidents_by_borough(prepared).to_string(index=False))
    print(incidents_by_hour(prepared).to_string(index=False))
    print(location_mix_by_borough(prepared).round(3))

    chi = borough_location_independence(prepared)
    print(f"   Borough x location chi2={chi['chi2']:.1f} (dof={chi['dof']}, p={chi['p_value']:.4g}, "
          f"Cramér's V={chi['cramers_v']:.3f})")

    # --- STEP 3: MODEL ---
    print("\n→ Step 3: Multinomial logit  location_type ~ borough + hour")
    fitter = MultinomialFitter(
        reference_category=Config.REFERENCE_LOCATION,
        reference_borough=Config.REFERENCE_BOROUGH,
        max_iter=Config.MAX_ITER,
        tol=Config.TOL,
        separation_bound=Config.SEPARATION_BOUND,
        verbose=True,
    )

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", PotentialSeparation)
        try:
            model = fitter.fit(prepared)
        except ConvergenceFailure as e:
            print(f"   {e}")
            print("   Reporting the last (UNCONVERGED) iterate.")
            model = e.model
    for w in caught:
        print(f"   WARNING: {w.message}")

    print(f"   Reference location type: {model.reference_category}")
    print(f"   Reference borough: {model.reference_borough}")

    table = model.coefficient_table()
    print("\nOdds ratios (vs reference location type):")
    print(model.odds_ratios().round(3))
    print("\nFit statistics:")
    for key, value in model.fit_stats().items():
        print(f"   {key}: {value}")

    out_path = Config.OUTPUT_DIR / "odds_ratios.csv"
    table.assign(converged=model.converged).to_csv(out_path, index=False)
    print(f"\nCoefficient table saved to {out_path}")

    print("\n" + "=" * 80)
    print("  ANALYSIS COMPLETE")
    print("=" * 80)


if __name__ == "__main__":
    main()
