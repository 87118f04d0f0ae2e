"""
ebshrink Quickstart Example
===========================

This example demonstrates the complete ebshrink workflow:
1. Load success/trial counts for many entities
2. Fit a shared beta prior and shrink every raw rate toward it
3. Find entities above a threshold with FDR control
4. Check the calibration of the procedure by simulation

NOTE: This example uses synthetic data for demonstration.
Replace with your own counts in production.
"""

import numpy as np
import pandas as pd

from ebshrink import Pipeline, SimulationConfig, SimulationHarness

# Set random seed for reproducibility
rng = np.random.default_rng(42)

print("=" * 70)
print("ebshrink Quickstart Example")
print("=" * 70)

# ===== 1. Prepare Data =====
print("\n[Step 1] Generating synthetic batting records...")
print("(In production, load your own CSV here)\n")

n_players = 2000
at_bats = rng.integers(10, 8000, size=n_players)
true_averages = rng.beta(81, 219, size=n_players)
hits = rng.binomial(at_bats, true_averages)

batting = pd.DataFrame({
    'player': [f'player_{i:04d}' for i in range(n_players)],
    'H': hits,
    'AB': at_bats,
})
print(f"Generated {len(batting)} players, "
      f"{batting['AB'].min()}-{batting['AB'].max()} at-bats each")


# ===== 2. Fit Pipeline =====
pipeline = Pipeline(credible_level=0.95)
pipeline.fit(batting, successes_col='H', trials_col='AB', id_col='player')

prior = pipeline.get_prior()
print(f"Prior: Beta({prior['alpha']:.1f}, {prior['beta']:.1f}), "
      f"league average {prior['mean']:.3f}")


# ===== 3. Inspect Estimates =====
print("\n" + "=" * 70)
print("[Step 3] Shrunken estimates")
print("=" * 70)

estimates = pipeline.estimates()
top_raw = estimates.sort_values('raw_rate', ascending=False).head(5)
top_shrunk = estimates.sort_values('estimate', ascending=False).head(5)

print("\nBest by raw average (small samples dominate):")
print(top_raw[['entity_id', 'successes', 'trials', 'raw_rate', 'estimate']]
      .to_string(index=False))
print("\nBest by shrunken estimate:")
print(top_shrunk[['entity_id', 'successes', 'trials', 'estimate', 'low', 'high']]
      .to_string(index=False))


# ===== 4. Hypothesis Testing =====
print("\n" + "=" * 70)
print("[Step 4] Which players hit above .300? (5% FDR)")
print("=" * 70)

results = pipeline.test(threshold=0.300, fdr_level=0.05)
hall = results[results['discovery']]
print(f"\n{len(hall)} players selected")
print(hall.head(10).to_string(index=False))

best, runner_up = hall['entity_id'].iloc[:2] if len(hall) >= 2 else \
    results['entity_id'].iloc[:2]
p = pipeline.compare(best, runner_up)
print(f"\nP({best} > {runner_up}) = {p:.3f}")


# ===== 5. Calibration Check =====
print("\n" + "=" * 70)
print("[Step 5] Calibration by simulation")
print("=" * 70)

harness = SimulationHarness(
    batting['AB'],
    (prior['alpha'], prior['beta']),
    config=SimulationConfig(n_replications=20, sample_sizes=(30, 300, 2000)),
)
by_size = harness.vary_sample_size()
print(by_size.summary()[['failure_rate', 'mse', 'raw_mse', 'coverage', 'fdp']])


# ===== 6. Save Pipeline =====
print("\n" + "=" * 70)
print("[Step 6] Saving pipeline")
print("=" * 70)

pipeline.save('ebshrink_pipeline.pkl')

print("\n" + "=" * 70)
print("Quickstart Complete!")
print("=" * 70)
