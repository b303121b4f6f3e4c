"""
Covariance steering figure: sample paths and covariance ellipses over time.

For each scenario label
- "a": steer Sigma_0 = 3 I to Sigma_10 = diag(2, 0.5)
- "b": same, with the additional bound (Sigma_5)_{22} <= 0.5
solve the SDP, simulate 20 closed-loop trajectories and draw them together
with the 2-sigma ellipses of Sigma_0, ..., Sigma_9 in (k, x_1, x_2) space.
One PDF is written per label.
"""

import os
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import jax
import matplotlib.pyplot as plt
import numpy as np

from covariance_steering import ScenarioResult, SteeringConfig, run_scenario


def plot_scenario(result: ScenarioResult, output_dir: str) -> str:
    """
    Render trajectories and ellipses of a completed scenario to a PDF.

    Returns:
        Path of the written figure
    """
    states = np.asarray(result.states)
    horizon = states.shape[1] - 1
    time_steps = np.arange(horizon + 1)

    fig = plt.figure(figsize=(8, 8))
    ax = fig.add_subplot(projection='3d')

    for j, trajectory in enumerate(states):
        ax.plot(time_steps, trajectory[:, 0], trajectory[:, 1],
                color='gray', linewidth=0.5, label='sample path' if j == 0 else None)

    for k, ellipse in result.ellipses.items():
        boundary = np.asarray(ellipse.boundary())
        ax.plot(np.full(len(ellipse), k), boundary[:, 0], boundary[:, 1],
                alpha=0.9, label=f'$\\Sigma_{{{k}}}$')

    ax.set_xlabel('$k$', fontsize=12)
    ax.set_ylabel('$(x)_1$', fontsize=12)
    ax.set_zlabel('$(x)_2$', fontsize=12)
    ax.view_init(elev=6, azim=68)
    ax.set_yticks(np.arange(-10, 11, 5))
    ax.set_zticks(np.arange(-10, 11, 5))
    ax.set_xticks(time_steps)
    ax.set_ylim(-10, 10)
    ax.set_zlim(-10, 10)
    ax.set_xlim(horizon, 0)
    ax.legend()

    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, f'covariance_steering_{result.label}.pdf')
    fig.savefig(path, bbox_inches='tight')
    plt.close(fig)
    return path


def main(labels=("a", "b"), output_dir="figures"):
    config = SteeringConfig(num_trajectories=20, seed=0, verbose=True)

    for label in labels:
        print("=" * 60)
        print(f"Scenario {label}")
        print("=" * 60)
        result = run_scenario(label, config)

        if not result.succeeded:
            print(f"Scenario {label} stopped: {result.status.value} ({result.reason})")
            continue

        path = plot_scenario(result, output_dir)
        print(f"✓ Figure saved as '{path}'")


if __name__ == "__main__":
    # Set JAX to CPU for reproducible results
    jax.config.update('jax_platform_name', 'cpu')
    jax.config.update('jax_enable_x64', True)
    main(tuple(sys.argv[1:]) or ("a", "b"))
