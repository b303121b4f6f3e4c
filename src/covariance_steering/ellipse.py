"""
Boundary points of the confidence ellipse of a 2x2 covariance.
"""

import math

import equinox as eqx
import jax.numpy as jnp
from beartype import beartype as typechecker
from jaxtyping import Array, Float, jaxtyped
from scipy import stats

from .errors import DimensionError


class CovarianceEllipse(eqx.Module):
    """
    Ellipse {x : x^T Sigma^{-1} x = scale^2} sampled at ``num_points`` angles.

    With Sigma = V D V^T (eigenvalues ascending), the ellipse is rotated by
    theta = atan2(V[1, 0], V[0, 0]) and has semi-axes scale * sqrt(D).
    Iterating yields the boundary points lazily; iteration can be restarted.
    """

    covariance: Float[Array, "2 2"]
    scale: float
    num_points: int
    rotation: float
    semi_axes: tuple[float, float]

    def __init__(self, covariance, scale: float = 2.0, num_points: int = 100):
        """
        Args:
            covariance: 2x2 symmetric PSD covariance
            scale: Multiplier on sqrt(eigenvalues), e.g. 1 for the 1-sigma ellipse
            num_points: Number of equally spaced angles in [0, 2*pi]

        Raises:
            DimensionError: If ``covariance`` is not 2x2
        """
        covariance = jnp.asarray(covariance, dtype=float)
        if covariance.shape != (2, 2):
            raise DimensionError(
                f"Covariance ellipses are only defined for 2x2 covariances, got {covariance.shape}"
            )
        if num_points < 2:
            raise ValueError(f"num_points must be at least 2, got {num_points}")

        eigenvals, eigenvecs = jnp.linalg.eigh(0.5 * (covariance + covariance.T))
        # Round-off can leave a PSD covariance with a tiny negative eigenvalue
        eigenvals = jnp.maximum(eigenvals, 0.0)

        self.covariance = covariance
        self.scale = float(scale)
        self.num_points = int(num_points)
        self.rotation = float(jnp.arctan2(eigenvecs[1, 0], eigenvecs[0, 0]))
        self.semi_axes = (
            self.scale * float(jnp.sqrt(eigenvals[0])),
            self.scale * float(jnp.sqrt(eigenvals[1])),
        )

    @classmethod
    def from_confidence(
        cls,
        covariance,
        confidence: float = 0.95,
        num_points: int = 100,
    ) -> "CovarianceEllipse":
        """
        Ellipse containing ``confidence`` probability mass of N(0, covariance).

        The scale is sqrt of the chi-squared quantile with 2 degrees of freedom.
        """
        if not 0.0 < confidence < 1.0:
            raise ValueError(f"confidence must lie in (0, 1), got {confidence}")
        scale = math.sqrt(stats.chi2.ppf(confidence, df=2))
        return cls(covariance, scale=scale, num_points=num_points)

    def __len__(self) -> int:
        return self.num_points

    def __iter__(self):
        a, b = self.semi_axes
        cos_r, sin_r = math.cos(self.rotation), math.sin(self.rotation)
        step = 2 * math.pi / (self.num_points - 1)
        for i in range(self.num_points):
            t = i * step
            cos_t, sin_t = math.cos(t), math.sin(t)
            yield (
                a * cos_t * cos_r - b * sin_t * sin_r,
                a * cos_t * sin_r + b * sin_t * cos_r,
            )

    @jaxtyped(typechecker=typechecker)
    def boundary(self) -> Float[Array, "{self.num_points} 2"]:
        """
        All boundary points as an array.

        Returns:
            (num_points, 2) array of (x, y) coordinates; first and last points coincide
        """
        a, b = self.semi_axes
        theta = jnp.linspace(0, 2 * jnp.pi, self.num_points)
        cos_r, sin_r = jnp.cos(self.rotation), jnp.sin(self.rotation)
        x = a * jnp.cos(theta) * cos_r - b * jnp.sin(theta) * sin_r
        y = a * jnp.cos(theta) * sin_r + b * jnp.sin(theta) * cos_r
        return jnp.stack([x, y], axis=-1)
