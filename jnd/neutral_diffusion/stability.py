"""
Static stability classification of reconstructed density profiles.

Unstable or invalid parts of a column are masked out of the density matching
and receive no interior flux. The matcher treats a masked cell as a gap it
skips over, never as water to be filled in.
"""

import jax
import jax.numpy as jnp
from jax import lax
from typing import Tuple

from .neutral_diffusion_types import NEUTRAL


def valid_density(rho: jnp.ndarray) -> jnp.ndarray:
    """Finite, positive densities."""
    return jnp.isfinite(rho) & (rho > 0.0)


@jax.jit
def neutral_stratification(
    temperature: jnp.ndarray,
    salinity: jnp.ndarray,
    alpha: jnp.ndarray,
    beta: jnp.ndarray
) -> jnp.ndarray:
    """
    Locally referenced stratification across interior interfaces.

    beta_bar * dS - alpha_bar * dT, with the coefficients averaged over the
    two cells sharing the interface. Positive values are stable.

    Args:
        temperature: Cell temperature [nlev]
        salinity: Cell salinity [nlev]
        alpha: Thermal expansion coefficient [1/degC] [nlev]
        beta: Haline contraction coefficient [1/psu] [nlev]

    Returns:
        Stratification across interfaces 1..nlev-1 [nlev-1]
    """
    alpha_bar = 0.5 * (alpha[1:] + alpha[:-1])
    beta_bar = 0.5 * (beta[1:] + beta[:-1])
    return beta_bar * (salinity[1:] - salinity[:-1]) - alpha_bar * (temperature[1:] - temperature[:-1])


@jax.jit
def classify_column(
    interface_density: jnp.ndarray,
    cell_density: jnp.ndarray,
    stratification: jnp.ndarray,
    density_mode: int,
    excluded_levels: int = 0
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Flag stable interfaces and cells of one column.

    An interface is stable when its density is valid and not lighter than
    the last stable interface above it. In neutral mode the local
    stratification across interior interfaces must also be non-negative.
    A cell is stable when its mean density is valid, its density increases
    downward and both of its interfaces are stable.

    Args:
        interface_density: Density at interfaces [nlev+1]
        cell_density: Cell mean density [nlev]
        stratification: Output of neutral_stratification [nlev-1]
        density_mode: 0 neutral, 1 reference pressure
        excluded_levels: Number of surface layers removed from the interior
            (the boundary layer, when that scheme is active)

    Returns:
        Tuple of (interface_mask [nlev+1], cell_mask [nlev])
    """
    nlev = cell_density.shape[0]
    level = jnp.arange(nlev + 1)

    # Interior interfaces carry the neutral check, the surface and sea floor do not
    neutral_ok = jnp.concatenate([
        jnp.array([True]), stratification >= 0.0, jnp.array([True])
    ])
    neutral_ok = neutral_ok | (density_mode != NEUTRAL)

    candidate = valid_density(interface_density) & neutral_ok & (level >= excluded_levels)

    def scan_interface(lightest_allowed, inputs):
        rho, ok = inputs
        stable = ok & (rho >= lightest_allowed)
        return jnp.where(stable, rho, lightest_allowed), stable

    _, interface_mask = lax.scan(
        scan_interface, jnp.array(-jnp.inf, dtype=interface_density.dtype),
        (interface_density, candidate)
    )

    cell_mask = (
        valid_density(cell_density)
        & (interface_density[1:] >= interface_density[:-1])
        & interface_mask[:-1]
        & interface_mask[1:]
    )
    return interface_mask, cell_mask
