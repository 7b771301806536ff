"""
Monotonic vertical reconstruction of cell-mean profiles.

Each cell k of a column gets a polynomial p(s) = a0 + a1 s + a2 s² in the
non-dimensional position s (0 at the top edge, 1 at the bottom edge). The
cell mean is preserved exactly and limiting keeps every reconstructed value
within the range of the cell mean and its immediate neighbours' means.
Reconstructions are discontinuous across cell boundaries.

Orders:
- constant (PCM)
- linear (PLM), monotonized-central slope on a non-uniform grid
- parabolic (PPM), thickness-weighted edge estimates with the
  Colella & Woodward (1984) limiter

Cells at a local extremum, boundary cells and vanished cells degrade to
constant.
"""

import jax
import jax.numpy as jnp
from jax import lax
from typing import Tuple

from jnd.constants.physical_constants import epsilon


def _neighbour_means(values: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """Means of the cells above and below; boundary cells see themselves."""
    above = jnp.concatenate([values[:1], values[:-1]])
    below = jnp.concatenate([values[1:], values[-1:]])
    return above, below


@jax.jit
def neighbour_bounds(values: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Range allowed for the reconstruction of each cell.

    Args:
        values: Cell means [nlev]

    Returns:
        Tuple of (lower, upper) bounds [nlev]
    """
    above, below = _neighbour_means(values)
    lower = jnp.minimum(values, jnp.minimum(above, below))
    upper = jnp.maximum(values, jnp.maximum(above, below))
    return lower, upper


def _pcm_coeffs(values, thickness):
    zeros = jnp.zeros_like(values)
    return jnp.stack([values, zeros, zeros], axis=-1)


def _plm_coeffs(values, thickness):
    above, below = _neighbour_means(values)
    h_above, h_below = _neighbour_means(thickness)

    d_up = values - above
    d_dn = below - values

    # Centred estimate of the change across the cell on a non-uniform grid
    centred = thickness * (below - above) / jnp.maximum(
        0.5 * h_above + thickness + 0.5 * h_below, epsilon
    )

    # Monotonized-central limiter, bounded by twice the one-sided differences
    # so both edges stay between the neighbouring means
    magnitude = jnp.minimum(
        jnp.abs(centred), 2.0 * jnp.minimum(jnp.abs(d_up), jnp.abs(d_dn))
    )
    monotone = d_up * d_dn > 0.0
    slope = jnp.where(monotone & (thickness > 0.0), jnp.sign(d_dn) * magnitude, 0.0)

    a0 = values - 0.5 * slope
    return jnp.stack([a0, slope, jnp.zeros_like(values)], axis=-1)


def _ppm_coeffs(values, thickness):
    above, below = _neighbour_means(values)
    h_above, h_below = _neighbour_means(thickness)
    nlev = values.shape[0]
    level = jnp.arange(nlev)

    # Thickness-weighted interface estimates (convex combinations)
    def interface_value(u_up, u_dn, h_up, h_dn):
        h_sum = h_up + h_dn
        weighted = (h_dn * u_up + h_up * u_dn) / jnp.maximum(h_sum, epsilon)
        return jnp.where(h_sum > 0.0, weighted, 0.5 * (u_up + u_dn))

    u_top = jnp.where(level > 0, interface_value(above, values, h_above, thickness), values)
    u_bot = jnp.where(level < nlev - 1, interface_value(values, below, thickness, h_below), values)

    # Colella-Woodward limiter
    extremum = (u_bot - values) * (values - u_top) <= 0.0
    delta = u_bot - u_top
    curvature = delta * (values - 0.5 * (u_top + u_bot))
    overshoot_top = curvature > delta * delta / 6.0
    overshoot_bot = -delta * delta / 6.0 > curvature

    u_top_lim = jnp.where(overshoot_top, 3.0 * values - 2.0 * u_bot, u_top)
    u_bot_lim = jnp.where(overshoot_bot, 3.0 * values - 2.0 * u_top, u_bot)

    flat = extremum | (thickness <= 0.0)
    u_top_lim = jnp.where(flat, values, u_top_lim)
    u_bot_lim = jnp.where(flat, values, u_bot_lim)

    lower, upper = neighbour_bounds(values)
    u_top_lim = jnp.clip(u_top_lim, lower, upper)
    u_bot_lim = jnp.clip(u_bot_lim, lower, upper)

    a6 = 6.0 * values - 3.0 * (u_top_lim + u_bot_lim)
    return jnp.stack([u_top_lim, u_bot_lim - u_top_lim + a6, -a6], axis=-1)


@jax.jit
def reconstruct_column(
    values: jnp.ndarray,
    thickness: jnp.ndarray,
    order: int
) -> jnp.ndarray:
    """
    Reconstruct the cell-mean profile of one column.

    Args:
        values: Cell means [nlev]
        thickness: Layer thickness [m] [nlev]
        order: Reconstruction order (0 constant, 1 linear, 2 parabolic)

    Returns:
        Polynomial coefficients (a0, a1, a2) in s [nlev, 3]
    """
    coeffs = lax.switch(
        jnp.clip(order, 0, 2),
        [_pcm_coeffs, _plm_coeffs, _ppm_coeffs],
        values, thickness
    )

    # Non-finite input (e.g. missing data) stays as a constant cell
    return jnp.where(jnp.isfinite(coeffs).all(axis=-1, keepdims=True),
                     coeffs, _pcm_coeffs(values, thickness))


@jax.jit
def edge_values(coeffs: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Top and bottom edge values of the reconstruction.

    Args:
        coeffs: Polynomial coefficients [..., 3]

    Returns:
        Tuple of (top, bottom) edge values [...]
    """
    top = coeffs[..., 0]
    bottom = coeffs[..., 0] + coeffs[..., 1] + coeffs[..., 2]
    return top, bottom


def evaluate_polynomial(coeffs: jnp.ndarray, s: jnp.ndarray) -> jnp.ndarray:
    """Value of the reconstruction at position s."""
    return coeffs[..., 0] + s * (coeffs[..., 1] + s * coeffs[..., 2])


def polynomial_slope(coeffs: jnp.ndarray, s: jnp.ndarray) -> jnp.ndarray:
    """Derivative of the reconstruction with respect to s."""
    return coeffs[..., 1] + 2.0 * s * coeffs[..., 2]


def polynomial_mean(
    coeffs: jnp.ndarray,
    s_top: jnp.ndarray,
    s_bottom: jnp.ndarray
) -> jnp.ndarray:
    """
    Average of the reconstruction over [s_top, s_bottom].

    A zero-length range returns the point value at s_top.
    """
    width = s_bottom - s_top
    integral = (
        coeffs[..., 0] * width
        + coeffs[..., 1] * (s_bottom**2 - s_top**2) / 2.0
        + coeffs[..., 2] * (s_bottom**3 - s_top**3) / 3.0
    )
    has_width = width > epsilon
    mean = integral / jnp.where(has_width, width, 1.0)
    return jnp.where(has_width, mean, evaluate_polynomial(coeffs, s_top))


@jax.jit
def interface_values(coeffs: jnp.ndarray) -> jnp.ndarray:
    """
    Continuous interface values from a discontinuous reconstruction.

    Interior interfaces take the average of the two edge values meeting
    there; the surface and sea floor take the single adjacent edge.

    Args:
        coeffs: Polynomial coefficients [nlev, 3]

    Returns:
        Interface values [nlev+1]
    """
    top, bottom = edge_values(coeffs)
    interior = 0.5 * (bottom[:-1] + top[1:])
    return jnp.concatenate([top[:1], interior, bottom[-1:]])


@jax.jit
def interface_polynomial(
    interface_value: jnp.ndarray,
    cell_value: jnp.ndarray,
    order: int
) -> jnp.ndarray:
    """
    Cell polynomials passing through the values at both interfaces.

    Linear between the interfaces, except for parabolic order where the
    curvature needed to recover the cell mean is added as long as the
    parabola stays monotone inside the cell.

    Args:
        interface_value: Values at interfaces [nlev+1]
        cell_value: Cell means [nlev]
        order: Reconstruction order (0 constant, 1 linear, 2 parabolic)

    Returns:
        Polynomial coefficients (a0, a1, a2) in s [nlev, 3]
    """
    top = interface_value[:-1]
    bottom = interface_value[1:]
    delta = bottom - top

    a6 = 6.0 * cell_value - 3.0 * (top + bottom)
    parabolic = (order == 2) & (jnp.abs(a6) <= jnp.abs(delta)) & jnp.isfinite(a6)
    a6 = jnp.where(parabolic, a6, 0.0)

    return jnp.stack([top, delta + a6, -a6], axis=-1)


# Vectorized version for multiple columns
reconstruct_columns = jax.vmap(reconstruct_column, in_axes=(0, 0, None))
