"""
Lateral diffusion inside the surface boundary layer.

Layers are paired by index rather than by density. With nL and nR boundary
layer levels in the two columns of a face, nmin = min(nL, nR) and
nmax = max(nL, nR):

- layers 1..nmin exchange the full flux
- layers nmin+1..nmax exchange a flux tapered linearly by
  (nmax + 1 - k) / (nmax + 1 - nmin)

Each flux uses whole-cell thicknesses and values. Layers where either cell
has an invalid density exchange nothing. The fluxes join the interior
sublayer fluxes in the face flux accumulator with identity layer weights.
"""

import jax
import jax.numpy as jnp

from .sublayer_fluxes import effective_thickness


@jax.jit
def boundary_layer_levels(
    interface_depth: jnp.ndarray,
    boundary_layer_depth: jnp.ndarray
) -> jnp.ndarray:
    """
    Number of layers whose top lies above the boundary layer depth.

    Args:
        interface_depth: Interface depths [m] [..., nlev+1]
        boundary_layer_depth: Boundary layer depth [m] [...]

    Returns:
        Layer count [...]
    """
    tops = interface_depth[..., :-1]
    inside = tops < jnp.asarray(boundary_layer_depth)[..., None]
    return jnp.sum(inside, axis=-1).astype(jnp.int32)


def taper_factor(k: jnp.ndarray, nmin: jnp.ndarray, nmax: jnp.ndarray) -> jnp.ndarray:
    """
    Flux scaling of layer k (1-based) between columns with nmin and nmax levels.

    One up to nmin, decreasing linearly to zero at nmax + 1.
    """
    k = jnp.asarray(k)
    tapered = (nmax + 1 - k) / jnp.maximum(nmax + 1 - nmin, 1)
    return jnp.where(k <= nmin, 1.0, jnp.where(k <= nmax, tapered, 0.0))


@jax.jit
def boundary_layer_fluxes(
    left_values: jnp.ndarray,
    right_values: jnp.ndarray,
    left_thickness: jnp.ndarray,
    right_thickness: jnp.ndarray,
    left_valid: jnp.ndarray,
    right_valid: jnp.ndarray,
    left_levels: jnp.ndarray,
    right_levels: jnp.ndarray,
    coefficient: jnp.ndarray
) -> jnp.ndarray:
    """
    Left-to-right boundary-layer flux of one tracer through one face.

    Args:
        left_values: Cell values of the left column [nlev]
        right_values: Cell values of the right column [nlev]
        left_thickness: Layer thickness of the left column [m] [nlev]
        right_thickness: Layer thickness of the right column [m] [nlev]
        left_valid: Cells of the left column with a valid density [nlev]
        right_valid: Cells of the right column with a valid density [nlev]
        left_levels: Boundary layer levels of the left column
        right_levels: Boundary layer levels of the right column
        coefficient: K * dt * dy / dx for the face [m²]

    Returns:
        Flux per layer [tracer m³] [nlev]
    """
    nlev = left_values.shape[0]
    k = jnp.arange(1, nlev + 1)
    nmin = jnp.minimum(left_levels, right_levels)
    nmax = jnp.maximum(left_levels, right_levels)

    h_eff = effective_thickness(left_thickness, right_thickness)
    exchanging = left_valid & right_valid & (h_eff > 0.0) & (k <= nmax)
    difference = jnp.where(exchanging, left_values - right_values, 0.0)
    flux = coefficient * h_eff * difference * taper_factor(k, nmin, nmax)
    return jnp.where(exchanging, flux, 0.0)


# Vectorized over faces
face_boundary_layer_fluxes = jax.vmap(
    boundary_layer_fluxes, in_axes=(0, 0, 0, 0, 0, 0, 0, 0, 0)
)
