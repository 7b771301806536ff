"""
Accumulation of face fluxes into per-layer tracer updates.

Every exchange across a face (an interior sublayer or a boundary-layer layer
pair) carries a left-to-right tracer flux and, for each column, weights
distributing that flux onto the column's layers. Fluxes are first limited
with a flux-corrected-transport limiter (Zalesak 1979): each layer may only
move towards values it exchanges with, so no layer can overshoot its own
value or the partner values it sees. The limited fluxes are then reduced
into each column with scatter-adds, which makes the result independent of
face order and conserves total tracer content exactly.
"""

import jax
import jax.numpy as jnp
from typing import Tuple

from .neutral_diffusion_types import FaceGeometry, SublayerSide


def overlap_weights(side: SublayerSide, interface_depth: jnp.ndarray) -> jnp.ndarray:
    """
    Fraction of each sublayer half lying in each layer of its column.

    Halves without thickness put their (zero) flux on the layer they were
    recorded in.

    Args:
        side: One column's half of the sublayers of a face [nsub]
        interface_depth: Interface depths of that column [m] [nlev+1]

    Returns:
        Weights [nsub, nlev], each row summing to one
    """
    nlev = interface_depth.shape[0] - 1
    top = interface_depth[:-1]
    bottom = interface_depth[1:]

    overlap = jnp.maximum(
        jnp.minimum(side.z_bottom[:, None], bottom[None, :])
        - jnp.maximum(side.z_top[:, None], top[None, :]),
        0.0
    )
    span = side.z_bottom - side.z_top
    has_water = (side.thickness > 0.0) & (span > 0.0)
    weights = overlap / jnp.where(has_water, span, 1.0)[:, None]
    one_hot = jax.nn.one_hot(side.layer, nlev, dtype=overlap.dtype)
    return jnp.where(has_water[:, None], weights, one_hot)


# Vectorized over faces
face_overlap_weights = jax.vmap(overlap_weights, in_axes=(0, 0))


def _layer_sums(flux: jnp.ndarray, weights: jnp.ndarray) -> jnp.ndarray:
    """Per-layer sum of weighted exchange fluxes [nface, nlev]."""
    return jnp.einsum('fx,fxk->fk', flux, weights)


def _partner_extreme(weights, active, partner_values, reducer, fill):
    touched = (weights > 0.0) & active[..., None]
    return reducer(jnp.where(touched, partner_values[..., None], fill), axis=1)


def _ratio(demand: jnp.ndarray, room: jnp.ndarray) -> jnp.ndarray:
    positive = demand > 0.0
    return jnp.where(positive, jnp.clip(room / jnp.where(positive, demand, 1.0), 0.0, 1.0), 1.0)


def _end_ratio(weights: jnp.ndarray, ratio: jnp.ndarray) -> jnp.ndarray:
    """Smallest ratio over the layers an exchange touches [nface, nx]."""
    return jnp.min(jnp.where(weights > 0.0, ratio[:, None, :], 1.0), axis=-1)


@jax.jit
def limiter_scale(
    flux: jnp.ndarray,
    left_weights: jnp.ndarray,
    right_weights: jnp.ndarray,
    left_values: jnp.ndarray,
    right_values: jnp.ndarray,
    geometry: FaceGeometry,
    values: jnp.ndarray,
    thickness: jnp.ndarray
) -> jnp.ndarray:
    """
    Flux-corrected-transport scaling factor of every exchange.

    Args:
        flux: Left-to-right fluxes [tracer m³] [nface, nx]
        left_weights: Layer weights in the left column [nface, nx, nlev]
        right_weights: Layer weights in the right column [nface, nx, nlev]
        left_values: Tracer value exchanged by the left column [nface, nx]
        right_values: Tracer value exchanged by the right column [nface, nx]
        geometry: Face connectivity and cell areas
        values: Cell-mean tracer values [ncol, nlev]
        thickness: Layer thickness [m] [ncol, nlev]

    Returns:
        Scale in [0, 1] per exchange [nface, nx]
    """
    left, right = geometry.left, geometry.right
    volume = geometry.area[:, None] * thickness
    active = flux != 0.0

    # Tracer content each layer would gain and lose
    zeros = jnp.zeros_like(values)
    gains = (zeros.at[left].add(_layer_sums(jnp.maximum(-flux, 0.0), left_weights))
                  .at[right].add(_layer_sums(jnp.maximum(flux, 0.0), right_weights)))
    losses = (zeros.at[left].add(_layer_sums(jnp.maximum(flux, 0.0), left_weights))
                   .at[right].add(_layer_sums(jnp.maximum(-flux, 0.0), right_weights)))

    # Allowed range: own value and every partner value
    upper = (values.at[left].max(_partner_extreme(left_weights, active, right_values, jnp.max, -jnp.inf))
                   .at[right].max(_partner_extreme(right_weights, active, left_values, jnp.max, -jnp.inf)))
    lower = (values.at[left].min(_partner_extreme(left_weights, active, right_values, jnp.min, jnp.inf))
                   .at[right].min(_partner_extreme(right_weights, active, left_values, jnp.min, jnp.inf)))

    r_plus = _ratio(gains, (upper - values) * volume)
    r_minus = _ratio(losses, (values - lower) * volume)

    # Positive flux drains the left layer into the right one
    scale_positive = jnp.minimum(_end_ratio(left_weights, r_minus[left]),
                                 _end_ratio(right_weights, r_plus[right]))
    scale_negative = jnp.minimum(_end_ratio(left_weights, r_plus[left]),
                                 _end_ratio(right_weights, r_minus[right]))
    return jnp.where(flux > 0.0, scale_positive, scale_negative)


@jax.jit
def accumulate_fluxes(
    flux: jnp.ndarray,
    left_weights: jnp.ndarray,
    right_weights: jnp.ndarray,
    geometry: FaceGeometry,
    values: jnp.ndarray,
    thickness: jnp.ndarray
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Apply exchange fluxes to the cell-mean tracer values.

    Args:
        flux: Left-to-right fluxes [tracer m³] [nface, nx]
        left_weights: Layer weights in the left column [nface, nx, nlev]
        right_weights: Layer weights in the right column [nface, nx, nlev]
        geometry: Face connectivity and cell areas
        values: Cell-mean tracer values [ncol, nlev]
        thickness: Layer thickness [m] [ncol, nlev]

    Returns:
        Tuple of (updated values [ncol, nlev], flux per left layer [nface, nlev])
    """
    left_layer = _layer_sums(flux, left_weights)
    right_layer = _layer_sums(flux, right_weights)

    content = (jnp.zeros_like(values)
               .at[geometry.left].add(-left_layer)
               .at[geometry.right].add(right_layer))

    volume = geometry.area[:, None] * thickness
    wet = volume > 0.0
    updated = values + jnp.where(wet, content / jnp.where(wet, volume, 1.0), 0.0)
    return updated, left_layer


@jax.jit
def apply_face_fluxes(
    flux: jnp.ndarray,
    left_weights: jnp.ndarray,
    right_weights: jnp.ndarray,
    left_values: jnp.ndarray,
    right_values: jnp.ndarray,
    geometry: FaceGeometry,
    values: jnp.ndarray,
    thickness: jnp.ndarray,
    limiter: bool
) -> Tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """
    Limit and accumulate the exchanges of one tracer field.

    Returns:
        Tuple of (updated values [ncol, nlev], limited fluxes [nface, nx],
        flux per left layer [nface, nlev])
    """
    scale = limiter_scale(flux, left_weights, right_weights, left_values,
                          right_values, geometry, values, thickness)
    limited = flux * jnp.where(limiter, scale, 1.0)
    updated, layer_flux = accumulate_fluxes(limited, left_weights, right_weights,
                                            geometry, values, thickness)
    return updated, limited, layer_flux
