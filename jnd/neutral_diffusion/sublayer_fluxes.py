"""
Down-gradient tracer fluxes through density-matched sublayers.

Each sublayer exchanges tracer between its two halves with

    F = K * dt * dy / dx * h_eff * (C_ref - C_tgt)

where h_eff = 2 h1 h2 / (h1 + h2) is the harmonic-mean effective thickness
and C_ref, C_tgt are the mean reconstructed tracer values of the reference
(lighter) and target halves. Fluxes are returned oriented from the left to the
right column of the face, in tracer content units (tracer * m³).
"""

import jax
import jax.numpy as jnp
from typing import Tuple

from .neutral_diffusion_types import SublayerSide, Sublayers
from .reconstruction import polynomial_mean


@jax.jit
def effective_thickness(h1: jnp.ndarray, h2: jnp.ndarray) -> jnp.ndarray:
    """
    Harmonic-mean effective thickness of two sublayer halves.

    Zero whenever either thickness is zero (or negative).

    Args:
        h1: Thickness of one half [m]
        h2: Thickness of the other half [m]

    Returns:
        Effective thickness [m]
    """
    both = (h1 > 0.0) & (h2 > 0.0)
    denom = jnp.where(both, h1 + h2, 1.0)
    return jnp.where(both, 2.0 * h1 * h2 / denom, 0.0)


@jax.jit
def sublayer_flux(
    c_ref: jnp.ndarray,
    c_tgt: jnp.ndarray,
    h_ref: jnp.ndarray,
    h_tgt: jnp.ndarray,
    coefficient: jnp.ndarray
) -> jnp.ndarray:
    """
    Flux from the reference half into the target half of a sublayer.

    Args:
        c_ref: Mean tracer value in the reference half
        c_tgt: Mean tracer value in the target half
        h_ref: Thickness of the reference half [m]
        h_tgt: Thickness of the target half [m]
        coefficient: K * dt * dy / dx [m²], non-negative

    Returns:
        Flux [tracer m³], same sign as c_ref - c_tgt
    """
    return coefficient * effective_thickness(h_ref, h_tgt) * (c_ref - c_tgt)


def sublayer_means(coeffs: jnp.ndarray, side: SublayerSide) -> jnp.ndarray:
    """
    Mean of a column's tracer reconstruction over each sublayer half.

    Args:
        coeffs: Tracer polynomial coefficients of the column [nlev, 3]
        side: That column's half of the sublayers

    Returns:
        Mean tracer value per sublayer [nsub]
    """
    return polynomial_mean(coeffs[side.layer], side.s_top, side.s_bottom)


@jax.jit
def face_sublayer_fluxes(
    sublayers: Sublayers,
    left_coeffs: jnp.ndarray,
    right_coeffs: jnp.ndarray,
    coefficient: jnp.ndarray
) -> Tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """
    Left-to-right flux of one tracer through every sublayer of a face.

    Args:
        sublayers: Output of the density matcher for the face
        left_coeffs: Tracer reconstruction of the left column [nlev, 3]
        right_coeffs: Tracer reconstruction of the right column [nlev, 3]
        coefficient: K * dt * dy / dx for the face [m²]

    Returns:
        Tuple of (flux [nsub], left means [nsub], right means [nsub])
    """
    valid = sublayers.valid
    c_left = jnp.where(valid, sublayer_means(left_coeffs, sublayers.left), 0.0)
    c_right = jnp.where(valid, sublayer_means(right_coeffs, sublayers.right), 0.0)

    ref_is_left = sublayers.ref_is_left
    c_ref = jnp.where(ref_is_left, c_left, c_right)
    c_tgt = jnp.where(ref_is_left, c_right, c_left)
    h_ref = jnp.where(ref_is_left, sublayers.left.thickness, sublayers.right.thickness)
    h_tgt = jnp.where(ref_is_left, sublayers.right.thickness, sublayers.left.thickness)

    flux = sublayer_flux(c_ref, c_tgt, h_ref, h_tgt, coefficient)
    flux = jnp.where(ref_is_left, flux, -flux)

    # Empty halves may sit in cells whose reconstruction is not finite
    exchanging = valid & (effective_thickness(h_ref, h_tgt) > 0.0)
    return jnp.where(exchanging, flux, 0.0), c_left, c_right


# Vectorized over faces: sublayers and coefficients per face, coefficients per column pair
face_fluxes = jax.vmap(face_sublayer_fluxes, in_axes=(0, 0, 0, 0))
