"""
Root finding for virtual interfaces.

Finds the position s in [s_lo, 1] of a cell where its density polynomial
p(s) = a0 + a1 s + a2 s² equals a target density. The method is chosen by an
integer tag and dispatched with lax.switch:

0 closed_form_linear     straight line through the end points of the range
1 closed_form_parabolic  quadratic formula on the full polynomial
2 bisection              bracketing, capped iterations
3 newton                 Newton-Raphson from the linear guess, bisection
                         when a step leaves the bracket, capped iterations

All methods return (s, converged). Closed forms always converge; the
iterative methods report failure when the tolerance is not met within the
iteration budget, and the caller ends the sweep.
"""

import jax
import jax.numpy as jnp
from jax import lax
from typing import Tuple

from jnd.constants.physical_constants import epsilon
from .reconstruction import evaluate_polynomial, polynomial_slope


def _closed_form_linear(coeffs, target, s_lo, max_iterations, tolerance):
    p_lo = evaluate_polynomial(coeffs, s_lo)
    p_hi = evaluate_polynomial(coeffs, 1.0)
    span = p_hi - p_lo
    fraction = jnp.where(jnp.abs(span) > epsilon, (target - p_lo) / jnp.where(span == 0.0, 1.0, span), 0.0)
    s = s_lo + jnp.clip(fraction, 0.0, 1.0) * (1.0 - s_lo)
    return s, jnp.array(True)


def _closed_form_parabolic(coeffs, target, s_lo, max_iterations, tolerance):
    a0, a1, a2 = coeffs[0] - target, coeffs[1], coeffs[2]
    linear_root, _ = _closed_form_linear(coeffs, target, s_lo, max_iterations, tolerance)

    # Numerically stable quadratic roots
    discriminant = jnp.maximum(a1 * a1 - 4.0 * a2 * a0, 0.0)
    q = -0.5 * (a1 + jnp.where(a1 >= 0.0, 1.0, -1.0) * jnp.sqrt(discriminant))
    root_1 = q / jnp.where(a2 == 0.0, 1.0, a2)
    root_2 = a0 / jnp.where(q == 0.0, 1.0, q)

    in_range_1 = (root_1 >= s_lo - epsilon) & (root_1 <= 1.0 + epsilon) & (a2 != 0.0)
    in_range_2 = (root_2 >= s_lo - epsilon) & (root_2 <= 1.0 + epsilon) & (q != 0.0)
    root = jnp.where(in_range_2, root_2, jnp.where(in_range_1, root_1, linear_root))

    quadratic = jnp.abs(a2) > epsilon
    s = jnp.where(quadratic, root, linear_root)
    return jnp.clip(s, s_lo, 1.0), jnp.array(True)


def _bisection(coeffs, target, s_lo, max_iterations, tolerance):
    increasing = evaluate_polynomial(coeffs, 1.0) >= evaluate_polynomial(coeffs, s_lo)

    def cond_fn(carry):
        lo, hi, iteration = carry
        return (hi - lo > tolerance) & (iteration < max_iterations)

    def body_fn(carry):
        lo, hi, iteration = carry
        mid = 0.5 * (lo + hi)
        below = (evaluate_polynomial(coeffs, mid) < target) == increasing
        return jnp.where(below, mid, lo), jnp.where(below, hi, mid), iteration + 1

    lo, hi, _ = lax.while_loop(cond_fn, body_fn, (s_lo, jnp.ones_like(s_lo), 0))
    return 0.5 * (lo + hi), hi - lo <= tolerance


def _newton(coeffs, target, s_lo, max_iterations, tolerance):
    s_start, _ = _closed_form_linear(coeffs, target, s_lo, max_iterations, tolerance)
    increasing = evaluate_polynomial(coeffs, 1.0) >= evaluate_polynomial(coeffs, s_lo)

    # Residuals below this are at the rounding level of the density itself
    resolution = 4.0 * jnp.finfo(coeffs.dtype).eps * jnp.abs(target)

    def cond_fn(carry):
        s, lo, hi, step, iteration = carry
        return (jnp.abs(step) > tolerance) & (iteration < max_iterations)

    def body_fn(carry):
        s, lo, hi, _, iteration = carry
        residual = evaluate_polynomial(coeffs, s) - target
        below = (residual < 0.0) == increasing
        lo = jnp.where(below, s, lo)
        hi = jnp.where(below, hi, s)

        # Newton step, or bisection of the bracket when it would leave it
        slope = polynomial_slope(coeffs, s)
        has_slope = jnp.abs(slope) > epsilon
        newton = s - residual / jnp.where(has_slope, slope, 1.0)
        inside = has_slope & (newton > lo) & (newton < hi)
        s_new = jnp.where(inside, newton, 0.5 * (lo + hi))
        s_new = jnp.where(jnp.abs(residual) <= resolution, s, s_new)
        return s_new, lo, hi, s_new - s, iteration + 1

    s, _, _, step, _ = lax.while_loop(
        cond_fn, body_fn,
        (s_start, s_lo, jnp.ones_like(s_lo), jnp.asarray(jnp.inf, dtype=s_start.dtype), 0)
    )
    return s, jnp.abs(step) <= tolerance


@jax.jit
def find_density_position(
    coeffs: jnp.ndarray,
    target: jnp.ndarray,
    s_lo: jnp.ndarray,
    method: int,
    max_iterations: int,
    tolerance: float
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Position in [s_lo, 1] where a cell's density polynomial equals target.

    Args:
        coeffs: Density polynomial coefficients of the cell [3]
        target: Density to match [kg/m³]
        s_lo: Lower bound of the search (last matched position in the cell)
        method: Root-finding tag (see module docstring)
        max_iterations: Iteration cap for iterative methods
        tolerance: Convergence tolerance on s

    Returns:
        Tuple of (s, converged)
    """
    s_lo = jnp.asarray(s_lo, dtype=coeffs.dtype)
    target = jnp.asarray(target, dtype=coeffs.dtype)
    return lax.switch(
        jnp.clip(method, 0, 3),
        [_closed_form_linear, _closed_form_parabolic, _bisection, _newton],
        coeffs, target, s_lo, max_iterations, tolerance
    )
