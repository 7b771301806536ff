"""
Mixed layer depth from a potential density threshold

The mixed layer base is the depth at which the potential density, referenced
to a fixed pressure, first exceeds the potential density of a near-surface
reference layer by a threshold. The crossing depth is interpolated linearly
between layer centres. Columns that never exceed the threshold are mixed to
the sea floor.

Any callable returning a depth per column can replace this provider when
feeding the boundary-layer scheme.
"""

import jax
import jax.numpy as jnp
import tree_math

from jnd.eos.equation_of_state import density_derivatives


@tree_math.struct
class MixedLayerParameters:
    """Parameters for the density-threshold mixed layer depth"""

    density_threshold: float    # Potential density increase at the mixed layer base (kg/m³)
    reference_layer: int        # Layer index of the near-surface reference density
    reference_pressure: float   # Reference pressure for potential density (dbar)

    @classmethod
    def default(cls, density_threshold=0.03, reference_layer=0,
                reference_pressure=0.0) -> 'MixedLayerParameters':
        """Return default mixed layer parameters"""
        return cls(
            density_threshold=jnp.array(density_threshold),
            reference_layer=reference_layer,
            reference_pressure=jnp.array(reference_pressure)
        )


@jax.jit
def mixed_layer_depth(
    temperature: jnp.ndarray,
    salinity: jnp.ndarray,
    thickness: jnp.ndarray,
    params: MixedLayerParameters,
    eos
) -> jnp.ndarray:
    """
    Mixed layer depth of one column.

    Args:
        temperature: Cell temperature [degC] [nlev]
        salinity: Cell salinity [psu] [nlev]
        thickness: Layer thickness [m] [nlev]
        params: Mixed layer parameters
        eos: Equation of state

    Returns:
        Mixed layer depth [m]
    """
    nlev = thickness.shape[0]
    z_bottom = jnp.cumsum(thickness)
    z_centre = z_bottom - 0.5 * thickness

    rho, _, _ = density_derivatives(eos, temperature, salinity,
                                    params.reference_pressure * jnp.ones_like(thickness))
    reference = jnp.clip(params.reference_layer, 0, nlev - 1)
    difference = rho - rho[reference]

    level = jnp.arange(nlev)
    exceeds = (level > reference) & (difference >= params.density_threshold)
    found = jnp.any(exceeds)
    k = jnp.argmax(exceeds)
    above = jnp.maximum(k - 1, 0)

    gap = difference[k] - difference[above]
    fraction = jnp.clip(
        (params.density_threshold - difference[above]) / jnp.where(gap > 0.0, gap, 1.0),
        0.0, 1.0
    )
    crossing = z_centre[above] + fraction * (z_centre[k] - z_centre[above])
    return jnp.where(found, crossing, z_bottom[-1])


# Vectorized version for multiple columns
mixed_layer_depth_columns = jax.vmap(
    mixed_layer_depth, in_axes=(0, 0, 0, None, None)
)
