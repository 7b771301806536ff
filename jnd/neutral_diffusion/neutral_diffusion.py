"""
Main lateral diffusion scheme for layered ocean columns.

One step reads an immutable snapshot of the column state and returns the
updated tracer fields:

1. Per column: reconstruct temperature and salinity, derive interface and
   cell densities from the equation of state, classify stability and build
   the cell density polynomials
2. Per face: match the two columns' density profiles into sublayers
3. Per field and face: down-gradient sublayer fluxes plus, when enabled,
   boundary-layer fluxes
4. Per field: limit the fluxes and reduce them into the columns

Temperature, salinity and any passive tracers are mixed along the same
sublayers.
"""

import jax
import jax.numpy as jnp
import numpy as np
from jax.tree_util import tree_map
from typing import Tuple

from jnd.constants.physical_constants import dbar_per_meter
from jnd.eos.equation_of_state import expansion_coefficients
from .neutral_diffusion_types import (
    NEUTRAL, ColumnProfile, FaceGeometry, NeutralDiffusionDiagnostics,
    NeutralDiffusionParameters, NeutralDiffusionState
)
from .reconstruction import (
    interface_polynomial, interface_values, reconstruct_column, reconstruct_columns
)
from .stability import classify_column, neutral_stratification, valid_density
from .density_matching import match_faces
from .sublayer_fluxes import face_fluxes
from .flux_accumulation import apply_face_fluxes, face_overlap_weights
from .boundary_layer import boundary_layer_levels, face_boundary_layer_fluxes


def interface_depths(thickness: jnp.ndarray) -> jnp.ndarray:
    """Depth of the interfaces below the surface [m] [..., nlev+1]."""
    zeros = jnp.zeros(thickness.shape[:-1] + (1,), dtype=thickness.dtype)
    return jnp.concatenate([zeros, jnp.cumsum(thickness, axis=-1)], axis=-1)


@jax.jit
def prepare_column_profile(
    temperature: jnp.ndarray,
    salinity: jnp.ndarray,
    thickness: jnp.ndarray,
    boundary_layer_depth: jnp.ndarray,
    params: NeutralDiffusionParameters,
    eos
) -> ColumnProfile:
    """
    Reconstruct the density structure of one column.

    Args:
        temperature: Cell temperature [degC] [nlev]
        salinity: Cell salinity [psu] [nlev]
        thickness: Layer thickness [m] [nlev]
        boundary_layer_depth: Boundary layer depth [m]
        params: Lateral diffusion parameters
        eos: Equation of state

    Returns:
        Column profile used by the density matcher
    """
    order = params.reconstruction
    z_interface = interface_depths(thickness)
    z_centre = 0.5 * (z_interface[:-1] + z_interface[1:])

    t_interface = interface_values(reconstruct_column(temperature, thickness, order))
    s_interface = interface_values(reconstruct_column(salinity, thickness, order))

    # Locally referenced pressure in neutral mode, potential density otherwise
    neutral = params.density_mode == NEUTRAL
    p_interface = jnp.where(neutral, z_interface * dbar_per_meter, params.reference_pressure)
    p_centre = jnp.where(neutral, z_centre * dbar_per_meter, params.reference_pressure)

    rho_interface, _, _ = expansion_coefficients(eos, t_interface, s_interface, p_interface)
    rho_cell, alpha, beta = expansion_coefficients(eos, temperature, salinity, p_centre)

    levels = boundary_layer_levels(z_interface, boundary_layer_depth)
    excluded = jnp.where(params.boundary_layer, levels, 0)

    stratification = neutral_stratification(temperature, salinity, alpha, beta)
    interface_mask, cell_mask = classify_column(
        rho_interface, rho_cell, stratification, params.density_mode, excluded
    )

    return ColumnProfile(
        interface_depth=z_interface,
        interface_density=rho_interface,
        density_coeffs=interface_polynomial(rho_interface, rho_cell, order),
        thickness=thickness,
        interface_mask=interface_mask,
        cell_mask=cell_mask,
        valid_cells=valid_density(rho_cell),
        boundary_layer_levels=levels
    )


# Vectorized over columns
prepare_column_profiles = jax.vmap(
    prepare_column_profile, in_axes=(0, 0, 0, 0, None, None)
)


def stack_fields(state: NeutralDiffusionState) -> jnp.ndarray:
    """Temperature, salinity and passive tracers as one array [nfield, ncol, nlev]."""
    fields = [state.temperature[None], state.salinity[None]]
    if state.tracers is not None:
        fields.append(jnp.moveaxis(state.tracers, -1, 0))
    return jnp.concatenate(fields, axis=0)


def unstack_fields(state: NeutralDiffusionState, fields: jnp.ndarray) -> NeutralDiffusionState:
    """Inverse of stack_fields."""
    tracers = None
    if state.tracers is not None:
        tracers = jnp.moveaxis(fields[2:], 0, -1)
    return state._replace(temperature=fields[0], salinity=fields[1], tracers=tracers)


@jax.jit
def neutral_diffusion_step(
    state: NeutralDiffusionState,
    geometry: FaceGeometry,
    params: NeutralDiffusionParameters,
    eos,
    dt: float,
    diffusivity: jnp.ndarray
) -> Tuple[NeutralDiffusionState, NeutralDiffusionDiagnostics]:
    """
    Apply one step of lateral diffusion to all tracer fields.

    Args:
        state: Column state at the start of the step
        geometry: Faces between adjacent columns and cell areas
        params: Lateral diffusion parameters
        eos: Equation of state
        dt: Time step [s]
        diffusivity: Lateral diffusivity [m²/s], scalar or per face

    Returns:
        Tuple of (updated state, diagnostics)
    """
    ncol, nlev = state.thickness.shape
    nface = geometry.left.shape[0]
    thickness = state.thickness
    left, right = geometry.left, geometry.right

    if state.boundary_layer_depth is None:
        boundary_layer_depth = jnp.zeros((ncol,), dtype=thickness.dtype)
    else:
        boundary_layer_depth = state.boundary_layer_depth

    # Column density structure and face matching
    profiles = prepare_column_profiles(
        state.temperature, state.salinity, thickness, boundary_layer_depth, params, eos
    )
    left_profiles = tree_map(lambda a: a[left], profiles)
    right_profiles = tree_map(lambda a: a[right], profiles)
    sublayers = match_faces(left_profiles, right_profiles, params)

    coefficient = jnp.broadcast_to(
        jnp.asarray(diffusivity) * dt * geometry.dy / geometry.dx, (nface,)
    )

    # Interior sublayer fluxes, all fields along the same sublayers
    fields = stack_fields(state)
    coeffs = jax.vmap(reconstruct_columns, in_axes=(0, None, None))(
        fields, thickness, params.reconstruction
    )
    interior_flux, c_left, c_right = jax.vmap(face_fluxes, in_axes=(None, 0, 0, None))(
        sublayers, coeffs[:, left], coeffs[:, right], coefficient
    )
    interior_left_weights = face_overlap_weights(sublayers.left, left_profiles.interface_depth)
    interior_right_weights = face_overlap_weights(sublayers.right, right_profiles.interface_depth)

    # Boundary-layer fluxes between layers of equal index
    levels = profiles.boundary_layer_levels
    valid_cells = profiles.valid_cells
    bl_flux = jax.vmap(face_boundary_layer_fluxes, in_axes=(0, 0) + (None,) * 7)(
        fields[:, left], fields[:, right], thickness[left], thickness[right],
        valid_cells[left], valid_cells[right], levels[left], levels[right], coefficient
    )
    bl_flux = jnp.where(params.boundary_layer, bl_flux, 0.0)
    identity = jnp.broadcast_to(jnp.eye(nlev, dtype=thickness.dtype), (nface, nlev, nlev))

    # Both kinds of exchange share one limiter and one reduction
    nsub = interior_flux.shape[-1]
    flux = jnp.concatenate([interior_flux, bl_flux], axis=-1)
    left_weights = jnp.concatenate([interior_left_weights, identity], axis=1)
    right_weights = jnp.concatenate([interior_right_weights, identity], axis=1)
    left_values = jnp.concatenate([c_left, fields[:, left]], axis=-1)
    right_values = jnp.concatenate([c_right, fields[:, right]], axis=-1)

    updated, limited, layer_fluxes = jax.vmap(
        apply_face_fluxes, in_axes=(0, None, None, 0, 0, None, 0, None, None)
    )(flux, left_weights, right_weights, left_values, right_values,
      geometry, fields, thickness, params.limiter)

    diagnostics = NeutralDiffusionDiagnostics(
        sublayers=sublayers,
        sublayer_fluxes=limited[..., :nsub],
        boundary_layer_fluxes=limited[..., nsub:],
        layer_fluxes=layer_fluxes,
        root_finds=sublayers.root_finds,
        root_find_failures=sublayers.root_failures,
        boundary_layer_levels=levels
    )
    return unstack_fields(state, updated), diagnostics


def row_of_columns(
    ncol: int,
    dx: float,
    dy: float,
    periodic: bool = False
) -> FaceGeometry:
    """
    Geometry of a one-dimensional row of equally spaced columns.

    Args:
        ncol: Number of columns
        dx: Column spacing [m]
        dy: Face length [m]
        periodic: Connect the last column back to the first

    Returns:
        Face geometry with cell area dx * dy
    """
    if ncol < 2:
        raise ValueError(f"Invalid number of columns: {ncol}. Must be at least 2")

    left = np.arange(ncol - 1)
    if periodic and ncol > 2:
        left = np.arange(ncol)
    right = (left + 1) % ncol
    nface = left.shape[0]

    return FaceGeometry(
        left=jnp.asarray(left, dtype=jnp.int32),
        right=jnp.asarray(right, dtype=jnp.int32),
        dx=jnp.full((nface,), dx),
        dy=jnp.full((nface,), dy),
        area=jnp.full((ncol,), dx * dy)
    )
