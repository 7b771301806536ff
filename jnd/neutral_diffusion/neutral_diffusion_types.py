"""
Data structures and types for lateral (neutral and boundary-layer) diffusion.

This module defines the parameters, column state, face geometry, sublayer
records and diagnostics shared by the reconstruction, matching and flux
modules.
"""

from typing import NamedTuple, Optional
import jax.numpy as jnp
import tree_math


# Option tags. Kernels dispatch on the integer, users pass the name.
RECONSTRUCTION_ORDERS = {"constant": 0, "linear": 1, "parabolic": 2}
DENSITY_MODES = {"neutral": 0, "reference_pressure": 1}
ROOT_METHODS = {
    "closed_form_linear": 0,
    "closed_form_parabolic": 1,
    "bisection": 2,
    "newton": 3,
}

PCM, PLM, PPM = 0, 1, 2
NEUTRAL, REFERENCE_PRESSURE = 0, 1


def _option_index(options: dict, name: str, kind: str) -> int:
    if name not in options:
        raise ValueError(f"Invalid {kind}: {name}. Must be one of: {list(options.keys())}")
    return options[name]


@tree_math.struct
class NeutralDiffusionParameters:
    """Parameters for the lateral diffusion schemes."""

    # Vertical reconstruction of tracers and density
    reconstruction: int         # 0 constant, 1 linear, 2 parabolic

    # Density used for matching
    density_mode: int           # 0 neutral (local pressure), 1 reference pressure
    reference_pressure: float   # Reference pressure for potential density (dbar)

    # Root finding for virtual interfaces
    root_method: int            # See ROOT_METHODS
    max_iterations: int         # Iteration cap for bisection and Newton
    tolerance: float            # Convergence tolerance in non-dimensional position

    # Scheme switches
    boundary_layer: bool        # Near-surface scheme inside the mixed layer
    limiter: bool               # Flux limiter at the accumulation stage

    @classmethod
    def default(cls, reconstruction='linear', density_mode='neutral',
                reference_pressure=2000.0, root_method='closed_form_linear',
                max_iterations=20, tolerance=1.0e-6, boundary_layer=False,
                limiter=True) -> 'NeutralDiffusionParameters':
        """Return default lateral diffusion parameters"""
        return cls(
            reconstruction=_option_index(RECONSTRUCTION_ORDERS, reconstruction, "reconstruction order"),
            density_mode=_option_index(DENSITY_MODES, density_mode, "density mode"),
            reference_pressure=jnp.array(reference_pressure),
            root_method=_option_index(ROOT_METHODS, root_method, "root-finding method"),
            max_iterations=max_iterations,  # Keep as Python int, used as a loop bound
            tolerance=jnp.array(tolerance),
            boundary_layer=boundary_layer,
            limiter=limiter
        )


class NeutralDiffusionState(NamedTuple):
    """Ocean column state read at the start of a diffusion step."""

    temperature: jnp.ndarray        # Temperature [degC] (ncol, nlev)
    salinity: jnp.ndarray           # Salinity [psu] (ncol, nlev)
    thickness: jnp.ndarray          # Layer thickness [m] (ncol, nlev)

    # Passive tracers (optional)
    tracers: Optional[jnp.ndarray] = None              # (ncol, nlev, ntrac)

    # Boundary layer depth from the mixed-layer provider (optional)
    boundary_layer_depth: Optional[jnp.ndarray] = None  # [m] (ncol,)


class FaceGeometry(NamedTuple):
    """Connectivity and metrics of the faces between adjacent columns."""

    left: jnp.ndarray       # Index of the column on the left of each face (nface,)
    right: jnp.ndarray      # Index of the column on the right of each face (nface,)
    dx: jnp.ndarray         # Distance between column centres [m] (nface,)
    dy: jnp.ndarray         # Face length [m] (nface,)
    area: jnp.ndarray       # Horizontal cell area [m²] (ncol,)


class ColumnProfile(NamedTuple):
    """Reconstructed density structure of a column."""

    interface_depth: jnp.ndarray      # Interface depth [m] (nlev+1,)
    interface_density: jnp.ndarray    # Interface density [kg/m³] (nlev+1,)
    density_coeffs: jnp.ndarray       # Cell density polynomial in s (nlev, 3)
    thickness: jnp.ndarray            # Layer thickness [m] (nlev,)
    interface_mask: jnp.ndarray       # Stable interfaces (nlev+1,)
    cell_mask: jnp.ndarray            # Stable cells (nlev,)
    valid_cells: jnp.ndarray          # Cells with a valid mean density (nlev,)
    boundary_layer_levels: jnp.ndarray  # Number of layers in the boundary layer ()


class SublayerSide(NamedTuple):
    """One column's half of a set of sublayers (flat arrays, one entry per sublayer)."""

    layer: jnp.ndarray        # Layer holding the sublayer (nsub,)
    s_top: jnp.ndarray        # Top position within the layer, 0..1 (nsub,)
    s_bottom: jnp.ndarray     # Bottom position within the layer, 0..1 (nsub,)
    z_top: jnp.ndarray        # Top depth [m] (nsub,)
    z_bottom: jnp.ndarray     # Bottom depth [m] (nsub,)
    thickness: jnp.ndarray    # Thickness counted for fluxes [m] (nsub,)


class Sublayers(NamedTuple):
    """Density-matched sublayers of one face."""

    left: SublayerSide
    right: SublayerSide
    ref_is_left: jnp.ndarray  # Left column held the lighter node (nsub,)
    valid: jnp.ndarray        # Entry was produced by the sweep (nsub,)
    root_finds: jnp.ndarray   # Number of root-finds performed ()
    root_failures: jnp.ndarray  # Number of non-converged root-finds ()


class NeutralDiffusionDiagnostics(NamedTuple):
    """Diagnostic output of a lateral diffusion step."""

    # Sublayers of every face (arrays gain a leading face axis)
    sublayers: Sublayers

    # Fluxes after limiting, oriented left to right [tracer m³]
    # Field order: temperature, salinity, passive tracers
    sublayer_fluxes: jnp.ndarray          # (nfield, nface, 2*nlev)
    boundary_layer_fluxes: jnp.ndarray    # (nfield, nface, nlev)
    layer_fluxes: jnp.ndarray             # Interior + boundary per left layer (nfield, nface, nlev)

    # Matching statistics per face
    root_finds: jnp.ndarray               # (nface,)
    root_find_failures: jnp.ndarray       # (nface,)

    # Boundary layer layer counts per column
    boundary_layer_levels: jnp.ndarray    # (ncol,)
