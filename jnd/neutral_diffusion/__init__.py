"""
Lateral diffusion of tracers between layered ocean columns

The interior scheme mixes along density-matched sublayers built between
adjacent columns; the boundary-layer scheme mixes layers of equal index
inside the surface mixed layer.

The implementation consists of:
- Monotonic vertical reconstruction (constant, linear, parabolic)
- Static stability classification
- A two-pointer density matching sweep with tagged root finders
- Harmonic-mean effective thickness sublayer fluxes
- A flux-corrected-transport limiter and scatter-add accumulation
"""

from .neutral_diffusion_types import (
    NeutralDiffusionParameters,
    NeutralDiffusionState,
    NeutralDiffusionDiagnostics,
    FaceGeometry,
    ColumnProfile,
    SublayerSide,
    Sublayers
)

from .reconstruction import (
    reconstruct_column,
    reconstruct_columns,
    edge_values,
    interface_values,
    polynomial_mean
)

from .stability import (
    classify_column,
    neutral_stratification
)

from .root_finding import find_density_position

from .density_matching import (
    match_column_pair,
    match_faces
)

from .sublayer_fluxes import (
    effective_thickness,
    sublayer_flux,
    face_sublayer_fluxes
)

from .flux_accumulation import (
    overlap_weights,
    limiter_scale,
    accumulate_fluxes,
    apply_face_fluxes
)

from .boundary_layer import (
    boundary_layer_levels,
    taper_factor,
    boundary_layer_fluxes
)

from .neutral_diffusion import (
    neutral_diffusion_step,
    prepare_column_profile,
    prepare_column_profiles,
    row_of_columns
)

__all__ = [
    # Types
    "NeutralDiffusionParameters",
    "NeutralDiffusionState",
    "NeutralDiffusionDiagnostics",
    "FaceGeometry",
    "ColumnProfile",
    "SublayerSide",
    "Sublayers",

    # Reconstruction and stability
    "reconstruct_column",
    "reconstruct_columns",
    "edge_values",
    "interface_values",
    "polynomial_mean",
    "classify_column",
    "neutral_stratification",

    # Matching
    "find_density_position",
    "match_column_pair",
    "match_faces",

    # Fluxes
    "effective_thickness",
    "sublayer_flux",
    "face_sublayer_fluxes",
    "overlap_weights",
    "limiter_scale",
    "accumulate_fluxes",
    "apply_face_fluxes",
    "boundary_layer_levels",
    "taper_factor",
    "boundary_layer_fluxes",

    # Main interface
    "neutral_diffusion_step",
    "prepare_column_profile",
    "prepare_column_profiles",
    "row_of_columns"
]
