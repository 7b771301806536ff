"""
Lateral tracer mixing for a set of ocean columns

The TracerMixing class holds the grid, parameters, equation of state and
diffusivity, checks the configuration once at construction and then applies
jitted lateral diffusion steps. It is the only place that logs; the kernels
report numerical trouble through their diagnostics.
"""

import logging
from typing import Callable, Optional, Tuple

import jax.numpy as jnp
import numpy as np

from jnd.eos.equation_of_state import LinearEOS
from jnd.mixed_layer import mixed_layer_depth_columns
from jnd.parameters import Parameters
from jnd.neutral_diffusion.neutral_diffusion import neutral_diffusion_step
from jnd.neutral_diffusion.neutral_diffusion_types import (
    DENSITY_MODES, RECONSTRUCTION_ORDERS, ROOT_METHODS, FaceGeometry,
    NeutralDiffusionDiagnostics, NeutralDiffusionState
)

logger = logging.getLogger(__name__)


def _option_name(options: dict, index) -> str:
    names = {value: key for key, value in options.items()}
    return names.get(int(index), str(index))


def validate_geometry(geometry: FaceGeometry, ncol: int) -> None:
    """Raise ValueError for inconsistent face geometry."""
    left = np.asarray(geometry.left)
    right = np.asarray(geometry.right)
    nface = left.shape[0]

    for name in ("right", "dx", "dy"):
        shape = np.shape(getattr(geometry, name))
        if shape != (nface,):
            raise ValueError(f"Invalid geometry: {name} has shape {shape}. Must be ({nface},)")
    if np.shape(geometry.area) != (ncol,):
        raise ValueError(f"Invalid geometry: area has shape {np.shape(geometry.area)}. Must be ({ncol},)")

    indices = np.concatenate([left, right])
    if indices.size and (indices.min() < 0 or indices.max() >= ncol):
        raise ValueError(f"Invalid geometry: face column index out of range. Must be in [0, {ncol - 1}]")
    if np.any(left == right):
        raise ValueError("Invalid geometry: a face connects a column to itself")
    if np.any(np.asarray(geometry.dx) <= 0.0) or np.any(np.asarray(geometry.area) <= 0.0):
        raise ValueError("Invalid geometry: dx and area must be positive")


class TracerMixing:
    """
    Lateral (epineutral and boundary-layer) tracer mixing between columns
    """

    def __init__(self,
                 geometry: FaceGeometry,
                 parameters: Optional[Parameters] = None,
                 eos=None,
                 diffusivity=1000.0,
                 mixed_layer_depth: Optional[Callable] = None):
        """
        Initialize the mixing scheme.

        Args:
            geometry: Faces between adjacent columns and cell areas
            parameters: Optional parameters (uses defaults if None)
            eos: Optional equation of state (linear if None)
            diffusivity: Lateral diffusivity [m²/s], scalar or per face
            mixed_layer_depth: Optional callable (state, eos) -> depth [m] per
                column, used when the boundary-layer scheme is enabled and the
                state carries no boundary layer depth
        """
        self.parameters = parameters if parameters is not None else Parameters.default()
        self.eos = eos if eos is not None else LinearEOS.default()
        self.geometry = geometry
        self.ncol = int(np.asarray(geometry.area).shape[0])
        validate_geometry(geometry, self.ncol)

        nface = int(np.asarray(geometry.left).shape[0])
        diffusivity = np.asarray(diffusivity)
        if diffusivity.shape not in ((), (nface,)):
            raise ValueError(f"Invalid diffusivity shape: {diffusivity.shape}. Must be () or ({nface},)")
        if np.any(diffusivity < 0.0):
            raise ValueError("Invalid diffusivity: must be non-negative")
        self.diffusivity = jnp.asarray(diffusivity)

        self._mixed_layer_depth = mixed_layer_depth or self._density_threshold_depth

        params = self.parameters.neutral_diffusion
        logger.info(
            "Lateral mixing: %d columns, %d faces, reconstruction=%s, density_mode=%s, "
            "root_method=%s, boundary_layer=%s, limiter=%s",
            self.ncol, nface,
            _option_name(RECONSTRUCTION_ORDERS, params.reconstruction),
            _option_name(DENSITY_MODES, params.density_mode),
            _option_name(ROOT_METHODS, params.root_method),
            bool(params.boundary_layer), bool(params.limiter)
        )

    def _density_threshold_depth(self, state: NeutralDiffusionState, eos) -> jnp.ndarray:
        return mixed_layer_depth_columns(
            state.temperature, state.salinity, state.thickness,
            self.parameters.mixed_layer, eos
        )

    def _check_state(self, state: NeutralDiffusionState) -> None:
        shape = np.shape(state.thickness)
        if len(shape) != 2 or shape[0] != self.ncol:
            raise ValueError(f"Invalid thickness shape: {shape}. Must be ({self.ncol}, nlev)")
        for name in ("temperature", "salinity"):
            if np.shape(getattr(state, name)) != shape:
                raise ValueError(f"Invalid {name} shape: {np.shape(getattr(state, name))}. Must be {shape}")
        if state.tracers is not None and np.shape(state.tracers)[:2] != shape:
            raise ValueError(f"Invalid tracers shape: {np.shape(state.tracers)}. Must be {shape + ('ntrac',)}")
        if state.boundary_layer_depth is not None and np.shape(state.boundary_layer_depth) != (self.ncol,):
            raise ValueError(
                f"Invalid boundary layer depth shape: {np.shape(state.boundary_layer_depth)}. Must be ({self.ncol},)"
            )

    def step(
        self,
        state: NeutralDiffusionState,
        dt: float
    ) -> Tuple[NeutralDiffusionState, NeutralDiffusionDiagnostics]:
        """
        Apply one lateral mixing step.

        Args:
            state: Column state at the start of the step
            dt: Time step [s]

        Returns:
            Tuple of (updated state, diagnostics)
        """
        self._check_state(state)

        provided = state.boundary_layer_depth is not None
        if self.parameters.neutral_diffusion.boundary_layer and not provided:
            state = state._replace(boundary_layer_depth=self._mixed_layer_depth(state, self.eos))

        new_state, diagnostics = neutral_diffusion_step(
            state, self.geometry, self.parameters.neutral_diffusion, self.eos,
            dt, self.diffusivity
        )

        failures = int(jnp.sum(diagnostics.root_find_failures))
        if failures:
            faces = int(jnp.sum(diagnostics.root_find_failures > 0))
            logger.warning(
                "Root finding did not converge %d times on %d faces; "
                "deeper water on those faces was left unmixed", failures, faces
            )
        logger.debug("Root finds performed: %d", int(jnp.sum(diagnostics.root_finds)))

        # The next step recomputes the boundary layer from the new state
        if not provided:
            new_state = new_state._replace(boundary_layer_depth=None)
        return new_state, diagnostics

    def run(
        self,
        state: NeutralDiffusionState,
        dt: float,
        nsteps: int
    ) -> Tuple[NeutralDiffusionState, NeutralDiffusionDiagnostics]:
        """Apply nsteps mixing steps, returning the diagnostics of the last one."""
        if nsteps < 1:
            raise ValueError(f"Invalid number of steps: {nsteps}. Must be at least 1")
        diagnostics = None
        for _ in range(nsteps):
            state, diagnostics = self.step(state, dt)
        return state, diagnostics
