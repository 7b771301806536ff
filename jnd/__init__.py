"""
Lateral ocean tracer mixing in JAX

This package contains JAX implementations of lateral tracer diffusion for
layered ocean models: an interior epineutral scheme that mixes along surfaces
of constant density between columns whose layers need not align, and a
near-surface scheme acting inside the boundary mixed layer.

Subpackages:
- constants: Physical constants
- eos: Equation-of-state collaborators
- neutral_diffusion: Reconstruction, density matching and flux kernels

Every kernel is a pure JAX function that can be jitted and vectorized; the
TracerMixing class wraps them for host-side use.
"""

from jnd.constants import physical_constants
from jnd.parameters import Parameters
from jnd.tracer_mixing import TracerMixing
from jnd.logging_config import setup_logging

__all__ = [
    "physical_constants",
    "Parameters",
    "TracerMixing",
    "setup_logging"
]
