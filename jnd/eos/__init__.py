"""
Equation-of-state collaborators for lateral ocean tracer mixing
"""

from .equation_of_state import (
    LinearEOS,
    SimplifiedEOS,
    density_derivatives,
    expansion_coefficients
)

__all__ = [
    "LinearEOS",
    "SimplifiedEOS",
    "density_derivatives",
    "expansion_coefficients"
]
