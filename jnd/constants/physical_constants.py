"""
Physical constants for lateral ocean tracer mixing

Constants used by the equation-of-state collaborators, the pressure
computation for locally referenced densities and the numerical guards of the
mixing schemes.
"""

from typing import NamedTuple


class PhysicalConstants(NamedTuple):
    """Physical constants for lateral ocean tracer mixing"""

    # Fundamental constants
    grav: float = 9.81              # Gravitational acceleration (m/s²)

    # Seawater reference values
    rho0: float = 1035.0            # Boussinesq reference density (kg/m³)
    pa_per_dbar: float = 1.0e4      # Pascal per decibar

    # Numerical constants
    epsilon: float = 1e-12          # Small number to prevent division by zero

    @classmethod
    def default(cls) -> 'PhysicalConstants':
        """Return default physical constants"""
        return cls()

# Global instance of physical constants
physical_constants = PhysicalConstants.default()

# Export individual constants for convenience
grav = physical_constants.grav
rho0 = physical_constants.rho0
pa_per_dbar = physical_constants.pa_per_dbar
epsilon = physical_constants.epsilon

# Hydrostatic conversion from depth (m) to pressure (dbar)
dbar_per_meter = rho0 * grav / pa_per_dbar
