"""
Equation-of-state collaborators for lateral ocean tracer mixing

The mixing schemes only need an object exposing
``density(temperature, salinity, pressure)`` that works elementwise on JAX
arrays. Thermal expansion and haline contraction coefficients are derived
from any such object with forward-mode differentiation, so new equations of
state only have to supply the density itself.

Provided implementations:
- LinearEOS: density linear in temperature and salinity
- SimplifiedEOS: the simplified nonlinear seawater equation of state of
  Roquet et al. (2015), as used in NEMO (cabbeling, thermobaricity and
  compressibility of the thermal expansion)
"""

import jax
import jax.numpy as jnp
from typing import Tuple
import tree_math


@tree_math.struct
class LinearEOS:
    """Linear equation of state, independent of pressure."""

    rho_ref: float      # Density at the reference point (kg/m³)
    t_ref: float        # Reference temperature (degC)
    s_ref: float        # Reference salinity (psu)
    drho_dt: float      # Partial derivative of density with temperature (kg/m³/degC)
    drho_ds: float      # Partial derivative of density with salinity (kg/m³/psu)

    @classmethod
    def default(cls, rho_ref=1000.0, t_ref=0.0, s_ref=0.0,
                drho_dt=-0.2, drho_ds=0.8) -> 'LinearEOS':
        """Return default linear equation of state"""
        return cls(
            rho_ref=jnp.array(rho_ref),
            t_ref=jnp.array(t_ref),
            s_ref=jnp.array(s_ref),
            drho_dt=jnp.array(drho_dt),
            drho_ds=jnp.array(drho_ds)
        )

    def density(self, temperature, salinity, pressure):
        """Density (kg/m³); ``pressure`` (dbar) only sets the output shape."""
        return (self.rho_ref
                + self.drho_dt * (temperature - self.t_ref)
                + self.drho_ds * (salinity - self.s_ref)
                + jnp.zeros_like(pressure))


@tree_math.struct
class SimplifiedEOS:
    """Simplified nonlinear seawater equation of state (Roquet et al. 2015)."""

    rho0: float         # Reference density (kg/m³)
    a0: float           # Linear thermal expansion coefficient (kg/m³/degC)
    b0: float           # Linear haline contraction coefficient (kg/m³/psu)
    lambda1: float      # Cabbeling coefficient in temperature (1/degC)
    lambda2: float      # Cabbeling coefficient in salinity (1/psu)
    mu1: float          # Thermobaric coefficient in temperature (1/dbar)
    mu2: float          # Thermobaric coefficient in salinity (1/dbar)
    nu: float           # Cabbeling coefficient in temperature*salinity (1/(degC psu))

    @classmethod
    def default(cls, rho0=1026.0, a0=1.6550e-1, b0=7.6554e-1,
                lambda1=5.9520e-2, lambda2=7.4914e-4, mu1=1.4970e-4,
                mu2=1.1090e-5, nu=2.4341e-3) -> 'SimplifiedEOS':
        """Return default simplified equation of state coefficients"""
        return cls(
            rho0=jnp.array(rho0),
            a0=jnp.array(a0),
            b0=jnp.array(b0),
            lambda1=jnp.array(lambda1),
            lambda2=jnp.array(lambda2),
            mu1=jnp.array(mu1),
            mu2=jnp.array(mu2),
            nu=jnp.array(nu)
        )

    def density(self, temperature, salinity, pressure):
        """In-situ density (kg/m³) with pressure in dbar (≈ depth in m)."""
        ta = temperature - 10.0
        sa = salinity - 35.0
        return (self.rho0
                - self.a0 * (1.0 + 0.5 * self.lambda1 * ta + self.mu1 * pressure) * ta
                + self.b0 * (1.0 - 0.5 * self.lambda2 * sa - self.mu2 * pressure) * sa
                - self.nu * ta * sa)


def density_derivatives(
    eos,
    temperature: jnp.ndarray,
    salinity: jnp.ndarray,
    pressure: jnp.ndarray
) -> Tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """
    Density and its partial derivatives with temperature and salinity.

    Args:
        eos: Equation of state with an elementwise ``density`` method
        temperature: Temperature (degC)
        salinity: Salinity (psu)
        pressure: Pressure (dbar)

    Returns:
        Tuple of (rho, drho_dT, drho_dS)
    """
    dtype = jnp.result_type(float)
    temperature, salinity, pressure = jnp.broadcast_arrays(
        jnp.asarray(temperature).astype(dtype),
        jnp.asarray(salinity).astype(dtype),
        jnp.asarray(pressure).astype(dtype)
    )
    ones = jnp.ones_like(temperature)

    rho, drho_dt = jax.jvp(
        lambda t: eos.density(t, salinity, pressure), (temperature,), (ones,)
    )
    _, drho_ds = jax.jvp(
        lambda s: eos.density(temperature, s, pressure), (salinity,), (ones,)
    )
    return rho, drho_dt, drho_ds


def expansion_coefficients(
    eos,
    temperature: jnp.ndarray,
    salinity: jnp.ndarray,
    pressure: jnp.ndarray
) -> Tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """
    Density with thermal expansion and haline contraction coefficients.

    alpha = -(1/rho) drho/dT and beta = (1/rho) drho/dS, so that a neutral
    density difference is rho * (beta dS - alpha dT).

    Returns:
        Tuple of (rho, alpha, beta)
    """
    rho, drho_dt, drho_ds = density_derivatives(eos, temperature, salinity, pressure)
    return rho, -drho_dt / rho, drho_ds / rho
