"""
End-to-end tests for the lateral diffusion step.
"""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from jnd.eos.equation_of_state import LinearEOS, SimplifiedEOS
from .neutral_diffusion_types import NeutralDiffusionParameters, NeutralDiffusionState
from .neutral_diffusion import (
    neutral_diffusion_step, prepare_column_profiles, row_of_columns, interface_depths
)
from .sublayer_fluxes import effective_thickness


def two_column_state(tracer_a=(10.0, 20.0, 30.0), tracer_b=(0.0, 0.0, 0.0)):
    """Columns with layer densities [1020, 1022, 1025] and [1021, 1023, 1026] kg/m³."""
    salinity = jnp.array([[25.0, 27.5, 31.25], [26.25, 28.75, 32.5]])
    return NeutralDiffusionState(
        temperature=jnp.zeros((2, 3)),
        salinity=salinity,
        thickness=jnp.full((2, 3), 10.0),
        tracers=jnp.array([tracer_a, tracer_b])[..., None]
    )


def stratified_state(ncol=4, nlev=6, seed=0):
    """Stably stratified columns with shifted layering and a random tracer."""
    keys = jax.random.split(jax.random.PRNGKey(seed), 3)
    thickness = jax.random.uniform(keys[0], (ncol, nlev), minval=5.0, maxval=40.0)
    z_centre = interface_depths(thickness)[:, :-1] + 0.5 * thickness
    shift = jnp.linspace(0.0, 30.0, ncol)[:, None]

    temperature = 20.0 * jnp.exp(-(z_centre + shift) / 80.0) + 2.0
    salinity = 34.0 + 1.5 * (1.0 - jnp.exp(-(z_centre + shift) / 120.0))
    tracers = jax.random.uniform(keys[1], (ncol, nlev, 2))
    return NeutralDiffusionState(temperature, salinity, thickness, tracers)


def total_content(state, geometry):
    volume = geometry.area[:, None] * state.thickness
    totals = [jnp.sum(state.temperature * volume), jnp.sum(state.salinity * volume)]
    totals += list(jnp.sum(state.tracers * volume[..., None], axis=(0, 1)))
    return jnp.array(totals)


class TestTwoColumnExample:
    """Two columns offset by 1 kg/m³, 10 m layers, constant reconstruction."""

    def setup_method(self):
        self.params = NeutralDiffusionParameters.default(reconstruction='constant')
        self.geometry = row_of_columns(2, dx=1000.0, dy=1000.0)
        self.state = two_column_state()
        self.new_state, self.diag = neutral_diffusion_step(
            self.state, self.geometry, self.params, LinearEOS.default(), 1.0, 1.0
        )

    def nonzero(self):
        sublayers = jax.tree_util.tree_map(lambda a: a[0], self.diag.sublayers)
        h_eff = effective_thickness(sublayers.left.thickness, sublayers.right.thickness)
        return sublayers, np.nonzero(np.asarray(sublayers.valid & (h_eff > 0.0)))[0]

    def test_exactly_two_sublayers(self):
        sublayers, index = self.nonzero()
        assert len(index) == 2
        np.testing.assert_allclose(sublayers.left.z_top[index], [10.0, 14.0], atol=1e-3)
        np.testing.assert_allclose(sublayers.left.z_bottom[index], [14.0, 20.0], atol=1e-3)
        np.testing.assert_allclose(sublayers.right.z_top[index], [0.0, 10.0], atol=1e-3)
        np.testing.assert_allclose(sublayers.right.z_bottom[index], [10.0, 16.0], atol=1e-3)
        assert self.diag.root_finds[0] == 2
        assert self.diag.root_find_failures[0] == 0

    def test_golden_fluxes(self):
        _, index = self.nonzero()
        tracer_flux = self.diag.sublayer_fluxes[2, 0]
        np.testing.assert_allclose(tracer_flux[index], [114.2857, 120.0], rtol=1e-4)
        np.testing.assert_allclose(self.diag.layer_fluxes[2, 0], [0.0, 234.2857, 0.0], rtol=1e-4, atol=1e-3)

    def test_down_gradient(self):
        # Column A holds more tracer, so every tracer flux runs left to right
        assert jnp.all(self.diag.sublayer_fluxes[2] >= 0.0)

    def test_updated_tracer(self):
        tracer = self.new_state.tracers[..., 0]
        np.testing.assert_allclose(tracer[0], [10.0, 20.0 - 234.2857e-7, 30.0], rtol=1e-6)
        np.testing.assert_allclose(tracer[1], [114.2857e-7, 120.0e-7, 0.0], rtol=1e-3, atol=1e-10)

    def test_no_boundary_layer_flux(self):
        np.testing.assert_array_equal(self.diag.boundary_layer_fluxes, 0.0)


class TestConservation:

    @pytest.mark.parametrize("reconstruction", ["constant", "linear", "parabolic"])
    def test_total_content(self, reconstruction):
        state = stratified_state()
        geometry = row_of_columns(4, dx=5.0e4, dy=5.0e4, periodic=True)
        params = NeutralDiffusionParameters.default(reconstruction=reconstruction)
        new_state, _ = neutral_diffusion_step(
            state, geometry, params, SimplifiedEOS.default(), 86400.0, 1000.0
        )
        np.testing.assert_allclose(
            total_content(new_state, geometry), total_content(state, geometry), rtol=1e-5
        )
        assert jnp.all(jnp.isfinite(new_state.tracers))

    def test_boundary_layer_content(self):
        state = stratified_state()._replace(boundary_layer_depth=jnp.array([10.0, 40.0, 80.0, 25.0]))
        geometry = row_of_columns(4, dx=5.0e4, dy=5.0e4, periodic=True)
        params = NeutralDiffusionParameters.default(boundary_layer=True)
        new_state, diag = neutral_diffusion_step(
            state, geometry, params, SimplifiedEOS.default(), 86400.0, 1000.0
        )
        np.testing.assert_allclose(
            total_content(new_state, geometry), total_content(state, geometry), rtol=1e-5
        )
        assert jnp.any(diag.boundary_layer_fluxes != 0.0)


class TestNoNewExtrema:

    @pytest.mark.parametrize("reconstruction", ["constant", "linear", "parabolic"])
    def test_tracer_bounds(self, reconstruction):
        state = stratified_state(seed=3)
        geometry = row_of_columns(4, dx=1.0e3, dy=1.0e3, periodic=True)
        params = NeutralDiffusionParameters.default(reconstruction=reconstruction)

        # Diffusivity far beyond stability, only the limiter keeps values bounded
        new_state, _ = neutral_diffusion_step(
            state, geometry, params, LinearEOS.default(), 86400.0, 1.0e4
        )
        for old, new in [(state.tracers, new_state.tracers),
                         (state.temperature, new_state.temperature)]:
            assert jnp.min(new) >= jnp.min(old) - 1e-4
            assert jnp.max(new) <= jnp.max(old) + 1e-4


class TestSpecialCases:

    def test_identical_columns_unchanged(self):
        state = two_column_state(tracer_b=(10.0, 20.0, 30.0))
        state = state._replace(salinity=jnp.stack([state.salinity[0], state.salinity[0]]))
        geometry = row_of_columns(2, dx=1000.0, dy=1000.0)
        params = NeutralDiffusionParameters.default()
        new_state, diag = neutral_diffusion_step(
            state, geometry, params, LinearEOS.default(), 1.0, 1.0
        )
        assert diag.root_finds[0] == 0
        np.testing.assert_allclose(new_state.tracers, state.tracers)
        np.testing.assert_allclose(new_state.salinity, state.salinity)

    def test_without_tracers(self):
        state = two_column_state()._replace(tracers=None)
        geometry = row_of_columns(2, dx=1000.0, dy=1000.0)
        params = NeutralDiffusionParameters.default(reconstruction='constant')
        new_state, diag = neutral_diffusion_step(
            state, geometry, params, LinearEOS.default(), 1.0, 1.0
        )
        assert new_state.tracers is None
        assert diag.sublayer_fluxes.shape == (2, 1, 6)
        assert diag.layer_fluxes.shape == (2, 1, 3)

    def test_boundary_layer_taper(self):
        state = two_column_state(tracer_a=(1.0, 1.0, 1.0), tracer_b=(0.0, 0.0, 0.0))
        state = state._replace(
            salinity=jnp.stack([state.salinity[0], state.salinity[0]]),
            boundary_layer_depth=jnp.array([25.0, 5.0])
        )
        geometry = row_of_columns(2, dx=1000.0, dy=1000.0)
        params = NeutralDiffusionParameters.default(boundary_layer=True)
        new_state, diag = neutral_diffusion_step(
            state, geometry, params, LinearEOS.default(), 1.0, 1.0
        )
        np.testing.assert_array_equal(diag.boundary_layer_levels, [3, 1])
        np.testing.assert_allclose(
            diag.boundary_layer_fluxes[2, 0], [10.0, 20.0 / 3.0, 10.0 / 3.0], rtol=1e-5
        )
        np.testing.assert_allclose(diag.sublayer_fluxes[2], 0.0, atol=1e-6)

    @pytest.mark.parametrize("reconstruction", ["constant", "linear", "parabolic"])
    def test_invalid_cell_stays_local_with_boundary_layer(self, reconstruction):
        state = two_column_state()
        state = state._replace(
            temperature=state.temperature.at[1, 2].set(jnp.nan),
            boundary_layer_depth=jnp.array([5.0, 5.0])
        )
        geometry = row_of_columns(2, dx=1000.0, dy=1000.0)
        params = NeutralDiffusionParameters.default(
            reconstruction=reconstruction, boundary_layer=True
        )
        new_state, diag = neutral_diffusion_step(
            state, geometry, params, LinearEOS.default(), 1.0, 1.0
        )

        assert jnp.all(jnp.isfinite(new_state.temperature[0]))
        assert jnp.all(jnp.isfinite(new_state.temperature[1, :2]))
        assert jnp.isnan(new_state.temperature[1, 2])
        assert jnp.all(jnp.isfinite(new_state.salinity))
        assert jnp.all(jnp.isfinite(new_state.tracers))
        assert jnp.all(jnp.isfinite(diag.layer_fluxes))

        # The surface layers still exchange salinity
        assert diag.boundary_layer_fluxes[1, 0, 0] < 0.0
        np.testing.assert_array_equal(diag.boundary_layer_fluxes[:, 0, 2], 0.0)

    def test_deepest_layer_not_mixed_in_interior(self):
        state = two_column_state(tracer_a=(0.0, 0.0, 1.0), tracer_b=(0.0, 0.0, 0.0))
        state = state._replace(salinity=jnp.stack([state.salinity[0], state.salinity[0]]))
        geometry = row_of_columns(2, dx=1000.0, dy=1000.0)
        params = NeutralDiffusionParameters.default()
        new_state, _ = neutral_diffusion_step(
            state, geometry, params, LinearEOS.default(), 1.0, 1.0
        )
        assert new_state.tracers[1, 2, 0] == 0.0
        assert new_state.tracers[0, 2, 0] == 1.0

    def test_single_layer_columns_exchange_nothing(self):
        state = NeutralDiffusionState(
            temperature=jnp.zeros((2, 1)),
            salinity=jnp.array([[30.0], [31.0]]),
            thickness=jnp.full((2, 1), 10.0),
            tracers=jnp.array([[1.0], [0.0]])[..., None]
        )
        geometry = row_of_columns(2, dx=1000.0, dy=1000.0)
        params = NeutralDiffusionParameters.default()
        new_state, diag = neutral_diffusion_step(
            state, geometry, params, LinearEOS.default(), 1.0, 1.0
        )
        np.testing.assert_array_equal(new_state.tracers, state.tracers)
        np.testing.assert_array_equal(diag.sublayer_fluxes, 0.0)

    def test_reference_pressure_mode(self):
        state = stratified_state(seed=5)
        geometry = row_of_columns(4, dx=5.0e4, dy=5.0e4)
        params = NeutralDiffusionParameters.default(
            density_mode='reference_pressure', reference_pressure=1000.0,
            root_method='newton'
        )
        new_state, diag = neutral_diffusion_step(
            state, geometry, params, SimplifiedEOS.default(), 86400.0, 1000.0
        )
        assert jnp.all(jnp.isfinite(new_state.temperature))
        assert jnp.all(diag.root_find_failures == 0)

    def test_column_profiles_stable(self):
        state = stratified_state()
        params = NeutralDiffusionParameters.default()
        profiles = prepare_column_profiles(
            state.temperature, state.salinity, state.thickness, jnp.zeros(4),
            params, SimplifiedEOS.default()
        )
        assert jnp.all(profiles.interface_mask)
        assert jnp.all(profiles.cell_mask)
        assert jnp.all(jnp.diff(profiles.interface_density, axis=-1) > 0.0)


class TestRowOfColumns:

    def test_open_row(self):
        geometry = row_of_columns(3, dx=10.0, dy=2.0)
        np.testing.assert_array_equal(geometry.left, [0, 1])
        np.testing.assert_array_equal(geometry.right, [1, 2])
        np.testing.assert_allclose(geometry.area, [20.0, 20.0, 20.0])

    def test_periodic_row(self):
        geometry = row_of_columns(3, dx=10.0, dy=2.0, periodic=True)
        np.testing.assert_array_equal(geometry.left, [0, 1, 2])
        np.testing.assert_array_equal(geometry.right, [1, 2, 0])

    def test_too_few_columns(self):
        with pytest.raises(ValueError, match="Invalid number of columns"):
            row_of_columns(1, dx=10.0, dy=2.0)


if __name__ == "__main__":
    pytest.main([__file__])
