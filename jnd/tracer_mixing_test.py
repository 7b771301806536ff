"""
Tests for the TracerMixing orchestration class.
"""

import logging

import jax.numpy as jnp
import numpy as np
import pytest

from jnd.eos.equation_of_state import LinearEOS
from jnd.logging_config import setup_logging
from jnd.parameters import Parameters
from jnd.tracer_mixing import TracerMixing, validate_geometry
from jnd.neutral_diffusion.neutral_diffusion import row_of_columns
from jnd.neutral_diffusion.neutral_diffusion_types import (
    FaceGeometry, NeutralDiffusionParameters, NeutralDiffusionState
)


def two_column_state():
    return NeutralDiffusionState(
        temperature=jnp.zeros((2, 3)),
        salinity=jnp.array([[25.0, 27.5, 31.25], [26.25, 28.75, 32.5]]),
        thickness=jnp.full((2, 3), 10.0),
        tracers=jnp.array([[10.0, 20.0, 30.0], [0.0, 0.0, 0.0]])[..., None]
    )


def parameters(**kwargs):
    params = Parameters.default()
    return params.__class__(
        neutral_diffusion=NeutralDiffusionParameters.default(**kwargs),
        mixed_layer=params.mixed_layer
    )


class TestConfiguration:

    def test_defaults(self):
        mixing = TracerMixing(row_of_columns(2, dx=1000.0, dy=1000.0))
        assert isinstance(mixing.parameters, Parameters)
        assert isinstance(mixing.eos, LinearEOS)

    def test_face_index_out_of_range(self):
        geometry = FaceGeometry(
            left=jnp.array([0]), right=jnp.array([2]),
            dx=jnp.ones(1), dy=jnp.ones(1), area=jnp.ones(2)
        )
        with pytest.raises(ValueError, match="out of range"):
            TracerMixing(geometry)

    def test_self_connection(self):
        geometry = FaceGeometry(
            left=jnp.array([1]), right=jnp.array([1]),
            dx=jnp.ones(1), dy=jnp.ones(1), area=jnp.ones(2)
        )
        with pytest.raises(ValueError, match="itself"):
            validate_geometry(geometry, 2)

    def test_face_array_shapes(self):
        geometry = FaceGeometry(
            left=jnp.array([0]), right=jnp.array([1]),
            dx=jnp.ones(2), dy=jnp.ones(1), area=jnp.ones(2)
        )
        with pytest.raises(ValueError, match="dx"):
            TracerMixing(geometry)

    def test_negative_diffusivity(self):
        with pytest.raises(ValueError, match="diffusivity"):
            TracerMixing(row_of_columns(2, dx=1000.0, dy=1000.0), diffusivity=-1.0)

    def test_diffusivity_shape(self):
        with pytest.raises(ValueError, match="diffusivity shape"):
            TracerMixing(row_of_columns(3, dx=1000.0, dy=1000.0), diffusivity=jnp.ones(3))

    def test_state_shape_checked(self):
        mixing = TracerMixing(row_of_columns(3, dx=1000.0, dy=1000.0))
        with pytest.raises(ValueError, match="thickness"):
            mixing.step(two_column_state(), 1.0)

    def test_configuration_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="jnd"):
            TracerMixing(row_of_columns(2, dx=1000.0, dy=1000.0))
        assert "reconstruction=linear" in caplog.text


class TestStep:

    def test_step_mixes_tracer(self):
        mixing = TracerMixing(row_of_columns(2, dx=1000.0, dy=1000.0),
                              parameters=parameters(reconstruction='constant'),
                              diffusivity=1.0)
        new_state, diagnostics = mixing.step(two_column_state(), 1.0)
        assert new_state.tracers[1, 0, 0] > 0.0
        assert new_state.tracers[0, 1, 0] < 20.0
        assert diagnostics.root_finds[0] == 2

    def test_run(self):
        mixing = TracerMixing(row_of_columns(2, dx=1000.0, dy=1000.0),
                              parameters=parameters(reconstruction='constant'),
                              diffusivity=1.0)
        one_state, _ = mixing.step(two_column_state(), 1.0)
        three_state, _ = mixing.run(two_column_state(), 1.0, 3)
        assert three_state.tracers[1, 0, 0] > one_state.tracers[1, 0, 0]

    def test_run_needs_steps(self):
        mixing = TracerMixing(row_of_columns(2, dx=1000.0, dy=1000.0))
        with pytest.raises(ValueError, match="number of steps"):
            mixing.run(two_column_state(), 1.0, 0)

    def test_root_find_failure_warning(self, caplog):
        mixing = TracerMixing(
            row_of_columns(2, dx=1000.0, dy=1000.0),
            parameters=parameters(reconstruction='constant', root_method='bisection',
                                  max_iterations=1, tolerance=1e-9),
            diffusivity=1.0
        )
        with caplog.at_level(logging.WARNING, logger="jnd"):
            _, diagnostics = mixing.step(two_column_state(), 1.0)
        assert int(diagnostics.root_find_failures[0]) == 1
        assert "did not converge" in caplog.text

    def test_mixed_layer_provider(self):
        calls = []

        def provider(state, eos):
            calls.append(state.thickness.shape)
            return jnp.full((state.thickness.shape[0],), 15.0)

        mixing = TracerMixing(row_of_columns(2, dx=1000.0, dy=1000.0),
                              parameters=parameters(boundary_layer=True),
                              mixed_layer_depth=provider, diffusivity=1.0)
        new_state, diagnostics = mixing.step(two_column_state(), 1.0)

        assert calls == [(2, 3)]
        np.testing.assert_array_equal(diagnostics.boundary_layer_levels, [2, 2])
        assert new_state.boundary_layer_depth is None

    def test_default_mixed_layer_depth(self):
        mixing = TracerMixing(row_of_columns(2, dx=1000.0, dy=1000.0),
                              parameters=parameters(boundary_layer=True), diffusivity=1.0)
        new_state, diagnostics = mixing.step(two_column_state(), 1.0)

        # The 2 kg/m³ jump below the surface layer puts the base just under its centre
        np.testing.assert_array_equal(diagnostics.boundary_layer_levels, [1, 1])
        assert jnp.all(jnp.isfinite(new_state.tracers))

    def test_supplied_boundary_layer_depth_kept(self):
        mixing = TracerMixing(row_of_columns(2, dx=1000.0, dy=1000.0),
                              parameters=parameters(boundary_layer=True), diffusivity=1.0)
        state = two_column_state()._replace(boundary_layer_depth=jnp.array([5.0, 25.0]))
        new_state, diagnostics = mixing.step(state, 1.0)
        np.testing.assert_array_equal(diagnostics.boundary_layer_levels, [1, 3])
        np.testing.assert_allclose(new_state.boundary_layer_depth, [5.0, 25.0])


class TestLogging:

    def test_setup_logging(self, tmp_path):
        log_file = tmp_path / "mixing.log"
        logger = setup_logging(logging.DEBUG, str(log_file))
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()

        assert logger.name == "jnd"
        assert len(logger.handlers) == 2
        assert "hello" in log_file.read_text()

        # A second call replaces the handlers
        logger = setup_logging()
        assert len(logger.handlers) == 1


if __name__ == "__main__":
    pytest.main([__file__])
