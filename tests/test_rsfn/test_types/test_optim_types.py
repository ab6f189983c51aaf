"""Tests for rsfn.types.optim_types."""

import chex
import jax
import jax.numpy as jnp
from absl.testing import parameterized

from rsfn.types import (
    FLOAT64_EPS,
    SFNStats,
    SFNStatus,
    ShiftSolveResult,
    make_sfn_config,
    make_sfn_stats,
)


class TestMakeSfnConfig(chex.TestCase, parameterized.TestCase):
    """Test the make_sfn_config factory function."""

    def test_defaults(self) -> None:
        """Default configuration matches the documented values."""
        config = make_sfn_config()
        chex.assert_equal(config.hessian_lipschitz, 1.0)
        chex.assert_equal(config.reg_floor, FLOAT64_EPS)
        chex.assert_equal(config.quad_order, 20)
        chex.assert_equal(config.krylov_order, 0)
        chex.assert_equal(config.tol, 1e-6)

    def test_jax_scalars_become_python(self) -> None:
        """Array scalars are stored as Python numbers."""
        config = make_sfn_config(
            hessian_lipschitz=jnp.array(2.0),
            quad_order=jnp.array(8),
            tol=jnp.array(1e-4),
        )
        chex.assert_equal(type(config.hessian_lipschitz), float)
        chex.assert_equal(type(config.quad_order), int)
        chex.assert_equal(config.quad_order, 8)

    @parameterized.named_parameters(
        ("zero_lipschitz", {"hessian_lipschitz": 0.0}),
        ("negative_lipschitz", {"hessian_lipschitz": -1.0}),
        ("zero_floor", {"reg_floor": 0.0}),
        ("zero_quad_order", {"quad_order": 0}),
        ("negative_krylov_order", {"krylov_order": -1}),
        ("zero_tol", {"tol": 0.0}),
    )
    def test_invalid_values_raise(self, kwargs: dict) -> None:
        """Out-of-range settings raise ValueError."""
        with self.assertRaises(ValueError):
            make_sfn_config(**kwargs)


class TestMakeSfnStats(chex.TestCase):
    """Test the make_sfn_stats factory function."""

    def test_fields_are_arrays(self) -> None:
        """Recorded lists are converted to float64 and int arrays."""
        stats = make_sfn_stats(
            f_seq=[3.0, 1.0, 0.5],
            g_seq=[2.0, 1.0, 1e-7],
            converged=True,
            iterations=2,
            hvp_evals=12,
            run_time=0.25,
            status=SFNStatus.CONVERGED,
            krylov_converged=[1.0, 0.5],
            krylov_iterations=[3, 3],
        )
        chex.assert_shape(stats.f_seq, (3,))
        chex.assert_type(stats.f_seq, jnp.float64)
        chex.assert_type(stats.iterations, jnp.int32)
        chex.assert_trees_all_equal(stats.converged, jnp.array(True))
        chex.assert_trees_all_close(
            stats.krylov_converged, jnp.array([1.0, 0.5])
        )
        chex.assert_equal(stats.status, SFNStatus.CONVERGED)

    def test_without_krylov_diagnostics(self) -> None:
        """Missing per-step diagnostics give empty arrays."""
        stats = make_sfn_stats(
            f_seq=[1.0],
            g_seq=[0.0],
            converged=True,
            iterations=0,
            hvp_evals=0,
            run_time=0.0,
            status=SFNStatus.CONVERGED,
        )
        chex.assert_shape(stats.krylov_converged, (0,))
        chex.assert_shape(stats.krylov_iterations, (0,))

    def test_length_mismatch_raises(self) -> None:
        """Trajectories of different lengths are rejected."""
        with self.assertRaises(ValueError):
            make_sfn_stats(
                f_seq=[1.0, 2.0],
                g_seq=[1.0],
                converged=False,
                iterations=1,
                hvp_evals=0,
                run_time=0.0,
                status=SFNStatus.EXHAUSTED,
            )

    def test_krylov_length_must_match_iterations(self) -> None:
        """Per-step diagnostics need one entry per step."""
        with self.assertRaises(ValueError):
            make_sfn_stats(
                f_seq=[1.0, 2.0, 3.0],
                g_seq=[1.0, 1.0, 1.0],
                converged=False,
                iterations=2,
                hvp_evals=4,
                run_time=0.0,
                status=SFNStatus.EXHAUSTED,
                krylov_converged=[1.0],
                krylov_iterations=[1],
            )

    def test_pytree_round_trip_keeps_status(self) -> None:
        """Status survives flattening as auxiliary data."""
        stats = make_sfn_stats(
            f_seq=[1.0, 0.0],
            g_seq=[1.0, 0.0],
            converged=False,
            iterations=1,
            hvp_evals=2,
            run_time=1.5,
            status=SFNStatus.TIMED_OUT,
        )
        leaves, treedef = jax.tree_util.tree_flatten(stats)
        chex.assert_equal(len(leaves), 8)
        rebuilt = jax.tree_util.tree_unflatten(treedef, leaves)
        chex.assert_equal(type(rebuilt), SFNStats)
        chex.assert_equal(rebuilt.status, SFNStatus.TIMED_OUT)


class TestShiftSolveResult(chex.TestCase):
    """Test the ShiftSolveResult PyTree."""

    def test_tree_map_preserves_status(self) -> None:
        """Mapping over leaves leaves the status string alone."""
        result = ShiftSolveResult(
            solutions=jnp.ones((2, 3)),
            residual_norms=jnp.zeros(2),
            converged=jnp.array([True, True]),
            indefinite=jnp.array([False, False]),
            iterations=jnp.array(1, dtype=jnp.int32),
            status="done",
        )
        doubled = jax.tree_util.tree_map(lambda leaf: leaf * 2, result)
        chex.assert_trees_all_close(doubled.solutions, 2.0 * jnp.ones((2, 3)))
        chex.assert_equal(doubled.status, "done")
