"""Tests for rsfn.optim.minimize."""

import time

import chex
import jax.numpy as jnp
import numpy as np
from absl.testing import parameterized

from rsfn.hvp import ForwardHvpOperator
from rsfn.optim import SFNOptimizer, iterate, minimize
from rsfn.types import SFNStatus

A = jnp.array(
    [
        [4.0, 1.0, 0.0],
        [1.0, 3.0, -1.0],
        [0.0, -1.0, 2.0],
    ]
)
B = jnp.array([1.0, -2.0, 0.5])
X_STAR = jnp.linalg.solve(A, B)


def _quadratic(x: jnp.ndarray) -> jnp.ndarray:
    return 0.5 * x @ A @ x - B @ x


def _quadratic_fg(x: jnp.ndarray):
    return _quadratic(x), A @ x - B


def _saddle(x: jnp.ndarray) -> jnp.ndarray:
    return x[0] ** 2 - x[1] ** 2 + 0.25 * x[1] ** 4


class TestMinimizeConvergence(chex.TestCase, parameterized.TestCase):
    """Convergence of the automatic-differentiation entry point."""

    @parameterized.named_parameters(
        ("reverse", "reverse", False),
        ("forward", "forward", False),
        ("mixed", "mixed", False),
        ("reverse_linesearch", "reverse", True),
    )
    def test_quadratic_reaches_minimizer(
        self, backend: str, linesearch: bool
    ) -> None:
        """A strongly convex quadratic converges to A^-1 b."""
        opt = SFNOptimizer(3, tol=1e-8)
        x, stats = minimize(
            opt,
            jnp.zeros(3),
            _quadratic,
            itmax=100,
            linesearch=linesearch,
            backend=backend,
        )
        assert bool(stats.converged)
        chex.assert_equal(stats.status, SFNStatus.CONVERGED)
        chex.assert_trees_all_close(x, X_STAR, atol=1e-6)
        assert float(stats.g_seq[-1]) <= 1e-8
        chex.assert_shape(stats.f_seq, (int(stats.iterations) + 1,))
        chex.assert_shape(stats.krylov_iterations, (int(stats.iterations),))
        assert int(stats.hvp_evals) > 0
        assert float(stats.run_time) >= 0.0

    def test_escapes_saddle_point(self) -> None:
        """Starting next to a saddle the iterate reaches a minimum."""
        opt = SFNOptimizer(2, tol=1e-8)
        x, stats = minimize(opt, jnp.array([0.5, 1e-3]), _saddle, itmax=100)
        assert bool(stats.converged)
        chex.assert_trees_all_close(
            jnp.abs(x), jnp.array([0.0, jnp.sqrt(2.0)]), atol=1e-6
        )
        chex.assert_trees_all_close(_saddle(x), -1.0, atol=1e-10)

    def test_start_at_minimum(self) -> None:
        """A zero gradient stops before any step."""
        opt = SFNOptimizer(2)
        x0 = jnp.zeros(2)
        x, stats = minimize(opt, x0, lambda x: jnp.sum(x**2))
        chex.assert_equal(int(stats.iterations), 0)
        chex.assert_equal(int(stats.hvp_evals), 0)
        chex.assert_shape(stats.f_seq, (1,))
        chex.assert_trees_all_close(x, x0)
        assert bool(stats.converged)

    def test_input_is_not_modified(self) -> None:
        """The starting point array is left untouched."""
        opt = SFNOptimizer(3)
        x0 = jnp.array([1.0, 1.0, 1.0])
        minimize(opt, x0, _quadratic, itmax=3)
        chex.assert_trees_all_close(x0, jnp.ones(3))


class TestMinimizeExplicit(chex.TestCase, parameterized.TestCase):
    """Convergence with caller-supplied gradient and Hessian."""

    @parameterized.named_parameters(
        ("dense", False, False),
        ("matvec", True, False),
        ("dense_linesearch", False, True),
    )
    def test_quadratic_reaches_minimizer(
        self, as_matvec: bool, linesearch: bool
    ) -> None:
        """The explicit entry point converges like the AD one."""

        def hessian(x: jnp.ndarray):
            if as_matvec:
                return lambda v: A @ v
            return A

        opt = SFNOptimizer(3, tol=1e-8)
        x, stats = minimize(
            opt,
            jnp.zeros(3),
            _quadratic,
            _quadratic_fg,
            hessian,
            itmax=100,
            linesearch=linesearch,
        )
        assert bool(stats.converged)
        chex.assert_trees_all_close(x, X_STAR, atol=1e-6)

    @parameterized.named_parameters(
        ("dense", False),
        ("matvec", True),
    )
    def test_numpy_callbacks(self, as_matvec: bool) -> None:
        """Gradients and Hessians returned as numpy arrays are accepted."""
        a = np.asarray(A)
        b = np.asarray(B)

        def fg(x: jnp.ndarray):
            x = np.asarray(x)
            return float(0.5 * x @ a @ x - b @ x), a @ x - b

        def hessian(x: jnp.ndarray):
            if as_matvec:
                return lambda v: a @ np.asarray(v)
            return a

        opt = SFNOptimizer(3, tol=1e-8)
        x, stats = minimize(
            opt, np.zeros(3), _quadratic, fg, hessian, itmax=100
        )
        assert bool(stats.converged)
        chex.assert_type(x, jnp.float64)
        chex.assert_trees_all_close(x, X_STAR, atol=1e-6)

    def test_fg_without_hvp_raises(self) -> None:
        """fg and hvp must be supplied together."""
        opt = SFNOptimizer(3)
        with self.assertRaises(ValueError):
            minimize(opt, jnp.zeros(3), _quadratic, _quadratic_fg)

    def test_wrong_start_length_raises(self) -> None:
        """Starting points must match the optimizer dimension."""
        opt = SFNOptimizer(3)
        with self.assertRaises(ValueError):
            minimize(opt, jnp.zeros(4), _quadratic)

    def test_unknown_backend_raises(self) -> None:
        """Unknown backends are rejected before iterating."""
        opt = SFNOptimizer(3)
        with self.assertRaises(ValueError):
            minimize(opt, jnp.zeros(3), _quadratic, backend="symbolic")


class TestMinimizeBudgets(chex.TestCase):
    """Step and time budgets."""

    def test_itmax_on_linear_objective(self) -> None:
        """A linear objective uses exactly itmax steps and itmax+1 evals."""
        opt = SFNOptimizer(4)
        x, stats = minimize(opt, jnp.zeros(4), jnp.sum, itmax=5)
        assert not bool(stats.converged)
        chex.assert_equal(stats.status, SFNStatus.EXHAUSTED)
        chex.assert_equal(int(stats.iterations), 5)
        chex.assert_shape(stats.f_seq, (6,))
        chex.assert_shape(stats.g_seq, (6,))
        chex.assert_equal(int(stats.hvp_evals), 10)
        assert bool(jnp.all(jnp.diff(stats.f_seq) < 0.0))
        assert bool(jnp.all(x < 0.0))

    def test_itmax_zero_takes_no_step(self) -> None:
        """With itmax = 0 only the starting point is evaluated."""
        opt = SFNOptimizer(3)
        x, stats = minimize(opt, jnp.ones(3), _quadratic, itmax=0)
        chex.assert_equal(int(stats.iterations), 0)
        chex.assert_shape(stats.f_seq, (1,))
        chex.assert_equal(stats.status, SFNStatus.EXHAUSTED)
        chex.assert_trees_all_close(x, jnp.ones(3))

    def test_time_limit(self) -> None:
        """A run slower than its time limit stops unconverged."""
        time_limit = 0.02

        def slow_fg(x: jnp.ndarray):
            time.sleep(0.05)
            return _quadratic_fg(x)

        opt = SFNOptimizer(3)
        _, stats = minimize(
            opt,
            jnp.zeros(3),
            _quadratic,
            slow_fg,
            lambda x: A,
            time_limit=time_limit,
        )
        assert not bool(stats.converged)
        chex.assert_equal(stats.status, SFNStatus.TIMED_OUT)
        assert float(stats.run_time) >= time_limit
        chex.assert_equal(int(stats.iterations), 0)

    def test_termination_is_logged(self) -> None:
        """The terminal state is reported at info level."""
        opt = SFNOptimizer(3)
        with self.assertLogs("rsfn.optim.minimize", level="INFO") as cm:
            minimize(opt, jnp.zeros(3), _quadratic, itmax=2)
        assert any("exhausted" in line for line in cm.output)


class TestMinimizePrecision(chex.TestCase):
    """Quadrature truncation and parameter dtype."""

    def test_truncated_quadrature_converges(self) -> None:
        """A quadrature order past the underflow limit still converges."""
        opt = SFNOptimizer(2, quad_order=200, tol=1e-8)
        assert 100 < opt.quadrature.achieved_order < 200
        x, stats = minimize(
            opt, jnp.array([1.0, -2.0]), lambda x: jnp.sum(x**2), itmax=50
        )
        assert bool(stats.converged)
        assert int(stats.hvp_evals) > 0
        chex.assert_trees_all_close(x, jnp.zeros(2), atol=1e-6)

    def test_float32_iterate_keeps_dtype(self) -> None:
        """A float32 optimizer returns a float32 iterate."""
        opt = SFNOptimizer(3, jnp.float32, tol=1e-3)
        x, stats = minimize(opt, jnp.zeros(3), _quadratic, itmax=50)
        chex.assert_type(x, jnp.float32)
        assert bool(stats.converged)
        chex.assert_trees_all_close(
            x, X_STAR.astype(jnp.float32), atol=1e-2
        )


class TestIterate(chex.TestCase):
    """Tests for the loop over a prebuilt operator."""

    def test_resets_and_rebinds_operator(self) -> None:
        """The operator counter covers only this run and ends at x."""
        hvp = ForwardHvpOperator(_quadratic, jnp.ones(3))
        hvp.apply(jnp.ones(3))
        opt = SFNOptimizer(3, tol=1e-8)
        x, stats = iterate(
            opt,
            jnp.zeros(3),
            _quadratic,
            _quadratic_fg,
            hvp,
            itmax=50,
        )
        assert bool(stats.converged)
        chex.assert_equal(int(stats.hvp_evals), hvp.n_prod)
        assert hvp.x is x
