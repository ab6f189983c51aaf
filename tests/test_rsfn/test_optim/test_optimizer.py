"""Tests for rsfn.optim.optimizer."""

import chex
import jax
import jax.numpy as jnp
import numpy as np

from rsfn.hvp import ForwardHvpOperator, LinopHvpOperator
from rsfn.optim import SFNOptimizer

A = jnp.array(
    [
        [4.0, 1.0, 0.0],
        [1.0, 3.0, -1.0],
        [0.0, -1.0, 2.0],
    ]
)
B = jnp.array([1.0, -2.0, 0.5])


def _quadratic(x: jnp.ndarray) -> jnp.ndarray:
    return 0.5 * x @ A @ x - B @ x


def _reference_direction(
    opt: SFNOptimizer, hessian: np.ndarray, grads: np.ndarray
) -> np.ndarray:
    reg = opt.config.hessian_lipschitz * np.linalg.norm(grads)
    h_sq = hessian @ hessian
    eye = np.eye(hessian.shape[0])
    total = np.zeros_like(grads)
    for node, weight in zip(
        np.asarray(opt.quad_nodes), np.asarray(opt.quad_weights)
    ):
        total += weight * np.linalg.solve(h_sq + (node + reg) * eye, grads)
    return -total


class TestSFNOptimizerSetup(chex.TestCase):
    """Tests for optimizer construction."""

    def test_owns_quadrature_and_workspace(self) -> None:
        """The quadrature table sizes the Krylov workspace."""
        opt = SFNOptimizer(4, quad_order=12, tol=1e-5)
        chex.assert_shape(opt.quad_nodes, (12,))
        chex.assert_shape(opt.quad_weights, (12,))
        chex.assert_shape(opt.krylov_solver.x, (12, 4))
        chex.assert_equal(opt.config.tol, 1e-5)
        chex.assert_equal(opt.config.quad_order, 12)

    def test_invalid_settings_raise(self) -> None:
        """Dimension and configuration are validated."""
        with self.assertRaises(ValueError):
            SFNOptimizer(0)
        with self.assertRaises(ValueError):
            SFNOptimizer(3, hessian_lipschitz=-1.0)
        with self.assertRaises(ValueError):
            SFNOptimizer(3, quad_order=0)


class TestSFNStep(chex.TestCase):
    """Tests for SFNOptimizer.direction and SFNOptimizer.step."""

    def setUp(self) -> None:
        super().setUp()
        self.opt = SFNOptimizer(3, hessian_lipschitz=0.5)
        self.x = jnp.array([0.5, 0.5, -1.0])
        self.fval, self.grads = jax.value_and_grad(_quadratic)(self.x)
        self.g_norm = jnp.linalg.norm(self.grads)

    def test_direction_matches_dense_quadrature(self) -> None:
        """The shared-basis solve reproduces the dense weighted sum."""
        hvp = ForwardHvpOperator(_quadratic, self.x)
        p = self.opt.direction(self.grads, hvp, self.g_norm)
        expected = _reference_direction(
            self.opt, np.asarray(A), np.asarray(self.grads)
        )
        chex.assert_trees_all_close(p, jnp.asarray(expected), rtol=1e-6)
        assert bool(jnp.all(self.opt.last_solve.converged))

    def test_each_lanczos_step_costs_two_products(self) -> None:
        """Products with H^2 are two Hessian-vector products."""
        hvp = ForwardHvpOperator(_quadratic, self.x)
        self.opt.direction(self.grads, hvp, self.g_norm)
        steps = int(self.opt.last_solve.iterations)
        assert steps >= 1
        chex.assert_equal(hvp.n_prod, 2 * steps)

    def test_krylov_order_caps_products(self) -> None:
        """krylov_order bounds the Lanczos steps of a solve."""
        opt = SFNOptimizer(3, krylov_order=1)
        hvp = ForwardHvpOperator(_quadratic, self.x)
        opt.direction(self.grads, hvp, self.g_norm)
        chex.assert_equal(int(opt.last_solve.iterations), 1)
        chex.assert_equal(hvp.n_prod, 2)

    def test_negative_curvature_is_not_attracting(self) -> None:
        """The step uses |H|, so a saddle direction is still descended."""
        hessian = jnp.diag(jnp.array([-2.0, 2.0]))
        opt = SFNOptimizer(2)
        hvp = LinopHvpOperator(lambda x: hessian, jnp.zeros(2))
        grads = jnp.array([1.0, 1.0])
        p = opt.direction(grads, hvp, jnp.linalg.norm(grads))
        chex.assert_trees_all_close(p[0], p[1], rtol=1e-8)
        assert float(p[0]) < 0.0

    def test_step_without_linesearch(self) -> None:
        """The plain step is x plus the direction."""
        hvp = ForwardHvpOperator(_quadratic, self.x)
        x_new = self.opt.step(
            self.x, _quadratic, self.grads, hvp, self.fval, self.g_norm
        )
        expected = self.x + jnp.asarray(
            _reference_direction(
                self.opt, np.asarray(A), np.asarray(self.grads)
            )
        )
        chex.assert_trees_all_close(x_new, expected, rtol=1e-6)
        assert float(_quadratic(x_new)) < float(self.fval)

    def test_step_with_linesearch_decreases(self) -> None:
        """The searched step never increases the objective."""
        hvp = ForwardHvpOperator(_quadratic, self.x)
        x_new = self.opt.step(
            self.x,
            _quadratic,
            self.grads,
            hvp,
            self.fval,
            self.g_norm,
            linesearch=True,
        )
        assert float(_quadratic(x_new)) < float(self.fval)

    def test_step_shape_mismatch_raises(self) -> None:
        """Points of the wrong length are rejected."""
        hvp = ForwardHvpOperator(_quadratic, self.x)
        with self.assertRaises(ValueError):
            self.opt.step(
                jnp.ones(4),
                _quadratic,
                jnp.ones(4),
                hvp,
                self.fval,
                self.g_norm,
            )
