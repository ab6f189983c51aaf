"""Tests for rsfn.utils.linesearch."""

import chex
import jax.numpy as jnp

from rsfn.utils import backtracking_search


def _half_square(x: jnp.ndarray) -> jnp.ndarray:
    return 0.5 * jnp.sum(x**2)


class TestBacktrackingSearch(chex.TestCase):
    """Tests for backtracking_search."""

    def setUp(self) -> None:
        super().setUp()
        self.x = jnp.array([2.0, 0.0])
        self.fval = _half_square(self.x)

    def test_full_step_accepted(self) -> None:
        """The Newton step on a quadratic is taken whole."""
        x_new = backtracking_search(
            self.x, -self.x, _half_square, self.fval, 0.1
        )
        chex.assert_trees_all_close(x_new, jnp.zeros(2))

    def test_overshoot_is_shrunk(self) -> None:
        """A fourfold overshoot is halved twice to the minimizer."""
        x_new = backtracking_search(
            self.x, -4.0 * self.x, _half_square, self.fval, 0.1
        )
        chex.assert_trees_all_close(x_new, jnp.zeros(2))

    def test_ascent_direction_keeps_point(self) -> None:
        """Without any acceptable step the point is returned unchanged."""
        with self.assertLogs("rsfn.utils.linesearch", level="DEBUG"):
            x_new = backtracking_search(
                self.x, self.x, _half_square, self.fval, 0.1, max_steps=5
            )
        chex.assert_trees_all_close(x_new, self.x)

    def test_zero_regularization_needs_plain_decrease(self) -> None:
        """With reg = 0 any decrease is enough."""
        x_new = backtracking_search(
            self.x, jnp.array([-0.1, 0.0]), _half_square, self.fval, 0.0
        )
        chex.assert_trees_all_close(x_new, jnp.array([1.9, 0.0]))
