"""Hessian operator supplied by the caller.

Extended Summary
----------------
For objectives whose Hessian action is known in closed form, or already
available as a dense matrix, the caller passes a generator ``H(x)``
returning either a matrix-vector callable or an ``(n, n)`` array. The
generator is evaluated again on every ``update``.

Routine Listings
----------------
LinopHvpOperator : class
    Operator backed by a user generator of Hessian operators.
"""

import jax.numpy as jnp
from beartype.typing import Callable, Union
from jaxtyping import Array, Float

from .base import HvpOperator

HessianLike = Union[
    Callable[[Float[Array, " n"]], Float[Array, " n"]],
    Float[Array, " n n"],
]


class LinopHvpOperator(HvpOperator):
    """Hessian-vector products from an explicit operator generator.

    Parameters
    ----------
    hessian : Callable[[Float[Array, " n"]], HessianLike]
        Generator mapping a point to its Hessian, as a matvec callable
        or a dense matrix.
    x : Float[Array, " n"]
        Initial evaluation point.
    power : int, optional
        Products per multiplication. Default is 1.

    Raises
    ------
    ValueError
        If a dense Hessian does not have shape ``(n, n)``.
    """

    def __init__(
        self,
        hessian: Callable[[Float[Array, " n"]], HessianLike],
        x: Float[Array, " n"],
        power: int = 1,
    ):
        super().__init__(x, power)
        self.hessian = hessian
        self._rebind()

    def _rebind(self) -> None:
        operator: HessianLike = self.hessian(self.x)
        if callable(operator):
            self._matvec = operator
            return
        matrix: Float[Array, " n n"] = jnp.asarray(operator)
        if matrix.shape != self.shape:
            raise ValueError(
                f"Hessian has shape {matrix.shape}, expected {self.shape}"
            )
        self._matvec = lambda v: matrix @ v

    def _hvp(self, v: Float[Array, " n"]) -> Float[Array, " n"]:
        return jnp.asarray(self._matvec(v))
