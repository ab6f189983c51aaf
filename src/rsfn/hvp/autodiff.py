"""Hessian-vector products by automatic differentiation.

Extended Summary
----------------
Three compositions of JAX transforms give ``H(x) v`` for a scalar
objective without forming ``H``:

- reverse-over-reverse: the pullback of ``∇f`` at ``x``, ``vjp(grad f)``
- forward-over-reverse: a directional derivative of the gradient,
  ``jvp(grad f)``
- reverse-over-forward: the gradient of a directional derivative,
  ``grad(x -> jvp(f, x, v))``

All three agree to rounding for twice-differentiable ``f``; they differ
in memory and compile behaviour.

Routine Listings
----------------
ReverseHvpOperator : class
    Reverse-over-reverse operator keeping a pullback per point.
ForwardHvpOperator : class
    Forward-over-reverse operator with a compiled product.
MixedHvpOperator : class
    Reverse-over-forward operator with a compiled product.
make_hvp_operator : function
    Select an operator class by backend name.
make_hvp_fn : function
    Uncompiled product function with pass-through data arguments.

Notes
-----
The reverse operator records the pullback of the gradient once per
``update`` and replays it for every product at that point, at the price
of keeping the linearization alive. The forward and mixed operators
compile a function of ``(x, v)`` once and reuse it across updates.
``make_hvp_fn`` exposes the same compositions for objectives that take
data arguments after ``x``.
"""

import jax
import jax.numpy as jnp
from beartype.typing import Any, Callable, Dict, Type
from jaxtyping import Array, Float

from rsfn.types import ScalarNumeric

from .base import HvpOperator


def make_hvp_fn(
    f: Callable[..., ScalarNumeric],
    backend: str = "reverse",
) -> Callable[..., Float[Array, " n"]]:
    """Build an uncompiled ``hvp(x, v, *args)`` for ``f(x, *args)``.

    Extra positional arguments are passed through to ``f`` unchanged,
    so a single ``jax.jit`` of the result serves every data batch of
    the same shape.

    Parameters
    ----------
    f : Callable[..., ScalarNumeric]
        Scalar objective whose first argument is differentiated.
    backend : str, optional
        One of ``"reverse"``, ``"forward"`` or ``"mixed"``.
        Default is ``"reverse"``.

    Returns
    -------
    hvp : Callable[..., Float[Array, " n"]]
        Function returning ``H(x) v``.

    Raises
    ------
    ValueError
        If ``backend`` is not a known name.
    """
    _check_backend(backend)
    grad_fn = jax.grad(f)

    if backend == "reverse":

        def hvp(
            x: Float[Array, " n"], v: Float[Array, " n"], *args: Any
        ) -> Float[Array, " n"]:
            _, pullback = jax.vjp(lambda y: grad_fn(y, *args), x)
            (hv,) = pullback(v)
            return hv

    elif backend == "forward":

        def hvp(
            x: Float[Array, " n"], v: Float[Array, " n"], *args: Any
        ) -> Float[Array, " n"]:
            _, hv = jax.jvp(lambda y: grad_fn(y, *args), (x,), (v,))
            return hv

    else:

        def hvp(
            x: Float[Array, " n"], v: Float[Array, " n"], *args: Any
        ) -> Float[Array, " n"]:
            def directional(y: Float[Array, " n"]) -> Float[Array, " "]:
                _, df = jax.jvp(lambda z: f(z, *args), (y,), (v,))
                return jnp.asarray(df)

            return jax.grad(directional)(x)

    return hvp


class ReverseHvpOperator(HvpOperator):
    """Reverse-over-reverse Hessian-vector product operator.

    Parameters
    ----------
    f : Callable[[Float[Array, " n"]], ScalarNumeric]
        Scalar objective.
    x : Float[Array, " n"]
        Initial evaluation point.
    power : int, optional
        Products per multiplication. Default is 1.

    Attributes
    ----------
    grad : Float[Array, " n"]
        Gradient of ``f`` at ``x``, a by-product of the pullback.
    """

    def __init__(
        self,
        f: Callable[[Float[Array, " n"]], ScalarNumeric],
        x: Float[Array, " n"],
        power: int = 1,
    ):
        super().__init__(x, power)
        self.f = f
        self._grad_fn = jax.grad(f)
        self._rebind()

    def _rebind(self) -> None:
        self.grad, self._pullback = jax.vjp(self._grad_fn, self.x)

    def _hvp(self, v: Float[Array, " n"]) -> Float[Array, " n"]:
        (hv,) = self._pullback(v)
        return hv


class ForwardHvpOperator(HvpOperator):
    """Forward-over-reverse Hessian-vector product operator.

    Parameters
    ----------
    f : Callable[[Float[Array, " n"]], ScalarNumeric]
        Scalar objective.
    x : Float[Array, " n"]
        Initial evaluation point.
    power : int, optional
        Products per multiplication. Default is 1.
    """

    def __init__(
        self,
        f: Callable[[Float[Array, " n"]], ScalarNumeric],
        x: Float[Array, " n"],
        power: int = 1,
    ):
        super().__init__(x, power)
        self.f = f
        self._compiled = jax.jit(make_hvp_fn(f, "forward"))

    def _hvp(self, v: Float[Array, " n"]) -> Float[Array, " n"]:
        return self._compiled(self.x, v)


class MixedHvpOperator(HvpOperator):
    """Reverse-over-forward Hessian-vector product operator.

    Parameters
    ----------
    f : Callable[[Float[Array, " n"]], ScalarNumeric]
        Scalar objective.
    x : Float[Array, " n"]
        Initial evaluation point.
    power : int, optional
        Products per multiplication. Default is 1.
    """

    def __init__(
        self,
        f: Callable[[Float[Array, " n"]], ScalarNumeric],
        x: Float[Array, " n"],
        power: int = 1,
    ):
        super().__init__(x, power)
        self.f = f
        self._compiled = jax.jit(make_hvp_fn(f, "mixed"))

    def _hvp(self, v: Float[Array, " n"]) -> Float[Array, " n"]:
        return self._compiled(self.x, v)


HVP_BACKENDS: Dict[str, Type[HvpOperator]] = {
    "reverse": ReverseHvpOperator,
    "forward": ForwardHvpOperator,
    "mixed": MixedHvpOperator,
}


def _check_backend(backend: str) -> None:
    if backend not in HVP_BACKENDS:
        raise ValueError(
            f"Unknown HVP backend: {backend!r}. "
            f"Choose from {sorted(HVP_BACKENDS)}"
        )


def make_hvp_operator(
    f: Callable[[Float[Array, " n"]], ScalarNumeric],
    x: Float[Array, " n"],
    backend: str = "reverse",
    power: int = 1,
) -> HvpOperator:
    """Create an automatic-differentiation HVP operator.

    Parameters
    ----------
    f : Callable[[Float[Array, " n"]], ScalarNumeric]
        Scalar objective.
    x : Float[Array, " n"]
        Initial evaluation point.
    backend : str, optional
        One of ``"reverse"``, ``"forward"`` or ``"mixed"``.
        Default is ``"reverse"``.
    power : int, optional
        Products per multiplication. Default is 1.

    Returns
    -------
    HvpOperator
        Operator bound to ``x``.

    Raises
    ------
    ValueError
        If ``backend`` is not a known name.
    """
    _check_backend(backend)
    return HVP_BACKENDS[backend](f, x, power=power)
