"""Matrix-free Hessian-vector product operator interface.

Extended Summary
----------------
``HvpOperator`` is a symmetric linear operator over R^n bound to an
evaluation point. It computes ``H(x) v`` without forming ``H(x)``;
concrete backends decide how (reverse-over-reverse, forward-over-reverse
or reverse-over-forward autodiff, or a user-supplied operator). The base
class owns everything that does not depend on the backend: the product
counter, the power convention, shape checking, dense materialization and
the ``@`` operator.

Routine Listings
----------------
HvpOperator : class
    Abstract symmetric Hessian-vector product operator.

Notes
-----
The operator holds a reference to the current point, never a private
copy. The optimization loop rebinds it explicitly with ``update`` after
every step.

Every call to ``apply`` counts as one product. ``multiply`` realises
``H^power v`` by chaining ``power`` calls to ``apply``.
"""

from abc import ABC, abstractmethod

import jax.numpy as jnp
from beartype.typing import Any, Tuple, Union
from jaxtyping import Array, Float


class HvpOperator(ABC):
    """Abstract Hessian-vector product operator.

    Parameters
    ----------
    x : Float[Array, " n"]
        Evaluation point.
    power : int, optional
        Number of products per logical multiplication. Default is 1.

    Attributes
    ----------
    x : Float[Array, " n"]
        Current evaluation point.
    n_prod : int
        Number of Hessian-vector products computed since the last
        ``reset``.
    power : int
        Exponent applied by ``multiply``.
    """

    is_symmetric: bool = True
    is_hermitian: bool = True

    def __init__(self, x: Float[Array, " n"], power: int = 1):
        if x.ndim != 1:
            raise ValueError(
                f"evaluation point must be a vector, got shape {x.shape}"
            )
        if power < 1:
            raise ValueError(f"power must be at least 1, got {power}")
        self.x: Float[Array, " n"] = x
        self.n_prod: int = 0
        self.power: int = int(power)

    @abstractmethod
    def _hvp(self, v: Float[Array, " n"]) -> Float[Array, " n"]:
        """Compute one Hessian-vector product at ``self.x``."""

    def _rebind(self) -> None:
        """Refresh backend state after ``self.x`` changed."""

    @property
    def dim(self) -> int:
        """Dimension n of the parameter space."""
        return int(self.x.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        """Operator shape (n, n)."""
        return (self.dim, self.dim)

    @property
    def dtype(self) -> Any:
        """Element dtype, that of the evaluation point."""
        return self.x.dtype

    @property
    def T(self) -> "HvpOperator":  # noqa: N802
        """Transpose, the operator itself."""
        return self

    def adjoint(self) -> "HvpOperator":
        """Return the adjoint, the operator itself."""
        return self

    def _check_vector(self, v: Array, name: str = "vector") -> None:
        if v.shape != (self.dim,):
            raise ValueError(
                f"{name} has shape {v.shape}, operator expects ({self.dim},)"
            )

    def apply(self, v: Float[Array, " n"]) -> Float[Array, " n"]:
        """Compute a single product ``H(x) v``.

        Parameters
        ----------
        v : Float[Array, " n"]
            Vector to multiply.

        Returns
        -------
        hv : Float[Array, " n"]
            Hessian-vector product.

        Raises
        ------
        ValueError
            If ``v`` does not have shape ``(n,)``.
        """
        self._check_vector(v)
        self.n_prod += 1
        return self._hvp(v)

    def multiply(self, v: Float[Array, " n"]) -> Float[Array, " n"]:
        """Compute ``H(x)^power v`` by chaining ``apply``."""
        result: Float[Array, " n"] = self.apply(v)
        for _ in range(self.power - 1):
            result = self.apply(result)
        return result

    def update(self, x: Float[Array, " n"]) -> None:
        """Rebind the operator to a new evaluation point.

        Raises
        ------
        ValueError
            If ``x`` does not have shape ``(n,)``.
        """
        self._check_vector(x, "evaluation point")
        self.x = x
        self._rebind()

    def reset(self) -> None:
        """Zero the product counter, keeping the evaluation point."""
        self.n_prod = 0

    def to_dense(self) -> Float[Array, " n n"]:
        """Materialize the operator as a dense symmetric matrix.

        Multiplies every standard basis vector; intended for testing and
        debugging only. The upper triangle is mirrored into the lower.

        Returns
        -------
        matrix : Float[Array, " n n"]
            Dense symmetric matrix of ``H(x)^power``.
        """
        eye: Float[Array, " n n"] = jnp.eye(self.dim, dtype=self.dtype)
        columns: list = [self.multiply(eye[:, i]) for i in range(self.dim)]
        dense: Float[Array, " n n"] = jnp.stack(columns, axis=1)
        return jnp.triu(dense) + jnp.triu(dense, k=1).T

    def __matmul__(
        self, other: Union[Float[Array, " n"], Float[Array, " n k"]]
    ) -> Union[Float[Array, " n"], Float[Array, " n k"]]:
        """Out-of-place product with a vector or a matrix."""
        if other.ndim == 1:
            return self.multiply(other)
        if other.ndim == 2:  # noqa: PLR2004
            if other.shape[0] != self.dim:
                raise ValueError(
                    f"matrix has {other.shape[0]} rows, "
                    f"operator expects {self.dim}"
                )
            return jnp.stack(
                [self.multiply(other[:, j]) for j in range(other.shape[1])],
                axis=1,
            )
        return NotImplemented

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(dim={self.dim}, power={self.power}, "
            f"n_prod={self.n_prod})"
        )
