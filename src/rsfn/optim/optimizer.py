"""Regularized saddle-free Newton update.

Extended Summary
----------------
The SFN direction is

    p = -(H^2 + λI)^{-1/2} g,    λ = M ||g||

which follows the Newton direction in directions of positive curvature
and reverses it in directions of negative curvature, so saddle points
repel the iterate. The inverse square root is approximated by a
Gauss-Laguerre quadrature of the integral representation, giving a sum
of shifted solves

    p ≈ -Σ_i w_i (H^2 + (u_i^2 + λ) I)^{-1} g

that are solved together on one Lanczos basis of ``H^2``.

Routine Listings
----------------
SFNOptimizer : class
    Holds the quadrature table and Krylov workspace and takes steps.

Notes
-----
Each product with ``H^2`` costs two Hessian-vector products. The
quadrature table is built once per optimizer; the number of shifts is
the achieved quadrature order, which may be below the requested one.
The quadrature table and the shifts are always float64. Directions are
cast back to the optimizer dtype, so iterates keep that dtype.

References
----------
.. [1] Dauphin et al., "Identifying and attacking the saddle point
       problem in high-dimensional non-convex optimization", NIPS 2014
"""

import logging

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any, Callable
from jaxtyping import Array, Float, jaxtyped

from rsfn.hvp import HvpOperator
from rsfn.types import (
    FLOAT64_EPS,
    QuadratureTable,
    ScalarFloat,
    ScalarNumeric,
    SFNConfig,
    ShiftSolveResult,
    make_sfn_config,
)
from rsfn.utils import (
    CgLanczosShiftSolver,
    backtracking_search,
    sfn_quadrature,
)

logger = logging.getLogger(__name__)


class SFNOptimizer:
    """Saddle-free Newton optimizer with cubic-style regularization.

    Parameters
    ----------
    dim : int
        Dimension of the parameter vector.
    dtype : Any, optional
        Floating dtype of the parameters. Default is float64.
    hessian_lipschitz : ScalarNumeric, optional
        Hessian Lipschitz constant M. Default is 1.0.
    reg_floor : ScalarFloat, optional
        Regularization floor kept in the configuration. Default is
        float64 machine epsilon.
    quad_order : int, optional
        Requested quadrature order. Default is 20.
    krylov_order : int, optional
        Lanczos step cap per solve, 0 for ``2 n``. Default is 0.
    tol : ScalarFloat, optional
        Gradient norm tolerance of the iteration loop. Default is 1e-6.

    Attributes
    ----------
    config : SFNConfig
        Validated settings.
    quadrature : QuadratureTable
        Transformed nodes and weights.
    krylov_solver : CgLanczosShiftSolver
        Workspace with one row per quadrature node.
    """

    def __init__(
        self,
        dim: int,
        dtype: Any = jnp.float64,
        *,
        hessian_lipschitz: ScalarNumeric = 1.0,
        reg_floor: ScalarFloat = FLOAT64_EPS,
        quad_order: int = 20,
        krylov_order: int = 0,
        tol: ScalarFloat = 1e-6,
    ):
        if dim < 1:
            raise ValueError(f"dim must be at least 1, got {dim}")
        self.dim: int = int(dim)
        self.dtype: Any = jnp.dtype(dtype)
        self.config: SFNConfig = make_sfn_config(
            hessian_lipschitz=hessian_lipschitz,
            reg_floor=reg_floor,
            quad_order=quad_order,
            krylov_order=krylov_order,
            tol=tol,
        )
        self.quadrature: QuadratureTable = sfn_quadrature(
            self.config.quad_order, self.dtype
        )
        self.krylov_solver: CgLanczosShiftSolver = CgLanczosShiftSolver(
            self.dim, self.quadrature.achieved_order, self.dtype
        )

    @property
    def quad_nodes(self) -> Float[Array, " q"]:
        """Squared quadrature nodes, used as shift offsets."""
        return self.quadrature.nodes

    @property
    def quad_weights(self) -> Float[Array, " q"]:
        """Rescaled quadrature weights, used as direct multipliers."""
        return self.quadrature.weights

    @property
    def last_solve(self) -> ShiftSolveResult:
        """Diagnostics of the most recent multi-shift solve."""
        return self.krylov_solver.stats

    @jaxtyped(typechecker=beartype)
    def direction(
        self,
        grads: Float[Array, " n"],
        hvp: HvpOperator,
        g_norm: ScalarNumeric,
    ) -> Float[Array, " n"]:
        """Compute the SFN direction ``-(H^2 + λI)^{-1/2} g``.

        Implementation Logic
        --------------------
        1. λ = M ||g||, shifts = u_i^2 + λ.
        2. Solve ``(H^2 + shift_i I) y_i = g`` for all i on one
           Lanczos basis of ``H^2``.
        3. Form ``-Σ_i w_i y_i``.
        4. Cast the direction to ``dtype``; the float64 quadrature
           shifts would otherwise promote a float32 iterate.

        Parameters
        ----------
        grads : Float[Array, " n"]
            Gradient at the current point.
        hvp : HvpOperator
            Hessian operator bound to the current point.
        g_norm : ScalarNumeric
            Norm of ``grads``.

        Returns
        -------
        p : Float[Array, " n"]
            Step direction.
        """
        reg: float = self.config.hessian_lipschitz * float(g_norm)
        shifts: Float[Array, " q"] = self.quad_nodes + reg

        def hessian_squared(v: Float[Array, " n"]) -> Float[Array, " n"]:
            return hvp.apply(hvp.apply(v))

        result: ShiftSolveResult = self.krylov_solver.solve(
            hessian_squared,
            grads,
            shifts,
            itmax=self.config.krylov_order,
        )
        p: Float[Array, " n"] = -jnp.einsum(
            "s,sn->n", self.quad_weights, result.solutions
        )
        return p.astype(self.dtype)

    def step(
        self,
        x: Float[Array, " n"],
        f: Callable[[Float[Array, " n"]], ScalarNumeric],
        grads: Float[Array, " n"],
        hvp: HvpOperator,
        fval: ScalarNumeric,
        g_norm: ScalarNumeric,
        linesearch: bool = False,
    ) -> Float[Array, " n"]:
        """Take one SFN step from ``x``.

        Parameters
        ----------
        x : Float[Array, " n"]
            Current point.
        f : Callable[[Float[Array, " n"]], ScalarNumeric]
            Objective, only evaluated by the line search.
        grads : Float[Array, " n"]
            Gradient at ``x``.
        hvp : HvpOperator
            Hessian operator bound to ``x``.
        fval : ScalarNumeric
            Objective value at ``x``.
        g_norm : ScalarNumeric
            Norm of ``grads``.
        linesearch : bool, optional
            Search along the direction instead of taking the full step.
            Default is False.

        Returns
        -------
        x_new : Float[Array, " n"]
            Updated point.

        Raises
        ------
        ValueError
            If ``x`` or ``grads`` do not have length ``dim``.
        """
        if x.shape != (self.dim,) or grads.shape != (self.dim,):
            raise ValueError(
                f"point {x.shape} and gradient {grads.shape} must both "
                f"have shape ({self.dim},)"
            )
        p: Float[Array, " n"] = self.direction(grads, hvp, g_norm)
        if linesearch:
            reg: float = self.config.hessian_lipschitz * float(g_norm)
            return backtracking_search(x, p, f, fval, reg)
        return x + p

    def __repr__(self) -> str:
        return (
            f"SFNOptimizer(dim={self.dim}, "
            f"M={self.config.hessian_lipschitz}, "
            f"quad_order={self.quadrature.achieved_order}, "
            f"krylov_order={self.config.krylov_order})"
        )
