"""Optimizer configuration, solver results and run statistics.

Extended Summary
----------------
This module provides the data structures that flow through the SFN
optimizer: the immutable configuration, the transformed quadrature table,
the per-shift result of a multi-shift Krylov solve and the statistics
record returned by every minimization run.

Array-valued records are NamedTuples registered as PyTrees so they can
be passed through ``jax.tree_util`` and compiled functions; string-like
fields (status) are carried as auxiliary data.

Routine Listings
----------------
SFNStatus : Enum
    Terminal states of the iteration loop.
SFNConfig : NamedTuple
    Immutable optimizer configuration.
QuadratureTable : NamedTuple
    Transformed Gauss-Laguerre nodes and weights.
ShiftSolveResult : NamedTuple
    Solutions and diagnostics of a multi-shift solve.
SFNStats : NamedTuple
    Trajectory and counters of one minimization run.
make_sfn_config : function
    Factory function to create a validated SFNConfig.
make_sfn_stats : function
    Factory function to create an SFNStats from recorded Python lists.

Notes
-----
The quadrature table stores weights and nodes *after* the one-time
transform ``w <- (2/pi) w exp(u)``, ``u <- u^2``. Downstream code treats
them as direct multipliers and shift offsets.
"""

from enum import Enum

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import NamedTuple, Optional, Sequence, Tuple
from jax.tree_util import register_pytree_node_class
from jaxtyping import Array, Bool, Float, Int, jaxtyped

from .common_types import ScalarFloat, ScalarInteger, ScalarNumeric

FLOAT64_EPS: float = float(jnp.finfo(jnp.float64).eps)


class SFNStatus(Enum):
    """States of the SFN iteration loop."""

    RUNNING = "running"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    TIMED_OUT = "timed_out"


class SFNConfig(NamedTuple):
    """Immutable configuration of an SFN optimizer.

    Attributes
    ----------
    hessian_lipschitz : float
        Hessian Lipschitz constant M, scales the regularization
        λ = M ||g||.
    reg_floor : float
        Numerical floor for the regularization. Stored for extensions,
        not enforced by the base step.
    quad_order : int
        Requested number of quadrature nodes.
    krylov_order : int
        Maximum Krylov subspace dimension per solve, 0 for the solver
        default.
    tol : float
        Gradient norm threshold for convergence.
    """

    hessian_lipschitz: float
    reg_floor: float
    quad_order: int
    krylov_order: int
    tol: float


class QuadratureTable(NamedTuple):
    """Transformed Gauss-Laguerre quadrature table.

    Attributes
    ----------
    nodes : Float[Array, " q"]
        Squared Gauss-Laguerre nodes.
    weights : Float[Array, " q"]
        Rescaled weights (2/π) w exp(u).
    requested_order : int
        Order asked for at construction.
    achieved_order : int
        Order actually representable at float64, ``len(nodes)``.
    """

    nodes: Float[Array, " q"]
    weights: Float[Array, " q"]
    requested_order: int
    achieved_order: int


@register_pytree_node_class
class ShiftSolveResult(NamedTuple):
    """Result of a multi-shift CG-Lanczos solve.

    Attributes
    ----------
    solutions : Float[Array, " s n"]
        One solution per shift, rows ordered as the shifts.
    residual_norms : Float[Array, " s"]
        Final residual norm estimate per shift.
    converged : Bool[Array, " s"]
        Whether each shifted system met the tolerance.
    indefinite : Bool[Array, " s"]
        Whether negative curvature was met on each shifted system.
    iterations : Int[Array, " "]
        Number of Lanczos steps taken.
    status : str
        Human readable termination reason.
    """

    solutions: Float[Array, " s n"]
    residual_norms: Float[Array, " s"]
    converged: Bool[Array, " s"]
    indefinite: Bool[Array, " s"]
    iterations: Int[Array, " "]
    status: str

    def tree_flatten(
        self,
    ) -> Tuple[
        Tuple[
            Float[Array, " s n"],
            Float[Array, " s"],
            Bool[Array, " s"],
            Bool[Array, " s"],
            Int[Array, " "],
        ],
        str,
    ]:
        """Flatten the ShiftSolveResult, keeping status as aux data."""
        return (
            (
                self.solutions,
                self.residual_norms,
                self.converged,
                self.indefinite,
                self.iterations,
            ),
            self.status,
        )

    @classmethod
    def tree_unflatten(
        cls,
        aux_data: str,
        children: Tuple[
            Float[Array, " s n"],
            Float[Array, " s"],
            Bool[Array, " s"],
            Bool[Array, " s"],
            Int[Array, " "],
        ],
    ) -> "ShiftSolveResult":
        """Unflatten the ShiftSolveResult from its components."""
        return cls(*children, aux_data)


@register_pytree_node_class
class SFNStats(NamedTuple):
    """Statistics of one SFN minimization run.

    Attributes
    ----------
    f_seq : Float[Array, " k"]
        Function value at every loop turn, terminal turn included.
    g_seq : Float[Array, " k"]
        Gradient norm at every loop turn, terminal turn included.
    converged : Bool[Array, " "]
        Whether the gradient tolerance was met.
    iterations : Int[Array, " "]
        Number of completed update steps.
    hvp_evals : Int[Array, " "]
        Hessian-vector products performed by the operator.
    run_time : Float[Array, " "]
        Wall time of the run in seconds.
    krylov_converged : Float[Array, " i"]
        Fraction of converged shifted systems for each update step.
    krylov_iterations : Int[Array, " i"]
        Lanczos steps used by each update step.
    status : SFNStatus
        Terminal state of the loop.
    """

    f_seq: Float[Array, " k"]
    g_seq: Float[Array, " k"]
    converged: Bool[Array, " "]
    iterations: Int[Array, " "]
    hvp_evals: Int[Array, " "]
    run_time: Float[Array, " "]
    krylov_converged: Float[Array, " i"]
    krylov_iterations: Int[Array, " i"]
    status: SFNStatus

    def tree_flatten(
        self,
    ) -> Tuple[
        Tuple[
            Float[Array, " k"],
            Float[Array, " k"],
            Bool[Array, " "],
            Int[Array, " "],
            Int[Array, " "],
            Float[Array, " "],
            Float[Array, " i"],
            Int[Array, " i"],
        ],
        SFNStatus,
    ]:
        """Flatten the SFNStats, keeping the status as aux data."""
        return (
            (
                self.f_seq,
                self.g_seq,
                self.converged,
                self.iterations,
                self.hvp_evals,
                self.run_time,
                self.krylov_converged,
                self.krylov_iterations,
            ),
            self.status,
        )

    @classmethod
    def tree_unflatten(
        cls,
        aux_data: SFNStatus,
        children: Tuple[
            Float[Array, " k"],
            Float[Array, " k"],
            Bool[Array, " "],
            Int[Array, " "],
            Int[Array, " "],
            Float[Array, " "],
            Float[Array, " i"],
            Int[Array, " i"],
        ],
    ) -> "SFNStats":
        """Unflatten the SFNStats from its components."""
        return cls(*children, aux_data)


@jaxtyped(typechecker=beartype)
def make_sfn_config(
    hessian_lipschitz: ScalarNumeric = 1.0,
    reg_floor: ScalarFloat = FLOAT64_EPS,
    quad_order: ScalarInteger = 20,
    krylov_order: ScalarInteger = 0,
    tol: ScalarFloat = 1e-6,
) -> SFNConfig:
    """Create a validated SFNConfig.

    Parameters
    ----------
    hessian_lipschitz : ScalarNumeric, optional
        Hessian Lipschitz constant M. Must be positive. Default is 1.0.
    reg_floor : ScalarFloat, optional
        Regularization floor. Must be positive. Default is float64
        machine epsilon.
    quad_order : ScalarInteger, optional
        Requested quadrature order. Must be at least 1. Default is 20.
    krylov_order : ScalarInteger, optional
        Maximum Krylov subspace size, 0 for no cap. Must be
        non-negative. Default is 0.
    tol : ScalarFloat, optional
        Gradient norm tolerance. Must be positive. Default is 1e-6.

    Returns
    -------
    SFNConfig
        Configuration with Python scalar fields.

    Raises
    ------
    ValueError
        If any value is out of range.
    """
    config: SFNConfig = SFNConfig(
        hessian_lipschitz=float(hessian_lipschitz),
        reg_floor=float(reg_floor),
        quad_order=int(quad_order),
        krylov_order=int(krylov_order),
        tol=float(tol),
    )
    if not config.hessian_lipschitz > 0.0:
        raise ValueError("hessian_lipschitz must be positive")
    if not config.reg_floor > 0.0:
        raise ValueError("reg_floor must be positive")
    if config.quad_order < 1:
        raise ValueError("quad_order must be at least 1")
    if config.krylov_order < 0:
        raise ValueError("krylov_order must be non-negative")
    if not config.tol > 0.0:
        raise ValueError("tol must be positive")
    return config


@jaxtyped(typechecker=beartype)
def make_sfn_stats(
    f_seq: Sequence[float],
    g_seq: Sequence[float],
    converged: bool,
    iterations: int,
    hvp_evals: int,
    run_time: float,
    status: SFNStatus,
    krylov_converged: Optional[Sequence[float]] = None,
    krylov_iterations: Optional[Sequence[int]] = None,
) -> SFNStats:
    """Create an SFNStats record from values gathered by the loop.

    Parameters
    ----------
    f_seq : Sequence[float]
        Recorded function values.
    g_seq : Sequence[float]
        Recorded gradient norms, same length as ``f_seq``.
    converged : bool
        Whether the run met the gradient tolerance.
    iterations : int
        Completed update steps.
    hvp_evals : int
        Hessian-vector products used.
    run_time : float
        Elapsed seconds.
    status : SFNStatus
        Terminal state of the loop.
    krylov_converged : Sequence[float], optional
        Fraction of converged shifts per update step.
    krylov_iterations : Sequence[int], optional
        Lanczos steps per update step.

    Returns
    -------
    SFNStats
        Statistics record with JAX array fields.

    Raises
    ------
    ValueError
        If the trajectories have different lengths or the per-step
        diagnostics do not match ``iterations``.
    """
    if len(f_seq) != len(g_seq):
        raise ValueError(
            f"f_seq and g_seq differ in length: {len(f_seq)} != {len(g_seq)}"
        )
    krylov_converged = [] if krylov_converged is None else krylov_converged
    krylov_iterations = [] if krylov_iterations is None else krylov_iterations
    if len(krylov_converged) != len(krylov_iterations):
        raise ValueError("krylov diagnostics differ in length")
    if krylov_converged and len(krylov_converged) != iterations:
        raise ValueError(
            f"expected {iterations} krylov entries, "
            f"got {len(krylov_converged)}"
        )
    return SFNStats(
        f_seq=jnp.asarray(f_seq, dtype=jnp.float64),
        g_seq=jnp.asarray(g_seq, dtype=jnp.float64),
        converged=jnp.asarray(converged, dtype=jnp.bool_),
        iterations=jnp.asarray(iterations, dtype=jnp.int32),
        hvp_evals=jnp.asarray(hvp_evals, dtype=jnp.int32),
        run_time=jnp.asarray(run_time, dtype=jnp.float64),
        krylov_converged=jnp.asarray(krylov_converged, dtype=jnp.float64),
        krylov_iterations=jnp.asarray(krylov_iterations, dtype=jnp.int32),
        status=status,
    )
