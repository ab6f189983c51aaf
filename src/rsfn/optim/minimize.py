"""SFN iteration loop and minimization entry points.

Extended Summary
----------------
``minimize`` drives an ``SFNOptimizer`` from a starting point until the
gradient norm falls below the tolerance, the step budget runs out or the
wall-clock limit is reached. Gradients and Hessian products come either
from JAX automatic differentiation of ``f`` or from callables supplied
by the caller.

Routine Listings
----------------
iterate : function
    Run the loop with an already-built HVP operator.
minimize : function
    Build the gradient and HVP operator, then run the loop.

Notes
-----
Every loop turn evaluates the gradient once and records the objective
value and gradient norm, including the turn that stops the loop, so a
run with ``k`` steps records ``k + 1`` entries. The stop tests are
checked in the order tolerance, time limit, step budget.
"""

import logging
import time

import jax
import jax.numpy as jnp
from beartype.typing import Callable, List, Optional, Tuple
from jaxtyping import Array, Float

from rsfn.hvp import HvpOperator, LinopHvpOperator, make_hvp_operator
from rsfn.types import (
    ScalarNumeric,
    SFNStats,
    SFNStatus,
    ShiftSolveResult,
    make_sfn_stats,
)

from .optimizer import SFNOptimizer

logger = logging.getLogger(__name__)

ValueAndGrad = Callable[
    [Float[Array, " n"]], Tuple[ScalarNumeric, Float[Array, " n"]]
]


def iterate(
    opt: SFNOptimizer,
    x: Float[Array, " n"],
    f: Callable[[Float[Array, " n"]], ScalarNumeric],
    fg: ValueAndGrad,
    hvp: HvpOperator,
    linesearch: bool = False,
    itmax: int = 1000,
    time_limit: float = float("inf"),
) -> Tuple[Float[Array, " n"], SFNStats]:
    """Run SFN steps until convergence or a budget is exhausted.

    Parameters
    ----------
    opt : SFNOptimizer
        Optimizer supplying the step.
    x : Float[Array, " n"]
        Starting point.
    f : Callable[[Float[Array, " n"]], ScalarNumeric]
        Objective, used by the line search.
    fg : ValueAndGrad
        Function returning ``(f(x), ∇f(x))``.
    hvp : HvpOperator
        Hessian operator; rebound to every new iterate and its counter
        reset at the start of the run.
    linesearch : bool, optional
        Use the backtracking search in every step. Default is False.
    itmax : int, optional
        Maximum number of steps. Default is 1000.
    time_limit : float, optional
        Wall-clock budget in seconds. Default is no limit.

    Returns
    -------
    x : Float[Array, " n"]
        Final iterate.
    stats : SFNStats
        Trajectory, counters and terminal status of the run.
    """
    if x.shape != (opt.dim,):
        raise ValueError(
            f"starting point has shape {x.shape}, "
            f"optimizer expects ({opt.dim},)"
        )
    if itmax < 0:
        raise ValueError(f"itmax must be non-negative, got {itmax}")
    start: float = time.perf_counter()
    if hvp.x is not x:
        hvp.update(x)
    hvp.reset()
    f_seq: List[float] = []
    g_seq: List[float] = []
    krylov_converged: List[float] = []
    krylov_iterations: List[int] = []
    iterations: int = 0
    status: SFNStatus = SFNStatus.RUNNING
    while status is SFNStatus.RUNNING:
        fval, grads = fg(x)
        grads = jnp.asarray(grads, dtype=opt.dtype)
        g_norm: float = float(jnp.linalg.norm(grads))
        f_seq.append(float(fval))
        g_seq.append(g_norm)
        logger.debug(
            "iteration %d: f = %.6e, |g| = %.6e",
            iterations,
            f_seq[-1],
            g_norm,
        )
        if g_norm <= opt.config.tol:
            status = SFNStatus.CONVERGED
        elif time.perf_counter() - start >= time_limit:
            status = SFNStatus.TIMED_OUT
        elif iterations == itmax:
            status = SFNStatus.EXHAUSTED
        else:
            x = opt.step(
                x, f, grads, hvp, f_seq[-1], g_norm, linesearch=linesearch
            )
            hvp.update(x)
            iterations += 1
            solve: ShiftSolveResult = opt.last_solve
            krylov_converged.append(float(jnp.mean(solve.converged)))
            krylov_iterations.append(int(solve.iterations))
    run_time: float = time.perf_counter() - start
    logger.info(
        "SFN stopped (%s) after %d iterations, %d Hessian-vector "
        "products, %.3fs: f = %.6e, |g| = %.6e",
        status.value,
        iterations,
        hvp.n_prod,
        run_time,
        f_seq[-1],
        g_seq[-1],
    )
    stats: SFNStats = make_sfn_stats(
        f_seq=f_seq,
        g_seq=g_seq,
        converged=status is SFNStatus.CONVERGED,
        iterations=iterations,
        hvp_evals=int(hvp.n_prod),
        run_time=run_time,
        status=status,
        krylov_converged=krylov_converged,
        krylov_iterations=krylov_iterations,
    )
    return x, stats


def minimize(
    opt: SFNOptimizer,
    x0: Float[Array, " n"],
    f: Callable[[Float[Array, " n"]], ScalarNumeric],
    fg: Optional[ValueAndGrad] = None,
    hvp: Optional[Callable] = None,
    *,
    itmax: int = 1000,
    linesearch: bool = False,
    time_limit: float = float("inf"),
    backend: str = "reverse",
) -> Tuple[Float[Array, " n"], SFNStats]:
    """Minimize ``f`` from ``x0`` with SFN steps.

    Without ``fg`` and ``hvp`` the gradient is a compiled
    ``jax.value_and_grad(f)`` and Hessian products come from the
    automatic-differentiation ``backend``. With both, ``fg(x)`` must
    return ``(f(x), ∇f(x))`` and ``hvp(x)`` a Hessian matvec callable or
    dense matrix at ``x``.

    Parameters
    ----------
    opt : SFNOptimizer
        Configured optimizer.
    x0 : Float[Array, " n"]
        Starting point, not modified.
    f : Callable[[Float[Array, " n"]], ScalarNumeric]
        Objective.
    fg : ValueAndGrad, optional
        Value and gradient function.
    hvp : Callable, optional
        Hessian generator.
    itmax : int, optional
        Maximum number of steps. Default is 1000.
    linesearch : bool, optional
        Use the backtracking search. Default is False.
    time_limit : float, optional
        Wall-clock budget in seconds. Default is no limit.
    backend : str, optional
        ``"reverse"``, ``"forward"`` or ``"mixed"``; ignored when ``hvp``
        is given. Default is ``"reverse"``.

    Returns
    -------
    x : Float[Array, " n"]
        Final iterate.
    stats : SFNStats
        Statistics of the run.

    Raises
    ------
    ValueError
        If only one of ``fg`` and ``hvp`` is given, ``x0`` has the wrong
        shape or ``backend`` is unknown.
    """
    if (fg is None) != (hvp is None):
        raise ValueError("fg and hvp must be given together")
    x: Float[Array, " n"] = jnp.asarray(x0, dtype=opt.dtype)
    if x.shape != (opt.dim,):
        raise ValueError(
            f"starting point has shape {x.shape}, "
            f"optimizer expects ({opt.dim},)"
        )
    if fg is None:
        fg = jax.jit(jax.value_and_grad(f))
        operator: HvpOperator = make_hvp_operator(f, x, backend=backend)
    else:
        operator = LinopHvpOperator(hvp, x)
    return iterate(
        opt,
        x,
        f,
        fg,
        operator,
        linesearch=linesearch,
        itmax=itmax,
        time_limit=time_limit,
    )
