"""Backtracking step-size search along an SFN direction.

Extended Summary
----------------
One-dimensional search used when the optimizer runs with line search
enabled. The SFN direction is a descent direction for any positive
regularization, so a simple backtracking search on the step length
``α`` suffices: trial points ``x + α p`` with ``α = 1, ρ, ρ^2, ...``
are accepted as soon as the decrease is large enough.

Routine Listings
----------------
backtracking_search : function
    Return the first acceptable point along a direction.

Notes
-----
The sufficient-decrease test does not need a gradient:

    f(x + α p) <= f(x) - c1 α λ ||p||^2

where λ is the regularization used to build ``p``. With λ = 0 it
reduces to plain decrease.
"""

import logging

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Callable
from jaxtyping import Array, Float, jaxtyped

from rsfn.types import ScalarFloat, ScalarNumeric

logger = logging.getLogger(__name__)


@jaxtyped(typechecker=beartype)
def backtracking_search(
    x: Float[Array, " n"],
    p: Float[Array, " n"],
    f: Callable[[Float[Array, " n"]], ScalarNumeric],
    fval: ScalarNumeric,
    reg: ScalarNumeric,
    shrink: ScalarFloat = 0.5,
    c1: ScalarFloat = 1e-4,
    max_steps: int = 20,
) -> Float[Array, " n"]:
    """Search along ``p`` from ``x`` for a sufficiently lower value.

    Parameters
    ----------
    x : Float[Array, " n"]
        Current point.
    p : Float[Array, " n"]
        Search direction.
    f : Callable[[Float[Array, " n"]], ScalarNumeric]
        Objective function.
    fval : ScalarNumeric
        Objective value at ``x``.
    reg : ScalarNumeric
        Regularization λ used to compute ``p``.
    shrink : ScalarFloat, optional
        Step-length reduction factor ρ in (0, 1). Default is 0.5.
    c1 : ScalarFloat, optional
        Sufficient-decrease constant. Default is 1e-4.
    max_steps : int, optional
        Maximum number of trial step lengths. Default is 20.

    Returns
    -------
    x_new : Float[Array, " n"]
        Accepted point ``x + α p``, or ``x`` itself when no trial step
        decreases the objective enough.
    """
    p_sq: float = float(jnp.dot(p, p))
    alpha: float = 1.0
    for _ in range(max_steps):
        trial: Float[Array, " n"] = x + alpha * p
        trial_val: float = float(f(trial))
        if trial_val <= float(fval) - c1 * alpha * float(reg) * p_sq:
            return trial
        alpha *= float(shrink)
    logger.debug(
        "line search found no decrease in %d steps, keeping the iterate",
        max_steps,
    )
    return x
