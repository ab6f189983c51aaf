"""Multi-shift conjugate gradient on a shared Lanczos basis.

Extended Summary
----------------
Solves the family of shifted symmetric systems

    (A + s_i I) x_i = b,    i = 1, ..., S

with a single Lanczos process on ``A``. The Krylov subspace
``K_k(A, b)`` is invariant under diagonal shifts, so one basis
expansion serves every shift: each Lanczos step costs one product with
``A`` regardless of ``S``, and the per-shift CG coefficients are
updated with scalar recurrences vectorised over the shift axis.

Routine Listings
----------------
lanczos_step : function
    One three-term Lanczos recurrence step.
shift_update : function
    Advance the CG iterates of all active shifts by one step.
cg_lanczos_shift : function
    Solve all shifted systems on a shared Lanczos basis.
CgLanczosShiftSolver : class
    Workspace owning the per-shift solutions of the last solve.

Notes
-----
The Lanczos expansion is inherently sequential and runs as a Python
loop, so the operator is called eagerly once per step and its own
bookkeeping (e.g. a product counter) stays exact. The two numerical
kernels are compiled.

The residual norm of shift ``i`` after step ``k`` is ``|σ_i|``; a shift
stops once it falls below ``atol + rtol * ||b||``. A zero norm for the
next Lanczos vector means the Krylov space is exhausted and every
remaining shift is solved exactly.

References
----------
.. [1] Frommer, "BiCGStab(l) for families of shifted linear systems",
       Computing 70 (2003)
.. [2] Paige & Saunders, "Solution of sparse indefinite systems of
       linear equations", SIAM J. Numer. Anal. 12 (1975)
"""

import logging

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any, Callable, Optional, Tuple
from jaxtyping import Array, Bool, Float, jaxtyped

from rsfn.types import ShiftSolveResult

logger = logging.getLogger(__name__)

SQRT_EPS: float = float(jnp.sqrt(jnp.finfo(jnp.float64).eps))
STATUS_SOLVED: str = "solution good enough given atol and rtol"
STATUS_ZERO_RHS: str = "x = 0 is a zero-residual solution"
STATUS_MAXITER: str = "maximum number of iterations exceeded"


@jax.jit
@jaxtyped(typechecker=beartype)
def lanczos_step(
    v: Float[Array, " n"],
    v_prev: Float[Array, " n"],
    av: Float[Array, " n"],
    beta: Float[Array, " "],
) -> Tuple[Float[Array, " "], Float[Array, " n"], Float[Array, " "]]:
    """Perform one Lanczos recurrence step.

    Parameters
    ----------
    v : Float[Array, " n"]
        Current unit Lanczos vector v_k.
    v_prev : Float[Array, " n"]
        Previous Lanczos vector v_{k-1}, zero on the first step.
    av : Float[Array, " n"]
        Operator applied to the current vector, A v_k.
    beta : Float[Array, " "]
        Norm β_k that normalised v_k.

    Returns
    -------
    delta : Float[Array, " "]
        Diagonal coefficient δ_k = v_k^T A v_k.
    v_next : Float[Array, " n"]
        Next unit Lanczos vector, zero on breakdown.
    beta_next : Float[Array, " "]
        Off-diagonal coefficient β_{k+1}.
    """
    delta: Float[Array, " "] = jnp.dot(v, av)
    w: Float[Array, " n"] = av - delta * v - beta * v_prev
    beta_next: Float[Array, " "] = jnp.linalg.norm(w)
    nonzero: Bool[Array, " "] = beta_next > 0.0
    safe_beta: Float[Array, " "] = jnp.where(nonzero, beta_next, 1.0)
    v_next: Float[Array, " n"] = jnp.where(
        nonzero, w / safe_beta, jnp.zeros_like(w)
    )
    return delta, v_next, beta_next


@jax.jit
@jaxtyped(typechecker=beartype)
def shift_update(
    solutions: Float[Array, " s n"],
    directions: Float[Array, " s n"],
    v_next: Float[Array, " n"],
    shifts: Float[Array, " s"],
    delta: Float[Array, " "],
    beta_next: Float[Array, " "],
    sigma: Float[Array, " s"],
    omega: Float[Array, " s"],
    gamma: Float[Array, " s"],
    active: Bool[Array, " s"],
) -> Tuple[
    Float[Array, " s n"],
    Float[Array, " s n"],
    Float[Array, " s"],
    Float[Array, " s"],
    Float[Array, " s"],
]:
    """Advance the CG iterate of every active shift by one step.

    Implementation Logic
    --------------------
    For shift s_i the CG step length follows from the Lanczos
    coefficients as

        γ_i ← 1 / (δ + s_i - ω_i / γ_i)

    and the solution, residual scale and search direction are updated
    as

        x_i ← x_i + γ_i p_i
        ω_i ← β_{k+1} γ_i
        σ_i ← -σ_i ω_i
        p_i ← σ_i v_{k+1} + ω_i^2 p_i

    Converged shifts are frozen by masking with ``active``; ``γ`` is
    refreshed for all shifts.

    Parameters
    ----------
    solutions : Float[Array, " s n"]
        Current solutions, one row per shift.
    directions : Float[Array, " s n"]
        Current search directions.
    v_next : Float[Array, " n"]
        Next Lanczos vector.
    shifts : Float[Array, " s"]
        Diagonal shifts.
    delta : Float[Array, " "]
        Lanczos diagonal coefficient of this step.
    beta_next : Float[Array, " "]
        Lanczos off-diagonal coefficient of this step.
    sigma : Float[Array, " s"]
        Residual scale per shift.
    omega : Float[Array, " s"]
        Direction recurrence coefficient per shift.
    gamma : Float[Array, " s"]
        Previous step length per shift.
    active : Bool[Array, " s"]
        Mask of shifts still iterating.

    Returns
    -------
    solutions, directions, sigma, omega, gamma
        Updated recurrence state.
    """
    gamma_new: Float[Array, " s"] = 1.0 / (delta + shifts - omega / gamma)
    omega_step: Float[Array, " s"] = beta_next * gamma_new
    sigma_step: Float[Array, " s"] = -sigma * omega_step
    omega_sq: Float[Array, " s"] = omega_step**2
    x_step: Float[Array, " s n"] = solutions + gamma_new[:, None] * directions
    p_step: Float[Array, " s n"] = (
        sigma_step[:, None] * v_next[None, :] + omega_sq[:, None] * directions
    )
    mask: Bool[Array, " s 1"] = active[:, None]
    new_solutions: Float[Array, " s n"] = jnp.where(mask, x_step, solutions)
    new_directions: Float[Array, " s n"] = jnp.where(
        mask, p_step, directions
    )
    new_sigma: Float[Array, " s"] = jnp.where(active, sigma_step, sigma)
    new_omega: Float[Array, " s"] = jnp.where(active, omega_sq, omega)
    return new_solutions, new_directions, new_sigma, new_omega, gamma_new


def cg_lanczos_shift(
    matvec: Callable[[Float[Array, " n"]], Float[Array, " n"]],
    b: Float[Array, " n"],
    shifts: Float[Array, " s"],
    itmax: int = 0,
    atol: float = SQRT_EPS,
    rtol: float = SQRT_EPS,
) -> ShiftSolveResult:
    """Solve ``(A + s_i I) x_i = b`` for all shifts on one Lanczos basis.

    Implementation Logic
    --------------------
    1. **Setup**: β_1 = ||b||, v_1 = b / β_1; every direction p_i
       starts as b, σ_i = β_1, ω_i = 0, γ_i = 1.
    2. **Per step** (one product with A):
       a. Lanczos recurrence gives δ_k, β_{k+1}, v_{k+1}.
       b. Vectorised CG update of all active shifts.
       c. Negative curvature γ_i <= 0 is flagged per shift.
       d. Shifts with |σ_i| <= atol + rtol β_1 are frozen.
    3. **Stop** when every shift is converged or ``itmax`` steps
       have been taken.

    Parameters
    ----------
    matvec : Callable[[Float[Array, " n"]], Float[Array, " n"]]
        Symmetric operator A.
    b : Float[Array, " n"]
        Right-hand side shared by all systems.
    shifts : Float[Array, " s"]
        Diagonal shifts s_i.
    itmax : int, optional
        Maximum Lanczos steps; 0 selects ``2 n``. Default is 0.
    atol : float, optional
        Absolute residual tolerance. Default is sqrt(eps).
    rtol : float, optional
        Residual tolerance relative to ``||b||``. Default is sqrt(eps).

    Returns
    -------
    ShiftSolveResult
        Solutions (rows parallel to ``shifts``) and per-shift
        diagnostics.

    Notes
    -----
    Non-convergence is reported through ``converged`` and ``status``,
    never raised.
    """
    n: int = int(b.shape[0])
    nshifts: int = int(shifts.shape[0])
    max_steps: int = 2 * n if itmax == 0 else int(itmax)
    solutions: Float[Array, " s n"] = jnp.zeros((nshifts, n), dtype=b.dtype)
    indefinite: Bool[Array, " s"] = jnp.zeros(nshifts, dtype=jnp.bool_)
    beta: Float[Array, " "] = jnp.linalg.norm(b)
    if float(beta) == 0.0:
        return ShiftSolveResult(
            solutions=solutions,
            residual_norms=jnp.zeros(nshifts, dtype=b.dtype),
            converged=jnp.ones(nshifts, dtype=jnp.bool_),
            indefinite=indefinite,
            iterations=jnp.asarray(0, dtype=jnp.int32),
            status=STATUS_ZERO_RHS,
        )
    tolerance: Float[Array, " "] = atol + rtol * beta
    directions: Float[Array, " s n"] = jnp.tile(b, (nshifts, 1))
    v: Float[Array, " n"] = b / beta
    v_prev: Float[Array, " n"] = jnp.zeros_like(b)
    sigma: Float[Array, " s"] = jnp.full((nshifts,), beta, dtype=b.dtype)
    omega: Float[Array, " s"] = jnp.zeros(nshifts, dtype=b.dtype)
    gamma: Float[Array, " s"] = jnp.ones(nshifts, dtype=b.dtype)
    residual_norms: Float[Array, " s"] = jnp.abs(sigma)
    converged: Bool[Array, " s"] = residual_norms <= tolerance
    iterations: int = 0
    while not bool(jnp.all(converged)) and iterations < max_steps:
        av: Float[Array, " n"] = matvec(v)
        delta, v_next, beta_next = lanczos_step(v, v_prev, av, beta)
        solutions, directions, sigma, omega, gamma = shift_update(
            solutions,
            directions,
            v_next,
            shifts,
            delta,
            beta_next,
            sigma,
            omega,
            gamma,
            ~converged,
        )
        indefinite = indefinite | (~converged & (gamma <= 0.0))
        residual_norms = jnp.abs(sigma)
        converged = converged | (residual_norms <= tolerance)
        v_prev, v, beta = v, v_next, beta_next
        iterations += 1
    status: str = (
        STATUS_SOLVED if bool(jnp.all(converged)) else STATUS_MAXITER
    )
    return ShiftSolveResult(
        solutions=solutions,
        residual_norms=residual_norms,
        converged=converged,
        indefinite=indefinite,
        iterations=jnp.asarray(iterations, dtype=jnp.int32),
        status=status,
    )


class CgLanczosShiftSolver:
    """Reusable multi-shift CG-Lanczos workspace.

    Owns the per-shift solution block of the most recent solve so the
    optimizer can read it after each step. Row ``i`` of ``x`` is the
    solution for shift ``i``.

    Parameters
    ----------
    n : int
        Dimension of the systems.
    nshifts : int
        Number of shifts solved together.
    dtype : Any, optional
        Floating dtype of the vectors. Default is float64.
    """

    def __init__(self, n: int, nshifts: int, dtype: Any = jnp.float64):
        self.n: int = int(n)
        self.nshifts: int = int(nshifts)
        self.dtype: Any = jnp.dtype(dtype)
        self.x: Float[Array, " s n"] = jnp.zeros(
            (self.nshifts, self.n), dtype=self.dtype
        )
        self.stats: Optional[ShiftSolveResult] = None

    @jaxtyped(typechecker=beartype)
    def solve(
        self,
        matvec: Callable[[Float[Array, " n"]], Float[Array, " n"]],
        b: Float[Array, " n"],
        shifts: Float[Array, " s"],
        itmax: int = 0,
        atol: float = SQRT_EPS,
        rtol: float = SQRT_EPS,
    ) -> ShiftSolveResult:
        """Solve all shifted systems and keep the result.

        Parameters
        ----------
        matvec : Callable[[Float[Array, " n"]], Float[Array, " n"]]
            Symmetric operator A.
        b : Float[Array, " n"]
            Right-hand side.
        shifts : Float[Array, " s"]
            One shift per workspace row.
        itmax : int, optional
            Maximum Lanczos steps, 0 for ``2 n``. Default is 0.
        atol : float, optional
            Absolute tolerance. Default is sqrt(eps).
        rtol : float, optional
            Relative tolerance. Default is sqrt(eps).

        Returns
        -------
        ShiftSolveResult
            The stored result of this solve.

        Raises
        ------
        ValueError
            If ``b`` or ``shifts`` do not match the workspace.
        """
        if b.shape != (self.n,):
            raise ValueError(
                f"right-hand side has shape {b.shape}, "
                f"solver expects ({self.n},)"
            )
        if shifts.shape != (self.nshifts,):
            raise ValueError(
                f"got {shifts.shape[0]} shifts, "
                f"solver was built for {self.nshifts}"
            )
        result: ShiftSolveResult = cg_lanczos_shift(
            matvec, b, shifts, itmax=itmax, atol=atol, rtol=rtol
        )
        self.x = result.solutions
        self.stats = result
        if not bool(jnp.all(result.converged)):
            logger.debug(
                "%d of %d shifted systems unconverged after %d iterations",
                int(jnp.sum(~result.converged)),
                self.nshifts,
                int(result.iterations),
            )
        return result
