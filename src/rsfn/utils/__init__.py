"""Numerical building blocks of the SFN step.

Extended Summary
----------------
Quadrature tables, the multi-shift Krylov solver and the backtracking
step-size search. Each is independent of how Hessian products are
computed; the solver only needs a symmetric matrix-vector callable.

Submodules
----------
krylov
    Multi-shift CG-Lanczos solver
linesearch
    Backtracking search along a step direction
quadrature
    Gauss-Laguerre rules and the SFN transform

Routine Listings
----------------
backtracking_search : function
    Return the first acceptable point along a direction
cg_lanczos_shift : function
    Solve a family of shifted systems on one Lanczos basis
gauss_laguerre : function
    Reduced Gauss-Laguerre rule of a given order
lanczos_step : function
    One three-term Lanczos recurrence step
reduce_rule : function
    Truncate a rule to its representable prefix
sfn_quadrature : function
    Transformed quadrature table used by the optimizer
shift_update : function
    Vectorised CG update across shifts
CgLanczosShiftSolver : class
    Workspace holding the solutions of the last multi-shift solve

Notes
-----
The Lanczos loop runs in Python and calls the operator eagerly, so
product counters kept by the operator remain exact. The per-step
kernels are compiled with ``jax.jit``.
"""

from .krylov import (
    CgLanczosShiftSolver,
    cg_lanczos_shift,
    lanczos_step,
    shift_update,
)
from .linesearch import backtracking_search
from .quadrature import gauss_laguerre, reduce_rule, sfn_quadrature

__all__: list[str] = [
    "backtracking_search",
    "cg_lanczos_shift",
    "gauss_laguerre",
    "lanczos_step",
    "reduce_rule",
    "sfn_quadrature",
    "shift_update",
    "CgLanczosShiftSolver",
]
