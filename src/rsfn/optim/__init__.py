"""Saddle-free Newton optimization.

Extended Summary
----------------
The SFN optimizer and the loop that drives it. Each step solves a
family of shifted systems in ``H^2`` on one Krylov basis and combines
the solutions with Gauss-Laguerre weights.

Submodules
----------
minimize
    Iteration loop and entry points
optimizer
    SFN step

Routine Listings
----------------
iterate : function
    Run the loop with an already-built HVP operator
minimize : function
    Minimize an objective from a starting point
SFNOptimizer : class
    Optimizer holding the quadrature table and Krylov workspace
"""

from .minimize import iterate, minimize
from .optimizer import SFNOptimizer

__all__: list[str] = [
    "iterate",
    "minimize",
    "SFNOptimizer",
]
