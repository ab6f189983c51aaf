"""Type definitions and factory functions for rsfn.

Extended Summary
----------------
Core data structures of the rsfn package: scalar type aliases, the
immutable optimizer configuration, the transformed quadrature table and
the PyTree records produced by the multi-shift solver and the iteration
loop.

Routine Listings
----------------
:func:`make_sfn_config`
    Factory function for SFNConfig creation.
:func:`make_sfn_stats`
    Factory function for SFNStats creation.
:class:`SFNConfig`
    Immutable optimizer configuration.
:class:`QuadratureTable`
    Transformed Gauss-Laguerre nodes and weights.
:class:`ShiftSolveResult`
    PyTree for per-shift solutions and diagnostics.
:class:`SFNStats`
    PyTree for the statistics of a minimization run.
:class:`SFNStatus`
    Terminal states of the iteration loop.

Notes
-----
Always use the factory functions to build configurations and statistics
so that values are validated and converted consistently.
"""

from .common_types import (
    NonJaxNumber,
    ScalarBool,
    ScalarFloat,
    ScalarInteger,
    ScalarNumeric,
)
from .optim_types import (
    FLOAT64_EPS,
    QuadratureTable,
    SFNConfig,
    SFNStats,
    SFNStatus,
    ShiftSolveResult,
    make_sfn_config,
    make_sfn_stats,
)

__all__: list[str] = [
    "FLOAT64_EPS",
    "make_sfn_config",
    "make_sfn_stats",
    "NonJaxNumber",
    "QuadratureTable",
    "ScalarBool",
    "ScalarFloat",
    "ScalarInteger",
    "ScalarNumeric",
    "SFNConfig",
    "SFNStats",
    "SFNStatus",
    "ShiftSolveResult",
]
