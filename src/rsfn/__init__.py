"""Regularized saddle-free Newton optimization in JAX.

Extended Summary
----------------
A second-order optimizer for smooth, possibly non-convex objectives.
Each step applies ``-(H^2 + λI)^{-1/2}`` to the gradient, with
``λ = M ||g||``, using only Hessian-vector products: a Gauss-Laguerre
quadrature turns the inverse square root into a weighted sum of shifted
linear solves, and all of them share one Lanczos basis.

Routine Listings
----------------
:mod:`hvp`
    Matrix-free Hessian-vector product operators.
:mod:`nn`
    Neural-network training extension, present when optax is installed.
:mod:`optim`
    SFN optimizer and minimization loop.
:mod:`types`
    Configuration, result records and type aliases.
:mod:`utils`
    Quadrature, multi-shift Krylov solver and line search.

Examples
--------
>>> import jax.numpy as jnp
>>> import rsfn
>>> opt = rsfn.optim.SFNOptimizer(2)
>>> x, stats = rsfn.optim.minimize(
...     opt, jnp.array([1.0, -2.0]), lambda x: jnp.sum(x**2)
... )
>>> bool(stats.converged)
True

Notes
-----
The quadrature is computed in float64, so 64-bit precision is switched
on for JAX when the package is imported.
"""

import os
from importlib.metadata import version
from importlib.util import find_spec

# Enable multi-threaded CPU execution for JAX (before importing JAX)
os.environ.setdefault(
    "XLA_FLAGS",
    "--xla_cpu_multi_thread_eigen=true intra_op_parallelism_threads=0",
)

# Enable 64-bit precision in JAX (must be set before importing submodules)
import jax  # noqa: E402

jax.config.update("jax_enable_x64", True)

from . import hvp, optim, types, utils  # noqa: E402, I001

__version__: str = version("rsfn")

__all__: list[str] = [
    "__version__",
    "hvp",
    "optim",
    "types",
    "utils",
]

if find_spec("optax") is not None:
    from . import nn  # noqa: E402

    __all__.append("nn")
