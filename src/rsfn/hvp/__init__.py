"""Hessian-vector product operators.

Extended Summary
----------------
Symmetric matrix-free operators computing ``H(x) v`` at a movable
evaluation point, with a product counter used for cost accounting.

Submodules
----------
autodiff
    Operators built from JAX automatic differentiation
base
    Abstract operator interface
linop
    Operator from a caller-supplied Hessian generator

Routine Listings
----------------
make_hvp_fn : function
    Uncompiled product function taking data arguments
make_hvp_operator : function
    Select an automatic-differentiation operator by name
ForwardHvpOperator : class
    Forward-over-reverse operator
HvpOperator : class
    Abstract symmetric HVP operator
LinopHvpOperator : class
    Operator from an explicit Hessian generator
MixedHvpOperator : class
    Reverse-over-forward operator
ReverseHvpOperator : class
    Reverse-over-reverse operator
HVP_BACKENDS : dict
    Backend names accepted by ``make_hvp_operator``
"""

from .autodiff import (
    HVP_BACKENDS,
    ForwardHvpOperator,
    MixedHvpOperator,
    ReverseHvpOperator,
    make_hvp_fn,
    make_hvp_operator,
)
from .base import HvpOperator
from .linop import LinopHvpOperator

__all__: list[str] = [
    "make_hvp_fn",
    "make_hvp_operator",
    "ForwardHvpOperator",
    "HvpOperator",
    "HVP_BACKENDS",
    "LinopHvpOperator",
    "MixedHvpOperator",
    "ReverseHvpOperator",
]
