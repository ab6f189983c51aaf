"""Scalar type aliases shared across rsfn.

Extended Summary
----------------
Type aliases used in jaxtyping/beartype annotations throughout the
package. Scalars may arrive either as Python numbers or as 0-d JAX
arrays, and the aliases accept both.

Routine Listings
----------------
NonJaxNumber : TypeAlias
    Python numeric types.
ScalarBool : TypeAlias
    Python bool or 0-d boolean array.
ScalarFloat : TypeAlias
    Python float or 0-d floating array.
ScalarInteger : TypeAlias
    Python int or 0-d integer array.
ScalarNumeric : TypeAlias
    Any real scalar, Python or JAX.
"""

from beartype.typing import TypeAlias, Union
from jaxtyping import Array, Bool, Float, Int, Num

NonJaxNumber: TypeAlias = Union[int, float]
ScalarBool: TypeAlias = Union[bool, Bool[Array, " "]]
ScalarFloat: TypeAlias = Union[float, Float[Array, " "]]
ScalarInteger: TypeAlias = Union[int, Int[Array, " "]]
ScalarNumeric: TypeAlias = Union[int, float, Num[Array, " "]]
