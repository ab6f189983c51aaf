"""Gauss-Laguerre quadrature tables for the SFN integral representation.

Extended Summary
----------------
The SFN step applies the matrix function ``(H^2 + λI)^{-1/2}`` to the
gradient through the integral identity

    (H^2 + λI)^{-1/2} g = (2/π) ∫_0^∞ (t^2 I + H^2 + λI)^{-1} g dt

which is discretised with a Gauss-Laguerre rule. Writing the integrand
as ``e^{-t} [e^{t} F(t)]`` turns the Laguerre rule into a rule for the
plain integral, so each weight is multiplied by ``exp(node)`` once, the
constant ``2/π`` is folded in, and the nodes are squared. After this
transform the weights act as direct multipliers and the nodes as shift
offsets; no kernel is evaluated later.

Routine Listings
----------------
gauss_laguerre : function
    Raw reduced Gauss-Laguerre rule of a given order.
reduce_rule : function
    Drop trailing points whose weights are not representable.
sfn_quadrature : function
    Transformed quadrature table used by the optimizer.

Notes
-----
Only float64 is supported. The rule is generated on the host with
numpy and converted to JAX arrays; requesting any other dtype logs a
warning and the table is still built in float64.
"""

import logging

import jax.numpy as jnp
import numpy as np
from beartype import beartype
from beartype.typing import Any, Tuple
from jaxtyping import Float, jaxtyped
from numpy.polynomial import laguerre

from rsfn.types import QuadratureTable

logger = logging.getLogger(__name__)

FLOAT64_TINY: float = float(np.finfo(np.float64).tiny)
RESCALE_THRESHOLD: float = 1e150


@jaxtyped(typechecker=beartype)
def reduce_rule(
    nodes: Float[np.ndarray, " q"],
    weights: Float[np.ndarray, " q"],
) -> Tuple[Float[np.ndarray, " r"], Float[np.ndarray, " r"]]:
    """Truncate a quadrature rule to its representable prefix.

    Gauss-Laguerre weights decay like ``exp(-node)``; for high orders the
    trailing weights underflow to zero or come out non-finite. The rule
    is cut at the first weight that is not a finite, positive, normal
    float64 number.

    Parameters
    ----------
    nodes : Float[np.ndarray, " q"]
        Quadrature nodes in ascending order.
    weights : Float[np.ndarray, " q"]
        Matching quadrature weights.

    Returns
    -------
    nodes : Float[np.ndarray, " r"]
        Leading ``r <= q`` nodes.
    weights : Float[np.ndarray, " r"]
        Leading ``r <= q`` weights.
    """
    usable: np.ndarray = np.isfinite(weights) & (weights >= FLOAT64_TINY)
    bad: np.ndarray = np.flatnonzero(~usable)
    count: int = int(bad[0]) if bad.size else int(weights.shape[0])
    return nodes[:count], weights[:count]


def _scaled_laguerre(
    x: Float[np.ndarray, " q"], degree: int
) -> Tuple[
    Float[np.ndarray, " q"],
    Float[np.ndarray, " q"],
    Float[np.ndarray, " q"],
    Float[np.ndarray, " q"],
]:
    """Evaluate ``L_{degree-1}``, ``L_degree`` and ``L_{degree+1}``.

    The three-term recurrence overflows for large arguments, so the
    running pair is divided by its magnitude whenever it exceeds
    ``RESCALE_THRESHOLD``. The three values share the returned
    ``log_scale``: the true polynomial is ``value * exp(log_scale)``.
    """
    previous: np.ndarray = np.zeros_like(x)
    current: np.ndarray = np.ones_like(x)
    log_scale: np.ndarray = np.zeros_like(x)
    for k in range(degree):
        previous, current = (
            current,
            ((2 * k + 1 - x) * current - k * previous) / (k + 1),
        )
        size: np.ndarray = np.abs(current)
        factor: np.ndarray = np.where(size > RESCALE_THRESHOLD, size, 1.0)
        previous = previous / factor
        current = current / factor
        log_scale = log_scale + np.log(factor)
    following: np.ndarray = (
        (2 * degree + 1 - x) * current - degree * previous
    ) / (degree + 1)
    return previous, current, following, log_scale


@jaxtyped(typechecker=beartype)
def gauss_laguerre(
    order: int,
) -> Tuple[Float[np.ndarray, " r"], Float[np.ndarray, " r"]]:
    """Compute the reduced Gauss-Laguerre rule of a given order.

    Uses shape parameter 0, for which the Laguerre weight normalization
    Γ(1) is one, so the weights integrate ``e^{-u}`` to one.

    Parameters
    ----------
    order : int
        Requested number of nodes, at least 1.

    Returns
    -------
    nodes : Float[np.ndarray, " r"]
        Nodes of the rule, ``r <= order``.
    weights : Float[np.ndarray, " r"]
        Weights of the rule.

    Raises
    ------
    ValueError
        If ``order`` is smaller than 1.

    Notes
    -----
    Nodes are the eigenvalues of the Laguerre companion matrix, polished
    by one Newton step. Weights come from the closed form

        w_i = x_i / ((q + 1)^2 L_{q+1}(x_i)^2)

    evaluated in log space, so no weight depends on a normalising sum
    that can underflow. Weights below the smallest normal float64 are
    then cut off by ``reduce_rule``.
    """
    if order < 1:
        raise ValueError(f"quadrature order must be at least 1, got {order}")
    coefficients: np.ndarray = np.zeros(order + 1)
    coefficients[-1] = 1.0
    nodes: np.ndarray = np.linalg.eigvalsh(
        laguerre.lagcompanion(coefficients)
    )
    with np.errstate(
        over="ignore", under="ignore", invalid="ignore", divide="ignore"
    ):
        previous, current, _, _ = _scaled_laguerre(nodes, order)
        nodes = nodes - nodes * current / (order * (current - previous))
        _, _, following, log_scale = _scaled_laguerre(nodes, order)
        log_weights: np.ndarray = (
            np.log(nodes)
            - 2.0 * np.log(order + 1.0)
            - 2.0 * (np.log(np.abs(following)) + log_scale)
        )
        weights: np.ndarray = np.exp(log_weights)
    return reduce_rule(
        np.asarray(nodes, dtype=np.float64),
        np.asarray(weights, dtype=np.float64),
    )


def sfn_quadrature(order: int, dtype: Any = jnp.float64) -> QuadratureTable:
    """Build the transformed quadrature table for the SFN step.

    Parameters
    ----------
    order : int
        Requested quadrature order.
    dtype : Any, optional
        Floating dtype of the parameter vectors. Anything other than
        float64 is reported and ignored. Default is float64.

    Returns
    -------
    QuadratureTable
        Squared nodes and rescaled weights, with requested and achieved
        orders.

    Raises
    ------
    ValueError
        If no quadrature point is representable.

    Notes
    -----
    If fewer than ``order`` points are representable, the table is
    silently shortened and a warning naming the achieved count is
    logged. The optimizer keeps working with lower accuracy.
    """
    if jnp.dtype(dtype) != jnp.dtype(jnp.float64):
        logger.warning(
            "Gauss-Laguerre quadrature is only reliable in float64; "
            "building the table in float64 instead of %s.",
            jnp.dtype(dtype).name,
        )
    nodes, weights = gauss_laguerre(order)
    achieved: int = int(nodes.shape[0])
    if achieved == 0:
        raise ValueError(
            f"no representable Gauss-Laguerre weights for order {order}"
        )
    if achieved < order:
        logger.warning(
            "Quadrature weight precision reached, using %d quadrature "
            "locations.",
            achieved,
        )
    scaled_weights: np.ndarray = (2.0 / np.pi) * np.exp(
        np.log(weights) + nodes
    )
    squared_nodes: np.ndarray = nodes**2
    return QuadratureTable(
        nodes=jnp.asarray(squared_nodes, dtype=jnp.float64),
        weights=jnp.asarray(scaled_weights, dtype=jnp.float64),
        requested_order=int(order),
        achieved_order=achieved,
    )
