"""Small dense networks as parameter PyTrees.

Routine Listings
----------------
build_dense : function
    Initialize a multilayer perceptron.
dense_forward : function
    Evaluate a multilayer perceptron.

Notes
-----
Parameters are a list with one ``{"w": ..., "b": ...}`` dict per layer,
so ``jax.flatten_util.ravel_pytree`` maps them to the flat vector the
optimizer works on.
"""

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Dict, List, Sequence
from jaxtyping import Array, Float, PRNGKeyArray, jaxtyped

DenseParams = List[Dict[str, Float[Array, "..."]]]


def build_dense(
    key: PRNGKeyArray, layer_sizes: Sequence[int]
) -> DenseParams:
    """Initialize a dense network with scaled normal weights.

    Parameters
    ----------
    key : PRNGKeyArray
        Random key.
    layer_sizes : Sequence[int]
        Widths from input to output, at least two entries.

    Returns
    -------
    params : DenseParams
        One ``{"w", "b"}`` dict per layer, float64. Weights have shape
        ``(fan_in, fan_out)`` and variance ``1 / fan_in``; biases are
        zero.

    Raises
    ------
    ValueError
        If fewer than two sizes are given or a size is not positive.
    """
    if len(layer_sizes) < 2:  # noqa: PLR2004
        raise ValueError("layer_sizes needs an input and an output width")
    if any(size < 1 for size in layer_sizes):
        raise ValueError(f"layer sizes must be positive, got {layer_sizes}")
    keys = jax.random.split(key, len(layer_sizes) - 1)
    params: DenseParams = []
    for layer_key, fan_in, fan_out in zip(
        keys, layer_sizes[:-1], layer_sizes[1:]
    ):
        weight = jax.random.normal(
            layer_key, (fan_in, fan_out), dtype=jnp.float64
        ) / jnp.sqrt(fan_in)
        params.append(
            {"w": weight, "b": jnp.zeros(fan_out, dtype=jnp.float64)}
        )
    return params


@jaxtyped(typechecker=beartype)
def dense_forward(
    params: DenseParams, inputs: Float[Array, " batch features"]
) -> Float[Array, " batch outputs"]:
    """Apply the network, tanh on hidden layers and linear output."""
    hidden: Float[Array, " batch width"] = inputs
    for layer in params[:-1]:
        hidden = jnp.tanh(hidden @ layer["w"] + layer["b"])
    return hidden @ params[-1]["w"] + params[-1]["b"]
