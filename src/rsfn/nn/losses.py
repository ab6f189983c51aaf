"""Classification losses and metrics.

Routine Listings
----------------
logit_cross_entropy : function
    Mean softmax cross-entropy against integer labels.
accuracy : function
    Fraction of correct arg-max predictions.
"""

import jax.numpy as jnp
import optax
from beartype import beartype
from jaxtyping import Array, Float, Int, jaxtyped


@jaxtyped(typechecker=beartype)
def logit_cross_entropy(
    logits: Float[Array, " batch classes"],
    labels: Int[Array, " batch"],
) -> Float[Array, " "]:
    """Mean softmax cross-entropy of unnormalized logits.

    Parameters
    ----------
    logits : Float[Array, " batch classes"]
        Network outputs before the softmax.
    labels : Int[Array, " batch"]
        Class indices.

    Returns
    -------
    loss : Float[Array, " "]
        Batch mean of the cross-entropy.
    """
    return jnp.mean(
        optax.softmax_cross_entropy_with_integer_labels(logits, labels)
    )


@jaxtyped(typechecker=beartype)
def accuracy(
    logits: Float[Array, " batch classes"],
    labels: Int[Array, " batch"],
) -> Float[Array, " "]:
    """Fraction of samples whose largest logit is the true class."""
    return jnp.mean(jnp.argmax(logits, axis=-1) == labels, dtype=logits.dtype)
