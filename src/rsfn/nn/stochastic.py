"""Minibatch training of PyTree models with SFN steps.

Extended Summary
----------------
``StochasticSFN`` trains any model given as ``apply_fn(params, inputs)``
by flattening its parameter PyTree and running a few SFN steps on each
minibatch loss in turn.

Routine Listings
----------------
batch_iterator : function
    Yield shuffled minibatches.
StochasticSFN : class
    Minibatch SFN trainer.
"""

import logging

import jax
from beartype.typing import Any, Callable, Dict, Iterator, List, Tuple
from jax.flatten_util import ravel_pytree
from jaxtyping import Array, Float, Int, PRNGKeyArray

from rsfn.hvp import make_hvp_fn
from rsfn.optim import SFNOptimizer, minimize

from .losses import logit_cross_entropy

logger = logging.getLogger(__name__)


def batch_iterator(
    key: PRNGKeyArray,
    inputs: Float[Array, " samples features"],
    labels: Int[Array, " samples"],
    batch_size: int,
) -> Iterator[Tuple[Float[Array, " b features"], Int[Array, " b"]]]:
    """Yield minibatches of a random permutation of the data.

    The last batch is smaller when ``batch_size`` does not divide the
    number of samples.

    Raises
    ------
    ValueError
        If ``batch_size`` is not positive or inputs and labels differ in
        length.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    samples: int = int(inputs.shape[0])
    if labels.shape[0] != samples:
        raise ValueError(
            f"{samples} inputs but {labels.shape[0]} labels"
        )
    order = jax.random.permutation(key, samples)
    for start in range(0, samples, batch_size):
        index = order[start : start + batch_size]
        yield inputs[index], labels[index]


class StochasticSFN:
    """Train a model on minibatches with SFN steps.

    Parameters
    ----------
    optimizer : SFNOptimizer
        Optimizer whose dimension equals the number of model parameters.
    apply_fn : Callable[[Any, Array], Array]
        Model evaluation ``apply_fn(params, inputs) -> outputs``.
    loss_fn : Callable[[Array, Array], Array], optional
        Loss ``loss_fn(outputs, labels)``. Default is
        ``logit_cross_entropy``.
    itmax : int, optional
        SFN steps per minibatch. Default is 1.
    linesearch : bool, optional
        Use the backtracking search. Default is False.
    backend : str, optional
        Hessian-vector product backend. Default is ``"reverse"``.
    """

    def __init__(
        self,
        optimizer: SFNOptimizer,
        apply_fn: Callable[[Any, Array], Array],
        loss_fn: Callable[[Array, Array], Array] = logit_cross_entropy,
        itmax: int = 1,
        linesearch: bool = False,
        backend: str = "reverse",
    ):
        self.optimizer = optimizer
        self.apply_fn = apply_fn
        self.loss_fn = loss_fn
        self.itmax: int = int(itmax)
        self.linesearch: bool = linesearch
        self.backend: str = backend

    def loss(
        self, params: Any, inputs: Array, labels: Array
    ) -> Float[Array, " "]:
        """Evaluate the loss of ``params`` on a data set."""
        return self.loss_fn(self.apply_fn(params, inputs), labels)

    def fit(
        self,
        params: Any,
        inputs: Float[Array, " samples features"],
        labels: Int[Array, " samples"],
        *,
        epochs: int = 1,
        batch_size: int = 32,
        key: PRNGKeyArray,
    ) -> Tuple[Any, Dict[str, List[float]]]:
        """Train for a number of epochs.

        Parameters
        ----------
        params : Any
            Initial parameter PyTree.
        inputs : Float[Array, " samples features"]
            Training inputs.
        labels : Int[Array, " samples"]
            Training labels.
        epochs : int, optional
            Passes over the data. Default is 1.
        batch_size : int, optional
            Minibatch size. Default is 32.
        key : PRNGKeyArray
            Random key for shuffling.

        Returns
        -------
        params : Any
            Trained parameter PyTree.
        history : Dict[str, List[float]]
            ``"loss"``: full-data loss after each epoch;
            ``"hvp_evals"``: Hessian-vector products used in each epoch.

        Raises
        ------
        ValueError
            If the parameter count differs from the optimizer dimension
            or the backend is unknown.

        Notes
        -----
        The batch loss, its gradient and the Hessian products are
        compiled once per call with the batch as an argument. A smaller
        final batch adds one compilation for its shape.
        """
        flat, unravel = ravel_pytree(params)
        if flat.shape[0] != self.optimizer.dim:
            raise ValueError(
                f"model has {flat.shape[0]} parameters, "
                f"optimizer expects {self.optimizer.dim}"
            )

        def flat_loss(
            w: Float[Array, " n"], xb: Array, yb: Array
        ) -> Float[Array, " "]:
            return self.loss(unravel(w), xb, yb)

        batch_loss = jax.jit(flat_loss)
        batch_value_and_grad = jax.jit(jax.value_and_grad(flat_loss))
        batch_hvp = jax.jit(make_hvp_fn(flat_loss, self.backend))
        history: Dict[str, List[float]] = {"loss": [], "hvp_evals": []}
        for epoch in range(epochs):
            key, epoch_key = jax.random.split(key)
            hvp_evals: int = 0
            for batch_inputs, batch_labels in batch_iterator(
                epoch_key, inputs, labels, batch_size
            ):

                def objective(
                    w: Float[Array, " n"],
                    xb: Array = batch_inputs,
                    yb: Array = batch_labels,
                ) -> Float[Array, " "]:
                    return batch_loss(w, xb, yb)

                def fg(
                    w: Float[Array, " n"],
                    xb: Array = batch_inputs,
                    yb: Array = batch_labels,
                ) -> Tuple[Float[Array, " "], Float[Array, " n"]]:
                    return batch_value_and_grad(w, xb, yb)

                def hessian(
                    w: Float[Array, " n"],
                    xb: Array = batch_inputs,
                    yb: Array = batch_labels,
                ) -> Callable[[Float[Array, " n"]], Float[Array, " n"]]:
                    return lambda v: batch_hvp(w, v, xb, yb)

                flat, stats = minimize(
                    self.optimizer,
                    flat,
                    objective,
                    fg,
                    hessian,
                    itmax=self.itmax,
                    linesearch=self.linesearch,
                )
                hvp_evals += int(stats.hvp_evals)
            epoch_loss: float = float(self.loss(unravel(flat), inputs, labels))
            history["loss"].append(epoch_loss)
            history["hvp_evals"].append(hvp_evals)
            logger.info(
                "epoch %d/%d: loss = %.6f, %d Hessian-vector products",
                epoch + 1,
                epochs,
                epoch_loss,
                hvp_evals,
            )
        return unravel(flat), history
