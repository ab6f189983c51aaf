"""Neural-network training with SFN steps.

Extended Summary
----------------
Optional extension, loaded by the top-level package only when ``optax``
is installed (``pip install rsfn[nn]``). Provides dense models as
parameter PyTrees, classification losses and a minibatch trainer.

Routine Listings
----------------
accuracy : function
    Fraction of correct arg-max predictions
batch_iterator : function
    Shuffled minibatches
build_dense : function
    Initialize a dense network
dense_forward : function
    Evaluate a dense network
logit_cross_entropy : function
    Mean softmax cross-entropy with integer labels
StochasticSFN : class
    Minibatch SFN trainer
"""

from .losses import accuracy, logit_cross_entropy
from .models import build_dense, dense_forward
from .stochastic import StochasticSFN, batch_iterator

__all__: list[str] = [
    "accuracy",
    "batch_iterator",
    "build_dense",
    "dense_forward",
    "logit_cross_entropy",
    "StochasticSFN",
]
