"""
Demonstration-selecting optimizers and the metrics they score with.
"""

from .base import Optimizer, OptimizerConfig
from .bootstrap_few_shot import BootstrapFewShot
from .knn_few_shot import KNNFewShot
from .metrics import METRICS, resolve_metric
