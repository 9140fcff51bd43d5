"""
pyglmopt: distributed GLM training with normalization folded into the objective.

Licensed under GPL-3.0
"""

__version__ = "1.0.0"

# Import main user-facing API
from .glm import GLM, GLMResult, GeneralizedLinearModel, train_glm
from .data import LabeledExample, PartitionedDataset, read_libsvm
from ._core import (
    CoefficientSpaceTransform,
    NormalizationContext,
    NormalizationType,
    StatisticalSummary,
    TaskType,
    summarize,
)
from .objective import GLMObjective, RegularizationContext, RegularizationType
from .optimization import LBFGS, TRON, OptimizerConfig, OptimizerType
from .exceptions import (
    ConvergenceWarning,
    DimensionMismatch,
    InvalidDimension,
    LineSearchFailure,
    NonFiniteValue,
    OptimizationError,
    PyGLMOptError,
    SubproblemFailure,
)

# Import backend utilities (for advanced users)
from ._backends import get_backend, list_available_backends

__all__ = [
    'GLM',
    'GLMResult',
    'GeneralizedLinearModel',
    'train_glm',
    'LabeledExample',
    'PartitionedDataset',
    'read_libsvm',
    'CoefficientSpaceTransform',
    'NormalizationContext',
    'NormalizationType',
    'StatisticalSummary',
    'TaskType',
    'summarize',
    'GLMObjective',
    'RegularizationContext',
    'RegularizationType',
    'LBFGS',
    'TRON',
    'OptimizerConfig',
    'OptimizerType',
    'PyGLMOptError',
    'OptimizationError',
    'ConvergenceWarning',
    'DimensionMismatch',
    'InvalidDimension',
    'LineSearchFailure',
    'NonFiniteValue',
    'SubproblemFailure',
    'get_backend',
    'list_available_backends',
]
