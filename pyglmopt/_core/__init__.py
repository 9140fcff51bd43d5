"""
Core algorithms (backend-agnostic).
"""

from .families import Binomial, Family, Gaussian, Poisson, TaskType, get_family
from .normalization import STD_EPSILON, NormalizationContext, NormalizationType
from .summary import PartialSummary, StatisticalSummary, summarize
from .transform import CoefficientSpaceTransform

__all__ = [
    "Family",
    "Gaussian",
    "Binomial",
    "Poisson",
    "TaskType",
    "get_family",
    "STD_EPSILON",
    "NormalizationType",
    "NormalizationContext",
    "PartialSummary",
    "StatisticalSummary",
    "summarize",
    "CoefficientSpaceTransform",
]
