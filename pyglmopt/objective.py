"""
Objective functions consumed by the optimizers.

``GLMObjective`` evaluates the weighted GLM loss of a partitioned dataset in
normalized coefficient space. Features are normalized on the fly through a
``CoefficientSpaceTransform``, so the result equals a plain objective
evaluated on an explicitly normalized copy of the data without that copy
ever being built.
"""

import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np

from ._backends import DEFAULT_TREE_DEPTH
from ._core.families import Family, TaskType, get_family
from ._core.normalization import NormalizationContext
from ._core.transform import CoefficientSpaceTransform
from ._utils import check_dimension


class RegularizationType(Enum):
    """Penalty applied to the coefficients."""
    NONE = "none"
    L1 = "l1"
    L2 = "l2"
    ELASTIC_NET = "elastic_net"


@dataclass(frozen=True)
class RegularizationContext:
    """
    Regularization penalty.

    The penalty is ``weight * (alpha * ||θ'||₁ + (1 - alpha) / 2 * ||θ'||²)``
    on normalized-space coefficients. ``alpha`` is fixed to 1 for L1 and 0 for
    L2, and must be given for ELASTIC_NET.

    The L1 part contributes its value and a subgradient only; it adds
    nothing to Hessian-vector products.
    """
    regularization_type: RegularizationType = RegularizationType.NONE
    weight: float = 0.0
    alpha: Optional[float] = None

    def __post_init__(self):
        rtype = RegularizationType(self.regularization_type)
        object.__setattr__(self, 'regularization_type', rtype)
        if self.weight < 0 or not np.isfinite(self.weight):
            raise ValueError(f"Regularization weight must be finite and >= 0, got {self.weight}")

        if rtype is RegularizationType.L1:
            object.__setattr__(self, 'alpha', 1.0)
        elif rtype in (RegularizationType.L2, RegularizationType.NONE):
            object.__setattr__(self, 'alpha', 0.0)
        elif self.alpha is None or not 0.0 <= self.alpha <= 1.0:
            raise ValueError(f"Elastic net alpha must be in [0, 1], got {self.alpha}")

    @property
    def l1_weight(self) -> float:
        if self.regularization_type is RegularizationType.NONE:
            return 0.0
        return self.weight * self.alpha

    @property
    def l2_weight(self) -> float:
        if self.regularization_type is RegularizationType.NONE:
            return 0.0
        return self.weight * (1.0 - self.alpha)

    def with_weight(self, weight: float) -> 'RegularizationContext':
        return replace(self, weight=weight)

    def value(self, theta: np.ndarray) -> float:
        return (self.l1_weight * float(np.abs(theta).sum())
                + 0.5 * self.l2_weight * float(theta @ theta))

    def gradient(self, theta: np.ndarray) -> np.ndarray:
        return self.l1_weight * np.sign(theta) + self.l2_weight * theta

    def hessian_vector(self, v: np.ndarray) -> np.ndarray:
        return self.l2_weight * v


NO_REGULARIZATION = RegularizationContext()


class ObjectiveFunction(ABC):
    """
    Contract between an objective and the optimizers.

    Optimizers only call these methods; they never see data or
    normalization.
    """

    @property
    @abstractmethod
    def domain_dimension(self) -> int:
        """Number of coefficients."""
        pass

    @abstractmethod
    def value(self, theta: np.ndarray) -> float:
        pass

    @abstractmethod
    def value_and_gradient(self, theta: np.ndarray) -> Tuple[float, np.ndarray]:
        pass

    def gradient(self, theta: np.ndarray) -> np.ndarray:
        return self.value_and_gradient(theta)[1]

    def hessian_vector(self, theta: np.ndarray, v: np.ndarray) -> np.ndarray:
        """Hessian at ``theta`` times ``v``. Required by TRON only."""
        raise NotImplementedError(f"{type(self).__name__} has no Hessian-vector product")

    @property
    def supports_hessian(self) -> bool:
        return type(self).hessian_vector is not ObjectiveFunction.hessian_vector


def _add_pairs(a, b):
    return a[0] + b[0], a[1] + b[1]


class GLMObjective(ObjectiveFunction):
    """
    Weighted GLM loss over a partitioned dataset.

    Parameters
    ----------
    dataset : PartitionedDataset
        Training data (raw, untransformed)
    family : str, TaskType or Family
        Loss oracle ('logistic_regression', 'linear_regression',
        'poisson_regression' or a Family instance)
    normalization : NormalizationContext, optional
        Context applied on the fly; identity when omitted
    regularization : RegularizationContext, optional
        Penalty on the normalized-space coefficients
    tree_depth : int, default=2
        Depth of the reduction tree combining partition results

    Notes
    -----
    For example i with label y, weight w and offset o:

        value    = Σ w l(z, y) + R(θ')              z = θ' · x' + o
        gradient = Σ w l'(z, y) x' + ∇R(θ')
        Hv       = Σ w l''(z, y) (x' · v) x' + ∇²R v
    """

    def __init__(
        self,
        dataset,
        family: Union[str, TaskType, Family],
        normalization: Optional[NormalizationContext] = None,
        regularization: Optional[RegularizationContext] = None,
        tree_depth: int = DEFAULT_TREE_DEPTH,
    ):
        if tree_depth < 1:
            raise ValueError(f"tree_depth must be >= 1, got {tree_depth}")
        self.dataset = dataset
        self.family = get_family(family)
        self.normalization = normalization if normalization is not None else NormalizationContext.identity()
        self.normalization.check_dimension(dataset.dimension)
        self.regularization = regularization if regularization is not None else NO_REGULARIZATION
        self.tree_depth = tree_depth
        self._transform = CoefficientSpaceTransform(self.normalization)

    @property
    def domain_dimension(self) -> int:
        return self.dataset.dimension

    @property
    def transform(self) -> CoefficientSpaceTransform:
        return self._transform

    def with_regularization(self, regularization: RegularizationContext) -> 'GLMObjective':
        return GLMObjective(
            self.dataset, self.family,
            normalization=self.normalization,
            regularization=regularization,
            tree_depth=self.tree_depth,
        )

    def _check(self, theta, name='coefficients') -> np.ndarray:
        theta = np.asarray(theta, dtype=np.float64)
        if theta.ndim != 1:
            raise ValueError(f"{name} must be 1-dimensional")
        check_dimension(theta.shape[0], self.domain_dimension, what=name)
        return theta

    def value(self, theta: np.ndarray) -> float:
        theta = self._check(theta)
        family, transform = self.family, self._transform

        def partition_value(part):
            z = transform.margins(part.X, theta, part.offsets)
            return float(part.weights @ family.loss(z, part.labels))

        total = self.dataset.aggregate(partition_value, operator.add, depth=self.tree_depth)
        return total + self.regularization.value(theta)

    def value_and_gradient(self, theta: np.ndarray) -> Tuple[float, np.ndarray]:
        theta = self._check(theta)
        family, transform = self.family, self._transform

        def partition_value_and_gradient(part):
            z = transform.margins(part.X, theta, part.offsets)
            value = float(part.weights @ family.loss(z, part.labels))
            gradient = transform.accumulate(part.X, part.weights * family.dz_loss(z, part.labels))
            return value, gradient

        value, gradient = self.dataset.aggregate(
            partition_value_and_gradient, _add_pairs, depth=self.tree_depth
        )
        return (value + self.regularization.value(theta),
                gradient + self.regularization.gradient(theta))

    def hessian_vector(self, theta: np.ndarray, v: np.ndarray) -> np.ndarray:
        theta = self._check(theta)
        v = self._check(v, name='direction')
        family, transform = self.family, self._transform

        def partition_hessian_vector(part):
            z = transform.margins(part.X, theta, part.offsets)
            curvature = part.weights * family.dzz_loss(z, part.labels)
            return transform.accumulate(part.X, curvature * transform.project(part.X, v))

        hv = self.dataset.aggregate(partition_hessian_vector, operator.add, depth=self.tree_depth)
        return hv + self.regularization.hessian_vector(v)

    def __repr__(self):
        return (f"GLMObjective(family={self.family!r}, normalization={self.normalization!r}, "
                f"regularization={self.regularization!r})")


__all__ = [
    "RegularizationType",
    "RegularizationContext",
    "NO_REGULARIZATION",
    "ObjectiveFunction",
    "GLMObjective",
]
