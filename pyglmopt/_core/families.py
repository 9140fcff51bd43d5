"""
GLM family definitions.

Each family is the per-example loss oracle used by the objective: the loss
of a linear predictor η against a label, and its first and second
derivatives with respect to η.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Union

import numpy as np
from scipy.special import expit


class TaskType(Enum):
    """Supported regression tasks."""
    LOGISTIC_REGRESSION = "logistic_regression"
    LINEAR_REGRESSION = "linear_regression"
    POISSON_REGRESSION = "poisson_regression"


class Family(ABC):
    """Base class for GLM families."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Family name."""
        pass

    @abstractmethod
    def linkinv(self, eta: np.ndarray) -> np.ndarray:
        """Inverse link: μ = g⁻¹(η)"""
        pass

    @abstractmethod
    def loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Pointwise loss l(η, y)."""
        pass

    @abstractmethod
    def dz_loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        """First derivative ∂l/∂η."""
        pass

    @abstractmethod
    def dzz_loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Second derivative ∂²l/∂η²."""
        pass

    def __repr__(self):
        return f"{type(self).__name__}()"


class Gaussian(Family):
    """Gaussian family with identity link (squared loss)."""

    @property
    def name(self) -> str:
        return "gaussian"

    def linkinv(self, eta: np.ndarray) -> np.ndarray:
        return eta

    def loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        return 0.5 * (eta - y) ** 2

    def dz_loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        return eta - y

    def dzz_loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        return np.ones_like(eta)


class Binomial(Family):
    """
    Binomial family with logit link (logistic loss).

    Labels are in {0, 1}. The loss log(1 + exp(η)) - yη is evaluated as
    (1 - y) log(1 + exp(η)) + y log(1 + exp(-η)) with ``logaddexp``, which
    neither overflows nor cancels for large |η|.
    """

    @property
    def name(self) -> str:
        return "binomial"

    def linkinv(self, eta: np.ndarray) -> np.ndarray:
        """Inverse logit: μ = 1/(1 + exp(-η))"""
        return expit(eta)

    def loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        return (1.0 - y) * np.logaddexp(0.0, eta) + y * np.logaddexp(0.0, -eta)

    def dz_loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        return expit(eta) - y

    def dzz_loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        mu = expit(eta)
        return mu * (1.0 - mu)


class Poisson(Family):
    """Poisson family with log link."""

    @property
    def name(self) -> str:
        return "poisson"

    def linkinv(self, eta: np.ndarray) -> np.ndarray:
        return np.exp(eta)

    def loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        return np.exp(eta) - y * eta

    def dz_loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        return np.exp(eta) - y

    def dzz_loss(self, eta: np.ndarray, y: np.ndarray) -> np.ndarray:
        return np.exp(eta)


_TASK_FAMILIES = {
    TaskType.LOGISTIC_REGRESSION: Binomial,
    TaskType.LINEAR_REGRESSION: Gaussian,
    TaskType.POISSON_REGRESSION: Poisson,
}


def get_family(task: Union[str, TaskType, Family]) -> Family:
    """
    Resolve a task name, ``TaskType`` or ``Family`` to a family instance.

    Examples
    --------
    >>> get_family('logistic_regression')
    Binomial()
    """
    if isinstance(task, Family):
        return task
    if isinstance(task, str):
        try:
            task = TaskType(task.lower())
        except ValueError:
            raise ValueError(
                f"Unknown task: '{task}'\n"
                f"Valid options: {', '.join(t.value for t in TaskType)}"
            ) from None
    return _TASK_FAMILIES[task]()


__all__ = ["TaskType", "Family", "Gaussian", "Binomial", "Poisson", "get_family"]
