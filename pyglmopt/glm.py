"""
Generalized linear model API.

Main user-facing interface for training GLMs with normalization folded into
the objective.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd
import scipy.sparse as sp

from ._backends import DEFAULT_TREE_DEPTH, ExecutionBackend
from ._core.families import Family, TaskType, get_family
from ._core.normalization import NormalizationContext, NormalizationType
from ._core.summary import StatisticalSummary, summarize
from ._utils import check_dimension
from .data import PartitionedDataset
from .objective import GLMObjective, RegularizationContext, RegularizationType
from .optimization import (
    ConvergenceReason,
    OptimizationStatesTracker,
    OptimizerConfig,
    OptimizerStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class GeneralizedLinearModel:
    """
    Trained model in original feature space.

    ``predict(x) = θ · x + intercept_correction (+ offset)``. The correction
    is nonzero only when features were shifted and no intercept feature
    absorbed the shift.
    """
    coefficients: np.ndarray
    family: Family
    intercept_correction: float = 0.0

    def predict(self, X, offset=None) -> np.ndarray:
        """Linear predictor η."""
        if not sp.issparse(X):
            X = np.asarray(X, dtype=np.float64)
        check_dimension(X.shape[-1], self.coefficients.shape[0], what="X")
        if sp.issparse(X):
            eta = np.asarray(X @ self.coefficients).ravel()
        else:
            eta = X @ self.coefficients
        eta = eta + self.intercept_correction
        if offset is not None:
            eta = eta + offset
        return eta

    def predict_mean(self, X, offset=None) -> np.ndarray:
        """Mean response μ = g⁻¹(η)."""
        return self.family.linkinv(self.predict(X, offset=offset))

    def predict_class(self, X, threshold: float = 0.5, offset=None) -> np.ndarray:
        """0/1 labels; positive when the mean exceeds ``threshold``."""
        return (self.predict_mean(X, offset=offset) > threshold).astype(np.float64)


@dataclass
class GLMResult:
    """Results from GLM fitting."""
    model: GeneralizedLinearModel
    normalized_coefficients: np.ndarray  # θ' (optimizer space)
    value: float                         # Final objective value
    iterations: int
    status: OptimizerStatus
    convergence_reason: ConvergenceReason
    regularization_weight: float
    normalization: NormalizationContext
    tracker: OptimizationStatesTracker = field(repr=False)
    feature_names: Optional[List[str]] = None

    @property
    def converged(self) -> bool:
        return self.status is OptimizerStatus.CONVERGED

    @property
    def coefficients(self) -> np.ndarray:
        """Coefficients in original feature space."""
        return self.model.coefficients

    @property
    def coef(self) -> pd.Series:
        """Named coefficients (pandas Series)."""
        names = self.feature_names
        if names is None:
            names = [f'x{i}' for i in range(len(self.coefficients))]
        return pd.Series(self.coefficients, index=names)

    def predict(self, X, offset=None) -> np.ndarray:
        return self.model.predict(X, offset=offset)

    def predict_mean(self, X, offset=None) -> np.ndarray:
        return self.model.predict_mean(X, offset=offset)

    def predict_class(self, X, threshold: float = 0.5, offset=None) -> np.ndarray:
        return self.model.predict_class(X, threshold=threshold, offset=offset)

    def summary(self):
        """Print coefficients and optimizer diagnostics."""
        print()
        print("=" * 60)
        print(f"GLM RESULTS ({self.model.family.name})")
        print("=" * 60)
        print(f"Objective value:      {self.value:.10g}")
        print(f"Iterations:           {self.iterations}")
        print(f"Termination:          {self.convergence_reason.value}")
        print(f"Regularization:       {self.regularization_weight:g}")
        print(f"Normalization:        {self.normalization!r}")
        print()
        print(f"{'Variable':<20} {'Original':>16} {'Normalized':>16}")
        print("-" * 60)
        for name, coef, norm in zip(self.coef.index, self.coefficients,
                                    self.normalized_coefficients):
            print(f"{name:<20} {coef:>16.6f} {norm:>16.6f}")
        if self.model.intercept_correction != 0.0:
            print(f"{'(correction)':<20} {self.model.intercept_correction:>16.6f}")
        print("=" * 60)
        print()

    def __repr__(self):
        return (f"GLMResult(family={self.model.family.name}, value={self.value:.6g}, "
                f"iterations={self.iterations}, reason={self.convergence_reason.value})")


def build_normalization_context(
    dataset: PartitionedDataset,
    normalization: Union[str, NormalizationType] = NormalizationType.NONE,
    intercept_index: Optional[int] = None,
    summary: Optional[StatisticalSummary] = None,
    tree_depth: int = DEFAULT_TREE_DEPTH,
) -> NormalizationContext:
    """Summarize ``dataset`` (unless a summary is given) and build its context."""
    normalization = NormalizationType(normalization)
    if normalization is NormalizationType.NONE:
        return NormalizationContext.identity(intercept_index=intercept_index)
    if summary is None:
        summary = summarize(dataset, tree_depth=tree_depth)
    return NormalizationContext.build(summary, normalization, intercept_index=intercept_index)


def train_glm(
    dataset: PartitionedDataset,
    task: Union[str, TaskType, Family],
    optimizer_config: Optional[OptimizerConfig] = None,
    normalization: Union[str, NormalizationType, NormalizationContext] = NormalizationType.NONE,
    intercept_index: Optional[int] = None,
    regularization_type: Union[str, RegularizationType] = RegularizationType.L2,
    regularization_weights: Iterable[float] = (0.0,),
    elastic_net_alpha: Optional[float] = None,
    warm_start: bool = True,
    initial: Optional[np.ndarray] = None,
    tree_depth: int = DEFAULT_TREE_DEPTH,
    feature_names: Optional[List[str]] = None,
) -> Dict[float, GLMResult]:
    """
    Train one model per regularization weight.

    Weights are processed from largest to smallest; with ``warm_start`` each
    run starts from the previous solution.

    Parameters
    ----------
    dataset : PartitionedDataset
        Raw training data
    task : str, TaskType or Family
        Loss to minimize
    optimizer_config : OptimizerConfig, optional
        Optimizer settings (LBFGS with defaults when omitted)
    normalization : str, NormalizationType or NormalizationContext
        Policy (a summary of ``dataset`` is computed) or a prebuilt context
    intercept_index : int, optional
        Feature holding the constant intercept column
    regularization_type : str or RegularizationType, default='l2'
        Penalty type
    regularization_weights : iterable of float, default=(0.0,)
        Penalty weights to train
    elastic_net_alpha : float, optional
        L1 share for ELASTIC_NET
    warm_start : bool, default=True
        Reuse the previous solution as the starting point
    initial : ndarray, optional
        Starting coefficients in original space (zeros when omitted)
    tree_depth : int, default=2
        Reduction-tree depth for all aggregations
    feature_names : list of str, optional
        Names for ``GLMResult.coef``

    Returns
    -------
    dict
        ``{regularization_weight: GLMResult}``
    """
    family = get_family(task)
    config = optimizer_config if optimizer_config is not None else OptimizerConfig()

    if isinstance(normalization, NormalizationContext):
        context = normalization
    else:
        context = build_normalization_context(
            dataset, normalization, intercept_index=intercept_index, tree_depth=tree_depth
        )

    objective = GLMObjective(dataset, family, normalization=context, tree_depth=tree_depth)
    transform = objective.transform

    if initial is None:
        theta = np.zeros(objective.domain_dimension)
    else:
        theta = transform.to_transformed_space(np.asarray(initial, dtype=np.float64))

    weights = sorted(set(float(w) for w in regularization_weights), reverse=True)
    if not weights:
        raise ValueError("At least one regularization weight is required")

    logger.info(
        "Training %s with %s on %d examples, %d features, weights %s",
        family.name, config.optimizer_type.value, dataset.count, dataset.dimension, weights,
    )

    results: Dict[float, GLMResult] = {}
    for weight in weights:
        regularization = RegularizationContext(
            regularization_type=regularization_type,
            weight=weight,
            alpha=elastic_net_alpha,
        )
        optimizer = config.build_optimizer()
        outcome = optimizer.optimize(objective.with_regularization(regularization), theta)

        coefficients, correction = transform.to_original_space(outcome.coefficients)
        results[weight] = GLMResult(
            model=GeneralizedLinearModel(coefficients, family, intercept_correction=correction),
            normalized_coefficients=outcome.coefficients,
            value=outcome.value,
            iterations=outcome.iterations,
            status=outcome.status,
            convergence_reason=outcome.convergence_reason,
            regularization_weight=weight,
            normalization=context,
            tracker=outcome.tracker,
            feature_names=feature_names,
        )
        if warm_start:
            theta = outcome.coefficients

    return results


class GLM:
    """
    Generalized linear model trained by LBFGS or TRON.

    Examples
    --------
    >>> from pyglmopt import GLM
    >>> model = GLM('logistic_regression', normalization='standardization')
    >>> result = model.fit(y='outcome', X=['age', 'dose'], data=df)
    >>> result.coef
    >>> model.predict_class(df[['age', 'dose']].values)
    """

    def __init__(
        self,
        task: Union[str, TaskType, Family] = TaskType.LOGISTIC_REGRESSION,
        optimizer: str = 'lbfgs',
        normalization: Union[str, NormalizationType] = 'none',
        regularization_type: Union[str, RegularizationType] = 'l2',
        regularization_weight: float = 0.0,
        elastic_net_alpha: Optional[float] = None,
        fit_intercept: bool = True,
        tolerance: float = 1e-6,
        max_iterations: int = 100,
        num_partitions: int = 1,
        backend: Union[str, ExecutionBackend] = 'local',
        tree_depth: int = DEFAULT_TREE_DEPTH,
        **optimizer_kwargs,
    ):
        """
        Initialize GLM.

        Parameters
        ----------
        task : str, TaskType or Family
            'logistic_regression', 'linear_regression' or 'poisson_regression'
        optimizer : str, default='lbfgs'
            'lbfgs' or 'tron'
        normalization : str or NormalizationType, default='none'
            'none', 'scale', 'scale_with_max_magnitude' or 'standardization'
        regularization_type : str, default='l2'
            'none', 'l1', 'l2' or 'elastic_net'
        regularization_weight : float, default=0.0
            Penalty weight
        elastic_net_alpha : float, optional
            L1 share for 'elastic_net'
        fit_intercept : bool, default=True
            Prepend a constant column as the intercept
        tolerance, max_iterations
            Convergence settings
        num_partitions : int, default=1
            Number of partitions the data is split into
        backend : str or ExecutionBackend, default='local'
            Execution backend ('local', 'threads', 'auto')
        tree_depth : int, default=2
            Reduction-tree depth
        **optimizer_kwargs
            Extra ``OptimizerConfig`` fields
        """
        self.family = get_family(task)
        self.normalization = NormalizationType(normalization)
        self.regularization_type = RegularizationType(regularization_type)
        self.regularization_weight = regularization_weight
        self.elastic_net_alpha = elastic_net_alpha
        self.fit_intercept = fit_intercept
        self.num_partitions = num_partitions
        self.backend = backend
        self.tree_depth = tree_depth
        self.optimizer_config = OptimizerConfig(
            optimizer_type=optimizer,
            tolerance=tolerance,
            max_iterations=max_iterations,
            **optimizer_kwargs,
        )
        self.result_: Optional[GLMResult] = None

    def _design(self, X):
        if not self.fit_intercept:
            return X
        ones = np.ones((X.shape[0], 1))
        if sp.issparse(X):
            return sp.hstack([sp.csr_matrix(ones), X], format='csr')
        return np.column_stack([ones, np.asarray(X, dtype=np.float64)])

    def fit(
        self,
        X: Union[List[str], np.ndarray, sp.spmatrix],
        y: Union[str, np.ndarray],
        data: Optional[pd.DataFrame] = None,
        weights: Optional[Union[str, np.ndarray]] = None,
        offset: Optional[Union[str, np.ndarray]] = None,
        initial: Optional[np.ndarray] = None,
    ) -> GLMResult:
        """
        Fit the model.

        Parameters
        ----------
        X : list of str, ndarray or sparse matrix
            Column names in ``data`` or a numeric (n × p) matrix, without
            the intercept column
        y : str or ndarray
            Response column name or values
        data : DataFrame, optional
            Dataset holding the named columns
        weights : str or ndarray, optional
            Example weights
        offset : str or ndarray, optional
            Example offsets
        initial : ndarray, optional
            Starting coefficients in original space (intercept first when
            ``fit_intercept``)

        Returns
        -------
        result : GLMResult
            Fitted model results
        """
        def column(value, what):
            if isinstance(value, str):
                if data is None:
                    raise ValueError(f"Must provide data when {what} is a string")
                return data[value].values
            return value

        y_values = column(y, 'y')
        if isinstance(X, list) and all(isinstance(x, str) for x in X):
            if data is None:
                raise ValueError("Must provide data when X is list of strings")
            X_values = data[X].values
            names = list(X)
        else:
            X_values = X if sp.issparse(X) else np.asarray(X)
            names = [f'x{i}' for i in range(X_values.shape[1])]

        weights_values = column(weights, 'weights')
        offset_values = column(offset, 'offset')

        design = self._design(X_values)
        intercept_index = None
        if self.fit_intercept:
            intercept_index = 0
            names = ['Intercept'] + names

        dataset = PartitionedDataset.from_arrays(
            design, y_values,
            weights=weights_values, offsets=offset_values,
            num_partitions=self.num_partitions, backend=self.backend,
        )
        results = train_glm(
            dataset,
            self.family,
            optimizer_config=self.optimizer_config,
            normalization=self.normalization,
            intercept_index=intercept_index,
            regularization_type=self.regularization_type,
            regularization_weights=[self.regularization_weight],
            elastic_net_alpha=self.elastic_net_alpha,
            initial=initial,
            tree_depth=self.tree_depth,
            feature_names=names,
        )
        self.result_ = results[float(self.regularization_weight)]
        return self.result_

    def _fitted(self) -> GLMResult:
        if self.result_ is None:
            raise RuntimeError("GLM is not fitted yet; call fit() first")
        return self.result_

    def predict(self, X, offset=None) -> np.ndarray:
        """Linear predictor for new data (without the intercept column)."""
        return self._fitted().predict(self._design(X), offset=offset)

    def predict_mean(self, X, offset=None) -> np.ndarray:
        return self._fitted().predict_mean(self._design(X), offset=offset)

    def predict_class(self, X, threshold: float = 0.5, offset=None) -> np.ndarray:
        return self._fitted().predict_class(self._design(X), threshold=threshold, offset=offset)

    def __repr__(self):
        return (f"GLM(family={self.family.name}, optimizer={self.optimizer_config.optimizer_type.value}, "
                f"normalization={self.normalization.value})")


__all__ = [
    "GeneralizedLinearModel",
    "GLMResult",
    "GLM",
    "train_glm",
    "build_normalization_context",
]
