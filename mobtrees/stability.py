"""
Parameter instability tests for model-based recursive partitioning.

The tests are generalized M-fluctuation tests [1]_ computed from the score contributions of a
model fitted to the samples of one node. Under the null hypothesis of constant parameters, the
cumulative sums of the (decorrelated) scores behave like a Brownian bridge, no matter how the
samples are ordered. Ordering the samples along a partitioning variable and looking for
fluctuations of this process reveals parameter changes along that variable.

* Ordered/continuous partitioning variables use the supLM statistic [2]_, i.e. the maximum of the
  squared, variance-standardized bridge over a trimmed range of the ordering.
* Unordered categorical partitioning variables use a chi-square statistic on the score sums
  within each category.

References
----------
.. [1] Zeileis, A. and Hornik, K.,
   "Generalized M-Fluctuation Tests for Parameter Instability",
   Statistica Neerlandica, 61(4), 488-508, 2007
.. [2] Andrews, D. W. K.,
   "Tests for Parameter Instability and Structural Change With Unknown Change Point",
   Econometrica, 61(4), 821-856, 1993
.. [3] Estrella, A.,
   "Critical Values and P Values of Bessel Process Distributions: Computation and Application to
   Structural Break Tests", Econometric Theory, 19(6), 1128-1143, 2003
"""

#  Copyright 2019 SCHUFA Holding AG
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

from collections import namedtuple
from functools import lru_cache

import numpy as np
from scipy import linalg
from scipy.special import gammaln
from scipy.stats import chi2

# Variable kinds
ORDERED = "ordered"
CATEGORICAL = "categorical"

# Settings of the simulated supLM null distribution
_N_SIMULATIONS = 10000
_N_GRID = 1000
_BATCH_SIZE = 1000
_SIMULATION_SEED = 20080601

# Below this simulated p-value, the analytic tail approximation is used
_TAIL_PVALUE = 0.01

# Relative eigenvalue threshold for the decorrelation of the scores
_EIGEN_TOL = 1e-10

# Absolute eigenvalue threshold. Scores of degenerate fits (e.g. clipped probabilities of a pure
# binomial node) are of order 1e-10 and must not be rescaled to unit variance.
_EIGEN_ABS_TOL = 1e-16


InstabilityTest = namedtuple(
    "InstabilityTest",
    ["variable", "kind", "statistic", "df", "p_value", "adjusted_p_value"]
)
InstabilityTest.__doc__ = """
Result of the instability test of one partitioning variable in one node.

Untestable variables (constant within the node) have ``statistic``, ``p_value`` and
``adjusted_p_value`` set to ``nan``.
"""


def decorrelate_scores(scores, weights):
    """
    Decorrelates score contributions with the inverse square root of their outer product estimate.

    Parameters
    ----------
    scores : array-like, shape = [n_samples, n_params]
        Per-observation score contributions
    weights : array-like, shape = [n_samples]
        Case weights

    Returns
    -------
    scores : array, shape = [n_samples, rank]
        Decorrelated scores. Directions without variation are dropped, also if all scores are
        numerically zero.
    rank : int
        Number of remaining directions
    """
    scores = np.asarray(scores, dtype=float)
    weights = np.asarray(weights, dtype=float)
    n = weights.sum()

    J = (scores * weights[:, None]).T @ scores / n
    eigval, eigvec = linalg.eigh(J)

    keep = eigval > max(_EIGEN_TOL * eigval.max(initial=0), _EIGEN_ABS_TOL)
    root = eigvec[:, keep] / np.sqrt(eigval[keep])
    return scores @ root, int(keep.sum())


def suplm_statistic(scores, weights, values, trim=0.1):
    """
    Computes the supLM statistic for an ordered partitioning variable.

    The process of cumulative score sums is only evaluated at positions where the variable changes its
    value, since only these positions correspond to possible splits.

    Parameters
    ----------
    scores : array-like, shape = [n_samples, k]
        Decorrelated score contributions
    weights : array-like, shape = [n_samples]
        Case weights
    values : array-like, shape = [n_samples]
        Values of the partitioning variable
    trim : float
        Fraction of observations that is trimmed at both ends of the ordering

    Returns
    -------
    statistic : float or None
        The statistic or None if the variable has no change point within the trimmed range
    """
    values = np.asarray(values, dtype=float)
    n = weights.sum()

    order = np.argsort(values, kind="stable")
    v = values[order]

    # Last position of each distinct value (except the largest one)
    boundaries = np.nonzero(v[1:] != v[:-1])[0]
    if len(boundaries) == 0:
        return None

    t = np.cumsum(weights[order])[boundaries] / n
    inside = (t >= trim) & (t <= 1 - trim)
    if not np.any(inside):
        return None
    boundaries = boundaries[inside]
    t = t[inside]

    process = np.cumsum(weights[order, None] * scores[order], axis=0)[boundaries] / np.sqrt(n)
    return float(np.max(np.sum(process ** 2, axis=1) / (t * (1 - t))))


def chisq_statistic(scores, weights, values):
    """
    Computes the chi-square type statistic for an unordered categorical partitioning variable.

    Parameters
    ----------
    scores : array-like, shape = [n_samples, k]
        Decorrelated score contributions
    weights : array-like, shape = [n_samples]
        Case weights
    values : array-like, shape = [n_samples]
        Categories

    Returns
    -------
    statistic : float or None
        The statistic or None if only one category is present
    df : int
        Degrees of freedom of the asymptotic chi-square distribution
    """
    categories, inverse = np.unique(np.asarray(values), return_inverse=True)
    n_categories = len(categories)
    if n_categories < 2:
        return None, 0

    k = scores.shape[1]
    sums = np.zeros((n_categories, k))
    np.add.at(sums, inverse, weights[:, None] * scores)
    n_c = np.bincount(inverse, weights=weights, minlength=n_categories)

    statistic = float(np.sum(np.sum(sums ** 2, axis=1) / n_c))
    return statistic, k * (n_categories - 1)


def suplm_pvalue(statistic, k, trim=0.1):
    """
    Computes the asymptotic p-value of the supLM statistic.

    The body of the null distribution is simulated once per `(k, trim)` with a fixed seed.
    In the upper tail, the approximation of [3]_ is used, floored by the pointwise chi-square tail.

    Parameters
    ----------
    statistic : float
        Observed supLM statistic
    k : int
        Number of (decorrelated) parameters
    trim : float
        Trimming fraction used for the statistic

    Returns
    -------
    p_value : float
    """
    simulated = _simulate_suplm(int(k), round(float(trim), 10))
    n_sim = simulated.size
    p_value = (n_sim - np.searchsorted(simulated, statistic, side="left") + 1) / (n_sim + 1)

    if p_value < _TAIL_PVALUE:
        p_value = suplm_tail_approximation(statistic, k, trim)
    return float(p_value)


def suplm_tail_approximation(statistic, k, trim=0.1):
    """
    Tail approximation of the supremum of a squared, standardized k-dimensional Bessel bridge
    over ``[trim, 1 - trim]``, see [3]_.
    """
    lam = ((1 - trim) / trim) ** 2
    log_density = 0.5 * k * np.log(statistic / 2) - statistic / 2 - gammaln(k / 2)
    p_value = np.exp(log_density) * ((1 - k / statistic) * np.log(lam) + 2 / statistic)
    return float(min(1., max(p_value, chi2.sf(statistic, k))))


@lru_cache(maxsize=None)
def _simulate_suplm(k, trim):
    """
    Simulates the null distribution of supLM for `k` parameters on a regular grid.

    Returns
    -------
    statistics : array, shape = [_N_SIMULATIONS]
        Sorted simulated statistics
    """
    rng = np.random.default_rng(_SIMULATION_SEED)

    t = np.arange(1, _N_GRID + 1) / _N_GRID
    inside = (t >= trim) & (t <= 1 - trim)
    t_inside = t[inside]

    statistics = []
    for start in range(0, _N_SIMULATIONS, _BATCH_SIZE):
        batch = min(_BATCH_SIZE, _N_SIMULATIONS - start)

        # Accumulate the squared norm of the bridge one dimension at a time
        squared_norm = np.zeros((batch, t_inside.size))
        for _ in range(k):
            walk = rng.standard_normal((batch, _N_GRID)).cumsum(axis=1) / np.sqrt(_N_GRID)
            bridge = walk - t * walk[:, -1:]
            squared_norm += bridge[:, inside] ** 2

        statistics.append(np.max(squared_norm / (t_inside * (1 - t_inside)), axis=1))

    return np.sort(np.concatenate(statistics))


def bonferroni_adjust(p_values):
    """
    Bonferroni adjustment of p-values.

    Each p-value is multiplied by the number of tested hypotheses and clamped at 1.
    Missing p-values (``nan``) belong to untestable variables and do not count as tested.

    Parameters
    ----------
    p_values : array-like

    Returns
    -------
    adjusted : array
    """
    p_values = np.asarray(p_values, dtype=float)
    n_tests = np.count_nonzero(~np.isnan(p_values))
    return np.minimum(p_values * n_tests, 1.)


def run_instability_tests(model, partition_values, kinds, names=None, trim=0.1, bonferroni=True):
    """
    Tests the parameters of a fitted model for instability along each partitioning variable.

    Parameters
    ----------
    model : FittedModel
        The model fitted to the samples of a node
    partition_values : list of array-like
        For each partitioning variable the values of the node samples
    kinds : list of str
        For each partitioning variable either ``"ordered"`` or ``"categorical"``
    names : list, optional
        Names of the partitioning variables (defaults to their position)
    trim : float
        Trimming fraction for the supLM test
    bonferroni : bool
        If True, the p-values are Bonferroni adjusted

    Returns
    -------
    tests : list of InstabilityTest
        One entry per partitioning variable (in input order)
    """
    if names is None:
        names = list(range(len(partition_values)))

    scores, rank = decorrelate_scores(model.scores, model.weights)
    weights = np.asarray(model.weights, dtype=float)

    statistics = []
    dfs = []
    p_values = []
    for values, kind in zip(partition_values, kinds):
        statistic, df, p_value = None, 0, np.nan

        if rank > 0:
            if kind == CATEGORICAL:
                statistic, df = chisq_statistic(scores, weights, values)
                if statistic is not None:
                    p_value = float(chi2.sf(statistic, df))
            else:
                statistic = suplm_statistic(scores, weights, values, trim=trim)
                if statistic is not None:
                    df = rank
                    p_value = suplm_pvalue(statistic, rank, trim=trim)

        statistics.append(np.nan if statistic is None else statistic)
        dfs.append(df)
        p_values.append(p_value)

    adjusted = bonferroni_adjust(p_values) if bonferroni else np.asarray(p_values, dtype=float)

    return [
        InstabilityTest(
            variable=name,
            kind=kind,
            statistic=statistic,
            df=df,
            p_value=p_value,
            adjusted_p_value=float(adj)
        )
        for name, kind, statistic, df, p_value, adj in zip(names, kinds, statistics, dfs, p_values, adjusted)
    ]


def most_unstable(tests):
    """
    Returns the position of the test with the smallest adjusted p-value.

    Ties are broken by input order. Returns None if no variable was testable.
    """
    adjusted = np.array([test.adjusted_p_value for test in tests], dtype=float)
    if len(adjusted) == 0 or np.all(np.isnan(adjusted)):
        return None
    return int(np.nanargmin(adjusted))
