"""
This module defines the split search of model-based trees.

Once the instability tests selected a partitioning variable, the split point along that variable
is chosen by fitting the node model to both sides of every admissible split candidate and
minimizing the summed objective of the two child models.
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

from abc import ABCMeta, abstractmethod
from itertools import product

import numpy as np

from .exceptions import FitError, NoValidSplit, InvalidConfiguration
from .stability import CATEGORICAL


class SplitCandidate:
    """
    A split of the samples of a node along one partitioning variable.

    Parameters
    ----------
    variable : int
        Column of the partitioning variable
    kind : str
        ``"ordered"`` or ``"categorical"``
    threshold : float or None
        For ordered variables: samples with ``value <= threshold`` go to the left child
    left_categories : frozenset or None
        For categorical variables: samples with a value in this set go to the left child
    objective : float
        Summed objective of the two child models
    left_indices, right_indices : array
        Zero-based positions (within the node) of the samples of the left and right child
    left_model, right_model : FittedModel
        The models fitted to the children
    """

    def __init__(self, variable, kind, threshold=None, left_categories=None, objective=np.inf,
                 left_indices=None, right_indices=None, left_model=None, right_model=None):
        self.variable = variable
        self.kind = kind
        self.threshold = threshold
        self.left_categories = left_categories
        self.objective = objective
        self.left_indices = left_indices
        self.right_indices = right_indices
        self.left_model = left_model
        self.right_model = right_model

    def __repr__(self):
        if self.kind == CATEGORICAL:
            rule = f"in {sorted(self.left_categories, key=str)}"
        else:
            rule = f"<= {self.threshold:g}"
        return f"SplitCandidate(variable={self.variable}, {rule}, objective={self.objective:.4f})"


class BaseSplitCriterion(metaclass=ABCMeta):
    """
    Base Class for split criteria.

    Parameters
    ----------
    min_size : float (default = 10)
        Minimal (weighted) number of samples in each child node
    max_exhaustive_categories : int (default = 10)
        Categorical variables with up to this many categories are split by trying all binary partitions.
        For more categories, the categories are ordered by their mean response and only contiguous
        partitions are tried.
    """

    def __init__(self, min_size=10, max_exhaustive_categories=10):
        self.min_size = min_size
        self.max_exhaustive_categories = max_exhaustive_categories

    def __call__(self, family, X, y, weights, values, kind, variable=None):
        """
        Finds the best split of a node along one partitioning variable.

        Parameters
        ----------
        family : BaseFamily
            Model family fitted in the nodes
        X : array-like, shape = [n_samples, n_regressors]
            Regressors of the node samples
        y : array-like, shape = [n_samples]
            Response of the node samples
        weights : array-like, shape = [n_samples]
            Case weights of the node samples
        values : array-like, shape = [n_samples]
            Values of the partitioning variable for the node samples
        kind : str
            ``"ordered"`` or ``"categorical"``
        variable : int, optional
            Column of the partitioning variable, stored in the returned candidate

        Returns
        -------
        split: SplitCandidate
            The best split

        Raises
        ------
        NoValidSplit
            If no split candidate satisfies the minimal child size.
        """
        return self.find_best_split(family, X, y, weights, values, kind, variable)

    def validate_parameters(self):
        """
        Validates the provided criteria parameters.

        Raises
        ------
        InvalidConfiguration
            In case of invalid parameter values.
        """
        if self.min_size < 0:
            raise InvalidConfiguration(f"`min_size` must be non-negative, got {self.min_size}.")
        if int(self.max_exhaustive_categories) != self.max_exhaustive_categories \
                or self.max_exhaustive_categories < 2:
            msg = f"`max_exhaustive_categories` should be an int >= 2, got {self.max_exhaustive_categories}."
            raise InvalidConfiguration(msg)

    def find_best_split(self, family, X, y, weights, values, kind, variable=None):
        """
        Finds the best split of a node along one partitioning variable. See :meth:`__call__`.
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        weights = np.asarray(weights, dtype=float)

        if kind == CATEGORICAL:
            candidates = self._get_categorical_candidates(values, y, weights)
        else:
            candidates = self._get_ordered_candidates(np.asarray(values, dtype=float), weights)

        best_split = None
        for rule, left in candidates:
            candidate = self._evaluate_candidate(family, X, y, weights, left)
            if candidate is None:
                continue

            # Strict comparison: ties keep the first candidate (lowest threshold)
            if best_split is None or candidate.objective < best_split.objective:
                best_split = candidate
                if kind == CATEGORICAL:
                    best_split.left_categories = rule
                else:
                    best_split.threshold = rule

        if best_split is None:
            raise NoValidSplit(f"No admissible split along variable {variable}.")

        best_split.variable = variable
        best_split.kind = kind
        return best_split

    def _get_ordered_candidates(self, values, weights):
        """
        This methods identifies split candidates along an ordered variable.

        Yields
        ------
        threshold : float
            Samples with ``value <= threshold`` go to the left child
        left : array of bool
            Mask of the samples in the left child
        """
        sort_idx = np.argsort(values, kind="stable")
        sorted_values = values[sort_idx]

        # Find unique values along the sorted variable.
        #   splits : zero-based index of the first occurrence the unique elements (works, because the values
        #            are sorted). A potential split (with index j) maps samples sort_idx[:splits[j]] to the left
        #            and samples sort_idx[splits[j]:] to the right child node
        _, splits = np.unique(sorted_values, return_index=True)
        if len(splits) <= 1:
            return

        # splits[0] = 0 is no real split
        splits = splits[1:]

        # Weighted number of samples in the left and right child
        cum_weights = np.concatenate([[0.], np.cumsum(weights[sort_idx])])
        n_left = cum_weights[splits]
        n_right = cum_weights[-1] - n_left

        # Ignore all splits where one child has less than `min_size` samples
        admissible = np.minimum(n_left, n_right) >= self.min_size
        for split in splits[admissible]:
            threshold = sorted_values[split - 1]
            yield threshold, values <= threshold

    def _get_categorical_candidates(self, values, y, weights):
        """
        This methods identifies binary partitions of the categories.

        Yields
        ------
        left_categories : frozenset
            Categories of the left child
        left : array of bool
            Mask of the samples in the left child
        """
        values = np.asarray(values)
        categories, inverse = np.unique(values, return_inverse=True)
        n_categories = len(categories)
        if n_categories <= 1:
            return

        n_c = np.bincount(inverse, weights=weights, minlength=n_categories)
        total = n_c.sum()

        if n_categories <= self.max_exhaustive_categories:
            # The first category always goes to the left child to avoid mirrored duplicates
            partitions = (
                np.array((True,) + bits)
                for bits in product((False, True), repeat=n_categories - 1)
            )
        else:
            # Contiguous partitions of the categories ordered by their mean response
            means = np.bincount(inverse, weights=weights * y, minlength=n_categories) / n_c
            order = np.argsort(means, kind="stable")
            partitions = []
            for j in range(1, n_categories):
                left = np.zeros(n_categories, dtype=bool)
                left[order[:j]] = True
                partitions.append(left)

        for left_categories in partitions:
            if np.all(left_categories):
                continue
            n_left = n_c[left_categories].sum()
            if min(n_left, total - n_left) < self.min_size:
                continue
            yield frozenset(categories[left_categories].tolist()), left_categories[inverse]

    @abstractmethod
    def _evaluate_candidate(self, family, X, y, weights, left):
        """
        Core method of the split criterion. Evaluates one split candidate.

        Parameters
        ----------
        family : BaseFamily
            Model family fitted in the nodes
        X : array-like, shape = [n_samples, n_regressors]
            Regressors of the node samples
        y : array-like, shape = [n_samples]
            Response of the node samples
        weights : array-like, shape = [n_samples]
            Case weights of the node samples
        left : array of bool, shape = [n_samples]
            Mask of the samples that go to the left child

        Returns
        -------
        candidate : SplitCandidate or None
            The evaluated candidate (without split rule) or None, if it cannot be evaluated
        """
        pass


class ObjectiveSplitCriterion(BaseSplitCriterion):
    """
    Exhaustive search for the split with the smallest summed objective of the two child models,
    i.e. the smallest residual sum of squares (gaussian) or negative log-likelihood (other families).

    Candidates for which one of the child models cannot be fitted are skipped.
    """

    def _evaluate_candidate(self, family, X, y, weights, left):
        left_indices = np.flatnonzero(left)
        right_indices = np.flatnonzero(~left)

        try:
            left_model = family.fit(X[left_indices], y[left_indices], weights[left_indices])
            right_model = family.fit(X[right_indices], y[right_indices], weights[right_indices])
        except FitError:
            return None

        return SplitCandidate(
            variable=None,
            kind=None,
            objective=left_model.objective + right_model.objective,
            left_indices=left_indices,
            right_indices=right_indices,
            left_model=left_model,
            right_model=right_model
        )
