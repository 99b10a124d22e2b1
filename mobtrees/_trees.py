"""
This module defines model-based tree estimator classes for regression and classification.

The trees are grown by model-based recursive partitioning (MOB) [1]_:

1. Fit the node model to the samples of the node.
2. Test the stability of the model parameters along every partitioning variable.
3. If the smallest (Bonferroni adjusted) p-value is below `alpha`, split the node along that variable
   at the split point that minimizes the summed objective of the two child models.
4. Repeat in the child nodes until no significant instability is left.

References
----------
.. [1] Zeileis, A., Hothorn, T. and Hornik, K.,
   "Model-Based Recursive Partitioning",
   Journal of Computational and Graphical Statistics, 17(2), 492-514, 2008
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

from sklearn.base import BaseEstimator, RegressorMixin, ClassifierMixin
from sklearn.exceptions import ConvergenceWarning
from sklearn.utils.validation import check_is_fitted
from abc import ABCMeta, abstractmethod
import logging
import warnings

import numpy as np

from ._nodes import TreeNode, Split, Tree
from .criteria import ObjectiveSplitCriterion
from .exceptions import InvalidConfiguration, NonConvergence, NoValidSplit
from .families import get_family
from .pruning import prune_tree, get_penalty
from .stability import run_instability_tests, most_unstable, ORDERED, CATEGORICAL

logger = logging.getLogger(__name__)

# Parameter Constants
_PREDICTION_KINDS = {"response", "link", "node"}


class BaseMOBTree(BaseEstimator, metaclass=ABCMeta):
    """
    Base class for all model-based tree classes.

    Do not use this class directly, but instantiate derived classes.
    """
    tree_: Tree
    grown_tree_: Tree
    n_features_in_: int

    _required_parameters = []

    @abstractmethod
    def __init__(self,
                 family,
                 regressors=None,
                 partition_variables=None,
                 categorical=None,
                 alpha=0.05,
                 bonferroni=True,
                 min_size=None,
                 max_depth=None,
                 trim=0.1,
                 prune=None,
                 dfsplit=1.,
                 strict=False,
                 max_iter=25,
                 tol=1e-8,
                 max_exhaustive_categories=10):
        """
        Parameters
        ----------
        family : str, BaseFamily, estimator or callable
            Model fitted in the nodes. See :func:`mobtrees.families.get_family`.
        regressors : list of int or str, optional
            Columns of `X` that are used as regressors of the node models.
            By default, the node models only have an intercept.
        partition_variables : list of int or str, optional
            Columns of `X` that are tested for parameter instability and used for splits.
            By default, all columns that are not regressors.
        categorical : list of int or str, optional
            Partitioning variables that are unordered categorical.
            Columns that cannot be converted to float are always categorical.
        alpha : float (default = 0.05)
            Significance level for splitting a node
        bonferroni : bool (default = True)
            Bonferroni adjustment of the p-values in each node
        min_size : int, optional
            Minimal (weighted) number of samples in a node. Defaults to 10 times the number of
            model coefficients.
        max_depth : int, optional
            Maximal depth of the tree (the root has depth 0). Unbounded by default.
        trim : float (default = 0.1)
            Fraction of samples that is trimmed at both ends in the supLM test of ordered variables
        prune : str, optional
            Post-pruning with ``"aic"`` or ``"bic"``. No pruning by default.
        dfsplit : float (default = 1)
            Degrees of freedom per split in the information criteria
        strict : bool (default = False)
            If True, the growth is aborted with :class:`NonConvergence` if a node model does not converge.
            Otherwise, a :class:`sklearn.exceptions.ConvergenceWarning` is issued.
        max_iter : int (default = 25)
            Maximal number of IRLS iterations (for families given by name)
        tol : float (default = 1e-8)
            Convergence tolerance of IRLS (for families given by name)
        max_exhaustive_categories : int (default = 10)
            Categorical variables with up to this many categories are split by trying all binary partitions
        """
        self.family = family
        self.regressors = regressors
        self.partition_variables = partition_variables
        self.categorical = categorical
        self.alpha = alpha
        self.bonferroni = bonferroni
        self.min_size = min_size
        self.max_depth = max_depth
        self.trim = trim
        self.prune = prune
        self.dfsplit = dfsplit
        self.strict = strict
        self.max_iter = max_iter
        self.tol = tol
        self.max_exhaustive_categories = max_exhaustive_categories

    def fit(self, X, y, sample_weight=None):
        """
        Grows a model-based tree on the provided training data

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_columns]
            Regressors and partitioning variables of the training data
        y : array-like, shape = [n_samples]
            Target variable.
        sample_weight : array-like, shape = [n_samples], optional
            Case weights. Samples with weight 0 are ignored.

        Returns
        -------
        self : object
        """

        # Check model parameters
        self._validate_parameters()

        # Check input and resolve the columns
        X, y, w = self._validate_training_data(X, y, sample_weight)

        # Create the tree structure
        self.grown_tree_ = self._create_tree_structure(X, y, w)

        if self.prune is None:
            self.tree_ = self.grown_tree_
        else:
            self.tree_ = prune_tree(self.grown_tree_, self.prune, dfsplit=self.dfsplit)
            logger.debug("Pruned tree with %s: %d -> %d leaves", self.prune, self.grown_tree_.n_leaves,
                         self.tree_.n_leaves)

        return self

    def _validate_parameters(self):
        """
        Validates the provided model parameters.

        Raises
        ------
        InvalidConfiguration
            In case of invalid parameter values.
        """
        if not 0 < self.alpha <= 1:
            raise InvalidConfiguration(f"`alpha` must be in (0, 1], got {self.alpha}.")

        if self.min_size is not None and (int(self.min_size) != self.min_size or self.min_size < 0):
            raise InvalidConfiguration(f"`min_size` should be a non-negative int, got {self.min_size}.")

        if self.max_depth is not None and (int(self.max_depth) != self.max_depth or self.max_depth < 0):
            raise InvalidConfiguration(f"`max_depth` should be a non-negative int, got {self.max_depth}.")

        if not 0 < self.trim < 0.5:
            raise InvalidConfiguration(f"`trim` must be in (0, 0.5), got {self.trim}.")

        if self.prune is not None:
            # Raises for unknown criteria
            get_penalty(self.prune, 1)

        if self.dfsplit < 0:
            raise InvalidConfiguration(f"`dfsplit` must be non-negative, got {self.dfsplit}.")

        if int(self.max_iter) != self.max_iter or self.max_iter < 1:
            raise InvalidConfiguration(f"`max_iter` should be a positive int, got {self.max_iter}.")

        if not self.tol > 0:
            raise InvalidConfiguration(f"`tol` must be positive, got {self.tol}.")

        self.family_ = get_family(self.family, max_iter=self.max_iter, tol=self.tol)

        self.criterion_ = ObjectiveSplitCriterion(
            min_size=0 if self.min_size is None else self.min_size,
            max_exhaustive_categories=self.max_exhaustive_categories
        )
        self.criterion_.validate_parameters()

    def _validate_training_data(self, X, y, sample_weight):
        """
        Validates the training data, stores the input dimension and resolves regressor and partitioning columns

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_columns]
            Regressors and partitioning variables of the training data
        y : array-like, shape = [n_samples]
            Target variable.
        sample_weight : array-like, shape = [n_samples] or None
            Case weights

        Returns
        -------
        X : array, shape = [n_samples, n_columns]
        y : array, shape = [n_samples]
        w : array, shape = [n_samples]
        """
        columns = getattr(X, "columns", None)
        if columns is not None:
            self.feature_names_in_ = np.asarray([str(c) for c in columns], dtype=object)
        elif hasattr(self, "feature_names_in_"):
            del self.feature_names_in_

        X = np.asarray(X)
        if X.ndim != 2:
            raise InvalidConfiguration(f"Expected a 2-dimensional input, got shape {X.shape}.")
        self.n_features_in_ = X.shape[1]

        y = np.asarray(y, dtype=float).ravel()
        if len(y) != X.shape[0]:
            raise InvalidConfiguration(f"`X` has {X.shape[0]} samples, but `y` has {len(y)}.")
        self.family_.validate_response(y)

        if sample_weight is None:
            w = np.ones(len(y))
        else:
            w = np.asarray(sample_weight, dtype=float).ravel()
            if len(w) != len(y):
                raise InvalidConfiguration(f"`sample_weight` has {len(w)} entries, expected {len(y)}.")
            if np.any(w < 0) or not np.all(np.isfinite(w)):
                raise InvalidConfiguration("`sample_weight` must be finite and non-negative.")
        if not np.any(w > 0):
            raise InvalidConfiguration("At least one sample needs a positive weight.")

        # Resolve columns
        self.regressors_ = self._resolve_columns(self.regressors, "regressors")
        if self.partition_variables is None:
            self.partition_variables_ = [j for j in range(self.n_features_in_) if j not in self.regressors_]
        else:
            self.partition_variables_ = self._resolve_columns(self.partition_variables, "partition_variables")

        overlap = set(self.regressors_) & set(self.partition_variables_)
        if overlap:
            msg = f"Columns {sorted(overlap)} cannot be both regressors and partitioning variables."
            raise InvalidConfiguration(msg)
        if len(self.partition_variables_) == 0:
            raise InvalidConfiguration("At least one partitioning variable is required.")

        for j in self.regressors_:
            if not _is_numeric_column(X[:, j]):
                raise InvalidConfiguration(f"Regressor {self._variable_name(j)} is not numeric.")

        categorical = set(self._resolve_columns(self.categorical, "categorical"))
        self.partition_kinds_ = [
            CATEGORICAL if j in categorical or not _is_numeric_column(X[:, j]) else ORDERED
            for j in self.partition_variables_
        ]

        return X, y, w

    def _resolve_columns(self, columns, parameter):
        """
        Converts a list of column positions or names into column positions.
        """
        if columns is None:
            return []

        names = list(getattr(self, "feature_names_in_", []))
        resolved = []
        for c in columns:
            if isinstance(c, str):
                if c not in names:
                    raise InvalidConfiguration(f"Unknown column '{c}' in `{parameter}`.")
                resolved.append(names.index(c))
            elif isinstance(c, (int, np.integer)) and 0 <= c < self.n_features_in_:
                resolved.append(int(c))
            else:
                raise InvalidConfiguration(f"Invalid column {c!r} in `{parameter}`.")
        return resolved

    def _variable_name(self, column):
        if hasattr(self, "feature_names_in_"):
            return str(self.feature_names_in_[column])
        return f"x{column}"

    def _create_tree_structure(self, X, y, w):
        """
        Grows the tree structure with respect to the provided training data.

        The nodes are processed from a stack (depth-first, left child first). For each node:

        - Grow: the node model is fitted (the root) or taken from the split search (all other nodes)
        - TestStability: the parameter instability tests decide, if and along which variable to split
        - Split: the split point is searched and the child nodes are created
        - Leaf: otherwise, the node remains a leaf node. Nodes with a constant response are leaves
          without being tested.

        Parameters
        ----------
        X : array, shape = [n_samples, n_columns]
            Regressors and partitioning variables of the training data
        y : array, shape = [n_samples]
            Target variable.
        w : array, shape = [n_samples]
            Case weights

        Returns
        -------
        tree : Tree
            The grown tree

        Raises
        ------
        FitError
            If the root model cannot be fitted
        NonConvergence
            In strict mode, if a node model did not converge
        """
        regressors = X[:, self.regressors_].astype(float)
        partition_values = [
            X[:, j].astype(float) if kind == ORDERED else X[:, j]
            for j, kind in zip(self.partition_variables_, self.partition_kinds_)
        ]

        # Samples with weight 0 do not take part in the fitting
        root_indices = np.flatnonzero(w > 0)
        root_model = self.family_.fit(regressors[root_indices], y[root_indices], w[root_indices])

        # Default minimal node size: 10 samples per coefficient
        if self.min_size is None:
            self.min_size_ = 10 * root_model.n_params
        else:
            self.min_size_ = self.min_size
        self.criterion_.min_size = self.min_size_

        tree = Tree()
        tree.add_node(TreeNode(node_id=0, depth=0, indices=root_indices, model=root_model))

        stack = [0]
        while stack:
            node = tree[stack.pop()]

            # Nothing to explain in a pure node. GLM fits diverge there, so their scores are meaningless.
            if np.ptp(y[node.indices]) == 0:
                node.leaf_reason = "constant_response"
                logger.debug("Node %d is a leaf (%s)", node.node_id, node.leaf_reason)
                continue

            self._check_convergence(node)

            variable = self._test_stability(node, partition_values)
            if variable is None:
                continue

            children = self._split_node(tree, node, variable, regressors, y, w, partition_values)

            # Reversed, so that the left child is processed first
            stack.extend(reversed(children))

        return tree

    def _check_convergence(self, node):
        """
        Issues a warning (or raises in strict mode) if the model of a node did not converge.
        """
        if node.model.converged:
            return

        msg = f"The model of node {node.node_id} did not converge: {' '.join(node.model.warnings)}"
        if self.strict:
            raise NonConvergence(msg, node_id=node.node_id)
        warnings.warn(msg, ConvergenceWarning)

    def _test_stability(self, node, partition_values):
        """
        Runs the instability tests of a node and decides, whether the node is split.

        Parameters
        ----------
        node : TreeNode
            The current node. The tests are stored in the node.
        partition_values : list of array
            Values of all partitioning variables for all training samples

        Returns
        -------
        variable : int or None
            Position (in `partition_variables_`) of the variable to split or None for leaf nodes
        """
        node.tests = run_instability_tests(
            node.model,
            [values[node.indices] for values in partition_values],
            self.partition_kinds_,
            names=[self._variable_name(j) for j in self.partition_variables_],
            trim=self.trim,
            bonferroni=self.bonferroni
        )
        best = most_unstable(node.tests)

        if best is None:
            node.leaf_reason = "no_testable_variable"
        elif not node.tests[best].adjusted_p_value < self.alpha:
            node.leaf_reason = "not_significant"
        elif self.max_depth is not None and node.depth >= self.max_depth:
            node.leaf_reason = "max_depth"
        elif node.n_obs < self.min_size_:
            node.leaf_reason = "min_size"

        if node.leaf_reason is not None:
            logger.debug("Node %d is a leaf (%s)", node.node_id, node.leaf_reason)
            return None

        logger.debug("Node %d: most unstable variable %s (p = %.4g)", node.node_id,
                     node.tests[best].variable, node.tests[best].adjusted_p_value)
        return best

    def _split_node(self, tree, node, variable, regressors, y, w, partition_values):
        """
        Searches the best split of a node along a partitioning variable and creates the child nodes.

        Returns
        -------
        children : list of int
            Ids of the new child nodes. Empty, if no valid split exists.
        """
        idx = node.indices
        column = self.partition_variables_[variable]
        kind = self.partition_kinds_[variable]
        values = partition_values[variable][idx]

        try:
            candidate = self.criterion_(self.family_, regressors[idx], y[idx], w[idx], values, kind,
                                        variable=column)
        except NoValidSplit:
            node.leaf_reason = "no_valid_split"
            logger.debug("Node %d is a leaf (no_valid_split)", node.node_id)
            return []

        right_categories = None
        if kind == CATEGORICAL:
            right_categories = frozenset(np.unique(values[candidate.right_indices]).tolist())

        node.split = Split(
            variable=column,
            kind=kind,
            threshold=candidate.threshold,
            left_categories=candidate.left_categories,
            right_categories=right_categories,
            default_child=0 if candidate.left_model.n_obs >= candidate.right_model.n_obs else 1,
            name=self._variable_name(column)
        )
        logger.debug("Node %d split: %s", node.node_id, node.split.describe(0))

        for child_indices, model in ((candidate.left_indices, candidate.left_model),
                                     (candidate.right_indices, candidate.right_model)):
            child = TreeNode(
                node_id=len(tree),
                parent_id=node.node_id,
                depth=node.depth + 1,
                indices=idx[child_indices],
                model=model
            )
            tree.add_node(child)
            node.children.append(child.node_id)

        return node.children

    def _validate_X_predict(self, X):
        check_is_fitted(self, "tree_")
        X = np.asarray(X)
        if X.ndim != 2 or X.shape[1] != self.n_features_in_:
            raise ValueError(f"Expected input with {self.n_features_in_} columns, got shape {X.shape}.")
        return X

    def _apply_sample_wise_function_on_leafs(self, fct, X):
        """
        Helper function that applies a function on the leaf models and returns the recombined results.

        Parameters
        ----------
        fct: callable
            A function that takes two parameters: a fitted model and the regressor matrix of the samples in the leaf.
            The result must be an array, where the first axis corresponds to samples.
        X : array-like, shape = [n_samples, n_columns]
            Regressors and partitioning variables of the samples

        Returns
        -------
        output: array
            The recombined results of the function calls on the leafs. The order of the input `X` is maintained.
        """
        X = self._validate_X_predict(X)
        if X.shape[0] == 0:
            return np.zeros(0)

        leaf_ids = self.tree_.apply(X)
        regressors = X[:, self.regressors_].astype(float)

        output = None
        for leaf_id in np.unique(leaf_ids):
            mask = leaf_ids == leaf_id
            result = np.asarray(fct(self.tree_[leaf_id].model, regressors[mask]))

            if output is None:
                output = np.zeros((X.shape[0],) + result.shape[1:], dtype=result.dtype)
            output[mask] = result

        return output

    def apply(self, X):
        """
        Returns the id of the leaf that each sample is predicted as.

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_columns]
            Regressors and partitioning variables of the samples

        Returns
        -------
        leaf_ids : array, shape = [n_samples]
        """
        X = self._validate_X_predict(X)
        return self.tree_.apply(X)

    def _predict(self, X, kind="response"):
        if kind not in _PREDICTION_KINDS:
            raise ValueError(f"Invalid prediction kind '{kind}'. Valid values are {sorted(_PREDICTION_KINDS)}")
        if kind == "node":
            return self.apply(X)
        return self._apply_sample_wise_function_on_leafs(
            lambda model, X_: self.family_.predict(model, X_, kind=kind), X)

    def loglik(self):
        """Log-likelihood of the tree (summed over the leaf models)"""
        check_is_fitted(self, "tree_")
        return self.tree_.loglik()

    def aic(self):
        """Akaike information criterion of the tree"""
        check_is_fitted(self, "tree_")
        return self.tree_.aic(dfsplit=self.dfsplit)

    def bic(self):
        """Bayesian information criterion of the tree"""
        check_is_fitted(self, "tree_")
        return self.tree_.bic(dfsplit=self.dfsplit)

    def coef(self):
        """
        Coefficients of the leaf models.

        Returns
        -------
        coef : dict
            Mapping from leaf id to the coefficient vector ``[intercept, regressor_1, ...]``
        """
        check_is_fitted(self, "tree_")
        return self.tree_.coef()

    def coef_names(self):
        """Names of the model coefficients"""
        check_is_fitted(self, "tree_")
        return ["(Intercept)"] + [self._variable_name(j) for j in self.regressors_]

    def node_summary(self, node_id=0):
        """
        Summary of the model of a node, see :meth:`mobtrees.families.FittedModel.summary`.
        Also inner nodes keep their model.
        """
        check_is_fitted(self, "tree_")
        node = self.tree_[node_id]
        summary = node.model.summary()
        summary["coef_names"] = self.coef_names() if len(node.model.coef) == len(self.regressors_) + 1 else None
        summary["depth"] = node.depth
        summary["is_leaf"] = node.is_leaf()
        summary["leaf_reason"] = node.leaf_reason
        return summary

    def instability_tests(self, node_id=0):
        """
        Parameter instability tests computed in a node.

        Returns
        -------
        tests : list of InstabilityTest
            One entry per partitioning variable
        """
        check_is_fitted(self, "tree_")
        return self.tree_[node_id].tests

    def get_pruned_tree(self, criterion="aic"):
        """
        Prunes the grown tree with an information criterion.

        The estimator itself is not modified.

        Parameters
        ----------
        criterion : str
            ``"aic"`` or ``"bic"``

        Returns
        -------
        tree : Tree
        """
        check_is_fitted(self, "grown_tree_")
        return prune_tree(self.grown_tree_, criterion, dfsplit=self.dfsplit)

    def to_text(self, precision=4):
        """
        Renders the tree structure with the coefficients of the leaf models as text.
        """
        check_is_fitted(self, "tree_")
        names = self.coef_names()
        if any(len(leaf.model.coef) != len(names) for leaf in self.tree_.leaves()):
            names = None
        return self.tree_.to_text(coef_names=names, precision=precision)


class MOBTreeRegressor(RegressorMixin, BaseMOBTree):
    """
    Model-based tree for regression problems.

    By default, linear models are fitted in the nodes (like ``lmtree``). With ``family="poisson"``,
    poisson regression models are fitted (like ``glmtree`` with poisson family).

    Parameters
    ----------
    family : str, BaseFamily, estimator or callable (default = "gaussian")
        Model fitted in the nodes. See :func:`mobtrees.families.get_family`.
    regressors : list of int or str, optional
        Columns of `X` that are used as regressors of the node models (intercept-only by default).
    partition_variables : list of int or str, optional
        Columns of `X` that are used for splits. By default, all columns that are not regressors.
    categorical : list of int or str, optional
        Partitioning variables that are unordered categorical
    alpha : float (default = 0.05)
        Significance level for splitting a node
    bonferroni : bool (default = True)
        Bonferroni adjustment of the p-values in each node
    min_size : int, optional
        Minimal number of samples in a node (default: 10 times the number of coefficients)
    max_depth : int, optional
        Maximal depth of the tree
    trim : float (default = 0.1)
        Trimming fraction of the supLM test
    prune : str, optional
        Post-pruning with ``"aic"`` or ``"bic"``
    dfsplit : float (default = 1)
        Degrees of freedom per split in the information criteria
    strict : bool (default = False)
        Abort growing on non-converged node models
    max_iter : int (default = 25)
        Maximal number of IRLS iterations
    tol : float (default = 1e-8)
        Convergence tolerance of IRLS
    max_exhaustive_categories : int (default = 10)
        Maximal number of categories for an exhaustive categorical split search

    Attributes
    ----------
    tree_ : Tree
        The (pruned) tree structure
    grown_tree_ : Tree
        The tree structure before pruning
    family_ : BaseFamily
        The resolved model family
    min_size_ : int
        The resolved minimal node size

    References
    ----------
    .. [1] Zeileis, A., Hothorn, T. and Hornik, K.,
       "Model-Based Recursive Partitioning",
       Journal of Computational and Graphical Statistics, 17(2), 492-514, 2008
    """

    def __init__(self,
                 family="gaussian",
                 regressors=None,
                 partition_variables=None,
                 categorical=None,
                 alpha=0.05,
                 bonferroni=True,
                 min_size=None,
                 max_depth=None,
                 trim=0.1,
                 prune=None,
                 dfsplit=1.,
                 strict=False,
                 max_iter=25,
                 tol=1e-8,
                 max_exhaustive_categories=10):
        super().__init__(
            family=family,
            regressors=regressors,
            partition_variables=partition_variables,
            categorical=categorical,
            alpha=alpha,
            bonferroni=bonferroni,
            min_size=min_size,
            max_depth=max_depth,
            trim=trim,
            prune=prune,
            dfsplit=dfsplit,
            strict=strict,
            max_iter=max_iter,
            tol=tol,
            max_exhaustive_categories=max_exhaustive_categories
        )

    def predict(self, X, kind="response"):
        """
        Predicts with the leaf models.

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_columns]
            Regressors and partitioning variables of the samples
        kind : str
            ``"response"`` (expected response), ``"link"`` (linear predictor) or ``"node"`` (leaf ids)

        Returns
        -------
        O : array, shape = [n_samples]
            Prediction per sample
        """
        return self._predict(X, kind=kind)


class MOBTreeClassifier(ClassifierMixin, BaseMOBTree):
    """
    Model-based tree for binary classification problems.

    By default, logistic regression models are fitted in the nodes (like ``glmtree`` with binomial family).
    The second class in `classes_` is the positive class of the node models.

    Parameters
    ----------
    family : str, BaseFamily, estimator or callable (default = "binomial")
        Model fitted in the nodes. The model has to predict probabilities of the positive class.
    regressors : list of int or str, optional
        Columns of `X` that are used as regressors of the node models (intercept-only by default).
    partition_variables : list of int or str, optional
        Columns of `X` that are used for splits. By default, all columns that are not regressors.
    categorical : list of int or str, optional
        Partitioning variables that are unordered categorical
    alpha : float (default = 0.05)
        Significance level for splitting a node
    bonferroni : bool (default = True)
        Bonferroni adjustment of the p-values in each node
    min_size : int, optional
        Minimal number of samples in a node (default: 10 times the number of coefficients)
    max_depth : int, optional
        Maximal depth of the tree
    trim : float (default = 0.1)
        Trimming fraction of the supLM test
    prune : str, optional
        Post-pruning with ``"aic"`` or ``"bic"``
    dfsplit : float (default = 1)
        Degrees of freedom per split in the information criteria
    strict : bool (default = False)
        Abort growing on non-converged node models
    max_iter : int (default = 25)
        Maximal number of IRLS iterations
    tol : float (default = 1e-8)
        Convergence tolerance of IRLS
    max_exhaustive_categories : int (default = 10)
        Maximal number of categories for an exhaustive categorical split search

    Attributes
    ----------
    tree_ : Tree
        The (pruned) tree structure
    grown_tree_ : Tree
        The tree structure before pruning
    classes_ : array, shape (2, )
        The class labels known to the classifier.
    """

    def __init__(self,
                 family="binomial",
                 regressors=None,
                 partition_variables=None,
                 categorical=None,
                 alpha=0.05,
                 bonferroni=True,
                 min_size=None,
                 max_depth=None,
                 trim=0.1,
                 prune=None,
                 dfsplit=1.,
                 strict=False,
                 max_iter=25,
                 tol=1e-8,
                 max_exhaustive_categories=10):
        super().__init__(
            family=family,
            regressors=regressors,
            partition_variables=partition_variables,
            categorical=categorical,
            alpha=alpha,
            bonferroni=bonferroni,
            min_size=min_size,
            max_depth=max_depth,
            trim=trim,
            prune=prune,
            dfsplit=dfsplit,
            strict=strict,
            max_iter=max_iter,
            tol=tol,
            max_exhaustive_categories=max_exhaustive_categories
        )

    def fit(self, X, y, sample_weight=None):
        """
        Grows a model-based tree on the provided training data

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_columns]
            Regressors and partitioning variables of the training data
        y : array-like, shape = [n_samples]
            Binary class labels
        sample_weight : array-like, shape = [n_samples], optional
            Case weights. Samples with weight 0 are ignored.

        Returns
        -------
        self : object
        """
        self.classes_, y_encoded = np.unique(np.ravel(y), return_inverse=True)
        if len(self.classes_) != 2:
            raise InvalidConfiguration(
                f"MOBTreeClassifier supports binary classification problems only, got {len(self.classes_)} classes.")

        return super().fit(X, y_encoded, sample_weight=sample_weight)

    def predict_proba(self, X):
        """
        Predict the probabilities for each class

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_columns]
            Regressors and partitioning variables of the samples

        Returns
        -------
        P: array, shape= [n_samples, 2]
            Probabilities of samples to belong to the classes.
        """
        p = self._predict(X, kind="response")
        return np.stack([1 - p, p], axis=1)

    def predict_log_proba(self, X):
        """
        Predict the log-probabilities for each class

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_columns]
            Regressors and partitioning variables of the samples

        Returns
        -------
        P: array, shape= [n_samples, 2]
            Log-probabilities of samples to belong to the classes.
        """
        with np.errstate(divide="ignore"):
            return np.log(self.predict_proba(X))

    def decision_function(self, X):
        """
        Linear predictor of the leaf models (log-odds of the second class for the binomial family)
        """
        return self._predict(X, kind="link")

    def predict(self, X):
        """
        Predict class labels for samples in X.

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_columns]
            Regressors and partitioning variables of the samples

        Returns
        -------
        O : array, shape = [n_samples]
            Predicted class label per sample
        """
        p = self._predict(X, kind="response")
        return self.classes_[(p > 0.5).astype(int)]


def _is_numeric_column(values):
    """
    Checks, if all values of a column can be converted to float.
    """
    if np.issubdtype(np.asarray(values).dtype, np.number) or np.asarray(values).dtype == bool:
        return True
    try:
        np.asarray(values, dtype=float)
    except (TypeError, ValueError):
        return False
    return True
