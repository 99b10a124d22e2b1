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

import numpy as np

from .stability import CATEGORICAL


class TreeNode:
    """
    A helper class to store one node of a model-based tree.

    Do not instantiate this class directly, but use the model-based tree estimators.
    Nodes reference their parent and children by id. The nodes themselves are owned by a :class:`Tree`.

    Parameters
    ----------
    node_id : int
        Id of the node, unique within the tree
    parent_id : int or None
        Id of the parent node or None if this is the root node
    depth : int
        Zero-based depth of the node in the tree
    indices : array-like
        Zero-based row indices of the training samples of this node
    model : FittedModel
        The model fitted to the training samples of this node.
        This model is used in leaf nodes for predictions, but is also kept in inner nodes.

    Attributes
    ----------
    children : list of int
        Ids of the child nodes. Empty for leaf nodes.
    split : Split or None
        Defines, how samples are split (and mapped) to the child nodes.
    tests : list of InstabilityTest
        The parameter instability tests computed in this node. Empty if the node was not tested.
    leaf_reason : str or None
        Why the node was not split. One of ``"constant_response"``, ``"max_depth"``, ``"min_size"``,
        ``"no_testable_variable"``, ``"not_significant"``, ``"no_valid_split"`` and ``"pruned"``.

    See Also
    --------
    Tree : Container of the nodes
    Split : Class that defines how split / mapping to the child nodes
    """

    def __init__(self, node_id, parent_id=None, depth=0, indices=None, model=None):
        self.node_id = node_id
        self.parent_id = parent_id
        self.depth = depth
        self.indices = indices
        self.model = model
        self.children = []
        self.split = None
        self.tests = []
        self.leaf_reason = None

    def is_leaf(self):
        """
        Checks, if the node is a leaf node, i.e. no split is set.

        Returns
        -------
        True, if the node is a leaf node.
        """
        return self.split is None

    def is_root(self):
        """
        Checks, if the node is a root node, i.e. no parent_node is set.

        Returns
        -------
        True, if the node is a root node.
        """
        return self.parent_id is None

    @property
    def n_obs(self):
        """Weighted number of training samples of the node"""
        return self.model.n_obs

    def __repr__(self):
        kind = "leaf" if self.is_leaf() else "inner"
        return f"TreeNode(node_id={self.node_id}, {kind}, depth={self.depth}, n_obs={self.n_obs:g})"


class Split:
    """
    Defines a splitting of a model tree node, i.e. the mapping of samples to the child nodes.

    For ordered variables, all samples with a value less or equal to the threshold are mapped to child 0.
    For categorical variables, all samples with a value in `left_categories` are mapped to child 0.
    All others are mapped to child 1. Categories that have not been seen during training go to the
    child with more training samples.

    Parameters
    ----------
    variable : int
        Column index of the partitioning variable that is used for the split
    kind : str
        ``"ordered"`` or ``"categorical"``
    threshold : float, optional
        Threshold for ordered variables
    left_categories : frozenset, optional
        Categories that go to the left child
    right_categories : frozenset, optional
        Categories that went to the right child during training
    default_child : int (default = 0)
        Child for unseen categories
    name : str, optional
        Display name of the variable
    """

    def __init__(self, variable, kind, threshold=None, left_categories=None, right_categories=None,
                 default_child=0, name=None):
        self.variable = variable
        self.kind = kind
        self.threshold = threshold
        self.left_categories = left_categories
        self.right_categories = right_categories
        self.default_child = default_child
        self.name = f"x{variable}" if name is None else name

    def map_to_children(self, X):
        """
        Maps samples to child nodes.

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_columns]
            All columns of the samples

        Returns
        -------
        child_idx: array-like, shape = [n_samples]
            For each sample an index (0 for left child, 1 for right child).
        """
        values = np.asarray(X)[:, self.variable]
        if self.kind == CATEGORICAL:
            left = np.isin(values, list(self.left_categories))
            right = np.isin(values, list(self.right_categories))
            child_idx = np.where(left, 0, np.where(right, 1, self.default_child))
        else:
            child_idx = 1 - (values.astype(float) <= self.threshold)
        return child_idx.astype(int)

    def describe(self, child):
        """
        Returns a readable rule for the samples of a child.

        Parameters
        ----------
        child : int
            0 for the left, 1 for the right child
        """
        if self.kind == CATEGORICAL:
            categories = self.left_categories if child == 0 else self.right_categories
            return f"{self.name} in {{{', '.join(str(c) for c in sorted(categories, key=str))}}}"
        op = "<=" if child == 0 else ">"
        return f"{self.name} {op} {self.threshold:g}"

    def __repr__(self):
        return f"Split({self.describe(0)})"


class Tree:
    """
    Container of the nodes of a model-based tree.

    The nodes are stored in an arena, i.e. a dictionary from node id to node.
    The root node has id 0. Parent and child references are stored as ids.

    Parameters
    ----------
    nodes : dict, optional
        Mapping from node id to :class:`TreeNode`
    """

    def __init__(self, nodes=None):
        self.nodes = {} if nodes is None else nodes

    def add_node(self, node):
        self.nodes[node.node_id] = node
        return node

    @property
    def root(self):
        return self.nodes[0]

    def __len__(self):
        return len(self.nodes)

    def __getitem__(self, node_id):
        return self.nodes[node_id]

    def iter_nodes(self, node_id=0):
        """
        Iterates over the nodes of a (sub-)tree in depth-first pre-order (left before right).

        Parameters
        ----------
        node_id : int
            Root of the subtree
        """
        stack = [node_id]
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def leaves(self, node_id=0):
        """
        Leaf nodes of a (sub-)tree in depth-first order.
        """
        return [node for node in self.iter_nodes(node_id) if node.is_leaf()]

    def inner_nodes(self, node_id=0):
        """
        Inner (split) nodes of a (sub-)tree in depth-first order.
        """
        return [node for node in self.iter_nodes(node_id) if not node.is_leaf()]

    @property
    def n_leaves(self):
        return len(self.leaves())

    @property
    def depth(self):
        """Maximal depth of a leaf"""
        return max(node.depth for node in self.leaves())

    def get_path(self, node_id):
        """
        Gets the path from the root to a node

        Returns
        -------
        path : list of TreeNode
            The list of TreeNodes along the path from the root to this node
        """
        path = []

        node = self.nodes[node_id]
        while node is not None:
            path.insert(0, node)
            node = None if node.parent_id is None else self.nodes[node.parent_id]

        return path

    def apply(self, X):
        """
        Maps input samples to leaf nodes by using split rules and the tree structure

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_columns]
            All columns of the samples

        Returns
        -------
        leaf_ids: array-like, shape = [n_samples]
            For each sample the id of the corresponding leaf node.
        """
        X = np.asarray(X)
        leaf_ids = -np.ones(X.shape[0], dtype=int)

        stack = [(0, np.arange(X.shape[0]))]
        while stack:
            node_id, idx = stack.pop()
            node = self.nodes[node_id]
            if node.is_leaf():
                leaf_ids[idx] = node_id
                continue

            child_idx = node.split.map_to_children(X[idx])
            for c, child_id in enumerate(node.children):
                sub = idx[child_idx == c]
                if len(sub) > 0:
                    stack.append((child_id, sub))

        return leaf_ids

    def loglik(self, node_id=0):
        """Summed log-likelihood of the leaf models of a (sub-)tree"""
        return float(sum(leaf.model.loglik for leaf in self.leaves(node_id)))

    def n_params(self, node_id=0, dfsplit=1.):
        """
        Degrees of freedom of a (sub-)tree: the degrees of freedom of the leaf models plus `dfsplit`
        for each split.
        """
        n_splits = len(self.inner_nodes(node_id))
        return float(sum(leaf.model.df for leaf in self.leaves(node_id)) + dfsplit * n_splits)

    def information_criterion(self, penalty, node_id=0, dfsplit=1.):
        """
        ``-2 * loglik + penalty * n_params`` of a (sub-)tree
        """
        return -2 * self.loglik(node_id) + penalty * self.n_params(node_id, dfsplit=dfsplit)

    def aic(self, dfsplit=1.):
        """Akaike information criterion of the whole tree"""
        return self.information_criterion(2., dfsplit=dfsplit)

    def bic(self, dfsplit=1.):
        """Bayesian information criterion of the whole tree"""
        return self.information_criterion(np.log(self.root.n_obs), dfsplit=dfsplit)

    def coef(self):
        """
        Coefficients of the leaf models.

        Returns
        -------
        coef : dict
            Mapping from leaf id to coefficient vector
        """
        return {leaf.node_id: leaf.model.coef for leaf in self.leaves()}

    def to_text(self, coef_names=None, precision=4):
        """
        Renders the tree structure as text.

        Parameters
        ----------
        coef_names : list of str, optional
            Names of the coefficients, shown for the leaf models
        precision : int
            Number of decimals of the coefficients

        Returns
        -------
        text : str
        """
        lines = []
        stack = [(0, None)]
        while stack:
            node_id, rule = stack.pop()
            node = self.nodes[node_id]
            indent = "|   " * node.depth
            label = "root" if rule is None else rule

            if node.is_leaf():
                coef = node.model.coef
                names = coef_names if coef_names is not None else [f"coef{i}" for i in range(len(coef))]
                fitted = ", ".join(f"{name} = {value:.{precision}f}" for name, value in zip(names, coef))
                lines.append(f"{indent}[{node_id}] {label}: n = {node.n_obs:g}, {fitted}")
            else:
                lines.append(f"{indent}[{node_id}] {label}")
                for c in reversed(range(len(node.children))):
                    stack.append((node.children[c], node.split.describe(c)))

        return "\n".join(lines)
