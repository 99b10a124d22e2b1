"""
Post-pruning of model-based trees with information criteria.

The information criterion of a tree is ``-2 * loglik + penalty * df``, where the log-likelihood and
the degrees of freedom are summed over the leaf models and each split adds ``dfsplit`` degrees of
freedom. AIC uses ``penalty = 2``, BIC uses ``penalty = log(n)``.

The tree is pruned bottom-up: an inner node is collapsed into a leaf whenever its own model has an
information criterion that is not larger than that of its (already pruned) subtree. Since the
criterion is additive over the leaves, this yields the pruned subtree with the smallest criterion.
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

import copy
import logging

import numpy as np

from ._nodes import Tree
from .exceptions import InvalidConfiguration

logger = logging.getLogger(__name__)

_SUPPORTED_CRITERIA = {"aic", "bic"}


def get_penalty(criterion, n_obs):
    """
    Returns the penalty per degree of freedom of an information criterion.

    Parameters
    ----------
    criterion : str
        ``"aic"`` or ``"bic"`` (case-insensitive)
    n_obs : float
        Number of observations (used by BIC)

    Returns
    -------
    penalty : float
    """
    if not isinstance(criterion, str) or criterion.lower() not in _SUPPORTED_CRITERIA:
        msg = f"Invalid pruning criterion. Got '{criterion}'. Valid values are {sorted(_SUPPORTED_CRITERIA)}"
        raise InvalidConfiguration(msg)
    if criterion.lower() == "aic":
        return 2.
    return float(np.log(n_obs))


def prune_tree(tree, criterion="aic", dfsplit=1.):
    """
    Prunes a grown tree.

    The input tree is not modified. The returned tree contains (shallow) copies of the surviving nodes.
    Node ids and fitted models are shared with the input tree.

    Parameters
    ----------
    tree : Tree
        A grown model-based tree
    criterion : str
        ``"aic"`` or ``"bic"``
    dfsplit : float
        Degrees of freedom per split

    Returns
    -------
    pruned : Tree
    """
    penalty = get_penalty(criterion, tree.root.n_obs)

    nodes = {}
    for node_id, node in tree.nodes.items():
        node = copy.copy(node)
        node.children = list(node.children)
        nodes[node_id] = node

    # Reversed pre-order visits all descendants of a node before the node itself
    order = [node.node_id for node in tree.iter_nodes()]

    # Log-likelihood and degrees of freedom of the pruned subtree of each node
    subtree = {}
    for node_id in reversed(order):
        node = nodes[node_id]
        own = (node.model.loglik, node.model.df)
        if node.is_leaf():
            subtree[node_id] = own
            continue

        loglik = sum(subtree[c][0] for c in node.children)
        df = sum(subtree[c][1] for c in node.children) + dfsplit

        collapsed_ic = -2 * own[0] + penalty * own[1]
        kept_ic = -2 * loglik + penalty * df

        if collapsed_ic <= kept_ic:
            logger.debug("Pruning node %d (%s %.4f <= %.4f)", node_id, criterion, collapsed_ic, kept_ic)
            node.children = []
            node.split = None
            node.leaf_reason = "pruned"
            subtree[node_id] = own
        else:
            subtree[node_id] = (loglik, df)

    # Only keep nodes that are still reachable from the root
    full = Tree(nodes)
    pruned = Tree()
    for node in full.iter_nodes():
        pruned.add_node(node)
    return pruned
