"""
This package defines model-based tree scikit-learn compatible estimators.
These can be used for both classification and regression.

The trees are grown by model-based recursive partitioning [1]_: parametric models are fitted in the nodes
and nodes are split along partitioning variables where parameter instability tests detect significant
changes of the model parameters.

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

from ._trees import MOBTreeRegressor, MOBTreeClassifier
from ._nodes import Tree, TreeNode, Split
from .families import FittedModel, GaussianFamily, BinomialFamily, PoissonFamily, CustomFamily, EstimatorFamily
from .stability import InstabilityTest
from .pruning import prune_tree
from .exceptions import MOBError, FitError, NonConvergence, NoValidSplit, InvalidConfiguration

__all__ = [
    "MOBTreeRegressor", "MOBTreeClassifier",
    "Tree", "TreeNode", "Split",
    "FittedModel", "GaussianFamily", "BinomialFamily", "PoissonFamily", "CustomFamily", "EstimatorFamily",
    "InstabilityTest", "prune_tree",
    "MOBError", "FitError", "NonConvergence", "NoValidSplit", "InvalidConfiguration",
]
