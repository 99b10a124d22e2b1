"""
Exceptions raised while growing model-based trees.
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


class MOBError(Exception):
    """Base class for all errors of this package."""


class FitError(MOBError):
    """
    A node model could not be fitted, e.g. because there are fewer observations than parameters
    or because the design matrix is rank deficient.
    """


class NonConvergence(MOBError):
    """
    An iterative fitting procedure hit its iteration cap before converging.

    Only raised when a tree is grown in strict mode. Otherwise non-convergence is reported as a
    :class:`sklearn.exceptions.ConvergenceWarning` and recorded on the fitted model.
    """

    def __init__(self, message, node_id=None):
        super().__init__(message)
        self.node_id = node_id


class NoValidSplit(MOBError):
    """No split candidate satisfies the minimal node size."""


class InvalidConfiguration(MOBError, ValueError):
    """Invalid estimator parameters or training data layout."""
