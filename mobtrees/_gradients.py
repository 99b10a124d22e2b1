"""
This module contains pre-defined methods to compute score contributions (gradients of the
log-likelihood with respect to the model parameters) and log-likelihoods for common scikit-learn
estimators. These allow to use the estimators as node models of a model-based tree,
see :class:`mobtrees.families.EstimatorFamily`.

All score functions return the intercept column first (if the estimator fits an intercept),
followed by one column per feature. This matches the order of :func:`get_coefficients`.
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

import numpy as np
from scipy.special import xlogy, gammaln

from sklearn.linear_model import LinearRegression, LogisticRegression, PoissonRegressor


def get_default_gradient_function(model):
    """
    Returns the default score computation method for well-know models and default loss functions

    Parameters
    ----------
    model
        A predictive model

    Returns
    -------
    gradient_function: callable
        A function that computes score contributions for the given type of model.

    See Also
    --------
    gradient_logistic_regression_cross_entropy, gradient_linear_regression_square_loss,
    gradient_poisson_regression
    """
    if type(model) not in _DEFAULT_GRADIENTS:
        raise ValueError(f"No default gradient defined for {type(model)}.")
    return _DEFAULT_GRADIENTS[type(model)]


def get_default_loglik_function(model):
    """
    Returns the default log-likelihood function for well-know models

    Parameters
    ----------
    model
        A predictive model

    Returns
    -------
    loglik_function: callable
        A function that computes the log-likelihood of a fitted model of the given type.
    """
    if type(model) not in _DEFAULT_LOGLIK:
        raise ValueError(f"No default log-likelihood defined for {type(model)}.")
    return _DEFAULT_LOGLIK[type(model)]


def get_coefficients(model):
    """
    Returns the coefficients of a fitted linear model as one vector ``[intercept, coef_1, ..., coef_p]``.
    """
    coef = np.ravel(model.coef_)
    if getattr(model, "fit_intercept", False):
        coef = np.concatenate([np.ravel(model.intercept_), coef])
    return coef


def get_dispersion_df(model):
    """
    Returns the number of additional parameters (besides the coefficients) that enter the log-likelihood.
    """
    return _DISPERSION_DF.get(type(model), 0)


def _with_intercept(model, factor, X):
    # Score contributions are `factor * x`, the intercept contributes `factor`
    g = factor * X
    if model.fit_intercept:
        g = np.concatenate([factor, g], axis=1)
    return g


def gradient_logistic_regression_cross_entropy(model, X, y):
    """
    Computes the score contributions of a logistic regression model

    Parameters
    ----------
    model : LogisticRegression
        The model of which the scores shall be computed.
        The model should already be fitted to the data of the node
    X : array-like, shape = [n_samples, n_features]
        Input Features of the points at which the scores should be computed
    y : array-like, shape = [n_samples]
        Class labels. Corresponds to the samples in `X`

    Returns
    -------
    g: array-like, shape = [n_samples, n_parameters]
        Derivative of the log-likelihood with respect to the model parameters at the samples given by `X` and `y`

    Notes
    -----
    * The number of model parameters is equal to the number of features (if the intercept is not trainable) or
      has one additional parameter (if the intercept is trainable)
    """
    if len(model.classes_) > 2:
        raise ValueError(
            f"This method currently only supports binary classification problems, but we got {len(model.classes_)} classes.")

    y01 = (np.reshape(y, (-1, 1)) == model.classes_[-1]).astype(float)
    factor = y01 - model.predict_proba(X)[:, -1:]
    return _with_intercept(model, factor, X)


def gradient_linear_regression_square_loss(model, X, y):
    """
    Computes the score contributions of a linear regression model

    Parameters
    ----------
    model : LinearRegression
        The model of which the scores shall be computed.
        The model should already be fitted to the data of the node
    X : array-like, shape = [n_samples, n_features]
        Input Features of the points at which the scores should be computed
    y : array-like, shape = [n_samples]
        Target variable. Corresponds to the samples in `X`

    Returns
    -------
    g: array-like, shape = [n_samples, n_parameters]
        Residuals times inputs. Up to the (constant) error variance, this is the derivative of the gaussian
        log-likelihood with respect to the model parameters.
    """
    r = np.reshape(y, (-1, 1)) - np.reshape(model.predict(X), (-1, 1))
    return _with_intercept(model, r, X)


def gradient_poisson_regression(model, X, y):
    """
    Computes the score contributions of a poisson regression model with log link

    Parameters
    ----------
    model : PoissonRegressor
        The model of which the scores shall be computed.
    X : array-like, shape = [n_samples, n_features]
        Input Features of the points at which the scores should be computed
    y : array-like, shape = [n_samples]
        Counts. Corresponds to the samples in `X`

    Returns
    -------
    g: array-like, shape = [n_samples, n_parameters]
    """
    r = np.reshape(y, (-1, 1)) - np.reshape(model.predict(X), (-1, 1))
    return _with_intercept(model, r, X)


def loglik_linear_regression(model, X, y, w):
    """Gaussian log-likelihood with the maximum likelihood estimate of the error variance"""
    r = np.ravel(y) - model.predict(X)
    n = np.sum(w)
    sigma2 = max(np.sum(w * r ** 2) / n, np.finfo(float).eps)
    return float(-0.5 * n * (np.log(2 * np.pi * sigma2) + 1))


def loglik_logistic_regression(model, X, y, w):
    """Bernoulli log-likelihood"""
    p = np.clip(model.predict_proba(X)[:, -1], 1e-10, 1 - 1e-10)
    y01 = (np.ravel(y) == model.classes_[-1]).astype(float)
    return float(np.sum(w * (xlogy(y01, p) + xlogy(1 - y01, 1 - p))))


def loglik_poisson_regression(model, X, y, w):
    """Poisson log-likelihood"""
    y = np.ravel(y)
    mu = model.predict(X)
    return float(np.sum(w * (xlogy(y, mu) - mu - gammaln(y + 1))))


# Default gradients allow to use estimators without explicitly defining the score computation
_DEFAULT_GRADIENTS = {
    LinearRegression: gradient_linear_regression_square_loss,
    LogisticRegression: gradient_logistic_regression_cross_entropy,
    PoissonRegressor: gradient_poisson_regression
}

_DEFAULT_LOGLIK = {
    LinearRegression: loglik_linear_regression,
    LogisticRegression: loglik_logistic_regression,
    PoissonRegressor: loglik_poisson_regression
}

# The gaussian error variance is an additional parameter of the likelihood
_DISPERSION_DF = {
    LinearRegression: 1
}
