"""
This module defines the model families that are fitted in the nodes of a model-based tree.

A family turns a (weighted) subset of the training data into a :class:`FittedModel`.
Besides the coefficients, a fitted model carries the per-observation score contributions
(the derivatives of the log-likelihood with respect to the parameters). These scores are
the input of the parameter instability tests, see :mod:`mobtrees.stability`.

All built-in families add an intercept to the regressor matrix. The coefficient vector is
therefore ordered as ``[intercept, regressor_1, ..., regressor_p]``.

References
----------
.. [1] Zeileis, A., Hothorn, T. and Hornik, K.,
   "Model-Based Recursive Partitioning",
   Journal of Computational and Graphical Statistics, 17(2), 492-514, 2008
.. [2] McCullagh, P. and Nelder, J. A., "Generalized Linear Models", 2nd edition, 1989
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

import numpy as np
from scipy import linalg
from scipy.special import expit, logit, xlogy, gammaln
from scipy.stats import norm, t as student_t
from sklearn.base import clone

from .exceptions import FitError, InvalidConfiguration
from ._gradients import get_default_gradient_function, get_default_loglik_function, get_coefficients, \
    get_dispersion_df

# Probabilities are clipped to [_EPS_PROB, 1 - _EPS_PROB] within IRLS
_EPS_PROB = 1e-10

# Upper bound for the linear predictor of the log link (avoids overflows in exp)
_MAX_ETA = 700.


class FittedModel:
    """
    The result of fitting a model family to the samples of one node.

    Parameters
    ----------
    coef : array-like, shape = [n_params]
        Estimated coefficients
    scores : array-like, shape = [n_samples, n_params]
        Per-observation score contributions (unweighted).
    weights : array-like, shape = [n_samples]
        Case weights of the samples
    loglik : float
        Log-likelihood of the model
    objective : float
        Value of the minimized objective (residual sum of squares or negative log-likelihood).
        Used to compare split candidates.
    df : int, optional
        Degrees of freedom for information criteria. Defaults to the number of coefficients.
    cov : array-like, shape = [n_params, n_params], optional
        Estimated covariance matrix of the coefficients
    converged : bool
        False if the fitting procedure hit its iteration cap
    n_iter : int
        Number of iterations of the fitting procedure (0 for closed form solutions)
    warnings : list of str, optional
        Messages about problems during fitting
    resid_df : float, optional
        Residual degrees of freedom if the dispersion was estimated. Then the summary uses t-tests.
    estimator : object, optional
        The fitted scikit-learn estimator (only for :class:`EstimatorFamily`)
    """

    def __init__(self, coef, scores, weights, loglik, objective, df=None, cov=None, converged=True, n_iter=0,
                 warnings=None, resid_df=None, estimator=None):
        self.coef = np.atleast_1d(np.asarray(coef, dtype=float))
        self.scores = np.reshape(np.asarray(scores, dtype=float), (-1, len(self.coef)))
        self.weights = np.asarray(weights, dtype=float)
        self.loglik = float(loglik)
        self.objective = float(objective)
        self.df = len(self.coef) if df is None else df
        self.cov = cov
        self.converged = converged
        self.n_iter = n_iter
        self.warnings = [] if warnings is None else list(warnings)
        self.resid_df = resid_df
        self.estimator = estimator

    @property
    def n_params(self):
        """Number of coefficients"""
        return len(self.coef)

    @property
    def n_obs(self):
        """Number of observations, i.e. the sum of case weights"""
        return float(np.sum(self.weights))

    def summary(self):
        """
        Coefficient table of the model.

        Returns
        -------
        summary : dict
            Keys ``coef``, ``std_err``, ``statistic``, ``p_value`` (arrays of length `n_params`) and
            ``loglik``, ``objective``, ``n_obs``, ``df``, ``converged``.
            Standard errors and tests are ``nan`` if no covariance matrix is available.
        """
        if self.cov is None:
            std_err = np.full(self.n_params, np.nan)
        else:
            std_err = np.sqrt(np.maximum(np.diag(self.cov), 0))

        with np.errstate(divide="ignore", invalid="ignore"):
            statistic = self.coef / std_err

        if self.resid_df is not None and self.resid_df > 0:
            p_value = 2 * student_t.sf(np.abs(statistic), self.resid_df)
        else:
            p_value = 2 * norm.sf(np.abs(statistic))

        return {
            "coef": self.coef,
            "std_err": std_err,
            "statistic": statistic,
            "p_value": p_value,
            "loglik": self.loglik,
            "objective": self.objective,
            "n_obs": self.n_obs,
            "df": self.df,
            "converged": self.converged,
        }

    def __repr__(self):
        return f"FittedModel(coef={np.array2string(self.coef, precision=4)}, loglik={self.loglik:.4f}, " \
               f"n_obs={self.n_obs:g})"


class BaseFamily(metaclass=ABCMeta):
    """
    Base class of all model families.

    Derived classes implement :meth:`fit` for a regressor matrix (without intercept column),
    a response vector and case weights.
    """
    name = None

    @abstractmethod
    def fit(self, X, y, weights=None):
        """
        Fits the model to the given samples.

        Parameters
        ----------
        X : array-like, shape = [n_samples, n_regressors]
            Regressors (without intercept column). ``n_regressors`` may be 0.
        y : array-like, shape = [n_samples]
            Response
        weights : array-like, shape = [n_samples], optional
            Case weights. Defaults to 1 for every sample.

        Returns
        -------
        model : FittedModel

        Raises
        ------
        FitError
            If the model cannot be fitted to the samples.
        """
        pass

    def predict(self, model, X, kind="response"):
        """
        Evaluates a fitted model.

        Parameters
        ----------
        model : FittedModel
            A model fitted by this family
        X : array-like, shape = [n_samples, n_regressors]
            Regressors (without intercept column)
        kind : str
            ``"response"`` for the expected response or ``"link"`` for the linear predictor

        Returns
        -------
        prediction : array, shape = [n_samples]
        """
        eta = design_matrix(X) @ model.coef
        if kind == "link":
            return eta
        return self.linkinv(eta)

    def linkinv(self, eta):
        return eta

    def validate_response(self, y):
        """
        Checks that the response is valid for this family.

        Raises
        ------
        InvalidConfiguration
            If the response contains invalid values.
        """
        if not np.all(np.isfinite(y)):
            raise InvalidConfiguration("The response contains non-finite values.")

    def __repr__(self):
        return f"{type(self).__name__}()"


class GaussianFamily(BaseFamily):
    """
    Linear regression with normal errors, fitted by weighted least squares.

    The objective is the residual sum of squares. The log-likelihood uses the maximum likelihood
    estimate of the error variance, which also counts as a parameter (``df = n_params + 1``).
    """
    name = "gaussian"

    def fit(self, X, y, weights=None):
        D, y, w = _prepare_data(X, y, weights)
        _check_design(D, w)

        sw = np.sqrt(w)
        coef, _, _, _ = linalg.lstsq(D * sw[:, None], y * sw)

        resid = y - D @ coef
        rss = float(np.sum(w * resid ** 2))
        n = w.sum()
        k = D.shape[1]

        # ML estimate of the variance; floored to keep the log-likelihood finite on perfect fits
        sigma2 = max(rss / n, np.finfo(float).eps)
        loglik = -0.5 * n * (np.log(2 * np.pi * sigma2) + 1)

        resid_df = n - k
        if resid_df > 0:
            cov = linalg.inv(D.T @ (w[:, None] * D)) * (rss / resid_df)
        else:
            cov = None

        return FittedModel(
            coef=coef,
            scores=resid[:, None] * D,
            weights=w,
            loglik=loglik,
            objective=rss,
            df=k + 1,
            cov=cov,
            resid_df=resid_df
        )


class _GLMFamily(BaseFamily):
    """
    Base class for generalized linear models with canonical link, fitted by
    iteratively reweighted least squares (IRLS).

    Parameters
    ----------
    max_iter : int (default = 25)
        Maximal number of IRLS iterations
    tol : float (default = 1e-8)
        Convergence tolerance on the relative change of the deviance
    """

    def __init__(self, max_iter=25, tol=1e-8):
        self.max_iter = max_iter
        self.tol = tol

    @abstractmethod
    def _mustart(self, y):
        pass

    @abstractmethod
    def _link(self, mu):
        pass

    @abstractmethod
    def _mu_eta(self, eta, mu):
        pass

    @abstractmethod
    def _variance(self, mu):
        pass

    @abstractmethod
    def _loglik(self, y, mu, w):
        pass

    @abstractmethod
    def _deviance(self, y, mu, w):
        pass

    def fit(self, X, y, weights=None):
        D, y, w = _prepare_data(X, y, weights)
        _check_design(D, w)

        mu = self._mustart(y)
        eta = self._link(mu)

        dev_old = np.inf
        converged = False
        n_iter = 0
        coef = np.zeros(D.shape[1])
        for n_iter in range(1, self.max_iter + 1):
            # Working response and working weights
            mu_eta = self._mu_eta(eta, mu)
            z = eta + (y - mu) / mu_eta
            ww = w * mu_eta ** 2 / self._variance(mu)

            sw = np.sqrt(ww)
            coef, _, _, _ = linalg.lstsq(D * sw[:, None], z * sw)
            if not np.all(np.isfinite(coef)):
                raise FitError("IRLS produced non-finite coefficients.")

            eta = D @ coef
            mu = self.linkinv(eta)

            # Convergence criterion of R's glm.fit
            dev = self._deviance(y, mu, w)
            if np.abs(dev - dev_old) / (np.abs(dev) + 0.1) < self.tol:
                converged = True
                break
            dev_old = dev

        messages = []
        if not converged:
            messages.append(f"IRLS did not converge within {self.max_iter} iterations.")

        mu_eta = self._mu_eta(eta, mu)
        variance = self._variance(mu)
        ww = w * mu_eta ** 2 / variance
        try:
            cov = linalg.inv(D.T @ (ww[:, None] * D))
        except linalg.LinAlgError:
            cov = None

        loglik = self._loglik(y, mu, w)

        return FittedModel(
            coef=coef,
            scores=((y - mu) * mu_eta / variance)[:, None] * D,
            weights=w,
            loglik=loglik,
            objective=-loglik,
            cov=cov,
            converged=converged,
            n_iter=n_iter,
            warnings=messages
        )

    def __repr__(self):
        return f"{type(self).__name__}(max_iter={self.max_iter}, tol={self.tol})"


class BinomialFamily(_GLMFamily):
    """
    Logistic regression for a binary (0/1) response.
    """
    name = "binomial"

    def validate_response(self, y):
        super().validate_response(y)
        if not np.all((y == 0) | (y == 1)):
            raise InvalidConfiguration("The binomial family requires a 0/1 response.")

    def linkinv(self, eta):
        return np.clip(expit(eta), _EPS_PROB, 1 - _EPS_PROB)

    def _mustart(self, y):
        return (y + 0.5) / 2

    def _link(self, mu):
        return logit(mu)

    def _mu_eta(self, eta, mu):
        return np.maximum(mu * (1 - mu), _EPS_PROB)

    def _variance(self, mu):
        return np.maximum(mu * (1 - mu), _EPS_PROB)

    def _loglik(self, y, mu, w):
        return float(np.sum(w * (xlogy(y, mu) + xlogy(1 - y, 1 - mu))))

    def _deviance(self, y, mu, w):
        return -2 * self._loglik(y, mu, w)


class PoissonFamily(_GLMFamily):
    """
    Poisson regression with log link for count data.
    """
    name = "poisson"

    def validate_response(self, y):
        super().validate_response(y)
        if np.any(y < 0):
            raise InvalidConfiguration("The poisson family requires a non-negative response.")

    def linkinv(self, eta):
        return np.exp(np.minimum(eta, _MAX_ETA))

    def _mustart(self, y):
        return y + 0.1

    def _link(self, mu):
        return np.log(mu)

    def _mu_eta(self, eta, mu):
        return np.maximum(mu, np.finfo(float).eps)

    def _variance(self, mu):
        return np.maximum(mu, np.finfo(float).eps)

    def _loglik(self, y, mu, w):
        return float(np.sum(w * (xlogy(y, mu) - mu - gammaln(y + 1))))

    def _deviance(self, y, mu, w):
        return float(2 * np.sum(w * (xlogy(y, y) - xlogy(y, mu) - (y - mu))))


class CustomFamily(BaseFamily):
    """
    A family defined by user-supplied functions.

    Parameters
    ----------
    fit_function : callable
        Gets 3 parameters: the regressor matrix (without intercept column), the response and
        the case weights. Must return a :class:`FittedModel` whose ``scores`` have one row per sample.
    predict_function : callable, optional
        Gets 3 parameters: the fitted model, the regressor matrix and the prediction kind
        (``"response"`` or ``"link"``). Defaults to the linear predictor ``[1, X] @ coef``.
    name : str
        Name of the family
    """

    def __init__(self, fit_function, predict_function=None, name="custom"):
        self.fit_function = fit_function
        self.predict_function = predict_function
        self.name = name

    def fit(self, X, y, weights=None):
        X, y, w = _prepare_data(X, y, weights, add_intercept=False)
        try:
            model = self.fit_function(X, y, w)
        except (np.linalg.LinAlgError, ValueError) as e:
            raise FitError(str(e)) from e

        if not isinstance(model, FittedModel):
            raise TypeError(f"`fit_function` must return a FittedModel, but returned {type(model)}.")
        return model

    def predict(self, model, X, kind="response"):
        if self.predict_function is None:
            return super().predict(model, X, kind)
        return np.asarray(self.predict_function(model, np.asarray(X, dtype=float), kind), dtype=float)

    def __repr__(self):
        return f"CustomFamily(name={self.name!r})"


class EstimatorFamily(BaseFamily):
    """
    Uses a scikit-learn estimator as node model.

    The estimator is cloned and fitted for each node. Scores and log-likelihoods are computed
    with the given functions or with the defaults from :mod:`mobtrees._gradients`, which exist for
    `LinearRegression`, `LogisticRegression` and `PoissonRegressor`.

    Parameters
    ----------
    estimator
        A scikit-learn estimator supporting ``sample_weight`` in ``fit``
    gradient_function : callable, optional
        Gets 3 parameters: a fitted estimator, the regressor matrix and the response.
        Returns the score contributions, shape = [n_samples, n_params].
    loglik_function : callable, optional
        Gets 4 parameters: a fitted estimator, the regressor matrix, the response and the case weights.
        Returns the log-likelihood.

    Notes
    -----
    Penalized estimators (e.g. the default `LogisticRegression`) do not maximize the likelihood,
    so their scores do not sum up to zero. Disable the penalty for proper instability tests.
    """
    name = "estimator"

    def __init__(self, estimator, gradient_function=None, loglik_function=None):
        self.estimator = estimator
        self.gradient_function = gradient_function
        self.loglik_function = loglik_function

        self.gf_ = gradient_function if gradient_function is not None \
            else get_default_gradient_function(estimator)
        self.llf_ = loglik_function if loglik_function is not None \
            else get_default_loglik_function(estimator)

    def fit(self, X, y, weights=None):
        X, y, w = _prepare_data(X, y, weights, add_intercept=False)
        if X.shape[1] == 0:
            raise FitError("Estimator families require at least one regressor.")

        estimator = clone(self.estimator)
        try:
            estimator.fit(X, y, sample_weight=w)
        except (np.linalg.LinAlgError, ValueError) as e:
            raise FitError(str(e)) from e

        coef = get_coefficients(estimator)
        loglik = self.llf_(estimator, X, y, w)
        return FittedModel(
            coef=coef,
            scores=self.gf_(estimator, X, y),
            weights=w,
            loglik=loglik,
            objective=-loglik,
            df=len(coef) + get_dispersion_df(estimator),
            estimator=estimator
        )

    def predict(self, model, X, kind="response"):
        X = np.asarray(X, dtype=float)
        estimator = model.estimator
        if kind == "link" and hasattr(estimator, "decision_function"):
            return estimator.decision_function(X)
        if hasattr(estimator, "predict_proba"):
            return estimator.predict_proba(X)[:, 1]
        return estimator.predict(X)

    def __repr__(self):
        return f"EstimatorFamily({self.estimator!r})"


# Families that can be selected by name
_FAMILIES = {
    "gaussian": GaussianFamily,
    "linear": GaussianFamily,
    "binomial": BinomialFamily,
    "logistic": BinomialFamily,
    "poisson": PoissonFamily,
}


def get_family(family, max_iter=25, tol=1e-8):
    """
    Resolves the `family` parameter of the model-based tree estimators.

    Parameters
    ----------
    family : str, BaseFamily, estimator or callable
        A family name (``"gaussian"``, ``"linear"``, ``"binomial"``, ``"logistic"`` or ``"poisson"``),
        a family instance, a scikit-learn estimator (wrapped into :class:`EstimatorFamily`) or a
        fit function (wrapped into :class:`CustomFamily`).
    max_iter : int
        Maximal number of IRLS iterations for families created by name
    tol : float
        Convergence tolerance for families created by name

    Returns
    -------
    family : BaseFamily
    """
    if isinstance(family, BaseFamily):
        return family
    if isinstance(family, str):
        if family not in _FAMILIES:
            msg = f"Invalid family. Got '{family}'. Valid values are {sorted(_FAMILIES)}, family instances, " \
                  f"estimators and functions"
            raise InvalidConfiguration(msg)
        cls = _FAMILIES[family]
        if issubclass(cls, _GLMFamily):
            return cls(max_iter=max_iter, tol=tol)
        return cls()
    if hasattr(family, "fit"):
        try:
            return EstimatorFamily(family)
        except ValueError as e:
            raise InvalidConfiguration(str(e)) from e
    if callable(family):
        return CustomFamily(family)
    raise InvalidConfiguration(f"Invalid family: {family!r}")


def design_matrix(X):
    """
    Prepends an intercept column to a regressor matrix.

    Parameters
    ----------
    X : array-like, shape = [n_samples, n_regressors]

    Returns
    -------
    D : array, shape = [n_samples, n_regressors + 1]
    """
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = np.reshape(X, (-1, 1))
    return np.concatenate([np.ones((X.shape[0], 1)), X], axis=1)


def _prepare_data(X, y, weights, add_intercept=True):
    y = np.asarray(y, dtype=float).ravel()
    if weights is None:
        w = np.ones(len(y))
    else:
        w = np.asarray(weights, dtype=float).ravel()

    if add_intercept:
        X = design_matrix(X)
    else:
        X = np.asarray(X, dtype=float)
        if X.ndim == 1:
            X = np.reshape(X, (len(y), -1))
    return X, y, w


def _check_design(D, w):
    """
    Raises a FitError if there are fewer observations than parameters or if the weighted design matrix
    is rank deficient.
    """
    n_params = D.shape[1]
    if w.sum() < n_params or np.count_nonzero(w) < n_params:
        raise FitError(f"Cannot fit {n_params} parameters to {w.sum():g} observations.")
    rank = np.linalg.matrix_rank(D * np.sqrt(w)[:, None])
    if rank < n_params:
        raise FitError(f"Rank deficient design matrix (rank {rank} < {n_params} parameters).")
