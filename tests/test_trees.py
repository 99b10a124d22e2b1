import numpy as np
import pytest
from sklearn.base import clone
from sklearn.exceptions import ConvergenceWarning, NotFittedError
from sklearn.linear_model import LinearRegression

from mobtrees import MOBTreeRegressor, MOBTreeClassifier
from mobtrees.exceptions import InvalidConfiguration, NonConvergence, FitError

from conftest import make_breakpoint_data, make_noise_data


def _check_partition(est):
    """Every inner node is partitioned by its children, and all children respect the minimal size"""
    tree = est.tree_
    for node in tree.inner_nodes():
        child_indices = [tree[c].indices for c in node.children]
        merged = np.concatenate(child_indices)
        assert len(merged) == len(node.indices)
        np.testing.assert_array_equal(np.sort(merged), np.sort(node.indices))
        for c in node.children:
            assert tree[c].n_obs >= est.min_size_

    leaves = np.sort(np.concatenate([leaf.indices for leaf in tree.leaves()]))
    np.testing.assert_array_equal(leaves, np.sort(tree.root.indices))


@pytest.mark.parametrize("seed", range(5))
def test_breakpoint_is_found(seed):
    X, y = make_breakpoint_data(seed=seed)
    est = MOBTreeRegressor(regressors=[0]).fit(X, y)

    root = est.tree_.root
    assert not root.is_leaf()
    assert root.split.variable == 1
    assert abs(root.split.threshold - 18) <= 2

    # Slopes of opposite sign on both sides
    left, right = root.children
    assert est.tree_[left].model.coef[1] > 1
    assert est.tree_[right].model.coef[1] < -1

    _check_partition(est)


def test_breakpoint_gives_two_leaves():
    n_exact = 0
    for seed in range(40):
        X, y = make_breakpoint_data(seed=seed)
        tree = MOBTreeRegressor(regressors=[0]).fit(X, y).tree_

        split = tree.root.split
        if tree.n_leaves == 2 and split.variable == 1 and abs(split.threshold - 18) <= 2:
            n_exact += 1

    # At least 90%
    assert n_exact >= 36


def test_no_split_on_noise():
    n_single_leaf = 0
    for seed in range(200):
        X, y = make_noise_data(seed=seed)
        est = MOBTreeRegressor(regressors=[0]).fit(X, y)
        if est.tree_.n_leaves == 1:
            assert est.tree_.root.leaf_reason == "not_significant"
            n_single_leaf += 1

    # At least 93%
    assert n_single_leaf >= 186


def test_smaller_alpha_gives_smaller_tree():
    X, y = make_breakpoint_data(seed=3)
    n_leaves = [MOBTreeRegressor(regressors=[0], alpha=alpha).fit(X, y).tree_.n_leaves
                for alpha in (1e-6, 0.01, 0.05, 0.5, 0.9)]
    assert n_leaves == sorted(n_leaves)


def test_predict_and_apply(breakpoint_data):
    X, y = breakpoint_data
    est = MOBTreeRegressor(regressors=[0], alpha=0.5).fit(X, y)

    leaf_ids = est.apply(X)
    np.testing.assert_array_equal(leaf_ids, est.predict(X, kind="node"))
    np.testing.assert_array_equal(leaf_ids, est.apply(X))

    # Training samples are mapped to the leaf that contains them
    for leaf in est.tree_.leaves():
        assert np.all(leaf_ids[leaf.indices] == leaf.node_id)
        path = est.tree_.get_path(leaf.node_id)
        assert path[0].node_id == 0
        assert [node.depth for node in path] == list(range(leaf.depth + 1))

    # Predictions of the leaf models
    prediction = est.predict(X)
    for leaf_id in np.unique(leaf_ids):
        coef = est.tree_[leaf_id].model.coef
        mask = leaf_ids == leaf_id
        np.testing.assert_allclose(prediction[mask], coef[0] + coef[1] * X[mask, 0])

    # Identity link
    np.testing.assert_allclose(est.predict(X, kind="link"), prediction)

    # Good fit on the training data
    assert est.score(X, y) > 0.8

    with pytest.raises(ValueError):
        est.predict(X, kind="quantile")
    with pytest.raises(ValueError):
        est.predict(X[:, :2])


def test_predict_before_fit():
    with pytest.raises(NotFittedError):
        MOBTreeRegressor().predict(np.zeros((2, 2)))


def test_depth_and_size_limits(breakpoint_data):
    X, y = breakpoint_data

    est = MOBTreeRegressor(regressors=[0], max_depth=0).fit(X, y)
    assert est.tree_.n_leaves == 1
    assert est.tree_.root.leaf_reason == "max_depth"

    est = MOBTreeRegressor(regressors=[0], min_size=1000).fit(X, y)
    assert est.tree_.n_leaves == 1
    assert est.tree_.root.leaf_reason == "min_size"

    est = MOBTreeRegressor(regressors=[0], alpha=0.9, max_depth=1).fit(X, y)
    assert est.tree_.depth <= 1
    assert all(leaf.leaf_reason in ("max_depth", "not_significant", "min_size", "no_valid_split",
                                    "no_testable_variable", "constant_response") for leaf in est.tree_.leaves())


def test_default_min_size(breakpoint_data):
    X, y = breakpoint_data
    est = MOBTreeRegressor(regressors=[0], alpha=0.9).fit(X, y)

    # Intercept and slope
    assert est.min_size_ == 20
    _check_partition(est)


def test_zero_weights_are_ignored(breakpoint_data):
    X, y = breakpoint_data
    rng = np.random.default_rng(7)

    X_extra = np.concatenate([X, rng.normal(size=(30, 3))])
    y_extra = np.concatenate([y, rng.normal(loc=100, size=30)])
    w = np.concatenate([np.ones(len(y)), np.zeros(30)])

    est = MOBTreeRegressor(regressors=[0]).fit(X, y)
    weighted = MOBTreeRegressor(regressors=[0]).fit(X_extra, y_extra, sample_weight=w)

    assert len(weighted.tree_.root.indices) == len(y)
    assert list(weighted.coef()) == list(est.coef())
    for leaf_id, coef in est.coef().items():
        np.testing.assert_allclose(weighted.coef()[leaf_id], coef)


def test_integer_weights_equal_duplicated_rows():
    X, y = make_breakpoint_data(n=120, seed=2)
    w = np.ones(len(y))
    w[::3] = 2

    weighted = MOBTreeRegressor(regressors=[0]).fit(X, y, sample_weight=w)
    duplicated = MOBTreeRegressor(regressors=[0]).fit(np.concatenate([X, X[::3]]), np.concatenate([y, y[::3]]))

    assert weighted.tree_.n_leaves == duplicated.tree_.n_leaves
    assert np.isclose(weighted.loglik(), duplicated.loglik())


def test_classifier():
    rng = np.random.default_rng(11)
    n = 500
    z = rng.uniform(size=n)
    noise = rng.normal(size=n)
    p = np.where(z < 0.5, 0.85, 0.15)
    y = np.where(rng.uniform(size=n) < p, "yes", "no")
    X = np.column_stack([z, noise])

    est = MOBTreeClassifier().fit(X, y)

    np.testing.assert_array_equal(est.classes_, ["no", "yes"])
    assert est.tree_.root.split.variable == 0
    assert abs(est.tree_.root.split.threshold - 0.5) < 0.1

    proba = est.predict_proba(X)
    assert proba.shape == (n, 2)
    np.testing.assert_allclose(proba.sum(axis=1), 1)
    np.testing.assert_allclose(est.predict_log_proba(X), np.log(proba))

    prediction = est.predict(X)
    assert set(prediction) <= {"no", "yes"}
    np.testing.assert_array_equal(prediction, est.classes_[(proba[:, 1] > 0.5).astype(int)])
    assert est.score(X, y) > 0.75

    # Log-odds of the positive class
    np.testing.assert_allclose(est.decision_function(X), np.log(proba[:, 1] / proba[:, 0]))


def test_classifier_requires_two_classes():
    with pytest.raises(InvalidConfiguration):
        MOBTreeClassifier().fit(np.zeros((6, 1)), [0, 1, 2, 0, 1, 2])


def _poisson_data(n=800, seed=5):
    rng = np.random.default_rng(seed)
    x = rng.uniform(-1, 1, size=n)
    group = rng.choice(["a", "b", "c", "d"], size=n)
    intercept = np.where(np.isin(group, ["a", "b"]), 1.5, 0.2)
    y = rng.poisson(np.exp(intercept + 0.5 * x)).astype(float)

    X = np.empty((n, 2), dtype=object)
    X[:, 0] = x
    X[:, 1] = group
    return X, y


def test_poisson_with_categorical_variable():
    X, y = _poisson_data()
    est = MOBTreeRegressor(family="poisson", regressors=[0]).fit(X, y)

    assert est.partition_kinds_ == ["categorical"]
    root = est.tree_.root
    assert root.tests[0].kind == "categorical"
    # 2 parameters times 3 degrees of freedom of the categories
    assert root.tests[0].df == 6

    assert root.split.left_categories == frozenset({"a", "b"})
    assert root.split.right_categories == frozenset({"c", "d"})
    left, right = root.children
    assert est.tree_[left].model.coef[0] > est.tree_[right].model.coef[0]

    # Positive rates; unseen categories go to the larger child
    X_new = np.array([[0., "a"], [0., "d"], [0., "e"]], dtype=object)
    prediction = est.predict(X_new)
    assert np.all(prediction > 0)
    leaf_ids = est.apply(X_new)
    default = root.children[root.split.default_child]
    assert leaf_ids[2] in [leaf.node_id for leaf in est.tree_.leaves(default)]


def test_categorical_parameter_for_numeric_codes():
    X, y = _poisson_data()
    codes = np.searchsorted(["a", "b", "c", "d"], X[:, 1].astype(str))
    X_numeric = np.column_stack([X[:, 0].astype(float), codes])

    est = MOBTreeRegressor(family="poisson", regressors=[0], categorical=[1]).fit(X_numeric, y)

    assert est.partition_kinds_ == ["categorical"]
    assert est.tree_.root.split.left_categories == frozenset({0, 1})


def test_strict_mode_raises_on_non_convergence():
    rng = np.random.default_rng(8)
    X = rng.normal(size=(200, 2))
    y = (X[:, 0] + rng.normal(size=200) > 0).astype(int)

    est = MOBTreeClassifier(regressors=[0], max_iter=1, strict=True)
    with pytest.raises(NonConvergence) as e:
        est.fit(X, y)
    assert e.value.node_id == 0

    with pytest.warns(ConvergenceWarning):
        MOBTreeClassifier(regressors=[0], max_iter=1).fit(X, y)


@pytest.mark.parametrize("params", [
    dict(alpha=0),
    dict(alpha=1.5),
    dict(trim=0.5),
    dict(min_size=-1),
    dict(max_depth=1.5),
    dict(prune="cp"),
    dict(dfsplit=-1),
    dict(max_iter=0),
    dict(family="gamma"),
    dict(regressors=[0], partition_variables=[0, 1]),
    dict(regressors=[5]),
    dict(regressors=[0], partition_variables=[]),
])
def test_invalid_configuration(breakpoint_data, params):
    X, y = breakpoint_data
    est = MOBTreeRegressor(**params)

    with pytest.raises(InvalidConfiguration):
        est.fit(X, y)
    assert not hasattr(est, "tree_")


def test_invalid_data(breakpoint_data):
    X, y = breakpoint_data
    with pytest.raises(InvalidConfiguration):
        MOBTreeRegressor(regressors=[0]).fit(X, y[:-1])
    with pytest.raises(InvalidConfiguration):
        MOBTreeRegressor(regressors=[0]).fit(X, y, sample_weight=-np.ones(len(y)))
    with pytest.raises(InvalidConfiguration):
        MOBTreeRegressor(family="poisson", regressors=[0]).fit(X, y - 100)


def test_estimator_family(breakpoint_data):
    X, y = breakpoint_data
    est = MOBTreeRegressor(family=LinearRegression(), regressors=[0]).fit(X, y)

    assert est.tree_.root.split.variable == 1
    assert abs(est.tree_.root.split.threshold - 18) <= 2

    # Leaf models are ordinary least squares fits
    for leaf in est.tree_.leaves():
        reference = LinearRegression().fit(X[leaf.indices, :1], y[leaf.indices])
        np.testing.assert_allclose(leaf.model.coef, [reference.intercept_, reference.coef_[0]], atol=1e-8)


def test_inspection(breakpoint_data):
    X, y = breakpoint_data
    est = MOBTreeRegressor(regressors=[0]).fit(X, y)

    assert est.coef_names() == ["(Intercept)", "x0"]

    tests = est.instability_tests(0)
    assert [t.variable for t in tests] == ["x1", "x2"]
    assert tests[0].adjusted_p_value < 0.05

    summary = est.node_summary(0)
    assert summary["coef_names"] == ["(Intercept)", "x0"]
    assert summary["depth"] == 0
    assert not summary["is_leaf"]
    assert summary["leaf_reason"] is None
    assert summary["n_obs"] == len(y)

    text = est.to_text()
    assert text.splitlines()[0] == "[0] root"
    assert "x1 <= " in text
    assert "(Intercept) = " in text

    assert np.isclose(est.aic(), -2 * est.loglik() + 2 * est.tree_.n_params())
    assert np.isclose(est.bic(), -2 * est.loglik() + np.log(len(y)) * est.tree_.n_params())


def test_sklearn_parameters():
    est = MOBTreeRegressor(regressors=[0], alpha=0.01, prune="bic")
    cloned = clone(est)

    assert cloned.get_params()["alpha"] == 0.01
    assert cloned.get_params()["prune"] == "bic"
    assert cloned.get_params()["regressors"] == [0]


def _check_pure_nodes_are_leaves(est, y):
    n_pure = 0
    for node in est.tree_.iter_nodes():
        if np.ptp(y[node.indices]) == 0:
            assert node.is_leaf()
            assert node.leaf_reason == "constant_response"
            assert node.tests == []
            n_pure += 1
    return n_pure


def test_pure_child_is_not_split():
    rng = np.random.default_rng(21)
    n = 400
    z = rng.uniform(size=n)
    X = np.column_stack([z, rng.normal(size=n)])
    y = np.where(z < 0.5, 1, (rng.uniform(size=n) < 0.3).astype(int))

    for strict in (False, True):
        est = MOBTreeClassifier(strict=strict).fit(X, y)

        assert est.tree_.root.split.variable == 0
        assert _check_pure_nodes_are_leaves(est, y) >= 1
        assert est.tree_.n_leaves <= 5


def test_all_zero_poisson_child_is_not_split():
    rng = np.random.default_rng(22)
    n = 400
    z = rng.uniform(size=n)
    X = np.column_stack([z, rng.normal(size=n)])
    y = np.where(z < 0.5, 0., rng.poisson(3., size=n))

    est = MOBTreeRegressor(family="poisson").fit(X, y)

    assert est.tree_.root.split.variable == 0
    assert _check_pure_nodes_are_leaves(est, y) >= 1
    assert est.tree_.n_leaves <= 5


def test_constant_response_at_root():
    X, y = make_noise_data()
    est = MOBTreeRegressor(regressors=[0]).fit(X, np.full(len(y), 3.))

    assert est.tree_.n_leaves == 1
    assert est.tree_.root.leaf_reason == "constant_response"
    np.testing.assert_allclose(est.predict(X[:5]), 3.)


def test_predict_on_empty_input(breakpoint_data):
    X, y = breakpoint_data
    est = MOBTreeRegressor(regressors=[0]).fit(X, y)

    assert est.predict(X[:0]).shape == (0,)
    assert est.predict(X[:0], kind="link").shape == (0,)
    assert est.apply(X[:0]).shape == (0,)

    clf = MOBTreeClassifier(regressors=[0]).fit(X, (y > 1).astype(int))
    assert clf.predict_proba(X[:0]).shape == (0, 2)
    assert clf.predict(X[:0]).shape == (0,)
    assert clf.decision_function(X[:0]).shape == (0,)


def test_root_fit_error_is_raised(breakpoint_data):
    X, y = breakpoint_data
    # Column 3 is collinear with column 0
    X = np.column_stack([X, 2 * X[:, 0]])
    est = MOBTreeRegressor(regressors=[0, 3], partition_variables=[1, 2])

    with pytest.raises(FitError):
        est.fit(X, y)
    assert not hasattr(est, "tree_")
