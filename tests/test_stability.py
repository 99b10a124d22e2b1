import numpy as np
import pytest

from mobtrees.families import GaussianFamily, BinomialFamily
from mobtrees.stability import decorrelate_scores, bonferroni_adjust, run_instability_tests, most_unstable, \
    suplm_statistic, suplm_pvalue, suplm_tail_approximation, chisq_statistic, InstabilityTest, ORDERED, CATEGORICAL


def _mean_shift_model(n=200, shift=1.5, seed=0):
    rng = np.random.default_rng(seed)
    z = rng.uniform(size=n)
    y = rng.normal(size=n) + shift * (z > 0.5)
    model = GaussianFamily().fit(np.zeros((n, 0)), y)
    return model, z, rng


def test_decorrelated_scores_have_identity_covariance():
    rng = np.random.default_rng(0)
    scores = rng.normal(size=(500, 3)) @ np.array([[2., 0., 0.], [1., 1., 0.], [0., 0.5, 3.]])
    weights = rng.integers(1, 3, size=500).astype(float)

    decorrelated, rank = decorrelate_scores(scores, weights)

    assert rank == 3
    J = (decorrelated * weights[:, None]).T @ decorrelated / weights.sum()
    np.testing.assert_allclose(J, np.eye(3), atol=1e-10)


def test_decorrelation_drops_degenerate_directions():
    rng = np.random.default_rng(1)
    s = rng.normal(size=(100, 1))
    scores = np.concatenate([s, 2 * s], axis=1)

    decorrelated, rank = decorrelate_scores(scores, np.ones(100))

    assert rank == 1
    assert decorrelated.shape == (100, 1)


def test_bonferroni_adjustment():
    raw = np.array([0.01, 0.2, np.nan, 0.6])
    adjusted = bonferroni_adjust(raw)

    # Three testable variables
    np.testing.assert_allclose(adjusted[[0, 1, 3]], [0.03, 0.6, 1.])
    assert np.isnan(adjusted[2])
    assert np.all(adjusted[[0, 1, 3]] >= raw[[0, 1, 3]])


def test_suplm_detects_mean_shift():
    model, z, rng = _mean_shift_model()
    tests = run_instability_tests(model, [z, rng.uniform(size=len(z))], [ORDERED, ORDERED], names=["z", "noise"])

    assert [t.variable for t in tests] == ["z", "noise"]
    assert tests[0].p_value < 1e-4
    assert tests[0].df == 1
    assert most_unstable(tests) == 0


def test_adjusted_p_values_bound_raw_p_values():
    model, z, rng = _mean_shift_model(shift=0.3)
    values = [z, rng.uniform(size=len(z)), rng.normal(size=len(z))]
    tests = run_instability_tests(model, values, [ORDERED] * 3)

    for t in tests:
        assert t.adjusted_p_value >= t.p_value
        assert np.isclose(t.adjusted_p_value, min(1., 3 * t.p_value))


def test_no_adjustment_without_bonferroni():
    model, z, rng = _mean_shift_model(shift=0.3)
    tests = run_instability_tests(model, [z, rng.uniform(size=len(z))], [ORDERED] * 2, bonferroni=False)

    for t in tests:
        assert t.adjusted_p_value == t.p_value


def test_constant_variable_is_untestable():
    model, z, rng = _mean_shift_model(shift=0.3)
    tests = run_instability_tests(model, [np.ones(len(z)), z], [ORDERED, ORDERED])

    assert np.isnan(tests[0].p_value)
    assert np.isnan(tests[0].adjusted_p_value)
    # Only one variable counts for the correction
    assert np.isclose(tests[1].adjusted_p_value, tests[1].p_value)
    assert most_unstable(tests) == 1


def test_all_variables_untestable():
    model, z, rng = _mean_shift_model()
    tests = run_instability_tests(model, [np.zeros(len(z)), np.array(["a"] * len(z))], [ORDERED, CATEGORICAL])

    assert most_unstable(tests) is None


def test_numerically_zero_scores_are_not_rescaled():
    decorrelated, rank = decorrelate_scores(np.full((50, 1), 1e-10), np.ones(50))
    assert rank == 0
    assert decorrelated.shape == (50, 0)

    # Clipped probabilities of a pure binomial sample
    n = 200
    model = BinomialFamily().fit(np.zeros((n, 0)), np.ones(n))
    z = np.random.default_rng(3).uniform(size=n)
    tests = run_instability_tests(model, [z, np.where(z < 0.5, "a", "b")], [ORDERED, CATEGORICAL])

    assert all(np.isnan(test.p_value) for test in tests)
    assert most_unstable(tests) is None


def test_categorical_test_detects_group_effect():
    rng = np.random.default_rng(3)
    groups = rng.choice(["a", "b", "c"], size=300)
    y = rng.normal(size=300) + (groups == "c") * 1.
    model = GaussianFamily().fit(np.zeros((300, 0)), y)

    tests = run_instability_tests(model, [groups], [CATEGORICAL])

    assert tests[0].kind == CATEGORICAL
    # 1 parameter, 3 categories
    assert tests[0].df == 2
    assert tests[0].p_value < 1e-4


def test_chisq_statistic_requires_two_categories():
    statistic, df = chisq_statistic(np.ones((5, 1)), np.ones(5), np.array(["a"] * 5))
    assert statistic is None
    assert df == 0


def test_suplm_statistic_is_only_evaluated_inside_trimmed_range():
    scores = np.ones((10, 1))
    # One change point after the first sample, i.e. at t = 0.1 < 0.2
    values = np.array([0.] + [1.] * 9)
    assert suplm_statistic(scores, np.ones(10), values, trim=0.2) is None


def test_suplm_pvalue_at_critical_value():
    # 5% critical value of Andrews (1993) for one parameter and 15% trimming
    p_value = suplm_pvalue(8.85, 1, trim=0.15)
    assert 0.03 < p_value < 0.07


def test_suplm_pvalue_is_decreasing():
    statistics = np.linspace(0.5, 6, 12)
    p_values = [suplm_pvalue(s, 2) for s in statistics]
    assert np.all(np.diff(p_values) <= 0)
    assert p_values[0] > 0.5


def test_suplm_tail_approximation():
    # Far out in the tail
    p_value = suplm_tail_approximation(40., 2)
    assert 0 < p_value < 1e-5

    # Never below the pointwise chi-square tail probability
    assert suplm_tail_approximation(3., 1) <= 1.


def test_most_unstable_breaks_ties_by_order():
    tests = [
        InstabilityTest("a", ORDERED, 1., 1, 0.01, 0.02),
        InstabilityTest("b", ORDERED, 1., 1, 0.01, 0.02),
    ]
    assert most_unstable(tests) == 0


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_no_instability_under_null(seed):
    rng = np.random.default_rng(seed)
    y = rng.normal(size=400)
    model = GaussianFamily().fit(rng.normal(size=(400, 1)), y)

    tests = run_instability_tests(model, [rng.uniform(size=400)], [ORDERED])

    # Very unlikely under the null hypothesis
    assert tests[0].p_value > 0.001
