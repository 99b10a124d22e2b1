import numpy as np

from mobtrees._nodes import TreeNode, Split, Tree
from mobtrees.families import GaussianFamily
from mobtrees.stability import ORDERED, CATEGORICAL


def _model(values):
    values = np.asarray(values, dtype=float)
    return GaussianFamily().fit(np.zeros((len(values), 0)), values)


def _small_tree():
    """
    [0] root
    |   [1] x0 <= 5
    |   [2] x0 > 5
    |   |   [3] x1 in {a}
    |   |   [4] x1 in {b, c}
    """
    tree = Tree()
    root = tree.add_node(TreeNode(0, indices=np.arange(8), model=_model([0, 1, 2, 3, 4, 5, 6, 7])))
    root.split = Split(variable=0, kind=ORDERED, threshold=5.)
    root.children = [1, 2]

    tree.add_node(TreeNode(1, parent_id=0, depth=1, indices=np.arange(4), model=_model([0, 1, 2, 3])))
    right = tree.add_node(TreeNode(2, parent_id=0, depth=1, indices=np.arange(4, 8), model=_model([4, 5, 6, 7])))
    right.split = Split(variable=1, kind=CATEGORICAL, left_categories=frozenset({"a"}),
                        right_categories=frozenset({"b", "c"}), default_child=1)
    right.children = [3, 4]

    tree.add_node(TreeNode(3, parent_id=2, depth=2, indices=np.arange(4, 6), model=_model([4, 5])))
    tree.add_node(TreeNode(4, parent_id=2, depth=2, indices=np.arange(6, 8), model=_model([6, 7])))
    return tree


def test_ordered_split_mapping():
    split = Split(variable=0, kind=ORDERED, threshold=1.5)
    X = np.array([[1.], [1.5], [2.]])
    np.testing.assert_array_equal(split.map_to_children(X), [0, 0, 1])


def test_categorical_split_mapping_with_unseen_category():
    split = Split(variable=0, kind=CATEGORICAL, left_categories=frozenset({"a"}),
                  right_categories=frozenset({"b"}), default_child=1)
    X = np.array([["a"], ["b"], ["z"]], dtype=object)
    np.testing.assert_array_equal(split.map_to_children(X), [0, 1, 1])


def test_split_description():
    split = Split(variable=2, kind=ORDERED, threshold=18., name="age")
    assert split.describe(0) == "age <= 18"
    assert split.describe(1) == "age > 18"


def test_tree_traversal():
    tree = _small_tree()

    assert [node.node_id for node in tree.iter_nodes()] == [0, 1, 2, 3, 4]
    assert [node.node_id for node in tree.leaves()] == [1, 3, 4]
    assert [node.node_id for node in tree.inner_nodes()] == [0, 2]
    assert tree.n_leaves == 3
    assert tree.depth == 2
    assert [node.node_id for node in tree.get_path(4)] == [0, 2, 4]
    assert tree.root.is_root()
    assert not tree[3].is_root()


def test_tree_apply():
    tree = _small_tree()
    X = np.array([[1, "a"], [7, "a"], [7, "c"], [9, "unknown"]], dtype=object)

    np.testing.assert_array_equal(tree.apply(X), [1, 3, 4, 4])


def test_information_criteria():
    tree = _small_tree()
    leaves = tree.leaves()

    loglik = sum(leaf.model.loglik for leaf in leaves)
    # Each gaussian leaf model has 2 parameters (mean and variance), plus one per split
    df = 3 * 2 + 2

    assert np.isclose(tree.loglik(), loglik)
    assert np.isclose(tree.n_params(), df)
    assert np.isclose(tree.aic(), -2 * loglik + 2 * df)
    assert np.isclose(tree.bic(), -2 * loglik + np.log(8) * df)
    assert np.isclose(tree.aic(dfsplit=0), -2 * loglik + 2 * 6)


def test_coef_and_text():
    tree = _small_tree()

    coef = tree.coef()
    assert sorted(coef) == [1, 3, 4]
    np.testing.assert_allclose(coef[1], [1.5])

    text = tree.to_text(coef_names=["(Intercept)"])
    lines = text.splitlines()
    assert lines[0] == "[0] root"
    assert lines[1].startswith("|   [1] x0 <= 5: n = 4")
    assert "x1 in {b, c}" in text
    assert "(Intercept) = 6.5000" in text
