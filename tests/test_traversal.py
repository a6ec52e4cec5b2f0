from __future__ import annotations

from logitloom.nodes import BranchFinishReason, Token
from logitloom.tree import continuable_prefix, iter_paths, path_to_node_with_id


def _t(text, *children, finished=None):
    return Token(text=text, logprob=-1.0, branch_finished=finished, children=list(children))


def _texts(path):
    return "".join(t.text for t in path) if path is not None else None


def test_iter_paths_is_preorder_left_to_right():
    root = _t("a", _t("b", _t("c"), _t("d")), _t("e"))
    assert [_texts(p) for p in iter_paths(root)] == ["abc", "abd", "ae"]


def test_continuable_prefix_skips_finished_and_deep_paths():
    roots = [
        _t("a", _t("b"), _t("c", finished=BranchFinishReason.STOP)),
        _t("d"),
    ]
    assert _texts(continuable_prefix(roots, 3)) == "ab"
    # "ab" is already at max depth, "ac" is finished
    assert _texts(continuable_prefix(roots, 2)) == "d"
    assert continuable_prefix(roots, 1) is None


def test_continuable_prefix_none_when_everything_done():
    roots = [_t("<|stop|>", finished=BranchFinishReason.STOP)]
    assert continuable_prefix(roots, 10) is None
    assert continuable_prefix([], 10) is None


def test_path_to_node_with_id():
    target = _t("z")
    roots = [_t("a", _t("b")), _t("c", _t("y"), target)]
    assert _texts(path_to_node_with_id(target.id, roots)) == "cz"
    assert _texts(path_to_node_with_id(roots[0].id, roots)) == "a"
    assert path_to_node_with_id("missing", roots) is None
