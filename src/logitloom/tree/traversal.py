from __future__ import annotations

from typing import Iterable, Iterator, List, Optional

from ..nodes import Token


def iter_paths(root: Token) -> Iterator[List[Token]]:
    """
    Yield every root-to-leaf path below ``root`` lazily, in pre-order,
    left to right. The tree must not change while the iterator is live.
    """
    stack: list[tuple[Token, list[Token]]] = [(root, [root])]
    while stack:
        node, path = stack.pop()
        if not node.children:
            yield path
            continue
        for child in reversed(node.children):
            stack.append((child, path + [child]))


def continuable_prefix(
    roots: Iterable[Token], max_depth: int
) -> Optional[List[Token]]:
    """First path whose leaf is unexpanded, unfinished and shorter than ``max_depth``."""
    for root in roots:
        for path in iter_paths(root):
            if len(path) >= max_depth:
                continue
            last = path[-1]
            if not last.children and last.branch_finished is None:
                return path
    return None


def path_to_node_with_id(node_id: str, roots: Iterable[Token]) -> Optional[List[Token]]:
    stack: list[tuple[Token, list[Token]]] = [
        (root, [root]) for root in reversed(list(roots))
    ]
    while stack:
        node, path = stack.pop()
        if node.id == node_id:
            return path
        for child in reversed(node.children):
            stack.append((child, path + [child]))
    return None


__all__ = ["iter_paths", "continuable_prefix", "path_to_node_with_id"]
