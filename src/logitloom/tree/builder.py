from __future__ import annotations

from typing import List, Sequence

from ..errors import NodeNotFoundError
from ..logger import logger
from ..nodes import Token, copy_tree
from .mutator import append_tokens
from .options import TreeOptions
from .query import query
from .traversal import continuable_prefix, path_to_node_with_id


def _report(roots: List[Token], opts: TreeOptions) -> bool:
    """Hand the caller a snapshot; True when the run should stop here."""
    interrupt = bool(opts.progress(copy_tree(roots)))
    if interrupt or opts.cancel.cancelled:
        logger.info("Interrupt requested; stopping after current query")
        return True
    return False


def _count(roots: Sequence[Token]) -> int:
    total = 0
    stack = list(roots)
    while stack:
        node = stack.pop()
        total += 1
        stack.extend(node.children)
    return total


async def _grow(
    roots: List[Token], search_roots: List[Token], opts: TreeOptions
) -> int:
    """
    Expand continuable paths under ``search_roots`` until none are left.
    ``roots`` is the whole forest, reported after every query.
    """
    steps = 0
    while True:
        prefix = continuable_prefix(search_roots, opts.depth)
        if prefix is None:
            return steps
        steps += 1
        logger.debug(
            "Step %d: extending %r", steps, "".join(t.text for t in prefix)
        )
        append_tokens(prefix[-1], await query(prefix, opts))
        if _report(roots, opts):
            return steps


async def build_tree(opts: TreeOptions) -> List[Token]:
    """
    Grow a fresh forest from the prompt/prefill until every branch is done.

    Errors propagate as-is; the partial tree is whatever ``opts.progress`` last
    received (``TreeStore.run`` keeps it next to the error).
    """
    logger.info(
        "Building tree: model=%s depth=%d max_width=%d cover_prob=%.2f",
        opts.model,
        opts.depth,
        opts.max_width,
        opts.cover_prob,
    )
    roots: List[Token] = []
    append_tokens(roots, await query([], opts))
    if _report(roots, opts):
        return roots

    steps = await _grow(roots, roots, opts)
    logger.info("Tree complete: %d queries, %d nodes", steps + 1, _count(roots))
    return roots


async def expand_tree(
    opts: TreeOptions, roots: Sequence[Token], node_id: str
) -> List[Token]:
    """
    Regrow the subtree under ``node_id`` in a copy of ``roots``. Nodes outside
    that subtree are left untouched; the node's old children are discarded.
    On error, as with ``build_tree``, the last progress snapshot is the partial tree.
    """
    roots = copy_tree(roots)
    path = path_to_node_with_id(node_id, roots)
    if path is None:
        logger.error_raise(
            f"No node with id {node_id!r} in tree", exc=NodeNotFoundError
        )
    target = path[-1]
    target.children = []

    # the target itself counts toward depth; ancestors become prefill
    sub_opts = opts.with_changes(
        depth=opts.depth + 1,
        prefill=(opts.prefill or "") + "".join(t.text for t in path[:-1]),
    )
    logger.info(
        "Expanding node %s (%r) at depth %d", node_id, target.text, len(path)
    )
    steps = await _grow(roots, [target], sub_opts)
    logger.info("Expansion complete: %d queries, %d nodes", steps, _count(roots))
    return roots


__all__ = ["build_tree", "expand_tree"]
