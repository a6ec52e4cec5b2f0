from __future__ import annotations

from .adapter import FinishResult, LogprobsResult, Position, QueriedLogprobs, adapt_choice
from .builder import build_tree, expand_tree
from .mutator import append_tokens
from .options import CancelToken, ModelType, ProgressCallback, TreeOptions
from .query import query
from .selection import TopLogprob, select_candidates, slice_to_prob
from .traversal import continuable_prefix, iter_paths, path_to_node_with_id

__all__ = [
    "CancelToken",
    "FinishResult",
    "LogprobsResult",
    "ModelType",
    "Position",
    "ProgressCallback",
    "QueriedLogprobs",
    "TopLogprob",
    "TreeOptions",
    "adapt_choice",
    "append_tokens",
    "build_tree",
    "continuable_prefix",
    "expand_tree",
    "iter_paths",
    "path_to_node_with_id",
    "query",
    "select_candidates",
    "slice_to_prob",
]
