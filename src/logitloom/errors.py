from __future__ import annotations


class LoomError(RuntimeError):
    """Base class for failures raised by the loom itself (not by the transport)."""


class MissingChoiceError(LoomError):
    """The backend response had no choice at index 0."""


class MissingLogprobsError(LoomError):
    """The backend omitted logprobs without a terminal finish reason."""


class NodeNotFoundError(LoomError):
    """``expand_tree`` was given an id that is not in the tree."""


class InvalidTreeFileError(LoomError):
    """A snapshot file is not a logit loom tree."""


__all__ = [
    "LoomError",
    "MissingChoiceError",
    "MissingLogprobsError",
    "NodeNotFoundError",
    "InvalidTreeFileError",
]
