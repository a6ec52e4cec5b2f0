from __future__ import annotations

import math
from typing import List, Union

from ..logger import logger
from ..nodes import Token
from .adapter import FinishResult, QueriedLogprobs


def append_tokens(parent: Union[Token, List[Token]], queried: QueriedLogprobs) -> None:
    """
    Attach one query result below ``parent`` (a node, or the root list for the
    first query). Only appends children and flips ``branch_finished``.
    """
    if isinstance(queried, FinishResult):
        if isinstance(parent, Token):
            parent.branch_finished = queried.finish_reason
        else:
            parent.append(
                Token(
                    text=f"<|{queried.finish_reason.value}|>",
                    logprob=0.0,
                    prob=1.0,
                    branch_finished=queried.finish_reason,
                )
            )
        return

    to = parent.children if isinstance(parent, Token) else parent
    for position in queried.positions:
        for alt in position.top_logprobs:
            to.append(
                Token(
                    text=alt.token,
                    logprob=alt.logprob,
                    prob=math.exp(alt.logprob),
                    branch_finished=position.finish_reason
                    if alt.token == position.chosen_token
                    else None,
                )
            )
        nxt = next((t for t in to if t.text == position.chosen_token), None)
        if nxt is None:
            # sampled token fell outside the returned top-k
            logger.debug(
                "Chosen token %r not among alternatives; stopping",
                position.chosen_token,
            )
            return
        to = nxt.children


__all__ = ["append_tokens"]
