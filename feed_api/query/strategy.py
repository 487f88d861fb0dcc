"""Query-execution strategy selection."""
from enum import Enum

from feed_api.query.fields import Hint


class Strategy(str, Enum):
    MEMBERSHIP = "membership"
    TASK_OUTPUT = "task_output"
    GRAPH_FAN_OUT = "graph_fan_out"
    REACTION_FAN_OUT = "reaction_fan_out"
    DIRECT = "direct"


# First match wins.
_PRECEDENCE: tuple[tuple[Hint, Strategy], ...] = (
    (Hint.MEMBERSHIP, Strategy.MEMBERSHIP),
    (Hint.TASK_OUTPUT, Strategy.TASK_OUTPUT),
    (Hint.GRAPH_FAN_OUT, Strategy.GRAPH_FAN_OUT),
    (Hint.REACTION_FAN_OUT, Strategy.REACTION_FAN_OUT),
)


def select_strategy(hints: frozenset) -> Strategy:
    """Pick one strategy from the compiled hints; similarity stays DIRECT."""
    for hint, strategy in _PRECEDENCE:
        if hint in hints:
            return strategy
    return Strategy.DIRECT
