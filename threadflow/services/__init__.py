from threadflow.services import (
    discussion_view,
    optimistic_writer,
    policy,
    poller,
    reconciler,
    task_board,
    task_rules,
)


__all__ = [
    "discussion_view",
    "optimistic_writer",
    "policy",
    "poller",
    "reconciler",
    "task_board",
    "task_rules",
]
