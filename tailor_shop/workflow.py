"""Order workflow state machine, stage ranking and status propagation.

The transition table is the single source of truth for which order status
changes are legal. ``apply_status_change`` is the only code path that
appends to an order's history.
"""

from __future__ import annotations

import logging
from datetime import datetime
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Optional

from .domain import Order, OrderHistoryEntry, OrderStatus, Task, TaskStage, TaskStatus

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Mapping[OrderStatus, FrozenSet[OrderStatus]] = MappingProxyType(
    {
        OrderStatus.RECEIVED: frozenset({OrderStatus.CUTTING, OrderStatus.CANCELLED}),
        OrderStatus.CUTTING: frozenset({OrderStatus.STITCHING, OrderStatus.CANCELLED}),
        OrderStatus.STITCHING: frozenset(
            {OrderStatus.QUALITY_CHECK, OrderStatus.CANCELLED}
        ),
        OrderStatus.QUALITY_CHECK: frozenset(
            {OrderStatus.PRESSING, OrderStatus.CANCELLED}
        ),
        OrderStatus.PRESSING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
        OrderStatus.READY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
        # Final stages
        OrderStatus.DELIVERED: frozenset(),
        OrderStatus.CANCELLED: frozenset(),
    }
)

STAGE_RANK: Mapping[TaskStage, int] = MappingProxyType(
    {
        TaskStage.RECEIVED: 1,
        TaskStage.CUTTING: 2,
        TaskStage.STITCHING: 3,
        TaskStage.QUALITY_CHECK: 4,
        TaskStage.PRESSING: 5,
        TaskStage.READY: 6,
        TaskStage.DELIVERED: 7,
        TaskStage.CANCELLED: 0,
    }
)

_STAGE_BY_RANK: Mapping[int, TaskStage] = MappingProxyType(
    {rank: stage for stage, rank in STAGE_RANK.items() if rank > 0}
)


class InvalidTransitionError(Exception):
    """Raised when an order status change is not in the transition table."""

    def __init__(self, current: OrderStatus, target: OrderStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid status transition from {current.value} to {target.value}"
        )


# ----------------------------------------------------------------------
# Transition table
# ----------------------------------------------------------------------
def allowed_transitions(status: OrderStatus) -> FrozenSet[OrderStatus]:
    return ALLOWED_TRANSITIONS.get(status, frozenset())


def is_valid_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in allowed_transitions(current)


def is_terminal(status: OrderStatus) -> bool:
    return not allowed_transitions(status)


def apply_status_change(
    order: Order,
    new_status: OrderStatus,
    notes: str = "",
    acting_user: str = "system",
    *,
    now: Optional[datetime] = None,
) -> OrderHistoryEntry:
    """Move ``order`` to ``new_status`` and record the change.

    Raises ``InvalidTransitionError`` without touching the order when the
    target is not reachable from the current status.
    """

    current = order.status
    if not is_valid_transition(current, new_status):
        logger.warning(
            "Rejected status change for order %s: %s -> %s",
            order.order_number,
            current.value,
            new_status.value,
        )
        raise InvalidTransitionError(current, new_status)
    timestamp = now or datetime.utcnow()
    entry = OrderHistoryEntry(
        status=new_status,
        timestamp=timestamp,
        user=acting_user,
        notes=notes or "",
    )
    order.status = new_status
    order.updated_at = timestamp
    order.history.append(entry)
    logger.info(
        "Order %s moved %s -> %s by %s",
        order.order_number,
        current.value,
        new_status.value,
        acting_user,
    )
    return entry


# ----------------------------------------------------------------------
# Stage model
# ----------------------------------------------------------------------
def stage_rank(stage: TaskStage) -> int:
    return STAGE_RANK[stage]


def stage_from_rank(rank: int) -> TaskStage:
    """Inverse of ``stage_rank`` for the forward stages (1..7)."""

    try:
        return _STAGE_BY_RANK[rank]
    except KeyError as exc:
        raise ValueError(f"No workflow stage has rank {rank}") from exc


def order_status_for_stage(stage: TaskStage) -> OrderStatus:
    return OrderStatus(stage.value)


# ----------------------------------------------------------------------
# Propagation
# ----------------------------------------------------------------------
def derive_order_status(tasks: Iterable[Task]) -> OrderStatus:
    """Derive the order status implied by the state of its tasks.

    All tasks completed means the order is ready. Otherwise the most
    advanced in-progress stage wins, then the earliest pending stage.
    Tasks at the cancelled stage never take part in either selection.
    """

    tasks = list(tasks)
    if not tasks:
        return OrderStatus.RECEIVED
    if all(task.status == TaskStatus.COMPLETED for task in tasks):
        return OrderStatus.READY

    in_progress = [
        stage_rank(task.stage)
        for task in tasks
        if task.status == TaskStatus.IN_PROGRESS and stage_rank(task.stage) > 0
    ]
    if in_progress:
        return order_status_for_stage(stage_from_rank(max(in_progress)))

    pending = [
        stage_rank(task.stage)
        for task in tasks
        if task.status == TaskStatus.PENDING and stage_rank(task.stage) > 0
    ]
    if pending:
        return order_status_for_stage(stage_from_rank(min(pending)))

    return OrderStatus.RECEIVED


__all__ = [
    "ALLOWED_TRANSITIONS",
    "STAGE_RANK",
    "InvalidTransitionError",
    "allowed_transitions",
    "is_valid_transition",
    "is_terminal",
    "apply_status_change",
    "stage_rank",
    "stage_from_rank",
    "order_status_for_stage",
    "derive_order_status",
]
