"""Workshop management for a tailoring business.

This package provides data models, in-memory and SQLite persistence, the
order workflow state machine, skill based task routing and workload
reporting for a bespoke tailoring shop.
"""

from .domain import (
    Employee,
    Order,
    OrderPriority,
    OrderStatus,
    Task,
    TaskPriority,
    TaskStage,
    TaskStatus,
)
from .services import AssignmentResult, PropagationResult, ShopService
from .workflow import InvalidTransitionError, derive_order_status

__all__ = [
    "Employee",
    "Order",
    "OrderPriority",
    "OrderStatus",
    "Task",
    "TaskPriority",
    "TaskStage",
    "TaskStatus",
    "ShopService",
    "AssignmentResult",
    "PropagationResult",
    "InvalidTransitionError",
    "derive_order_status",
]
