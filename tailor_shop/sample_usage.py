"""Demonstration script for the tailor shop workflow."""

from __future__ import annotations

from datetime import datetime, timedelta
from pprint import pprint

from . import OrderStatus, ShopService, TaskPriority, TaskStage, TaskStatus
from .domain import EmployeeRole, EmployeeSkill, GarmentType, OrderType, ProficiencyLevel
from .workflow import InvalidTransitionError


def main() -> None:
    shop = ShopService()

    # Master data
    customer = shop.create_customer("Amara", "Okafor", "+2348012345678")
    cutter = shop.register_employee(
        "Joseph",
        "Mensah",
        EmployeeRole.CUTTER,
        skills=[EmployeeSkill("Pattern Cutting", ProficiencyLevel.EXPERT)],
        specializations=[TaskStage.CUTTING],
        capacity=5,
    )
    shop.register_employee(
        "Grace",
        "Adeyemi",
        EmployeeRole.STITCHER,
        skills=[EmployeeSkill("Hand Stitching"), EmployeeSkill("Machine Stitching")],
        specializations=[TaskStage.STITCHING],
        capacity=5,
    )

    order = shop.create_order(
        customer.id,
        GarmentType.SUIT,
        OrderType.BESPOKE_SUIT,
        "Two-piece navy wool suit",
        total_amount=450.0,
        deposit_amount=150.0,
    )
    print(f"Order {order.order_number} due {order.delivery_date:%Y-%m-%d}")
    print(f"Balance due: {order.balance_amount:.2f}")

    try:
        shop.update_order_status(order.id, OrderStatus.STITCHING)
    except InvalidTransitionError as exc:
        print(f"Rejected: {exc}")

    cutting = shop.create_task(
        order.id,
        TaskStage.CUTTING,
        assigned_employee_id=cutter.id,
        deadline=datetime.utcnow() + timedelta(days=1),
        estimated_hours=3.0,
    )
    stitching = shop.create_task(
        order.id,
        TaskStage.STITCHING,
        priority=TaskPriority.HIGH,
        estimated_hours=8.0,
        required_skills=["Hand Stitching", "Machine Stitching"],
    )

    print("\nCandidates for stitching")
    for employee, score in shop.rank_employees_for_task(stitching):
        print(f" - {employee.name}: {score:.2f}")
    result = shop.auto_assign_task(stitching.id)
    print(result.message)

    # Shop floor feedback rolls up into the order status
    shop.update_task_status(cutting.id, TaskStatus.IN_PROGRESS)
    print(shop.propagate_order_status(order.id).message)
    shop.update_task_status(cutting.id, TaskStatus.COMPLETED, actual_hours=2.5)
    shop.update_task_status(stitching.id, TaskStatus.IN_PROGRESS)
    print(shop.propagate_order_status(order.id).message)

    print("\nHistory")
    for entry in shop.order_history(order.id):
        print(f" - {entry.timestamp:%H:%M:%S} {entry.status.value} ({entry.notes})")

    print("\nWorkload")
    pprint(shop.workload_report().summary)


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()
