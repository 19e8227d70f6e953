"""Service level behaviour: orders, tasks, assignment and propagation."""

from datetime import datetime, timedelta, timezone

import pytest

from tailor_shop.domain import (
    EmployeeRole,
    EmployeeSkill,
    GarmentType,
    OrderStatus,
    OrderType,
    PurchaseOrderStatus,
    SupplierStatus,
    TaskPriority,
    TaskStage,
    TaskStatus,
)
from tailor_shop.repository import RecordNotFoundError
from tailor_shop.services import AUTO_STATUS_NOTE, ShopService
from tailor_shop.workflow import InvalidTransitionError


class TestOrders:
    def test_order_numbers_and_defaults(self, order):
        assert order.order_number.startswith("ORD-")
        assert order.status == OrderStatus.RECEIVED
        assert order.history == []
        assert order.balance_amount == 300.0

    def test_unknown_customer(self, shop):
        with pytest.raises(RecordNotFoundError):
            shop.create_order("missing", GarmentType.SHIRT, OrderType.ONE_PIECE, "Shirt")

    def test_delivery_date_defaults_to_garment_lead_time(self, shop, customer):
        order = shop.create_order(
            customer.id, GarmentType.SUIT, OrderType.BESPOKE_SUIT, "Suit"
        )
        assert order.delivery_date - order.order_date == timedelta(days=10)

    def test_estimate_delivery_date(self, shop):
        start = datetime(2026, 3, 1)
        assert shop.estimate_delivery_date(GarmentType.DRESS, start=start) == datetime(
            2026, 3, 8
        )
        assert shop.estimate_delivery_date(
            GarmentType.SUIT, True, start=start
        ) == datetime(2026, 3, 3)

    def test_deposit_larger_than_total_is_rejected(self, shop, customer):
        with pytest.raises(ValueError, match="Deposit amount cannot be greater"):
            shop.create_order(
                customer.id,
                GarmentType.SHIRT,
                OrderType.ONE_PIECE,
                "Shirt",
                total_amount=100.0,
                deposit_amount=120.0,
            )

    def test_update_details_revalidates_amounts(self, shop, order):
        with pytest.raises(ValueError, match="Deposit amount cannot be greater"):
            shop.update_order_details(order.id, total_amount=100.0)
        assert shop.orders.get(order.id).total_amount == 450.0

        updated = shop.update_order_details(
            order.id, deposit_amount=200.0, special_instructions="Peak lapels"
        )
        assert updated.balance_amount == 250.0
        assert updated.special_instructions == "Peak lapels"

    def test_skipping_a_stage_then_following_the_pipeline(self, shop, order):
        with pytest.raises(InvalidTransitionError) as exc_info:
            shop.update_order_status(order.id, OrderStatus.STITCHING)
        assert str(exc_info.value) == (
            "Invalid status transition from RECEIVED to STITCHING"
        )
        assert shop.orders.get(order.id).status == OrderStatus.RECEIVED

        updated = shop.update_order_status(
            order.id, OrderStatus.CUTTING, "Fabric ready", "ada"
        )
        assert updated.status == OrderStatus.CUTTING
        history = shop.order_history(order.id)
        assert len(history) == 1
        assert history[0].status == OrderStatus.CUTTING
        assert history[0].user == "ada"

    def test_cancel_order(self, shop, order):
        cancelled = shop.cancel_order(order.id)
        assert cancelled.status == OrderStatus.CANCELLED
        assert shop.order_history(order.id)[-1].notes == "Order cancelled"
        with pytest.raises(InvalidTransitionError):
            shop.cancel_order(order.id)

    def test_list_orders_filters(self, shop, customer, order):
        soon = shop.create_order(
            customer.id,
            GarmentType.SHIRT,
            OrderType.REPAIR,
            "Fix collar",
            delivery_date=datetime.utcnow() + timedelta(days=1),
        )
        later = datetime.utcnow() + timedelta(days=2)
        assert shop.list_orders(overdue=True, now=later) == [soon]
        assert [o.id for o in shop.list_orders(status=OrderStatus.RECEIVED)] == [
            soon.id,
            order.id,
        ]

    def test_delivery_date_must_be_in_the_future(self, shop, customer, order):
        with pytest.raises(ValueError, match="Delivery date must be in the future"):
            shop.create_order(
                customer.id,
                GarmentType.SHIRT,
                OrderType.REPAIR,
                "Fix collar",
                delivery_date=datetime.utcnow() - timedelta(hours=1),
            )
        with pytest.raises(ValueError, match="Delivery date must be in the future"):
            shop.update_order_details(order.id, delivery_date=datetime(2020, 1, 1))
        assert len(shop.orders) == 1

    def test_aware_delivery_date_is_stored_as_naive_utc(self, shop, customer):
        due = datetime.now(timezone(timedelta(hours=2))) + timedelta(days=3)
        order = shop.create_order(
            customer.id,
            GarmentType.DRESS,
            OrderType.DRESS_ALTERATION,
            "Take in waist",
            delivery_date=due,
        )
        assert order.delivery_date.tzinfo is None
        assert order.delivery_date == due.astimezone(timezone.utc).replace(tzinfo=None)
        assert shop.list_orders(overdue=False) == [order]

    def test_amounts_are_checked_on_direct_assignment(self, order):
        with pytest.raises(ValueError, match="Deposit amount cannot be greater"):
            order.deposit_amount = 500.0
        with pytest.raises(ValueError, match="Deposit amount cannot be greater"):
            order.total_amount = 100.0
        assert (order.total_amount, order.deposit_amount) == (450.0, 150.0)

        order.set_amounts(100.0, 80.0)
        assert order.balance_amount == 20.0

    def test_update_details_can_lower_both_amounts(self, shop, order):
        updated = shop.update_order_details(
            order.id, total_amount=100.0, deposit_amount=40.0
        )
        assert updated.balance_amount == 60.0


class TestTasks:
    def test_create_task_requires_order(self, shop):
        with pytest.raises(RecordNotFoundError):
            shop.create_task("missing", TaskStage.CUTTING)

    def test_required_skills_are_deduplicated(self, shop, order):
        task = shop.create_task(
            order.id, TaskStage.STITCHING, required_skills=["Hand Stitching"] * 2
        )
        assert task.required_skills == ("Hand Stitching",)

    def test_update_task_status(self, shop, order):
        task = shop.create_task(order.id, TaskStage.CUTTING)
        updated = shop.update_task_status(
            task.id, TaskStatus.COMPLETED, notes="done", actual_hours=1.5
        )
        assert updated.status == TaskStatus.COMPLETED
        assert updated.actual_hours == 1.5
        with pytest.raises(ValueError):
            shop.update_task_status(task.id, TaskStatus.COMPLETED, actual_hours=-1)

    def test_overdue_tasks_report_whole_days(self, shop, order):
        now = datetime(2026, 5, 3, 1, 0)
        late = shop.create_task(
            order.id, TaskStage.CUTTING, deadline=datetime(2026, 5, 1)
        )
        later = shop.create_task(
            order.id, TaskStage.STITCHING, deadline=datetime(2026, 4, 20)
        )
        shop.create_task(order.id, TaskStage.PRESSING, deadline=datetime(2026, 6, 1))
        done = shop.create_task(
            order.id, TaskStage.RECEIVED, deadline=datetime(2026, 4, 1)
        )
        shop.update_task_status(done.id, TaskStatus.COMPLETED)

        overdue = shop.overdue_tasks(now=now)
        assert [(task.id, days) for task, days in overdue] == [
            (later.id, 14),
            (late.id, 3),
        ]


class TestAssignment:
    def test_auto_assign_unknown_task(self, shop):
        result = shop.auto_assign_task("missing")
        assert not result.success
        assert result.message == "Task not found"

    def test_auto_assign_without_employees(self, shop, order):
        task = shop.create_task(order.id, TaskStage.CUTTING)
        result = shop.auto_assign_task(task.id)
        assert not result.success
        assert result.message == "No suitable employee found for this task"
        assert shop.tasks.get(task.id).assigned_employee_id is None

    def test_auto_assign_prefers_skilled_specialist(self, shop, order, stitcher, cutter):
        task = shop.create_task(
            order.id, TaskStage.STITCHING, required_skills=["Hand Stitching"]
        )
        result = shop.auto_assign_task(task.id)
        assert result.success
        assert result.employee.id == stitcher.id
        assert result.message == "Task assigned to Grace Adeyemi"
        assert shop.tasks.get(task.id).assigned_employee_id == stitcher.id

    def test_inactive_employees_are_not_candidates(self, shop, order, stitcher, cutter):
        shop.set_employee_active(stitcher.id, False)
        task = shop.create_task(order.id, TaskStage.STITCHING)
        ranked = shop.rank_employees_for_task(task)
        assert [employee.id for employee, _ in ranked] == [cutter.id]

    def test_manual_assignment_to_inactive_employee(self, shop, order, stitcher):
        shop.set_employee_active(stitcher.id, False)
        task = shop.create_task(order.id, TaskStage.STITCHING)
        with pytest.raises(ValueError, match="not active"):
            shop.assign_task(task.id, stitcher.id)

    def test_manual_assignment_rejects_long_notes(self, shop, order, stitcher):
        task = shop.create_task(order.id, TaskStage.STITCHING)
        with pytest.raises(ValueError, match="Notes must be less than 1000"):
            shop.assign_task(task.id, stitcher.id, "x" * 1001)
        assert shop.tasks.get(task.id).assigned_employee_id is None

    def test_workload_report_reflects_assignments(self, shop, order, stitcher, cutter):
        shop.create_task(
            order.id,
            TaskStage.STITCHING,
            assigned_employee_id=stitcher.id,
            priority=TaskPriority.HIGH,
            estimated_hours=4.0,
        )
        report = shop.workload_report()
        assert report.for_employee(stitcher.id).active_tasks == 1
        assert report.for_employee(stitcher.id).utilization == 20.0
        assert report.for_employee(cutter.id).active_tasks == 0
        assert report.task_distribution == {TaskStage.STITCHING: 1}
        assert report.summary.average_utilization == 10.0

    def test_custom_scoring_policy(self, order, stitcher, cutter):
        class AlwaysCutter:
            def score(self, employee, task, workload):
                return 1.0 if employee.role == EmployeeRole.CUTTER else 0.0

        shop = ShopService(scoring_policy=AlwaysCutter())
        assert shop.scoring_policy.score(cutter, None, None) == 1.0

    def test_register_employee_rejects_bad_capacity(self, shop):
        with pytest.raises(ValueError):
            shop.register_employee(
                "Ada",
                "Obi",
                EmployeeRole.PRESSER,
                skills=[EmployeeSkill("Pressing")],
                capacity=0,
            )


class TestPropagation:
    def test_no_tasks(self, shop, order):
        result = shop.propagate_order_status(order.id)
        assert not result.success
        assert not result.applied
        assert result.message == "No tasks found for this order"

    def test_applies_valid_derived_status(self, shop, order):
        task = shop.create_task(order.id, TaskStage.CUTTING)
        shop.update_task_status(task.id, TaskStatus.IN_PROGRESS)

        result = shop.propagate_order_status(order.id, "floor")
        assert result.success and result.applied
        assert result.previous_status == OrderStatus.RECEIVED
        assert result.derived_status == OrderStatus.CUTTING
        assert result.message == "Order status updated to CUTTING"

        stored = shop.orders.get(order.id)
        assert stored.status == OrderStatus.CUTTING
        assert stored.history[-1].notes == AUTO_STATUS_NOTE
        assert stored.history[-1].user == "floor"

    def test_conflicting_status_is_not_forced(self, shop, order):
        task = shop.create_task(order.id, TaskStage.STITCHING)
        shop.update_task_status(task.id, TaskStatus.IN_PROGRESS)

        result = shop.propagate_order_status(order.id)
        assert not result.success
        assert not result.applied
        assert result.derived_status == OrderStatus.STITCHING
        assert result.message == (
            "Derived status STITCHING is not a valid transition from RECEIVED"
        )
        stored = shop.orders.get(order.id)
        assert stored.status == OrderStatus.RECEIVED
        assert stored.history == []

    def test_unchanged_status(self, shop, order):
        shop.update_order_status(order.id, OrderStatus.CUTTING)
        shop.create_task(order.id, TaskStage.CUTTING)

        result = shop.propagate_order_status(order.id)
        assert result.success
        assert not result.applied
        assert result.message == "Order status already CUTTING"
        assert len(shop.order_history(order.id)) == 1

    def test_unknown_order(self, shop):
        with pytest.raises(RecordNotFoundError):
            shop.propagate_order_status("missing")


class TestPurchasing:
    def test_purchase_order_total(self, shop):
        supplier = shop.register_supplier("Savile Cloth", "+441234", lead_time_days=4)
        purchase_order = shop.create_purchase_order(
            supplier.id, [("Wool", 3, 20.0), ("Lining", 2, 5.5)]
        )
        assert purchase_order.total_amount == 71.0
        assert purchase_order.status == PurchaseOrderStatus.DRAFT
        assert purchase_order.expected_date is not None

    def test_inactive_supplier_is_rejected(self, shop):
        supplier = shop.register_supplier("Old Mill", "+441235")
        shop.set_supplier_status(supplier.id, SupplierStatus.INACTIVE)
        with pytest.raises(ValueError, match="not active"):
            shop.create_purchase_order(supplier.id, [("Wool", 1, 10.0)])

    def test_closed_purchase_order_cannot_change(self, shop):
        supplier = shop.register_supplier("Savile Cloth", "+441234")
        purchase_order = shop.create_purchase_order(supplier.id, [("Wool", 1, 10.0)])
        shop.update_purchase_order_status(purchase_order.id, PurchaseOrderStatus.RECEIVED)
        with pytest.raises(ValueError):
            shop.update_purchase_order_status(
                purchase_order.id, PurchaseOrderStatus.CANCELLED
            )

    def test_material_cost_for_order(self, shop, order):
        shop.record_material_usage(order.id, "Wool", 1.5, 20.0)
        shop.record_material_usage(order.id, "Wool", 0.5, 20.0)
        shop.record_material_usage(order.id, "Thread", 2, 1.25)
        total, per_item = shop.material_cost_for_order(order.id)
        assert total == 42.5
        assert per_item == {"Wool": 40.0, "Thread": 2.5}
