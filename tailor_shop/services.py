"""Service layer that implements the tailor shop use-cases."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from .assignment import (
    EmployeeWorkload,
    ScoringPolicy,
    SkillMatchPolicy,
    WorkloadReport,
    build_workload_report,
    compute_workloads,
    find_best_employee,
    rank_employees,
)
from .config import AssignmentOptions, OrderOptions, WorkloadOptions
from .domain import (
    Customer,
    Employee,
    EmployeeRole,
    EmployeeSkill,
    GarmentType,
    MaterialUsage,
    Measurement,
    MeasurementUnit,
    Order,
    OrderHistoryEntry,
    OrderPriority,
    OrderStatus,
    OrderType,
    PaymentTerms,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    Supplier,
    SupplierStatus,
    Task,
    TaskPriority,
    TaskStage,
    TaskStatus,
    as_naive_utc,
    validate_amounts,
)
from .repository import InMemoryRepository, RecordNotFoundError
from .workflow import apply_status_change, derive_order_status, is_valid_transition

logger = logging.getLogger(__name__)

AUTO_STATUS_NOTE = "Status updated automatically based on task completion"

_UNSET = object()


def _business_number(prefix: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    return f"{prefix}-{now:%Y%m%d}-{uuid4().hex[:6].upper()}"


def _require_future(delivery_date: datetime, now: datetime) -> None:
    if delivery_date <= now:
        raise ValueError("Delivery date must be in the future")


@dataclass(slots=True)
class AssignmentResult:
    """Outcome of an automatic assignment attempt."""

    success: bool
    message: str
    task: Optional[Task] = None
    employee: Optional[Employee] = None


@dataclass(slots=True)
class PropagationResult:
    """Outcome of rolling task states up into the order status."""

    order_id: str
    success: bool
    applied: bool
    message: str
    previous_status: Optional[OrderStatus] = None
    derived_status: Optional[OrderStatus] = None


class ShopService:
    """Facade that exposes tailor shop use-cases to clients."""

    def __init__(
        self,
        customer_repo: Optional[InMemoryRepository[Customer]] = None,
        measurement_repo: Optional[InMemoryRepository[Measurement]] = None,
        order_repo: Optional[InMemoryRepository[Order]] = None,
        task_repo: Optional[InMemoryRepository[Task]] = None,
        employee_repo: Optional[InMemoryRepository[Employee]] = None,
        supplier_repo: Optional[InMemoryRepository[Supplier]] = None,
        purchase_order_repo: Optional[InMemoryRepository[PurchaseOrder]] = None,
        material_usage_repo: Optional[InMemoryRepository[MaterialUsage]] = None,
        *,
        scoring_policy: Optional[ScoringPolicy] = None,
    ) -> None:
        self.customers = customer_repo or InMemoryRepository()
        self.measurements = measurement_repo or InMemoryRepository()
        self.orders = order_repo or InMemoryRepository()
        self.tasks = task_repo or InMemoryRepository()
        self.employees = employee_repo or InMemoryRepository()
        self.suppliers = supplier_repo or InMemoryRepository()
        self.purchase_orders = purchase_order_repo or InMemoryRepository()
        self.material_usage = material_usage_repo or InMemoryRepository()
        self.assignment_options = AssignmentOptions()
        self.workload_options = WorkloadOptions()
        self.order_options = OrderOptions()
        self._scoring_policy = scoring_policy

    @property
    def scoring_policy(self) -> ScoringPolicy:
        if self._scoring_policy is not None:
            return self._scoring_policy
        return SkillMatchPolicy(self.assignment_options)

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------
    def update_assignment_options(
        self,
        *,
        skill_match_bonus: float,
        high_priority_multiplier: float,
        specialization_multiplier: float,
    ) -> AssignmentOptions:
        self.assignment_options = AssignmentOptions(
            skill_match_bonus=max(skill_match_bonus, 0.0),
            high_priority_multiplier=max(high_priority_multiplier, 0.0),
            specialization_multiplier=max(specialization_multiplier, 0.0),
        )
        return self.assignment_options

    def update_workload_options(self, *, default_capacity: int) -> WorkloadOptions:
        self.workload_options = WorkloadOptions(default_capacity=max(default_capacity, 1))
        return self.workload_options

    def estimate_delivery_date(
        self,
        garment_type: GarmentType,
        is_urgent: bool = False,
        *,
        start: Optional[datetime] = None,
    ) -> datetime:
        start = as_naive_utc(start) or datetime.utcnow()
        days = self.order_options.lead_time_for(garment_type, is_urgent)
        return start + timedelta(days=days)

    # ------------------------------------------------------------------
    # Customers and measurements
    # ------------------------------------------------------------------
    def create_customer(
        self,
        first_name: str,
        last_name: str,
        phone: str,
        *,
        email: str = "",
        address: str = "",
        notes: str = "",
    ) -> Customer:
        if not first_name.strip() or not last_name.strip():
            raise ValueError("First and last name are required")
        customer = Customer(
            id=str(uuid4()),
            customer_number=_business_number("CUST"),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=phone,
            email=email,
            address=address,
            notes=notes,
        )
        self.customers.add(customer.id, customer)
        return customer

    def record_measurement(
        self,
        customer_id: str,
        garment_type: GarmentType,
        values: Mapping[str, float],
        *,
        unit: MeasurementUnit = MeasurementUnit.CM,
        notes: str = "",
    ) -> Measurement:
        if customer_id not in self.customers:
            raise RecordNotFoundError(f"Customer {customer_id!r} does not exist")
        measurement = Measurement(
            id=str(uuid4()),
            customer_id=customer_id,
            garment_type=garment_type,
            values=dict(values),
            unit=unit,
            notes=notes,
        )
        self.measurements.add(measurement.id, measurement)
        return measurement

    def measurement_history(
        self, customer_id: str, garment_type: Optional[GarmentType] = None
    ) -> List[Measurement]:
        """Measurements for a customer, newest first."""

        history = self.measurements.filter(
            lambda measurement: measurement.customer_id == customer_id
            and (garment_type is None or measurement.garment_type == garment_type)
        )
        history.sort(key=lambda measurement: measurement.created_at, reverse=True)
        return history

    # ------------------------------------------------------------------
    # Employees
    # ------------------------------------------------------------------
    def register_employee(
        self,
        first_name: str,
        last_name: str,
        role: EmployeeRole,
        *,
        phone: str = "",
        email: str = "",
        skills: Optional[Iterable[EmployeeSkill]] = None,
        specializations: Optional[Sequence[TaskStage]] = None,
        capacity: Optional[int] = None,
        salary: Optional[float] = None,
        notes: str = "",
    ) -> Employee:
        if capacity is not None and capacity <= 0:
            raise ValueError("Capacity must be positive")
        if salary is not None and salary <= 0:
            raise ValueError("Salary must be positive")
        employee = Employee(
            id=str(uuid4()),
            employee_number=_business_number("EMP"),
            first_name=first_name,
            last_name=last_name,
            role=role,
            phone=phone,
            email=email,
            skills=list(skills or ()),
            specializations=tuple(dict.fromkeys(specializations or ())),
            capacity=capacity,
            salary=salary,
            notes=notes,
        )
        self.employees.add(employee.id, employee)
        return employee

    def set_employee_active(self, employee_id: str, active: bool) -> Employee:
        employee = self.employees.get(employee_id)
        employee.is_active = active
        self.employees.upsert(employee.id, employee)
        return employee

    def active_employees(self) -> List[Employee]:
        return self.employees.filter(lambda employee: employee.is_active)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def create_order(
        self,
        customer_id: str,
        garment_type: GarmentType,
        order_type: OrderType,
        service_description: str,
        *,
        delivery_date: Optional[datetime] = None,
        priority: OrderPriority = OrderPriority.NORMAL,
        total_amount: Optional[float] = None,
        deposit_amount: Optional[float] = None,
        is_urgent: bool = False,
        special_instructions: str = "",
        measurement_id: Optional[str] = None,
        acting_user: str = "system",
    ) -> Order:
        if customer_id not in self.customers:
            raise RecordNotFoundError(f"Customer {customer_id!r} does not exist")
        if measurement_id is not None and measurement_id not in self.measurements:
            raise RecordNotFoundError(f"Measurement {measurement_id!r} does not exist")
        now = datetime.utcnow()
        delivery_date = as_naive_utc(delivery_date)
        if delivery_date is None:
            delivery_date = self.estimate_delivery_date(
                garment_type, is_urgent, start=now
            )
        else:
            _require_future(delivery_date, now)
        order = Order(
            id=str(uuid4()),
            order_number=_business_number("ORD", now),
            customer_id=customer_id,
            garment_type=garment_type,
            order_type=order_type,
            service_description=service_description,
            delivery_date=delivery_date,
            priority=priority,
            total_amount=total_amount,
            deposit_amount=deposit_amount,
            is_urgent=is_urgent,
            special_instructions=special_instructions,
            measurement_id=measurement_id,
            order_date=now,
            created_at=now,
            updated_at=now,
        )
        self.orders.add(order.id, order)
        logger.info("Created order %s for customer %s", order.order_number, customer_id)
        return order

    def update_order_details(
        self,
        order_id: str,
        *,
        service_description: Optional[str] = None,
        special_instructions: Optional[str] = None,
        delivery_date: Optional[datetime] = None,
        priority: Optional[OrderPriority] = None,
        total_amount=_UNSET,
        deposit_amount=_UNSET,
        is_urgent: Optional[bool] = None,
    ) -> Order:
        """Edit non-status order fields; amounts are re-validated together."""

        with self.orders.transaction():
            order = self.orders.get(order_id)
            new_total = order.total_amount if total_amount is _UNSET else total_amount
            new_deposit = (
                order.deposit_amount if deposit_amount is _UNSET else deposit_amount
            )
            validate_amounts(new_total, new_deposit)
            if service_description is not None:
                if not service_description.strip():
                    raise ValueError("Service description is required")
                if len(service_description) > 500:
                    raise ValueError("Description must be less than 500 characters")
            if special_instructions is not None and len(special_instructions) > 1000:
                raise ValueError("Instructions must be less than 1000 characters")
            delivery_date = as_naive_utc(delivery_date)
            if delivery_date is not None:
                _require_future(delivery_date, datetime.utcnow())

            order.set_amounts(new_total, new_deposit)
            if service_description is not None:
                order.service_description = service_description
            if special_instructions is not None:
                order.special_instructions = special_instructions
            if delivery_date is not None:
                order.delivery_date = delivery_date
            if priority is not None:
                order.priority = priority
            if is_urgent is not None:
                order.is_urgent = is_urgent
            order.updated_at = datetime.utcnow()
            self.orders.upsert(order.id, order)
        return order

    def update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        notes: str = "",
        acting_user: str = "system",
    ) -> Order:
        """Validate and apply a status change as one read-check-write unit."""

        with self.orders.transaction():
            order = self.orders.get(order_id)
            apply_status_change(order, status, notes, acting_user)
            self.orders.upsert(order.id, order)
        return order

    def cancel_order(
        self, order_id: str, notes: str = "", acting_user: str = "system"
    ) -> Order:
        return self.update_order_status(
            order_id, OrderStatus.CANCELLED, notes or "Order cancelled", acting_user
        )

    def order_history(self, order_id: str) -> List[OrderHistoryEntry]:
        return list(self.orders.get(order_id).history)

    def list_orders(
        self,
        *,
        status: Optional[OrderStatus] = None,
        overdue: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> List[Order]:
        now = as_naive_utc(now) or datetime.utcnow()
        orders = self.orders.filter(
            lambda order: (status is None or order.status == status)
            and (overdue is None or order.is_overdue(now) == overdue)
        )
        orders.sort(key=lambda order: (order.delivery_date, order.order_number))
        return orders

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    def create_task(
        self,
        order_id: str,
        stage: TaskStage,
        *,
        priority: TaskPriority = TaskPriority.NORMAL,
        assigned_employee_id: Optional[str] = None,
        deadline: Optional[datetime] = None,
        estimated_hours: Optional[float] = None,
        required_skills: Optional[Sequence[str]] = None,
        notes: str = "",
    ) -> Task:
        if order_id not in self.orders:
            raise RecordNotFoundError(f"Order {order_id!r} does not exist")
        if assigned_employee_id is not None:
            self._require_active_employee(assigned_employee_id)
        task = Task(
            id=str(uuid4()),
            order_id=order_id,
            stage=stage,
            priority=priority,
            assigned_employee_id=assigned_employee_id,
            deadline=as_naive_utc(deadline),
            estimated_hours=estimated_hours,
            required_skills=tuple(dict.fromkeys(required_skills or ())),
            notes=notes,
        )
        self.tasks.add(task.id, task)
        return task

    def tasks_for_order(self, order_id: str) -> List[Task]:
        return self.tasks.filter(lambda task: task.order_id == order_id)

    def list_tasks(
        self,
        *,
        order_id: Optional[str] = None,
        stage: Optional[TaskStage] = None,
        status: Optional[TaskStatus] = None,
        assigned_employee_id: Optional[str] = None,
        overdue: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> List[Task]:
        now = as_naive_utc(now) or datetime.utcnow()

        def matches(task: Task) -> bool:
            return (
                (order_id is None or task.order_id == order_id)
                and (stage is None or task.stage == stage)
                and (status is None or task.status == status)
                and (
                    assigned_employee_id is None
                    or task.assigned_employee_id == assigned_employee_id
                )
                and (overdue is None or task.is_overdue(now) == overdue)
            )

        tasks = self.tasks.filter(matches)
        tasks.sort(key=lambda task: (task.deadline or datetime.max, task.created_at))
        return tasks

    def overdue_tasks(self, *, now: Optional[datetime] = None) -> List[Tuple[Task, int]]:
        """Overdue tasks paired with whole days overdue, most overdue first."""

        now = as_naive_utc(now) or datetime.utcnow()
        overdue = []
        for task in self.list_tasks(overdue=True, now=now):
            delta = now - task.deadline
            days = delta.days + (1 if delta.seconds or delta.microseconds else 0)
            overdue.append((task, days))
        overdue.sort(key=lambda entry: entry[1], reverse=True)
        return overdue

    def update_task_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        notes: Optional[str] = None,
        actual_hours: Optional[float] = None,
    ) -> Task:
        if actual_hours is not None and actual_hours < 0:
            raise ValueError("Actual hours must be positive")
        if notes is not None and len(notes) > 1000:
            raise ValueError("Notes must be less than 1000 characters")
        with self.tasks.transaction():
            task = self.tasks.get(task_id)
            previous = task.status
            task.status = status
            if notes is not None:
                task.notes = notes
            if actual_hours is not None:
                task.actual_hours = actual_hours
            task.updated_at = datetime.utcnow()
            self.tasks.upsert(task.id, task)
        logger.info(
            "Task %s (%s) moved %s -> %s",
            task.id,
            task.stage.value,
            previous.value,
            status.value,
        )
        return task

    def assign_task(
        self, task_id: str, employee_id: str, notes: Optional[str] = None
    ) -> Task:
        """Assign directly to an employee, bypassing scoring."""

        if notes is not None and len(notes) > 1000:
            raise ValueError("Notes must be less than 1000 characters")
        employee = self._require_active_employee(employee_id)
        with self.tasks.transaction():
            task = self.tasks.get(task_id)
            task.assigned_employee_id = employee.id
            if notes:
                task.notes = notes
            task.updated_at = datetime.utcnow()
            self.tasks.upsert(task.id, task)
        logger.info("Task %s assigned to %s", task.id, employee.name)
        return task

    def _require_active_employee(self, employee_id: str) -> Employee:
        employee = self.employees.get(employee_id)
        if not employee.is_active:
            raise ValueError(f"Employee {employee.name} is not active")
        return employee

    # ------------------------------------------------------------------
    # Workload and routing
    # ------------------------------------------------------------------
    def employee_workloads(
        self, *, now: Optional[datetime] = None
    ) -> Dict[str, EmployeeWorkload]:
        workloads = compute_workloads(
            self.employees.list(),
            self.tasks.list(),
            now=now,
            default_capacity=self.workload_options.default_capacity,
        )
        return {workload.employee_id: workload for workload in workloads}

    def workload_report(self, *, now: Optional[datetime] = None) -> WorkloadReport:
        return build_workload_report(
            self.employees.list(),
            self.tasks.list(),
            now=now,
            default_capacity=self.workload_options.default_capacity,
        )

    def rank_employees_for_task(self, task: Task) -> List[Tuple[Employee, float]]:
        return rank_employees(
            self.active_employees(),
            task,
            self.employee_workloads(),
            self.scoring_policy,
        )

    def find_best_employee_for_task(self, task: Task) -> Optional[Employee]:
        return find_best_employee(
            self.active_employees(),
            task,
            self.employee_workloads(),
            self.scoring_policy,
        )

    def auto_assign_task(self, task_id: str) -> AssignmentResult:
        try:
            task = self.tasks.get(task_id)
        except RecordNotFoundError:
            return AssignmentResult(success=False, message="Task not found")
        employee = self.find_best_employee_for_task(task)
        if employee is None:
            logger.warning("No suitable employee found for task %s", task_id)
            return AssignmentResult(
                success=False,
                message="No suitable employee found for this task",
                task=task,
            )
        task = self.assign_task(task_id, employee.id)
        return AssignmentResult(
            success=True,
            message=f"Task assigned to {employee.name}",
            task=task,
            employee=employee,
        )

    # ------------------------------------------------------------------
    # Propagation
    # ------------------------------------------------------------------
    def propagate_order_status(
        self, order_id: str, acting_user: str = "system"
    ) -> PropagationResult:
        """Roll the state of an order's tasks up into the order status.

        A derived status that the transition table does not allow from the
        current status is reported and logged, never forced.
        """

        order = self.orders.get(order_id)
        tasks = self.tasks_for_order(order_id)
        if not tasks:
            return PropagationResult(
                order_id=order_id,
                success=False,
                applied=False,
                message="No tasks found for this order",
                previous_status=order.status,
            )
        derived = derive_order_status(tasks)
        current = order.status
        if derived == current:
            return PropagationResult(
                order_id=order_id,
                success=True,
                applied=False,
                message=f"Order status already {current.value}",
                previous_status=current,
                derived_status=derived,
            )
        if not is_valid_transition(current, derived):
            logger.warning(
                "Derived status %s for order %s conflicts with current status %s",
                derived.value,
                order.order_number,
                current.value,
            )
            return PropagationResult(
                order_id=order_id,
                success=False,
                applied=False,
                message=(
                    f"Derived status {derived.value} is not a valid transition "
                    f"from {current.value}"
                ),
                previous_status=current,
                derived_status=derived,
            )
        self.update_order_status(order_id, derived, AUTO_STATUS_NOTE, acting_user)
        return PropagationResult(
            order_id=order_id,
            success=True,
            applied=True,
            message=f"Order status updated to {derived.value}",
            previous_status=current,
            derived_status=derived,
        )

    # ------------------------------------------------------------------
    # Suppliers and purchasing
    # ------------------------------------------------------------------
    def register_supplier(
        self,
        name: str,
        phone: str,
        *,
        email: str = "",
        address: str = "",
        payment_terms: PaymentTerms = PaymentTerms.NET_30,
        lead_time_days: int = 0,
        notes: str = "",
    ) -> Supplier:
        if not name.strip():
            raise ValueError("Supplier name is required")
        supplier = Supplier(
            id=str(uuid4()),
            supplier_number=_business_number("SUP"),
            name=name.strip(),
            phone=phone,
            email=email,
            address=address,
            payment_terms=payment_terms,
            lead_time_days=lead_time_days,
            notes=notes,
        )
        self.suppliers.add(supplier.id, supplier)
        return supplier

    def set_supplier_status(self, supplier_id: str, status: SupplierStatus) -> Supplier:
        supplier = self.suppliers.get(supplier_id)
        supplier.status = status
        self.suppliers.upsert(supplier.id, supplier)
        return supplier

    def create_purchase_order(
        self,
        supplier_id: str,
        items: Iterable[Tuple[str, float, float]],
        *,
        expected_date: Optional[datetime] = None,
        currency: str = "USD",
        notes: str = "",
    ) -> PurchaseOrder:
        supplier = self.suppliers.get(supplier_id)
        if supplier.status != SupplierStatus.ACTIVE:
            raise ValueError(f"Supplier {supplier.name} is not active")
        now = datetime.utcnow()
        expected_date = as_naive_utc(expected_date)
        if expected_date is None and supplier.lead_time_days:
            expected_date = now + timedelta(days=supplier.lead_time_days)
        purchase_order = PurchaseOrder(
            id=str(uuid4()),
            order_number=_business_number("PO", now),
            supplier_id=supplier.id,
            items=[
                PurchaseOrderItem(item_name=name, quantity=quantity, unit_price=price)
                for name, quantity, price in items
            ],
            currency=currency,
            expected_date=expected_date,
            order_date=now,
            notes=notes,
        )
        self.purchase_orders.add(purchase_order.id, purchase_order)
        return purchase_order

    def update_purchase_order_status(
        self, purchase_order_id: str, status: PurchaseOrderStatus
    ) -> PurchaseOrder:
        purchase_order = self.purchase_orders.get(purchase_order_id)
        if purchase_order.status in {
            PurchaseOrderStatus.RECEIVED,
            PurchaseOrderStatus.CANCELLED,
        }:
            raise ValueError(
                f"Purchase order {purchase_order.order_number} is already "
                f"{purchase_order.status.value}"
            )
        purchase_order.status = status
        self.purchase_orders.upsert(purchase_order.id, purchase_order)
        return purchase_order

    # ------------------------------------------------------------------
    # Material usage
    # ------------------------------------------------------------------
    def record_material_usage(
        self,
        order_id: str,
        item_name: str,
        quantity: float,
        unit_price: float,
        *,
        usage_date: Optional[datetime] = None,
        notes: str = "",
    ) -> MaterialUsage:
        if order_id not in self.orders:
            raise RecordNotFoundError(f"Order {order_id!r} does not exist")
        usage = MaterialUsage(
            id=str(uuid4()),
            order_id=order_id,
            item_name=item_name,
            quantity=quantity,
            unit_price=unit_price,
            usage_date=as_naive_utc(usage_date) or datetime.utcnow(),
            notes=notes,
        )
        self.material_usage.add(usage.id, usage)
        return usage

    def material_cost_for_order(self, order_id: str) -> Tuple[float, Dict[str, float]]:
        """Total material cost of an order and the cost per item."""

        self.orders.get(order_id)
        per_item: Dict[str, float] = {}
        for usage in self.material_usage.filter(lambda usage: usage.order_id == order_id):
            per_item[usage.item_name] = (
                per_item.get(usage.item_name, 0.0) + usage.total_cost
            )
        return sum(per_item.values()), per_item


__all__ = [
    "ShopService",
    "AssignmentResult",
    "PropagationResult",
    "AUTO_STATUS_NOTE",
]
