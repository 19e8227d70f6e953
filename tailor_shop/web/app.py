"""FastAPI-based JSON API for the tailor shop."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import Settings, configure_logging, load_settings
from ..domain import (
    Customer,
    Employee,
    EmployeeRole,
    EmployeeSkill,
    GarmentType,
    MaterialUsage,
    MeasurementUnit,
    Order,
    OrderPriority,
    OrderStatus,
    OrderType,
    PaymentTerms,
    ProficiencyLevel,
    PurchaseOrder,
    TaskPriority,
    TaskStage,
    TaskStatus,
    Task,
)
from ..repository import DuplicateRecordError, RecordNotFoundError
from ..services import AssignmentResult, PropagationResult, ShopService
from ..storage import ShopDatabase
from ..workflow import InvalidTransitionError, allowed_transitions

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Request bodies
# ----------------------------------------------------------------------
class CustomerIn(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=1, max_length=20)
    email: str = ""
    address: str = Field("", max_length=500)
    notes: str = Field("", max_length=2000)


class MeasurementIn(BaseModel):
    garment_type: GarmentType
    values: Dict[str, float]
    unit: MeasurementUnit = MeasurementUnit.CM
    notes: str = ""


class SkillIn(BaseModel):
    name: str = Field(min_length=1)
    proficiency: ProficiencyLevel = ProficiencyLevel.INTERMEDIATE


class EmployeeIn(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: EmployeeRole
    phone: str = ""
    email: str = ""
    skills: List[SkillIn] = Field(default_factory=list)
    specializations: List[TaskStage] = Field(default_factory=list)
    capacity: Optional[int] = Field(None, gt=0)
    salary: Optional[float] = Field(None, gt=0)
    notes: str = Field("", max_length=2000)


class OrderIn(BaseModel):
    customer_id: str = Field(min_length=1)
    garment_type: GarmentType
    order_type: OrderType
    service_description: str = Field(min_length=1, max_length=500)
    special_instructions: str = Field("", max_length=1000)
    delivery_date: Optional[datetime] = None
    priority: OrderPriority = OrderPriority.NORMAL
    total_amount: Optional[float] = Field(None, ge=0)
    deposit_amount: Optional[float] = Field(None, ge=0)
    is_urgent: bool = False
    measurement_id: Optional[str] = None


class OrderUpdateIn(BaseModel):
    service_description: Optional[str] = Field(None, max_length=500)
    special_instructions: Optional[str] = Field(None, max_length=1000)
    delivery_date: Optional[datetime] = None
    priority: Optional[OrderPriority] = None
    total_amount: Optional[float] = Field(None, ge=0)
    deposit_amount: Optional[float] = Field(None, ge=0)
    is_urgent: Optional[bool] = None


class StatusUpdateIn(BaseModel):
    status: OrderStatus
    notes: str = ""


class TaskIn(BaseModel):
    order_id: str = Field(min_length=1)
    stage: TaskStage
    priority: TaskPriority = TaskPriority.NORMAL
    assigned_employee_id: Optional[str] = None
    deadline: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    required_skills: List[str] = Field(default_factory=list)
    notes: str = Field("", max_length=1000)


class TaskStatusIn(BaseModel):
    status: TaskStatus
    notes: Optional[str] = Field(None, max_length=1000)
    actual_hours: Optional[float] = Field(None, ge=0)


class TaskAssignIn(BaseModel):
    task_id: str = Field(min_length=1)
    employee_id: str = Field(min_length=1)
    notes: Optional[str] = None


class SupplierIn(BaseModel):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = ""
    address: str = ""
    payment_terms: PaymentTerms = PaymentTerms.NET_30
    lead_time_days: int = Field(0, ge=0)
    notes: str = Field("", max_length=1000)


class PurchaseOrderItemIn(BaseModel):
    item_name: str = Field(min_length=1)
    quantity: float = Field(gt=0)
    unit_price: float = Field(ge=0)


class PurchaseOrderIn(BaseModel):
    supplier_id: str = Field(min_length=1)
    items: List[PurchaseOrderItemIn] = Field(min_length=1)
    expected_date: Optional[datetime] = None
    currency: str = Field("USD", min_length=1)
    notes: str = Field("", max_length=1000)


class MaterialUsageIn(BaseModel):
    order_id: str = Field(min_length=1)
    item_name: str = Field(min_length=1)
    quantity: float = Field(gt=0)
    unit_price: float = Field(ge=0)
    usage_date: Optional[datetime] = None
    notes: str = ""


# ----------------------------------------------------------------------
# Response shapes
# ----------------------------------------------------------------------
def order_to_dict(order: Order, now: Optional[datetime] = None) -> Dict[str, Any]:
    payload = asdict(order)
    payload["balance_amount"] = order.balance_amount
    payload["is_overdue"] = order.is_overdue(now)
    payload["allowed_transitions"] = sorted(
        status.value for status in allowed_transitions(order.status)
    )
    return payload


def task_to_dict(task: Task, now: Optional[datetime] = None) -> Dict[str, Any]:
    payload = asdict(task)
    payload["is_overdue"] = task.is_overdue(now)
    return payload


def employee_to_dict(employee: Employee) -> Dict[str, Any]:
    payload = asdict(employee)
    payload["name"] = employee.name
    return payload


def customer_to_dict(customer: Customer) -> Dict[str, Any]:
    payload = asdict(customer)
    payload["name"] = customer.name
    return payload


def purchase_order_to_dict(purchase_order: PurchaseOrder) -> Dict[str, Any]:
    payload = asdict(purchase_order)
    payload["total_amount"] = purchase_order.total_amount
    return payload


def usage_to_dict(usage: MaterialUsage) -> Dict[str, Any]:
    payload = asdict(usage)
    payload["total_cost"] = usage.total_cost
    return payload


def assignment_to_dict(result: AssignmentResult) -> Dict[str, Any]:
    return {
        "success": result.success,
        "message": result.message,
        "task": task_to_dict(result.task) if result.task else None,
        "assigned_employee": employee_to_dict(result.employee)
        if result.employee
        else None,
    }


def propagation_to_dict(result: PropagationResult) -> Dict[str, Any]:
    return asdict(result)


def create_app(
    database_path: Optional[str] = None,
    *,
    service: Optional[ShopService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    database: Optional[ShopDatabase] = None
    if service is None:
        database = ShopDatabase(database_path or settings.database_path)
        service = ShopService(
            customer_repo=database.customers,
            measurement_repo=database.measurements,
            order_repo=database.orders,
            task_repo=database.tasks,
            employee_repo=database.employees,
            supplier_repo=database.suppliers,
            purchase_order_repo=database.purchase_orders,
            material_usage_repo=database.material_usage,
        )
        if settings.demo_data:
            ensure_demo_data(service)
    service.update_workload_options(default_capacity=settings.default_capacity)

    app = FastAPI(title="Tailor Shop Workflow")
    app.state.shop_service = service
    app.state.database = database

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        if database is not None:
            database.close()

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(DuplicateRecordError)
    async def duplicate_handler(request: Request, exc: DuplicateRecordError):
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def transition_handler(request: Request, exc: InvalidTransitionError):
        return JSONResponse(
            status_code=409,
            content={
                "error": str(exc),
                "current_status": exc.current.value,
                "requested_status": exc.target.value,
            },
        )

    @app.exception_handler(ValueError)
    async def validation_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    def shop(request: Request) -> ShopService:
        return request.app.state.shop_service

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------
    @app.get("/api/customers")
    async def list_customers(request: Request):
        customers = sorted(shop(request).customers.list(), key=lambda c: c.name.lower())
        return {"customers": [customer_to_dict(customer) for customer in customers]}

    @app.post("/api/customers", status_code=201)
    async def create_customer(payload: CustomerIn, request: Request):
        customer = shop(request).create_customer(**payload.model_dump())
        return {"customer": customer_to_dict(customer)}

    @app.get("/api/customers/{customer_id}")
    async def get_customer(customer_id: str, request: Request):
        return {"customer": customer_to_dict(shop(request).customers.get(customer_id))}

    @app.get("/api/customers/{customer_id}/measurements")
    async def list_measurements(
        customer_id: str, request: Request, garment_type: Optional[GarmentType] = None
    ):
        service = shop(request)
        service.customers.get(customer_id)
        history = service.measurement_history(customer_id, garment_type)
        return {"measurements": [asdict(measurement) for measurement in history]}

    @app.post("/api/customers/{customer_id}/measurements", status_code=201)
    async def record_measurement(
        customer_id: str, payload: MeasurementIn, request: Request
    ):
        measurement = shop(request).record_measurement(
            customer_id,
            payload.garment_type,
            payload.values,
            unit=payload.unit,
            notes=payload.notes,
        )
        return {"measurement": asdict(measurement)}

    # ------------------------------------------------------------------
    # Employees
    # ------------------------------------------------------------------
    @app.get("/api/employees")
    async def list_employees(request: Request, active: Optional[bool] = None):
        employees = shop(request).employees.list()
        if active is not None:
            employees = [e for e in employees if e.is_active == active]
        employees.sort(key=lambda employee: employee.name.lower())
        return {"employees": [employee_to_dict(employee) for employee in employees]}

    @app.post("/api/employees", status_code=201)
    async def create_employee(payload: EmployeeIn, request: Request):
        employee = shop(request).register_employee(
            payload.first_name,
            payload.last_name,
            payload.role,
            phone=payload.phone,
            email=payload.email,
            skills=[
                EmployeeSkill(name=skill.name, proficiency=skill.proficiency)
                for skill in payload.skills
            ],
            specializations=payload.specializations,
            capacity=payload.capacity,
            salary=payload.salary,
            notes=payload.notes,
        )
        return {"employee": employee_to_dict(employee)}

    @app.get("/api/employees/{employee_id}")
    async def get_employee(employee_id: str, request: Request):
        return {"employee": employee_to_dict(shop(request).employees.get(employee_id))}

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    @app.get("/api/orders")
    async def list_orders(
        request: Request,
        status: Optional[OrderStatus] = None,
        overdue: Optional[bool] = None,
    ):
        now = datetime.utcnow()
        orders = shop(request).list_orders(status=status, overdue=overdue, now=now)
        return {"orders": [order_to_dict(order, now) for order in orders]}

    @app.post("/api/orders", status_code=201)
    async def create_order(payload: OrderIn, request: Request):
        order = shop(request).create_order(**payload.model_dump())
        return {"order": order_to_dict(order)}

    @app.get("/api/orders/{order_id}")
    async def get_order(order_id: str, request: Request):
        return {"order": order_to_dict(shop(request).orders.get(order_id))}

    @app.put("/api/orders/{order_id}")
    async def update_order(order_id: str, payload: OrderUpdateIn, request: Request):
        changes = {
            name: getattr(payload, name)
            for name in payload.model_fields_set
        }
        order = shop(request).update_order_details(order_id, **changes)
        return {"order": order_to_dict(order)}

    @app.delete("/api/orders/{order_id}")
    async def cancel_order(order_id: str, request: Request):
        user = request.headers.get("x-user", "system")
        order = shop(request).cancel_order(order_id, acting_user=user)
        return {"order": order_to_dict(order)}

    @app.api_route("/api/orders/{order_id}/status", methods=["PUT", "POST"])
    async def update_order_status(
        order_id: str, payload: StatusUpdateIn, request: Request
    ):
        user = request.headers.get("x-user", "system")
        order = shop(request).update_order_status(
            order_id, payload.status, payload.notes, user
        )
        return {"order": order_to_dict(order)}

    @app.get("/api/orders/{order_id}/history")
    async def order_history(order_id: str, request: Request):
        history = shop(request).order_history(order_id)
        return {"history": [asdict(entry) for entry in history]}

    @app.get("/api/orders/{order_id}/material-cost")
    async def order_material_cost(order_id: str, request: Request):
        total, per_item = shop(request).material_cost_for_order(order_id)
        return {"order_id": order_id, "total_cost": total, "items": per_item}

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    @app.get("/api/tasks")
    async def list_tasks(
        request: Request,
        order_id: Optional[str] = None,
        stage: Optional[TaskStage] = None,
        status: Optional[TaskStatus] = None,
        assigned_employee_id: Optional[str] = None,
        overdue: Optional[bool] = None,
    ):
        now = datetime.utcnow()
        tasks = shop(request).list_tasks(
            order_id=order_id,
            stage=stage,
            status=status,
            assigned_employee_id=assigned_employee_id,
            overdue=overdue,
            now=now,
        )
        return {"tasks": [task_to_dict(task, now) for task in tasks]}

    @app.post("/api/tasks", status_code=201)
    async def create_task(payload: TaskIn, request: Request):
        data = payload.model_dump()
        order_id = data.pop("order_id")
        stage = data.pop("stage")
        task = shop(request).create_task(order_id, stage, **data)
        return {"task": task_to_dict(task)}

    @app.get("/api/tasks/workload")
    async def workload(request: Request):
        report = shop(request).workload_report()
        return {
            "employee_workload": [asdict(entry) for entry in report.employee_workload],
            "task_distribution": [
                {"stage": stage.value, "count": count}
                for stage, count in report.task_distribution.items()
            ],
            "priority_distribution": [
                {"priority": priority.value, "count": count}
                for priority, count in report.priority_distribution.items()
            ],
            "summary": asdict(report.summary),
        }

    @app.get("/api/tasks/overdue")
    async def overdue_tasks(request: Request):
        now = datetime.utcnow()
        entries = shop(request).overdue_tasks(now=now)
        return {
            "tasks": [
                {**task_to_dict(task, now), "days_overdue": days}
                for task, days in entries
            ]
        }

    @app.post("/api/tasks/assign")
    async def assign_task(payload: TaskAssignIn, request: Request):
        task = shop(request).assign_task(
            payload.task_id, payload.employee_id, payload.notes
        )
        return {"task": task_to_dict(task)}

    @app.get("/api/tasks/{task_id}")
    async def get_task(task_id: str, request: Request):
        return {"task": task_to_dict(shop(request).tasks.get(task_id))}

    @app.put("/api/tasks/{task_id}/status")
    async def update_task_status(
        task_id: str, payload: TaskStatusIn, request: Request
    ):
        service = shop(request)
        user = request.headers.get("x-user", "system")
        task = service.update_task_status(
            task_id,
            payload.status,
            notes=payload.notes,
            actual_hours=payload.actual_hours,
        )
        propagation = service.propagate_order_status(task.order_id, acting_user=user)
        return {
            "task": task_to_dict(task),
            "propagation": propagation_to_dict(propagation),
        }

    @app.get("/api/tasks/{task_id}/candidates")
    async def task_candidates(task_id: str, request: Request):
        service = shop(request)
        ranked = service.rank_employees_for_task(service.tasks.get(task_id))
        return {
            "candidates": [
                {"employee": employee_to_dict(employee), "score": score}
                for employee, score in ranked
            ]
        }

    @app.post("/api/tasks/{task_id}/auto-assign")
    async def auto_assign(task_id: str, request: Request):
        result = shop(request).auto_assign_task(task_id)
        return assignment_to_dict(result)

    # ------------------------------------------------------------------
    # Suppliers and purchasing
    # ------------------------------------------------------------------
    @app.get("/api/suppliers")
    async def list_suppliers(request: Request):
        suppliers = sorted(
            shop(request).suppliers.list(), key=lambda supplier: supplier.name.lower()
        )
        return {"suppliers": [asdict(supplier) for supplier in suppliers]}

    @app.post("/api/suppliers", status_code=201)
    async def create_supplier(payload: SupplierIn, request: Request):
        supplier = shop(request).register_supplier(**payload.model_dump())
        return {"supplier": asdict(supplier)}

    @app.get("/api/purchase-orders")
    async def list_purchase_orders(request: Request, supplier_id: Optional[str] = None):
        purchase_orders = shop(request).purchase_orders.list()
        if supplier_id:
            purchase_orders = [
                po for po in purchase_orders if po.supplier_id == supplier_id
            ]
        purchase_orders.sort(key=lambda po: po.order_date, reverse=True)
        return {
            "purchase_orders": [purchase_order_to_dict(po) for po in purchase_orders]
        }

    @app.post("/api/purchase-orders", status_code=201)
    async def create_purchase_order(payload: PurchaseOrderIn, request: Request):
        purchase_order = shop(request).create_purchase_order(
            payload.supplier_id,
            [(item.item_name, item.quantity, item.unit_price) for item in payload.items],
            expected_date=payload.expected_date,
            currency=payload.currency,
            notes=payload.notes,
        )
        return {"purchase_order": purchase_order_to_dict(purchase_order)}

    @app.get("/api/material-usage")
    async def list_material_usage(request: Request, order_id: Optional[str] = None):
        usages = shop(request).material_usage.list()
        if order_id:
            usages = [usage for usage in usages if usage.order_id == order_id]
        usages.sort(key=lambda usage: usage.usage_date, reverse=True)
        return {"material_usage": [usage_to_dict(usage) for usage in usages]}

    @app.post("/api/material-usage", status_code=201)
    async def record_material_usage(payload: MaterialUsageIn, request: Request):
        data = payload.model_dump()
        usage = shop(request).record_material_usage(
            data.pop("order_id"),
            data.pop("item_name"),
            data.pop("quantity"),
            data.pop("unit_price"),
            **data,
        )
        return {"material_usage": usage_to_dict(usage)}

    return app


def ensure_demo_data(service: ShopService) -> None:
    if len(service.customers) > 0:
        return

    customer = service.create_customer(
        first_name="Amara",
        last_name="Okafor",
        phone="+2348012345678",
        email="amara.okafor@example.com",
        notes="Prefers slim fit",
    )
    measurement = service.record_measurement(
        customer.id,
        GarmentType.SUIT,
        {"chest": 98.0, "waist": 84.0, "sleeve": 64.5, "inseam": 81.0},
    )

    cutter = service.register_employee(
        "Joseph",
        "Mensah",
        EmployeeRole.CUTTER,
        skills=[
            EmployeeSkill("Pattern Cutting", ProficiencyLevel.EXPERT),
            EmployeeSkill("Fabric Layout", ProficiencyLevel.ADVANCED),
        ],
        specializations=[TaskStage.CUTTING],
        capacity=6,
    )
    service.register_employee(
        "Grace",
        "Adeyemi",
        EmployeeRole.STITCHER,
        skills=[
            EmployeeSkill("Hand Stitching", ProficiencyLevel.EXPERT),
            EmployeeSkill("Machine Stitching", ProficiencyLevel.ADVANCED),
        ],
        specializations=[TaskStage.STITCHING, TaskStage.QUALITY_CHECK],
        capacity=5,
    )
    service.register_employee(
        "Samuel",
        "Boateng",
        EmployeeRole.PRESSER,
        skills=[EmployeeSkill("Steam Pressing", ProficiencyLevel.INTERMEDIATE)],
        specializations=[TaskStage.PRESSING],
        capacity=8,
    )

    order = service.create_order(
        customer.id,
        GarmentType.SUIT,
        OrderType.BESPOKE_SUIT,
        "Two-piece navy wool suit",
        priority=OrderPriority.HIGH,
        total_amount=450.0,
        deposit_amount=150.0,
        measurement_id=measurement.id,
    )
    service.create_task(
        order.id,
        TaskStage.CUTTING,
        priority=TaskPriority.HIGH,
        assigned_employee_id=cutter.id,
        deadline=datetime.utcnow() + timedelta(days=2),
        estimated_hours=3.0,
        required_skills=["Pattern Cutting"],
    )
    stitching = service.create_task(
        order.id,
        TaskStage.STITCHING,
        priority=TaskPriority.HIGH,
        deadline=datetime.utcnow() + timedelta(days=6),
        estimated_hours=10.0,
        required_skills=["Hand Stitching", "Machine Stitching"],
    )
    service.auto_assign_task(stitching.id)

    supplier = service.register_supplier(
        "Lagos Fabric House",
        "+2348098765432",
        email="orders@lagosfabric.example.com",
        lead_time_days=5,
    )
    service.create_purchase_order(
        supplier.id,
        [("Navy wool 120s", 3.5, 28.0), ("Horn buttons", 12, 1.2)],
    )
    service.record_material_usage(order.id, "Navy wool 120s", 3.2, 28.0)


__all__ = ["create_app", "ensure_demo_data"]
