"""Core data structures for the tailor shop management system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple


class OrderStatus(str, Enum):
    """Lifecycle stages for a customer order."""

    RECEIVED = "RECEIVED"
    CUTTING = "CUTTING"
    STITCHING = "STITCHING"
    QUALITY_CHECK = "QUALITY_CHECK"
    PRESSING = "PRESSING"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class OrderPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class GarmentType(str, Enum):
    SHIRT = "SHIRT"
    SUIT = "SUIT"
    DRESS = "DRESS"
    TROUSER = "TROUSER"


class OrderType(str, Enum):
    BESPOKE_SUIT = "BESPOKE_SUIT"
    DRESS_ALTERATION = "DRESS_ALTERATION"
    ONE_PIECE = "ONE_PIECE"
    SUIT_ALTERATION = "SUIT_ALTERATION"
    CUSTOM_DESIGN = "CUSTOM_DESIGN"
    REPAIR = "REPAIR"


class TaskStage(str, Enum):
    """Workflow steps a garment passes through on the shop floor."""

    RECEIVED = "RECEIVED"
    CUTTING = "CUTTING"
    STITCHING = "STITCHING"
    QUALITY_CHECK = "QUALITY_CHECK"
    PRESSING = "PRESSING"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"


class TaskPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class EmployeeRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    CUTTER = "CUTTER"
    STITCHER = "STITCHER"
    PRESSER = "PRESSER"
    DELIVERY = "DELIVERY"


class ProficiencyLevel(str, Enum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    EXPERT = "EXPERT"


class MeasurementUnit(str, Enum):
    CM = "CM"
    INCH = "INCH"


class SupplierStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class PaymentTerms(str, Enum):
    NET_15 = "NET_15"
    NET_30 = "NET_30"
    NET_45 = "NET_45"
    NET_60 = "NET_60"
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"
    ADVANCE_PAYMENT = "ADVANCE_PAYMENT"


class PurchaseOrderStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    ORDERED = "ORDERED"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values pass through."""

    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def validate_amounts(
    total_amount: Optional[float], deposit_amount: Optional[float]
) -> None:
    """Reject negative amounts and deposits larger than the order total."""

    if total_amount is not None and total_amount < 0:
        raise ValueError("Amount must be positive")
    if deposit_amount is not None and deposit_amount < 0:
        raise ValueError("Deposit must be positive")
    if (
        total_amount is not None
        and deposit_amount is not None
        and deposit_amount > total_amount
    ):
        raise ValueError("Deposit amount cannot be greater than total amount")


@dataclass(slots=True)
class Customer:
    """Customer master data."""

    id: str
    customer_number: str
    first_name: str
    last_name: str
    phone: str
    email: str = ""
    address: str = ""
    notes: str = ""
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(slots=True)
class Measurement:
    """A set of body measurements taken for one garment type."""

    id: str
    customer_id: str
    garment_type: GarmentType
    values: Dict[str, float]
    unit: MeasurementUnit = MeasurementUnit.CM
    notes: str = ""
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if not self.values:
            raise ValueError("A measurement must record at least one value")
        for name, value in self.values.items():
            if value <= 0:
                raise ValueError(f"Measurement {name!r} must be positive")


@dataclass(frozen=True, slots=True)
class OrderHistoryEntry:
    """Immutable record of one accepted order status change."""

    status: OrderStatus
    timestamp: datetime
    user: str
    notes: str = ""


@dataclass(slots=True)
class Order:
    """A customer job moving through the workshop."""

    id: str
    order_number: str
    customer_id: str
    garment_type: GarmentType
    order_type: OrderType
    service_description: str
    delivery_date: datetime
    status: OrderStatus = OrderStatus.RECEIVED
    priority: OrderPriority = OrderPriority.NORMAL
    total_amount: Optional[float] = None
    deposit_amount: Optional[float] = None
    is_urgent: bool = False
    special_instructions: str = ""
    measurement_id: Optional[str] = None
    order_date: datetime = field(default_factory=datetime.utcnow)
    history: List[OrderHistoryEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if not self.service_description.strip():
            raise ValueError("Service description is required")
        if len(self.service_description) > 500:
            raise ValueError("Description must be less than 500 characters")
        if len(self.special_instructions) > 1000:
            raise ValueError("Instructions must be less than 1000 characters")
        validate_amounts(self.total_amount, self.deposit_amount)

    def __setattr__(self, name: str, value) -> None:
        # Amounts are checked as a pair on every assignment, once both exist.
        if name == "total_amount" and hasattr(self, "deposit_amount"):
            validate_amounts(value, self.deposit_amount)
        elif name == "deposit_amount" and hasattr(self, "total_amount"):
            validate_amounts(self.total_amount, value)
        object.__setattr__(self, name, value)

    def set_amounts(
        self, total_amount: Optional[float], deposit_amount: Optional[float]
    ) -> None:
        """Replace both amounts at once, validated against each other."""

        validate_amounts(total_amount, deposit_amount)
        object.__setattr__(self, "total_amount", total_amount)
        object.__setattr__(self, "deposit_amount", deposit_amount)

    @property
    def balance_amount(self) -> float:
        if self.total_amount is None:
            return 0.0
        return self.total_amount - (self.deposit_amount or 0.0)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        if self.status in {OrderStatus.DELIVERED, OrderStatus.CANCELLED}:
            return False
        return self.delivery_date < now


@dataclass(slots=True)
class Task:
    """One unit of work for an order at a given workflow stage."""

    id: str
    order_id: str
    stage: TaskStage
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.NORMAL
    assigned_employee_id: Optional[str] = None
    deadline: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    required_skills: Tuple[str, ...] = tuple()
    notes: str = ""
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if self.estimated_hours is not None and self.estimated_hours < 0:
            raise ValueError("Estimated hours must be positive")
        if self.actual_hours is not None and self.actual_hours < 0:
            raise ValueError("Actual hours must be positive")
        if len(self.notes) > 1000:
            raise ValueError("Notes must be less than 1000 characters")

    @property
    def is_active(self) -> bool:
        return self.status in {TaskStatus.PENDING, TaskStatus.IN_PROGRESS}

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.deadline is None or self.status == TaskStatus.COMPLETED:
            return False
        return self.deadline < (now or datetime.utcnow())


@dataclass(slots=True)
class EmployeeSkill:
    name: str
    proficiency: ProficiencyLevel = ProficiencyLevel.INTERMEDIATE


@dataclass(slots=True)
class Employee:
    """Workshop staff member that tasks can be assigned to."""

    id: str
    employee_number: str
    first_name: str
    last_name: str
    role: EmployeeRole
    phone: str = ""
    email: str = ""
    is_active: bool = True
    skills: List[EmployeeSkill] = field(default_factory=list)
    specializations: Tuple[TaskStage, ...] = tuple()
    capacity: Optional[int] = None
    salary: Optional[float] = None
    notes: str = ""
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def skill_names(self) -> Tuple[str, ...]:
        return tuple(skill.name for skill in self.skills)

    def has_skill(self, skill_name: str) -> bool:
        return skill_name in self.skill_names


@dataclass(slots=True)
class Supplier:
    """Supplier master data for fabrics and trimmings."""

    id: str
    supplier_number: str
    name: str
    phone: str
    email: str = ""
    address: str = ""
    payment_terms: PaymentTerms = PaymentTerms.NET_30
    lead_time_days: int = 0
    status: SupplierStatus = SupplierStatus.ACTIVE
    notes: str = ""

    def __post_init__(self) -> None:
        if self.lead_time_days < 0:
            raise ValueError("Lead time must be non-negative")


@dataclass(slots=True)
class PurchaseOrderItem:
    item_name: str
    quantity: float
    unit_price: float

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("Quantity must be greater than 0")
        if self.unit_price < 0:
            raise ValueError("Unit price must be non-negative")

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price


@dataclass(slots=True)
class PurchaseOrder:
    """Purchase order for materials bought from a supplier."""

    id: str
    order_number: str
    supplier_id: str
    items: List[PurchaseOrderItem]
    status: PurchaseOrderStatus = PurchaseOrderStatus.DRAFT
    currency: str = "USD"
    expected_date: Optional[datetime] = None
    order_date: datetime = field(default_factory=datetime.utcnow)
    notes: str = ""

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError("At least one item is required")

    @property
    def total_amount(self) -> float:
        return sum(item.line_total for item in self.items)


@dataclass(slots=True)
class MaterialUsage:
    """Material consumed while working on an order."""

    id: str
    order_id: str
    item_name: str
    quantity: float
    unit_price: float
    usage_date: datetime = field(default_factory=datetime.utcnow)
    notes: str = ""

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("Quantity must be greater than 0")
        if self.unit_price < 0:
            raise ValueError("Unit price must be non-negative")

    @property
    def total_cost(self) -> float:
        return self.quantity * self.unit_price


__all__ = [
    "OrderStatus",
    "OrderPriority",
    "GarmentType",
    "OrderType",
    "TaskStage",
    "TaskStatus",
    "TaskPriority",
    "EmployeeRole",
    "ProficiencyLevel",
    "MeasurementUnit",
    "SupplierStatus",
    "PaymentTerms",
    "PurchaseOrderStatus",
    "as_naive_utc",
    "validate_amounts",
    "Customer",
    "Measurement",
    "OrderHistoryEntry",
    "Order",
    "Task",
    "EmployeeSkill",
    "Employee",
    "Supplier",
    "PurchaseOrderItem",
    "PurchaseOrder",
    "MaterialUsage",
]
