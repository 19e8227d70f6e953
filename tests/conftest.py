import pytest

from tailor_shop.domain import (
    EmployeeRole,
    EmployeeSkill,
    GarmentType,
    OrderType,
    TaskStage,
)
from tailor_shop.services import ShopService


@pytest.fixture
def shop():
    return ShopService()


@pytest.fixture
def customer(shop):
    return shop.create_customer("Amara", "Okafor", "+2348012345678")


@pytest.fixture
def order(shop, customer):
    return shop.create_order(
        customer.id,
        GarmentType.SUIT,
        OrderType.BESPOKE_SUIT,
        "Two-piece navy wool suit",
        total_amount=450.0,
        deposit_amount=150.0,
    )


@pytest.fixture
def stitcher(shop):
    return shop.register_employee(
        "Grace",
        "Adeyemi",
        EmployeeRole.STITCHER,
        skills=[EmployeeSkill("Hand Stitching"), EmployeeSkill("Machine Stitching")],
        specializations=[TaskStage.STITCHING],
        capacity=5,
    )


@pytest.fixture
def cutter(shop):
    return shop.register_employee(
        "Joseph",
        "Mensah",
        EmployeeRole.CUTTER,
        skills=[EmployeeSkill("Pattern Cutting")],
        specializations=[TaskStage.CUTTING],
        capacity=5,
    )
