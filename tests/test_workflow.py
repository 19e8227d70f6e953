"""Tests for the order state machine, stage ranking and status derivation."""

from datetime import datetime, timedelta

import pytest

from tailor_shop.domain import (
    GarmentType,
    Order,
    OrderStatus,
    OrderType,
    Task,
    TaskStage,
    TaskStatus,
)
from tailor_shop.workflow import (
    ALLOWED_TRANSITIONS,
    STAGE_RANK,
    InvalidTransitionError,
    apply_status_change,
    derive_order_status,
    is_terminal,
    is_valid_transition,
    stage_from_rank,
    stage_rank,
)

PIPELINE = [
    OrderStatus.RECEIVED,
    OrderStatus.CUTTING,
    OrderStatus.STITCHING,
    OrderStatus.QUALITY_CHECK,
    OrderStatus.PRESSING,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
]


def make_order(status=OrderStatus.RECEIVED, delivery_date=None):
    return Order(
        id="o1",
        order_number="ORD-20260101-ABC123",
        customer_id="c1",
        garment_type=GarmentType.SHIRT,
        order_type=OrderType.ONE_PIECE,
        service_description="Linen shirt",
        delivery_date=delivery_date or datetime(2030, 1, 1),
        status=status,
    )


def make_task(stage, status, **kwargs):
    return Task(
        id=f"{stage.value}-{status.value}",
        order_id="o1",
        stage=stage,
        status=status,
        **kwargs,
    )


class TestTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(OrderStatus)

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            ALLOWED_TRANSITIONS[OrderStatus.RECEIVED] = frozenset()

    def test_pipeline_moves_one_step_forward_or_cancels(self):
        for current, following in zip(PIPELINE, PIPELINE[1:]):
            assert ALLOWED_TRANSITIONS[current] == {following, OrderStatus.CANCELLED}

    @pytest.mark.parametrize("status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_terminal_states_reject_everything(self, status):
        assert is_terminal(status)
        for target in OrderStatus:
            assert not is_valid_transition(status, target)

    def test_valid_iff_in_table(self):
        for current in OrderStatus:
            for target in OrderStatus:
                assert is_valid_transition(current, target) == (
                    target in ALLOWED_TRANSITIONS[current]
                )


class TestApplyStatusChange:
    def test_success_appends_one_history_entry(self):
        order = make_order()
        now = datetime(2026, 5, 1, 9, 30)
        entry = apply_status_change(
            order, OrderStatus.CUTTING, "fabric ready", "ada", now=now
        )
        assert order.status == OrderStatus.CUTTING
        assert order.history == [entry]
        assert entry.status == OrderStatus.CUTTING
        assert entry.notes == "fabric ready"
        assert entry.user == "ada"
        assert entry.timestamp == now
        assert order.updated_at == now

    def test_skipping_a_stage_is_rejected_without_mutation(self):
        order = make_order()
        with pytest.raises(InvalidTransitionError) as exc_info:
            apply_status_change(order, OrderStatus.STITCHING)
        assert exc_info.value.current == OrderStatus.RECEIVED
        assert exc_info.value.target == OrderStatus.STITCHING
        assert "RECEIVED" in str(exc_info.value)
        assert "STITCHING" in str(exc_info.value)
        assert order.status == OrderStatus.RECEIVED
        assert order.history == []

    def test_all_pairs(self):
        for current in OrderStatus:
            for target in OrderStatus:
                order = make_order(status=current)
                if target in ALLOWED_TRANSITIONS[current]:
                    apply_status_change(order, target)
                    assert order.status == target
                    assert len(order.history) == 1
                else:
                    with pytest.raises(InvalidTransitionError):
                        apply_status_change(order, target)
                    assert order.status == current
                    assert order.history == []

    def test_history_entries_are_immutable(self):
        order = make_order()
        entry = apply_status_change(order, OrderStatus.CUTTING)
        with pytest.raises(AttributeError):
            entry.status = OrderStatus.READY


class TestOrderOverdue:
    def test_past_delivery_is_overdue(self):
        now = datetime(2026, 5, 1)
        order = make_order(delivery_date=now - timedelta(minutes=1))
        assert order.is_overdue(now)

    def test_delivery_exactly_now_is_not_overdue(self):
        now = datetime(2026, 5, 1)
        assert not make_order(delivery_date=now).is_overdue(now)

    @pytest.mark.parametrize("status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_closed_orders_are_never_overdue(self, status):
        now = datetime(2026, 5, 1)
        order = make_order(status=status, delivery_date=now - timedelta(days=3))
        assert not order.is_overdue(now)


class TestStageModel:
    def test_ranks_are_strictly_monotonic(self):
        ranks = [stage_rank(TaskStage(status.value)) for status in PIPELINE]
        assert ranks == [1, 2, 3, 4, 5, 6, 7]

    def test_cancelled_ranks_lowest(self):
        assert stage_rank(TaskStage.CANCELLED) == 0
        assert all(
            STAGE_RANK[TaskStage.CANCELLED] < rank
            for stage, rank in STAGE_RANK.items()
            if stage != TaskStage.CANCELLED
        )

    def test_stage_from_rank_inverts_rank(self):
        for stage in TaskStage:
            if stage != TaskStage.CANCELLED:
                assert stage_from_rank(stage_rank(stage)) == stage

    @pytest.mark.parametrize("rank", [0, 8, -1])
    def test_stage_from_rank_rejects_unknown_ranks(self, rank):
        with pytest.raises(ValueError):
            stage_from_rank(rank)


class TestDeriveOrderStatus:
    def test_no_tasks(self):
        assert derive_order_status([]) == OrderStatus.RECEIVED

    def test_all_completed(self):
        tasks = [
            make_task(TaskStage.CUTTING, TaskStatus.COMPLETED),
            make_task(TaskStage.STITCHING, TaskStatus.COMPLETED),
        ]
        assert derive_order_status(tasks) == OrderStatus.READY

    def test_highest_in_progress_wins_over_pending(self):
        tasks = [
            make_task(TaskStage.STITCHING, TaskStatus.IN_PROGRESS),
            make_task(TaskStage.CUTTING, TaskStatus.PENDING),
        ]
        assert derive_order_status(tasks) == OrderStatus.STITCHING

    def test_highest_of_several_in_progress(self):
        tasks = [
            make_task(TaskStage.CUTTING, TaskStatus.IN_PROGRESS),
            make_task(TaskStage.PRESSING, TaskStatus.IN_PROGRESS),
            make_task(TaskStage.STITCHING, TaskStatus.IN_PROGRESS),
        ]
        assert derive_order_status(tasks) == OrderStatus.PRESSING

    def test_earliest_pending_when_nothing_in_progress(self):
        tasks = [
            make_task(TaskStage.CUTTING, TaskStatus.COMPLETED),
            make_task(TaskStage.PRESSING, TaskStatus.PENDING),
            make_task(TaskStage.QUALITY_CHECK, TaskStatus.PENDING),
        ]
        assert derive_order_status(tasks) == OrderStatus.QUALITY_CHECK

    def test_cancelled_stage_is_never_selected(self):
        tasks = [
            make_task(TaskStage.CANCELLED, TaskStatus.IN_PROGRESS),
            make_task(TaskStage.STITCHING, TaskStatus.PENDING),
        ]
        assert derive_order_status(tasks) == OrderStatus.STITCHING

    def test_fallback_for_overdue_only(self):
        tasks = [make_task(TaskStage.CUTTING, TaskStatus.OVERDUE)]
        assert derive_order_status(tasks) == OrderStatus.RECEIVED
