"""Workload aggregation and skill based task routing."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from .config import DEFAULT_CAPACITY, AssignmentOptions
from .domain import Employee, Task, TaskPriority, TaskStage


@dataclass(slots=True)
class EmployeeWorkload:
    """Snapshot of the open work assigned to a single employee."""

    employee_id: str
    employee_name: str
    employee_number: str
    role: str
    active_tasks: int
    total_estimated_hours: float
    overdue_tasks: int
    capacity: int
    utilization: float
    skills: Tuple[str, ...] = tuple()


@dataclass(slots=True)
class WorkloadSummary:
    total_employees: int
    total_active_tasks: int
    total_overdue_tasks: int
    average_utilization: float


@dataclass(slots=True)
class WorkloadReport:
    """Aggregate result returned by the workload view."""

    employee_workload: List[EmployeeWorkload]
    task_distribution: Dict[TaskStage, int]
    priority_distribution: Dict[TaskPriority, int]
    summary: WorkloadSummary
    generated_at: datetime = field(default_factory=datetime.utcnow)

    def for_employee(self, employee_id: str) -> Optional[EmployeeWorkload]:
        for workload in self.employee_workload:
            if workload.employee_id == employee_id:
                return workload
        return None


def _effective_capacity(employee: Employee, default_capacity: int) -> int:
    if employee.capacity is None or employee.capacity <= 0:
        return default_capacity
    return employee.capacity


def compute_workloads(
    employees: Iterable[Employee],
    tasks: Iterable[Task],
    *,
    now: Optional[datetime] = None,
    default_capacity: int = DEFAULT_CAPACITY,
) -> List[EmployeeWorkload]:
    """Summarise assigned work for every active employee."""

    now = now or datetime.utcnow()
    tasks_by_employee: Dict[str, List[Task]] = {}
    for task in tasks:
        if task.assigned_employee_id:
            tasks_by_employee.setdefault(task.assigned_employee_id, []).append(task)

    workloads: List[EmployeeWorkload] = []
    for employee in employees:
        if not employee.is_active:
            continue
        assigned = tasks_by_employee.get(employee.id, [])
        active = [task for task in assigned if task.is_active]
        capacity = _effective_capacity(employee, default_capacity)
        workloads.append(
            EmployeeWorkload(
                employee_id=employee.id,
                employee_name=employee.name,
                employee_number=employee.employee_number,
                role=employee.role.value,
                active_tasks=len(active),
                total_estimated_hours=sum(task.estimated_hours or 0.0 for task in active),
                overdue_tasks=sum(1 for task in assigned if task.is_overdue(now)),
                capacity=capacity,
                utilization=len(active) / capacity * 100,
                skills=employee.skill_names,
            )
        )
    return workloads


def build_workload_report(
    employees: Iterable[Employee],
    tasks: Iterable[Task],
    *,
    now: Optional[datetime] = None,
    default_capacity: int = DEFAULT_CAPACITY,
) -> WorkloadReport:
    now = now or datetime.utcnow()
    tasks = list(tasks)
    workloads = compute_workloads(
        employees, tasks, now=now, default_capacity=default_capacity
    )
    active_tasks = [task for task in tasks if task.is_active]
    stage_counts = Counter(task.stage for task in active_tasks)
    priority_counts = Counter(task.priority for task in active_tasks)
    average = (
        sum(workload.utilization for workload in workloads) / len(workloads)
        if workloads
        else 0.0
    )
    return WorkloadReport(
        employee_workload=workloads,
        task_distribution={
            stage: stage_counts[stage] for stage in TaskStage if stage_counts[stage]
        },
        priority_distribution={
            priority: priority_counts[priority]
            for priority in TaskPriority
            if priority_counts[priority]
        },
        summary=WorkloadSummary(
            total_employees=len(workloads),
            total_active_tasks=sum(workload.active_tasks for workload in workloads),
            total_overdue_tasks=sum(workload.overdue_tasks for workload in workloads),
            average_utilization=average,
        ),
        generated_at=now,
    )


# ----------------------------------------------------------------------
# Scoring
# ----------------------------------------------------------------------
class ScoringPolicy(Protocol):
    def score(
        self,
        employee: Employee,
        task: Task,
        workload: Optional[EmployeeWorkload],
    ) -> float:
        ...


class SkillMatchPolicy:
    """Free capacity plus skill bonus, boosted for HIGH priority and specialists.

    URGENT tasks get no boost beyond their base score; only HIGH is
    special-cased.
    """

    def __init__(self, options: Optional[AssignmentOptions] = None) -> None:
        self.options = options or AssignmentOptions()

    def score(
        self,
        employee: Employee,
        task: Task,
        workload: Optional[EmployeeWorkload],
    ) -> float:
        active_tasks = workload.active_tasks if workload else 0
        capacity = workload.capacity if workload else 1
        score = float(max(0, capacity - active_tasks))

        matching = [skill for skill in task.required_skills if employee.has_skill(skill)]
        score += len(matching) * self.options.skill_match_bonus

        if task.priority == TaskPriority.HIGH:
            score *= self.options.high_priority_multiplier
        if task.stage in employee.specializations:
            score *= self.options.specialization_multiplier
        return score


def rank_employees(
    employees: Sequence[Employee],
    task: Task,
    workloads: Mapping[str, EmployeeWorkload],
    policy: Optional[ScoringPolicy] = None,
) -> List[Tuple[Employee, float]]:
    """Score every candidate, best first; ties keep the input order."""

    policy = policy or SkillMatchPolicy()
    scored = [
        (employee, policy.score(employee, task, workloads.get(employee.id)))
        for employee in employees
    ]
    scored.sort(key=lambda entry: entry[1], reverse=True)
    return scored


def find_best_employee(
    employees: Sequence[Employee],
    task: Task,
    workloads: Mapping[str, EmployeeWorkload],
    policy: Optional[ScoringPolicy] = None,
) -> Optional[Employee]:
    ranked = rank_employees(employees, task, workloads, policy)
    if not ranked:
        return None
    return ranked[0][0]


__all__ = [
    "EmployeeWorkload",
    "WorkloadSummary",
    "WorkloadReport",
    "compute_workloads",
    "build_workload_report",
    "ScoringPolicy",
    "SkillMatchPolicy",
    "rank_employees",
    "find_best_employee",
]
