"""Status rules for the task lifecycle.

Any status may follow any other; the lifecycle is not gated. What the rules
below do enforce is the completion stamp:
- Entering ``concluida`` from a different status stamps ``completed_at``
- Leaving ``concluida`` clears it
- Re-sending the current status leaves it untouched
"""
import logging
from datetime import datetime
from typing import Optional

from .models import TaskStatus, TaskPriority

logger = logging.getLogger("faae-core.state_machine")


# Statuses that take a task out of the overdue calculation
CLOSED_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.CONCLUIDA, TaskStatus.CANCELADA})


def is_completion_transition(previous: Optional[TaskStatus], new: TaskStatus) -> bool:
    """True when a task moves into ``concluida`` from another status."""
    return new == TaskStatus.CONCLUIDA and previous != TaskStatus.CONCLUIDA


def is_reopen_transition(previous: Optional[TaskStatus], new: TaskStatus) -> bool:
    """True when a task moves out of ``concluida``."""
    return previous == TaskStatus.CONCLUIDA and new != TaskStatus.CONCLUIDA


def resolve_completed_at(
    previous_status: Optional[TaskStatus],
    new_status: TaskStatus,
    current_completed_at: Optional[datetime],
    now: datetime,
) -> Optional[datetime]:
    """
    Work out the completion timestamp after a status change.

    Args:
        previous_status: Persisted status before the change (None on create)
        new_status: Requested status
        current_completed_at: Persisted completion timestamp
        now: Time of the change

    Returns:
        The value ``completed_at`` must hold after the change
    """
    if is_completion_transition(previous_status, new_status):
        logger.debug(f"Completion transition: {previous_status} → {new_status.value}")
        return now
    if is_reopen_transition(previous_status, new_status):
        logger.debug(f"Reopen transition: {previous_status.value} → {new_status.value}")
        return None
    if new_status != TaskStatus.CONCLUIDA:
        return None
    # Same status re-sent: keep the original stamp
    return current_completed_at


# Human-readable labels used in reports
STATUS_LABELS: dict[TaskStatus, str] = {
    TaskStatus.ABERTA: "Aberta",
    TaskStatus.EM_ANDAMENTO: "Em Andamento",
    TaskStatus.CONCLUIDA: "Concluída",
    TaskStatus.CANCELADA: "Cancelada",
}

PRIORITY_LABELS: dict[TaskPriority, str] = {
    TaskPriority.BAIXA: "Baixa",
    TaskPriority.MEDIA: "Média",
    TaskPriority.ALTA: "Alta",
    TaskPriority.CRITICA: "Crítica",
}
