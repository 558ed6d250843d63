"""
Aggregation and report building over in-memory task/project/user collections.

Everything here is pure: functions read the objects they are given (ORM rows
or anything with the same attributes) and never touch the database. Absent
data yields zeros and empty sections, never an error.
"""
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence

from .models import ProjectStatus, TaskStatus, TaskPriority
from .schemas import DashboardStats, TaskFilter, UserStats
from .state_machine import CLOSED_STATUSES, STATUS_LABELS, PRIORITY_LABELS

logger = logging.getLogger("faae-core.reporting")

PROJECT_STATUS_LABELS: dict[ProjectStatus, str] = {
    ProjectStatus.ACTIVE: "Ativo",
    ProjectStatus.COMPLETED: "Concluído",
    ProjectStatus.ON_HOLD: "Em Espera",
    ProjectStatus.CANCELLED: "Cancelado",
}

NOT_INFORMED = "Não informado"


# Statistics

def _percentage(part: int, total: int) -> float:
    return (part / total) * 100 if total > 0 else 0.0


def _hours(entries: Iterable[Any]) -> float:
    return sum((entry.duration or 0) for entry in entries) / 60


def compute_dashboard_stats(
    tasks: Sequence[Any],
    projects: Sequence[Any],
    time_entries: Sequence[Any],
) -> DashboardStats:
    """Firm-wide counters. Efficiency is 0 when there are no tasks."""
    total = len(tasks)
    completed = sum(1 for t in tasks if t.status == TaskStatus.CONCLUIDA)
    return DashboardStats(
        total_tasks=total,
        completed_tasks=completed,
        active_projects=sum(1 for p in projects if p.status == ProjectStatus.ACTIVE),
        total_hours=_hours(time_entries),
        efficiency=_percentage(completed, total),
    )


def compute_user_stats(user_id: str, tasks: Sequence[Any], time_entries: Sequence[Any]) -> UserStats:
    """
    Counters scoped to tasks assigned to one user.

    Hours are the durations logged against those tasks, whoever logged them.
    """
    assigned = [t for t in tasks if t.assigned_user_id == user_id]
    assigned_ids = {t.id for t in assigned}
    completed = sum(1 for t in assigned if t.status == TaskStatus.CONCLUIDA)
    return UserStats(
        task_count=len(assigned),
        completed_task_count=completed,
        hours_worked=_hours(e for e in time_entries if e.task_id in assigned_ids),
        efficiency=_percentage(completed, len(assigned)),
    )


def compute_project_progress(tasks: Sequence[Any]) -> int:
    """Completed share of a project's tasks as a whole percentage (half rounds up)."""
    if not tasks:
        return 0
    completed = sum(1 for t in tasks if t.status == TaskStatus.CONCLUIDA)
    return math.floor(_percentage(completed, len(tasks)) + 0.5)


def is_overdue(task: Any, now: datetime) -> bool:
    """Due date already passed and the task is neither concluida nor cancelada."""
    if task.due_date is None or task.status in CLOSED_STATUSES:
        return False
    due = task.due_date
    if not isinstance(due, datetime):
        due = datetime.combine(due, time.min)
    return due < now


# Filtering

def _project_name(task: Any, project_names: Optional[Mapping[int, str]]) -> str:
    if project_names is not None:
        return project_names.get(task.project_id, "") if task.project_id is not None else ""
    project = getattr(task, "project", None)
    return project.name if project is not None else ""


def _matches_text(task: Any, needle: str, project_names: Optional[Mapping[int, str]]) -> bool:
    fields = (task.title, task.description, _project_name(task, project_names))
    return any(needle in (value or "").lower() for value in fields)


def filter_tasks(
    tasks: Sequence[Any],
    task_filter: TaskFilter,
    project_names: Optional[Mapping[int, str]] = None,
) -> list[Any]:
    """
    Narrow a task list with every present filter field (logical AND).

    Date bounds apply to ``created_at`` and are inclusive whole days. The
    input order is preserved and an empty filter returns the full input.

    Args:
        tasks: Tasks to filter
        task_filter: Filter fields, all optional
        project_names: project id -> name, used by the text search. When
            omitted the task's loaded ``project`` relationship is used.
    """
    start = datetime.combine(task_filter.date_from, time.min) if task_filter.date_from else None
    end = datetime.combine(task_filter.date_to, time.max) if task_filter.date_to else None
    needle = task_filter.search_text.strip().lower() if task_filter.search_text else None

    result = []
    for task in tasks:
        if start is not None and task.created_at < start:
            continue
        if end is not None and task.created_at > end:
            continue
        if task_filter.priority is not None and task.priority != task_filter.priority:
            continue
        if task_filter.status is not None and task.status != task_filter.status:
            continue
        if task_filter.user_id is not None and task.assigned_user_id != task_filter.user_id:
            continue
        if task_filter.project_id is not None and task.project_id != task_filter.project_id:
            continue
        if needle and not _matches_text(task, needle, project_names):
            continue
        result.append(task)
    return result


# Project health

def analyze_project_health(tasks: Sequence[Any], now: datetime) -> dict:
    """
    Deterministic health score for a project.

    Starts at 70, adds up to 20 for completion and removes up to 30 for
    overdue tasks, clamped to 0..100.
    """
    total = len(tasks)
    completed = sum(1 for t in tasks if t.status == TaskStatus.CONCLUIDA)
    overdue = sum(1 for t in tasks if is_overdue(t, now))
    opened = sum(1 for t in tasks if t.status == TaskStatus.ABERTA)

    completion_rate = completed / total if total else 0.0
    overdue_rate = overdue / total if total else 0.0
    score = 70 + completion_rate * 20 - overdue_rate * 30

    insights = [
        f"{completed} de {total} tarefas concluídas ({compute_project_progress(tasks)}%)",
        f"{overdue} tarefas em atraso" if overdue else "Nenhuma tarefa em atraso",
    ]
    recommendations = []
    if overdue:
        recommendations.append("Priorizar tarefas em atraso")
    if total and completion_rate < 0.5:
        recommendations.append("Acelerar o ritmo de conclusão de tarefas")
    if opened > 5:
        recommendations.append("Distribuir melhor as tarefas abertas")

    return {
        "health_score": max(0, min(100, math.floor(score + 0.5))),
        "completion_rate": completion_rate,
        "overdue_rate": overdue_rate,
        "insights": insights,
        "recommendations": recommendations or ["Projeto está progredindo bem"],
    }


# Formatting

def format_date(value: Optional[date]) -> str:
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y")


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y %H:%M")


def format_currency(value: Optional[Decimal]) -> str:
    """Brazilian real with dot thousands and comma decimals: ``R$ 1.234.567,89``."""
    if value is None:
        return NOT_INFORMED
    amount = Decimal(value).quantize(Decimal("0.01"))
    sign = "-" if amount < 0 else ""
    integer, _, cents = f"{abs(amount):,.2f}".partition(".")
    return f"{sign}R$ {integer.replace(',', '.')},{cents}"


def format_hours(value: Any) -> str:
    return f"{float(value):.2f}h"


def _person_name(user: Any) -> str:
    if user is None:
        return ""
    return " ".join(part for part in (user.first_name, user.last_name) if part) or (user.email or user.id)


def report_filename(task_filter: TaskFilter, exported_at: datetime) -> str:
    stamp = exported_at.strftime("%Y-%m-%d-%H%M")
    if task_filter.project_id is not None:
        return f"relatorio-projeto-{task_filter.project_id}-{stamp}.pdf"
    return f"relatorio-completo-{stamp}.pdf"


# Report document

@dataclass
class ReportBlock:
    """One line of the report. ``kind`` is title, subtitle, text or separator."""

    kind: str
    text: str = ""
    indent: int = 0


@dataclass
class ReportSection:
    blocks: list[ReportBlock] = field(default_factory=list)
    new_page_after: bool = True

    def title(self, text: str) -> None:
        self.blocks.append(ReportBlock("title", text))
        self.blocks.append(ReportBlock("separator"))

    def subtitle(self, text: str) -> None:
        self.blocks.append(ReportBlock("subtitle", text))

    def text(self, text: str, indent: int = 0) -> None:
        self.blocks.append(ReportBlock("text", text, indent))


@dataclass
class ProjectReport:
    project: Any
    tasks: list[Any]
    progress: int


@dataclass
class UserReportRow:
    user: Any
    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int
    open_tasks: int
    completion_rate: float


@dataclass
class ReportDocument:
    """Report content, ready for rendering."""

    filename: str
    company_name: str
    exported_at: datetime
    filter_lines: list[str]
    tasks: list[Any]
    projects: list[ProjectReport]
    user_rows: list[UserReportRow]
    status_counts: dict[str, int]
    priority_counts: dict[str, int]
    overdue_tasks: list[Any]
    sections: list[ReportSection] = field(default_factory=list)


def describe_filter(task_filter: TaskFilter, projects_by_id: Mapping[int, Any], users_by_id: Mapping[str, Any]) -> list[str]:
    """Human-readable lines for the filters applied to a report."""
    lines = []
    if task_filter.project_id is not None:
        project = projects_by_id.get(task_filter.project_id)
        lines.append(f"Projeto: {project.name if project else 'Não encontrado'}")
    if task_filter.user_id is not None:
        user = users_by_id.get(task_filter.user_id)
        lines.append(f"Responsável: {_person_name(user) if user else 'Não encontrado'}")
    if task_filter.status is not None:
        lines.append(f"Status: {STATUS_LABELS[TaskStatus(task_filter.status)]}")
    if task_filter.priority is not None:
        lines.append(f"Prioridade: {PRIORITY_LABELS[TaskPriority(task_filter.priority)]}")
    if task_filter.date_from and task_filter.date_to:
        lines.append(f"Período: {format_date(task_filter.date_from)} até {format_date(task_filter.date_to)}")
    elif task_filter.date_from:
        lines.append(f"Período: a partir de {format_date(task_filter.date_from)}")
    elif task_filter.date_to:
        lines.append(f"Período: até {format_date(task_filter.date_to)}")
    if task_filter.search_text:
        lines.append(f"Busca: {task_filter.search_text}")
    return lines


def _count_by_status(tasks: Sequence[Any]) -> dict[str, int]:
    counts = Counter(TaskStatus(t.status).value for t in tasks)
    return {status.value: counts.get(status.value, 0) for status in TaskStatus}


def _count_by_priority(tasks: Sequence[Any]) -> dict[str, int]:
    counts = Counter(TaskPriority(t.priority).value for t in tasks)
    return {priority.value: counts.get(priority.value, 0) for priority in TaskPriority}


def build_report(
    projects: Sequence[Any],
    tasks: Sequence[Any],
    users: Sequence[Any],
    task_filter: TaskFilter,
    exported_at: datetime,
    company_name: str = "FAAE PROJETOS",
) -> ReportDocument:
    """
    Build the report for the tasks matching a filter.

    Filters are applied first; every section (per project, per user and the
    status/priority/overdue breakdown) is computed over the filtered tasks.
    Project task lists keep the order the tasks were given in. Users with no
    filtered task are left out of the per-user summary.
    """
    projects_by_id = {p.id: p for p in projects}
    users_by_id = {u.id: u for u in users}
    project_names = {p.id: p.name for p in projects}

    filtered = filter_tasks(tasks, task_filter, project_names)
    if task_filter.project_id is not None:
        report_projects = [p for p in projects if p.id == task_filter.project_id]
    else:
        report_projects = list(projects)

    project_reports = []
    for project in report_projects:
        project_tasks = [t for t in filtered if t.project_id == project.id]
        project_reports.append(ProjectReport(project, project_tasks, compute_project_progress(project_tasks)))

    user_rows = []
    for user in users:
        user_tasks = [t for t in filtered if t.assigned_user_id == user.id]
        if not user_tasks:
            continue
        status_counts = _count_by_status(user_tasks)
        user_rows.append(UserReportRow(
            user=user,
            total_tasks=len(user_tasks),
            completed_tasks=status_counts[TaskStatus.CONCLUIDA.value],
            in_progress_tasks=status_counts[TaskStatus.EM_ANDAMENTO.value],
            open_tasks=status_counts[TaskStatus.ABERTA.value],
            completion_rate=_percentage(status_counts[TaskStatus.CONCLUIDA.value], len(user_tasks)),
        ))

    document = ReportDocument(
        filename=report_filename(task_filter, exported_at),
        company_name=company_name,
        exported_at=exported_at,
        filter_lines=describe_filter(task_filter, projects_by_id, users_by_id),
        tasks=filtered,
        projects=project_reports,
        user_rows=user_rows,
        status_counts=_count_by_status(filtered),
        priority_counts=_count_by_priority(filtered),
        overdue_tasks=[t for t in filtered if is_overdue(t, exported_at)],
    )
    document.sections = _layout(document, projects_by_id, users_by_id)
    logger.info(
        f"Built report {document.filename}: {len(filtered)} of {len(tasks)} tasks, "
        f"{len(project_reports)} projects, {len(user_rows)} users"
    )
    return document


def _layout(document: ReportDocument, projects_by_id: Mapping[int, Any], users_by_id: Mapping[str, Any]) -> list[ReportSection]:
    return [
        _cover_section(document),
        *(_project_section(pr, users_by_id) for pr in document.projects),
        _user_section(document),
        _tasks_summary_section(document, projects_by_id, users_by_id),
    ]


def _cover_section(document: ReportDocument) -> ReportSection:
    section = ReportSection()
    section.subtitle("Filtros Aplicados:")
    if not document.filter_lines:
        section.text("• Nenhum filtro aplicado - Relatório completo de todos os projetos")
    for line in document.filter_lines:
        section.text(f"• {line}")

    counts = document.status_counts
    section.subtitle("Resumo do Relatório:")
    section.text(f"• Total de Projetos: {len(document.projects)}")
    section.text(f"• Total de Tarefas: {len(document.tasks)}")
    section.text(f"• Tarefas Concluídas: {counts[TaskStatus.CONCLUIDA.value]}")
    section.text(f"• Tarefas em Andamento: {counts[TaskStatus.EM_ANDAMENTO.value]}")
    section.text(f"• Tarefas Abertas: {counts[TaskStatus.ABERTA.value]}")
    section.text(f"• Tarefas Canceladas: {counts[TaskStatus.CANCELADA.value]}")
    return section


def _project_section(report: ProjectReport, users_by_id: Mapping[str, Any]) -> ReportSection:
    project = report.project
    section = ReportSection()
    section.title(f"PROJETO: {project.name}")

    section.subtitle("Informações do Projeto:")
    section.text(f"Descrição: {project.description or NOT_INFORMED}", 1)
    section.text(f"Status: {PROJECT_STATUS_LABELS.get(ProjectStatus(project.status), project.status)}", 1)
    if project.client_name:
        section.text(f"Cliente: {project.client_name}", 1)
    if project.location:
        section.text(f"Localização: {project.location}", 1)
    section.text(f"Orçamento: {format_currency(project.budget)}", 1)
    section.text(f"Data de Criação: {format_datetime(project.created_at)}", 1)
    section.text(f"Última Atualização: {format_datetime(project.updated_at)}", 1)
    if project.start_date:
        section.text(f"Data de Início: {format_date(project.start_date)}", 1)
    if project.end_date:
        section.text(f"Data de Término: {format_date(project.end_date)}", 1)
    if project.estimated_hours:
        section.text(f"Horas Estimadas: {format_hours(project.estimated_hours)}", 1)

    counts = _count_by_status(report.tasks)
    section.subtitle("Estatísticas do Projeto:")
    section.text(f"Total de Tarefas: {len(report.tasks)}", 1)
    section.text(f"Tarefas Concluídas: {counts[TaskStatus.CONCLUIDA.value]} ({report.progress}%)", 1)
    section.text(f"Tarefas em Andamento: {counts[TaskStatus.EM_ANDAMENTO.value]}", 1)
    section.text(f"Tarefas Abertas: {counts[TaskStatus.ABERTA.value]}", 1)
    section.text(f"Tarefas Canceladas: {counts[TaskStatus.CANCELADA.value]}", 1)

    if not report.tasks:
        section.text("Nenhuma tarefa encontrada para este projeto.", 1)
        return section

    section.subtitle("Tarefas do Projeto:")
    for index, task in enumerate(report.tasks, start=1):
        section.text(f"{index}. {task.title}", 1)
        section.text(f"Status: {STATUS_LABELS[TaskStatus(task.status)]}", 2)
        section.text(f"Prioridade: {PRIORITY_LABELS[TaskPriority(task.priority)]}", 2)
        assignee = users_by_id.get(task.assigned_user_id) if task.assigned_user_id else None
        if assignee is not None:
            section.text(f"Responsável: {_person_name(assignee)}", 2)
        if task.description:
            section.text(f"Descrição: {task.description}", 2)
        if task.start_date:
            section.text(f"Data de Início: {format_date(task.start_date)}", 2)
        if task.due_date:
            section.text(f"Data de Vencimento: {format_date(task.due_date)}", 2)
        if task.estimated_hours:
            section.text(f"Horas Estimadas: {format_hours(task.estimated_hours)}", 2)
        section.text(f"Criado em: {format_datetime(task.created_at)}", 2)
        if task.completed_at:
            section.text(f"Concluído em: {format_datetime(task.completed_at)}", 2)
    return section


def _user_section(document: ReportDocument) -> ReportSection:
    section = ReportSection()
    section.title("RESUMO POR RESPONSÁVEL")
    if not document.user_rows:
        section.text("Nenhum usuário com tarefas atribuídas encontrado.")
        return section

    for row in document.user_rows:
        section.subtitle(_person_name(row.user))
        section.text(f"Email: {row.user.email or NOT_INFORMED}", 1)
        section.text(f"Total de Tarefas: {row.total_tasks}", 1)
        section.text(f"Tarefas Concluídas: {row.completed_tasks}", 1)
        section.text(f"Tarefas em Andamento: {row.in_progress_tasks}", 1)
        section.text(f"Tarefas Abertas: {row.open_tasks}", 1)
        section.text(f"Taxa de Conclusão: {row.completion_rate:.1f}%", 1)
    return section


def _tasks_summary_section(
    document: ReportDocument,
    projects_by_id: Mapping[int, Any],
    users_by_id: Mapping[str, Any],
) -> ReportSection:
    section = ReportSection(new_page_after=False)
    section.title("RESUMO DE TAREFAS")

    section.subtitle("Tarefas por Status:")
    for status in TaskStatus:
        section.text(f"{STATUS_LABELS[status]}: {document.status_counts[status.value]}", 1)

    section.subtitle("Tarefas por Prioridade:")
    for priority in TaskPriority:
        section.text(f"{PRIORITY_LABELS[priority]}: {document.priority_counts[priority.value]}", 1)

    section.subtitle("Tarefas em Atraso:")
    section.text(f"Total de tarefas em atraso: {len(document.overdue_tasks)}", 1)
    for index, task in enumerate(document.overdue_tasks, start=1):
        section.text(f"{index}. {task.title} - Vencimento: {format_date(task.due_date)}", 2)
        project = projects_by_id.get(task.project_id) if task.project_id is not None else None
        if project is not None:
            section.text(f"Projeto: {project.name}", 3)
        assignee = users_by_id.get(task.assigned_user_id) if task.assigned_user_id else None
        if assignee is not None:
            section.text(f"Responsável: {_person_name(assignee)}", 3)
    return section
