"""Task lifecycle: creation, assignment, status changes, notes and archival."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from practice import billing as billing_service
from practice.activity import log_activity
from practice.exceptions import InvalidState
from practice.guards import (
    get_client,
    get_task,
    get_user,
    is_admin,
    require_active,
    require_admin,
    require_not_archived,
    require_owner_or_assignee,
    require_task_owner,
)
from practice.models import Activity, Task, TaskBilling, TaskNote, TaskStatusHistory, User

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('title', 'service_type', 'priority', 'due_date', 'assessment_year', 'period')


def _assignable_user(user_id) -> User:
    user = get_user(user_id, 'assignee')
    if not user.is_active:
        raise ValidationError({'detail': 'Tasks cannot be assigned to a deactivated account.'})
    return user


def _append_history(task: Task, status: str, actor: User, note: str = '') -> TaskStatusHistory:
    return TaskStatusHistory.objects.create(task=task, status=status, changed_by=actor, note=note or '')


def _apply_assignment(task: Task, assignee: User, actor: User) -> None:
    task.assigned_to = assignee
    task.save(update_fields=['assigned_to', 'updated_at'])
    _append_history(task, TaskStatusHistory.ASSIGNED, actor, f"Assigned to {assignee.display_name}.")


def visible_task(actor: User, task_id) -> Task:
    task = get_task(task_id)
    require_owner_or_assignee(actor, task)
    return task


@transaction.atomic
def create_task(
    actor: User,
    *,
    client_id,
    title: str,
    service_type: str = '',
    assessment_year: str = '',
    period: str = '',
    priority: str = Task.Priority.NORMAL,
    due_date=None,
    assigned_to_id=None,
    advance: Optional[dict] = None,
) -> Task:
    require_admin(actor)
    title = (title or '').strip()
    if not title:
        raise ValidationError({'detail': 'Task title is required.'})
    if client_id in (None, ''):
        raise ValidationError({'detail': 'A client is required.'})
    client = get_client(client_id)
    if client.owner_id != actor.id:
        raise PermissionDenied('You do not own this client.')
    if priority not in Task.Priority.values:
        raise ValidationError({'detail': 'Invalid priority.'})
    assignee = _assignable_user(assigned_to_id) if assigned_to_id not in (None, '') else None

    task = Task.objects.create(
        owner=actor,
        client=client,
        title=title,
        service_type=service_type or '',
        assessment_year=assessment_year or '',
        period=period or '',
        priority=priority,
        due_date=due_date,
        assigned_to=assignee,
    )
    _append_history(task, Task.Status.NOT_STARTED, actor, 'Task created.')
    if assignee:
        _append_history(task, TaskStatusHistory.ASSIGNED, actor, f"Assigned to {assignee.display_name}.")
    if advance:
        billing_service.record_advance(task, actor, **advance)

    log_activity(
        actor=actor,
        type=Activity.Type.TASK,
        action='CREATE_TASK',
        description=f"Created task \"{task.title}\" for {client.name}.",
        related=task,
        metadata={'client_id': client.pk, 'assigned_to': assignee.pk if assignee else None},
    )
    return task


@transaction.atomic
def edit_task(actor: User, task_id, *, assigned_to_id=None, **changes) -> Task:
    """Update descriptive fields; assignment changes are ignored once the task is completed."""
    task = get_task(task_id, for_update=True)
    require_task_owner(actor, task)
    require_not_archived(task)

    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError({'detail': f"Fields cannot be edited: {', '.join(sorted(unknown))}."})
    if 'title' in changes:
        changes['title'] = (changes['title'] or '').strip()
        if not changes['title']:
            raise ValidationError({'detail': 'Task title is required.'})
    if 'priority' in changes and changes['priority'] not in Task.Priority.values:
        raise ValidationError({'detail': 'Invalid priority.'})

    update_fields = []
    for field, value in changes.items():
        if field in ('service_type', 'assessment_year', 'period'):
            value = value or ''
        setattr(task, field, value)
        update_fields.append(field)
    if update_fields:
        task.save(update_fields=update_fields + ['updated_at'])

    if (
        assigned_to_id not in (None, '')
        and task.status != Task.Status.COMPLETED
        and str(task.assigned_to_id) != str(assigned_to_id)
    ):
        _apply_assignment(task, _assignable_user(assigned_to_id), actor)
    return task


@transaction.atomic
def assign_task(actor: User, task_id, assigned_to_id) -> Task:
    task = get_task(task_id, for_update=True)
    require_task_owner(actor, task)
    require_not_archived(task)
    if task.status == Task.Status.COMPLETED:
        raise InvalidState('Completed tasks cannot be reassigned.')
    if assigned_to_id in (None, ''):
        raise ValidationError({'detail': 'An assignee is required.'})
    _apply_assignment(task, _assignable_user(assigned_to_id), actor)
    return task


@transaction.atomic
def update_task_status(actor: User, task_id, status: str, note: str = '') -> Task:
    task = get_task(task_id, for_update=True)
    require_owner_or_assignee(actor, task)
    require_not_archived(task)
    if status not in Task.Status.values:
        raise ValidationError({'detail': 'Invalid status.'})

    old_status = task.status
    task.status = status
    update_fields = ['status', 'updated_at']
    if status == Task.Status.COMPLETED and task.completed_at is None:
        task.completed_at = timezone.now()
        update_fields.append('completed_at')
    task.save(update_fields=update_fields)

    message = (note or '').strip() or (
        f"Status changed from {Task.Status(old_status).label} to {Task.Status(status).label}."
    )
    _append_history(task, status, actor, message)
    log_activity(
        actor=actor,
        type=Activity.Type.TASK,
        action='STATUS_CHANGE',
        description=f"\"{task.title}\": {message}",
        related=task,
        metadata={'from': old_status, 'to': status},
    )
    return task


@transaction.atomic
def add_task_note(actor: User, task_id, message: str) -> TaskNote:
    task = get_task(task_id, for_update=True)
    require_owner_or_assignee(actor, task)
    require_not_archived(task)
    message = (message or '').strip()
    if not message:
        raise ValidationError({'detail': 'Note message is required.'})
    return TaskNote.objects.create(task=task, message=message, created_by=actor)


@transaction.atomic
def archive_task(actor: User, task_id) -> Task:
    task = get_task(task_id, for_update=True)
    require_active(actor)
    if is_admin(actor) and task.owner_id == actor.id:
        pass
    elif task.assigned_to_id == actor.id:
        if task.status != Task.Status.COMPLETED:
            raise PermissionDenied('Only completed tasks can be archived by the assignee.')
    else:
        raise PermissionDenied('You do not have access to this task.')
    if task.is_archived:
        raise InvalidState('Task is already archived.')

    task.is_archived = True
    task.archived_at = timezone.now()
    task.archived_by = actor
    task.auto_archived = False
    task.save(update_fields=['is_archived', 'archived_at', 'archived_by', 'auto_archived', 'updated_at'])
    return task


@transaction.atomic
def restore_task(actor: User, task_id) -> Task:
    task = get_task(task_id, for_update=True)
    require_task_owner(actor, task)
    if not task.is_archived:
        raise InvalidState('Task is not archived.')
    task.is_archived = False
    task.archived_at = None
    task.archived_by = None
    task.auto_archived = False
    task.save(update_fields=['is_archived', 'archived_at', 'archived_by', 'auto_archived', 'updated_at'])
    return task


def deletion_blocker(task: Task) -> str | None:
    """Reason the task must be kept for the financial audit trail, if any."""
    if task.status == Task.Status.COMPLETED:
        return 'Completed tasks cannot be deleted.'
    billing = TaskBilling.objects.filter(task=task).first()
    if billing is None:
        return None
    if billing.invoice_number:
        return 'Tasks with an issued invoice cannot be deleted.'
    if billing.payment_history.exists():
        return 'Tasks with recorded payments cannot be deleted.'
    advance = billing.get_advance()
    if advance and advance.is_paid:
        return 'Tasks with a paid advance cannot be deleted.'
    return None


@transaction.atomic
def permanent_delete_task(actor: User, task_id) -> None:
    task = get_task(task_id, for_update=True)
    require_task_owner(actor, task)
    reason = deletion_blocker(task)
    if reason:
        raise InvalidState(reason)
    title = task.title
    task.delete()
    logger.info("Task %s (%s) deleted by %s", task_id, title, actor.pk)


def run_auto_archive(*, now=None) -> int:
    """Archive tasks completed longer ago than the retention window. Safe to re-run."""
    now = now or timezone.now()
    cutoff = now - timedelta(days=getattr(settings, 'AUTO_ARCHIVE_DAYS', 7))
    archived = Task.objects.filter(
        status=Task.Status.COMPLETED,
        is_archived=False,
        completed_at__lt=cutoff,
    ).update(is_archived=True, archived_at=now, auto_archived=True, updated_at=now)
    logger.info("Auto-archive sweep archived %s task(s) completed before %s", archived, cutoff.isoformat())
    return archived


# Queries

def tasks_for_admin(actor: User, *, include_archived: bool = False):
    require_admin(actor)
    qs = Task.objects.filter(owner=actor)
    if not include_archived:
        qs = qs.filter(is_archived=False)
    return qs.select_related('client', 'assigned_to', 'billing')


def tasks_for_assignee(actor: User):
    require_active(actor)
    return (
        Task.objects.filter(assigned_to=actor, is_archived=False)
        .select_related('client', 'owner', 'billing')
        .order_by('due_date', '-created_at')
    )


def archived_tasks(actor: User):
    require_active(actor)
    if is_admin(actor):
        qs = Task.objects.filter(owner=actor)
    else:
        qs = Task.objects.filter(assigned_to=actor)
    return qs.filter(is_archived=True).select_related('client', 'assigned_to', 'archived_by').order_by('-archived_at')


def admin_summary(actor: User) -> dict:
    qs = tasks_for_admin(actor)
    return {
        'total': qs.count(),
        'assigned': qs.filter(assigned_to__isnull=False).count(),
        'completed': qs.filter(status=Task.Status.COMPLETED).count(),
    }


def staff_summary(actor: User) -> dict:
    qs = tasks_for_assignee(actor)
    return {
        'assigned': qs.count(),
        'completed': qs.filter(status=Task.Status.COMPLETED).count(),
    }

