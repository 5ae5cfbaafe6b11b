"""
Hard deletion of retired staff and clients.

Accounts and clients are first retired with ``is_active=False``; only then can
they be removed here. Deleting a staff member keeps a plain-text snapshot of
their name on every task they worked on.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied

from practice.activity import log_activity
from practice.exceptions import InvalidState
from practice.guards import coerce_id, require_admin
from practice.models import Activity, Client, Task, User

logger = logging.getLogger(__name__)


def assignment_display(task: Task) -> dict:
    assignee = task.assigned_to if task.assigned_to_id else None
    if assignee is not None:
        return {'name': assignee.display_name, 'email': assignee.email, 'type': 'active'}
    if task.legacy_assigned_name:
        return {'name': task.legacy_assigned_name.strip(), 'email': '', 'type': 'legacy'}
    return {'name': 'Unassigned', 'email': '', 'type': 'unassigned'}


def inactive_entities(actor: User) -> dict:
    require_admin(actor)
    staff = User.objects.filter(role=User.Roles.STAFF, is_active=False).order_by('first_name', 'last_name')
    clients = Client.objects.filter(owner=actor, is_active=False).order_by('name')
    return {'staff': staff, 'clients': clients}


def inactive_staff_tasks(actor: User):
    require_admin(actor)
    inactive_ids = User.objects.filter(role=User.Roles.STAFF, is_active=False).values('pk')
    return (
        Task.objects.filter(owner=actor)
        .filter(Q(assigned_to__in=inactive_ids) | ~Q(legacy_assigned_name=''))
        .select_related('client', 'assigned_to')
        .order_by('-updated_at')
    )


def delete_inactive_staff(actor: User, staff_id) -> dict:
    require_admin(actor)
    pk = coerce_id(staff_id, 'staff id')
    with transaction.atomic():
        staff = User.objects.select_for_update().filter(pk=pk).first()
        if not staff:
            raise NotFound('Staff member not found.')
        if staff.role != User.Roles.STAFF:
            raise PermissionDenied('Only staff accounts can be deleted.')
        if staff.is_active:
            raise InvalidState('Deactivate the staff account before deleting it.')
        active_tasks = Task.objects.filter(assigned_to=staff, is_archived=False).count()
        if active_tasks:
            raise InvalidState(f"Cannot delete staff with {active_tasks} active task(s). Reassign them first.")

        staff_name = f"{staff.first_name or ''} {staff.last_name or ''}".strip() or staff.username
        preserved = Task.objects.filter(assigned_to=staff).update(
            legacy_assigned_name=staff_name, assigned_to=None, updated_at=timezone.now()
        )
        staff.delete()

        log_activity(
            actor=actor,
            type=Activity.Type.SYSTEM,
            action='DELETE_STAFF',
            description=f"Deleted staff member {staff_name}; {preserved} task(s) kept with legacy attribution.",
            priority=Activity.Priority.IMPORTANT,
            metadata={'staff_id': pk, 'staff_name': staff_name, 'tasks_preserved': preserved},
        )
    logger.info("Staff %s deleted by %s; %s task(s) preserved", pk, actor.pk, preserved)
    return {'tasks_preserved': preserved, 'staff_name': staff_name}


def delete_inactive_client(actor: User, client_id) -> dict:
    require_admin(actor)
    pk = coerce_id(client_id, 'client id')
    with transaction.atomic():
        client = Client.objects.select_for_update().filter(pk=pk, owner=actor).first()
        if not client:
            raise NotFound('Client not found.')
        if client.is_active:
            raise InvalidState('Deactivate the client before deleting it.')
        active_tasks = Task.objects.filter(client=client, is_archived=False).count()
        if active_tasks:
            raise InvalidState(f"Cannot delete client with {active_tasks} active task(s).")

        client_name = client.name
        _, deleted_by_model = Task.objects.filter(client=client, is_archived=True).delete()
        archived_deleted = deleted_by_model.get(Task._meta.label, 0)
        client.delete()

        log_activity(
            actor=actor,
            type=Activity.Type.CLIENT,
            action='DELETE_CLIENT',
            description=f"Deleted client {client_name} and their archived tasks.",
            priority=Activity.Priority.IMPORTANT,
            metadata={'client_id': pk, 'client_name': client_name},
        )
    return {'client_name': client_name, 'archived_tasks_deleted': archived_deleted}
