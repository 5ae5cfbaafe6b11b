"""Shared precondition checks for the practice services."""
from __future__ import annotations

from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from practice.exceptions import InvalidState
from practice.models import Client, Task, User


def coerce_id(value, label: str = 'id') -> int:
    try:
        pk = int(value)
    except (TypeError, ValueError):
        raise ValidationError({'detail': f'Invalid {label}.'})
    if pk <= 0:
        raise ValidationError({'detail': f'Invalid {label}.'})
    return pk


def is_admin(actor: User | None) -> bool:
    return bool(actor and getattr(actor, 'role', None) == User.Roles.ADMIN)


def require_active(actor: User | None) -> User:
    if not actor or not getattr(actor, 'is_authenticated', False):
        raise PermissionDenied('Authentication required.')
    if not actor.is_active:
        raise PermissionDenied('Your account has been disabled.')
    return actor


def require_admin(actor: User | None) -> User:
    require_active(actor)
    if not is_admin(actor):
        raise PermissionDenied('Only admins can perform this action.')
    return actor


def get_task(task_id, *, for_update: bool = False) -> Task:
    pk = coerce_id(task_id, 'task id')
    qs = Task.objects.select_related('client', 'owner', 'assigned_to', 'billing')
    if for_update:
        qs = qs.select_for_update(of=('self',))
    task = qs.filter(pk=pk).first()
    if not task:
        raise NotFound('Task not found.')
    return task


def get_client(client_id) -> Client:
    pk = coerce_id(client_id, 'client id')
    client = Client.objects.filter(pk=pk).first()
    if not client:
        raise NotFound('Client not found.')
    return client


def get_user(user_id, label: str = 'user') -> User:
    pk = coerce_id(user_id, f'{label} id')
    user = User.objects.filter(pk=pk).first()
    if not user:
        raise NotFound(f'{label.capitalize()} not found.')
    return user


def require_task_owner(actor: User, task: Task) -> None:
    require_admin(actor)
    if task.owner_id != actor.id:
        raise PermissionDenied('You do not own this task.')


def require_owner_or_assignee(actor: User, task: Task) -> None:
    require_active(actor)
    if is_admin(actor) and task.owner_id == actor.id:
        return
    if task.assigned_to_id and task.assigned_to_id == actor.id:
        return
    raise PermissionDenied('You do not have access to this task.')


def require_not_archived(task: Task) -> None:
    if task.is_archived:
        raise InvalidState('Archived tasks must be restored before they can be changed.')
