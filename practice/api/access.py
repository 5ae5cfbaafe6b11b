from __future__ import annotations

from django.db.models import Q

from practice.models import Client, Task, User


def is_admin(user: User | None) -> bool:
    return bool(user and user.is_authenticated and getattr(user, 'role', None) == User.Roles.ADMIN)


def visible_clients_for_user(user: User | None, queryset=None):
    qs = queryset if queryset is not None else Client.objects.all()
    if not user or not user.is_authenticated:
        return qs.none()
    if is_admin(user):
        return qs.filter(owner=user)
    task_client_ids = Task.objects.filter(assigned_to=user, is_archived=False).values('client_id')
    return qs.filter(Q(pk__in=task_client_ids))
