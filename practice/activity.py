from __future__ import annotations

import logging
from typing import Any, Optional

from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from practice.models import Activity, Client, Task, User

logger = logging.getLogger(__name__)

IMPORTANT_PRIORITIES = (Activity.Priority.IMPORTANT, Activity.Priority.CRITICAL)


def log_activity(
    *,
    actor: Optional[User],
    type: str,
    action: str,
    description: str,
    priority: str = Activity.Priority.INFO,
    related: Any = None,
    metadata: Optional[dict] = None,
) -> Optional[Activity]:
    """Append one audit record. Failures are logged and never reach the caller."""
    related_id = None
    related_model = ''
    if related is not None:
        related_id = getattr(related, 'pk', None)
        related_model = related.__class__.__name__
        if related_model not in Activity.RelatedModel.values:
            related_model = ''
    try:
        with transaction.atomic():
            return Activity.objects.create(
                user=actor if actor and getattr(actor, 'pk', None) else None,
                type=type,
                action=action,
                description=(description or '')[:500],
                priority=priority,
                related_id=related_id,
                related_model=related_model,
                metadata=metadata or {},
            )
    except Exception:
        logger.exception("Activity log write failed: %s/%s", type, action)
        return None


def live_activities(queryset: Optional[QuerySet] = None, *, now=None) -> QuerySet:
    qs = queryset if queryset is not None else Activity.objects.all()
    return qs.filter(expires_at__gt=now or timezone.now())


def for_admin(queryset: QuerySet, admin: User) -> QuerySet:
    """Entries the admin wrote, plus entries about their own tasks and clients."""
    return queryset.filter(
        Q(user=admin)
        | Q(related_model=Activity.RelatedModel.TASK, related_id__in=Task.objects.filter(owner=admin).values('pk'))
        | Q(related_model=Activity.RelatedModel.CLIENT, related_id__in=Client.objects.filter(owner=admin).values('pk'))
    )


def recent_activities(
    *, admin: Optional[User] = None, user: Optional[User] = None, limit: int = 20
) -> QuerySet:
    qs = live_activities(Activity.objects.select_related('user'))
    if admin is not None:
        qs = for_admin(qs, admin)
    if user is not None:
        qs = qs.filter(user=user)
    return qs.order_by('-created_at', '-id')[:limit]


def important_activities(*, admin: Optional[User] = None, limit: int = 20) -> QuerySet:
    qs = live_activities(Activity.objects.select_related('user'))
    if admin is not None:
        qs = for_admin(qs, admin)
    return qs.filter(priority__in=IMPORTANT_PRIORITIES).order_by('-created_at', '-id')[:limit]


def purge_expired_activities(*, now=None) -> int:
    deleted, _ = Activity.objects.filter(expires_at__lte=now or timezone.now()).delete()
    return deleted
