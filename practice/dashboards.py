from __future__ import annotations

from datetime import datetime, time, timedelta

from django.db.models import Count, Q
from django.utils import timezone

from practice import billing as billing_service
from practice.guards import require_active, require_admin
from practice.models import Client, Task, TaskBilling, User

OPEN = ~Q(status=Task.Status.COMPLETED)


def _task_counts(queryset, today) -> dict:
    start_of_day = timezone.make_aware(datetime.combine(today, time.min))
    week_end = today + timedelta(days=7)
    return queryset.aggregate(
        total=Count('id'),
        not_started=Count('id', filter=Q(status=Task.Status.NOT_STARTED)),
        in_progress=Count('id', filter=Q(status=Task.Status.IN_PROGRESS)),
        completed=Count('id', filter=Q(status=Task.Status.COMPLETED)),
        completed_today=Count('id', filter=Q(status=Task.Status.COMPLETED, completed_at__gte=start_of_day)),
        due_today=Count('id', filter=OPEN & Q(due_date=today)),
        due_this_week=Count('id', filter=OPEN & Q(due_date__gte=today, due_date__lte=week_end)),
        overdue=Count('id', filter=OPEN & Q(due_date__lt=today)),
    )


def admin_stats(actor: User, *, today=None) -> dict:
    require_admin(actor)
    today = today or timezone.localdate()
    tasks = _task_counts(Task.objects.filter(owner=actor, is_archived=False), today)
    clients = Client.objects.filter(owner=actor).aggregate(
        total=Count('id'),
        active=Count('id', filter=Q(is_active=True)),
        inactive=Count('id', filter=Q(is_active=False)),
    )
    billing = billing_service.billing_stats(billing_service.issued_bills(actor), today=today)
    staff = User.objects.filter(role=User.Roles.STAFF).aggregate(
        total=Count('id'),
        active=Count('id', filter=Q(is_active=True)),
    )
    return {
        'tasks': tasks,
        'clients': clients,
        'billing': {
            'total_bills': billing['total_bills'],
            'total_amount': billing['total_amount'],
            'received_amount': billing['total_received'],
            'pending_amount': billing['pending_amount'],
            'overdue_count': billing['overdue'],
        },
        'staff': staff,
    }


def overdue_items(actor: User, *, today=None) -> dict:
    require_admin(actor)
    today = today or timezone.localdate()
    tasks = list(
        Task.objects.filter(owner=actor, is_archived=False, due_date__lt=today)
        .exclude(status=Task.Status.COMPLETED)
        .select_related('client', 'assigned_to')
        .order_by('due_date')
    )
    bills = list(
        billing_service.issued_bills(actor)
        .filter(payment_status__in=[TaskBilling.PaymentStatus.UNPAID, TaskBilling.PaymentStatus.PARTIALLY_PAID])
        .filter(due_date__lt=today)
        .order_by('due_date')
    )
    for task in tasks:
        task.days_overdue = (today - task.due_date).days
    for bill in bills:
        bill.days_overdue = (today - bill.due_date).days
    return {'tasks': tasks, 'bills': bills, 'total_overdue': len(tasks) + len(bills)}


def staff_stats(actor: User, *, today=None) -> dict:
    require_active(actor)
    today = today or timezone.localdate()
    counts = _task_counts(Task.objects.filter(assigned_to=actor, is_archived=False), today)
    counts.pop('completed_today', None)
    return {'my_tasks': counts}
