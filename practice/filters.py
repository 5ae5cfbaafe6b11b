import django_filters
from django.db.models import Q
from django.utils import timezone

from .models import Client, Task, TaskBilling


class ClientFilter(django_filters.FilterSet):
    STATUS_CHOICES = (('active', 'Active'), ('inactive', 'Inactive'), ('all', 'All'))

    status = django_filters.ChoiceFilter(choices=STATUS_CHOICES, method='filter_status')

    class Meta:
        model = Client
        fields = ['status', 'client_type']

    def filter_status(self, queryset, name, value):
        if value == 'active':
            return queryset.filter(is_active=True)
        if value == 'inactive':
            return queryset.filter(is_active=False)
        return queryset


class TaskFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=Task.Status.choices)
    priority = django_filters.ChoiceFilter(choices=Task.Priority.choices)
    due_date = django_filters.DateFromToRangeFilter()

    class Meta:
        model = Task
        fields = ['client', 'assigned_to', 'status', 'priority']


class BillFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=TaskBilling.PaymentStatus.choices, method='filter_status')
    client = django_filters.NumberFilter(field_name='task__client_id')
    issued_at = django_filters.DateFromToRangeFilter(field_name='issued_at__date')
    q = django_filters.CharFilter(method='filter_search', label='Search')

    class Meta:
        model = TaskBilling
        fields = ['status', 'client', 'payment_mode']

    def filter_status(self, queryset, name, value):
        today = timezone.localdate()
        if value == TaskBilling.PaymentStatus.OVERDUE:
            return queryset.filter(TaskBilling.overdue_filter(today))
        return queryset.filter(payment_status=value)

    def filter_search(self, queryset, name, value):
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(task__title__icontains=value)
            | Q(invoice_number__icontains=value)
            | Q(task__client__name__icontains=value)
            | Q(task__client__code__icontains=value)
        )
