from __future__ import annotations

import logging

from django.db import DatabaseError, connection
from django.db.models import Count, Q
from django.http import HttpResponse
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from practice import billing as billing_service
from practice import cleanup, dashboards, lifecycle
from practice.activity import important_activities, log_activity, recent_activities
from practice.api.access import is_admin, visible_clients_for_user
from practice.api.permissions import ActiveUserPermission, RolePermission
from practice.api.serializers import (
    ActivitySerializer,
    BankAccountSerializer,
    BillListSerializer,
    ClientSerializer,
    EditBillSerializer,
    IssueBillSerializer,
    LetterheadSerializer,
    MarkPaymentSerializer,
    PaymentSettingsSerializer,
    QRCodeSerializer,
    TaskAssignSerializer,
    TaskBillingSerializer,
    TaskCreateSerializer,
    TaskDetailSerializer,
    TaskNoteSerializer,
    TaskSerializer,
    TaskStatusSerializer,
    TaskUpdateSerializer,
    UserSerializer,
    UserSummarySerializer,
)
from practice.exceptions import InvalidState
from practice.filters import BillFilter, ClientFilter, TaskFilter
from practice.guards import get_client, get_task, require_task_owner
from practice.invoices import render_invoice_html, render_pdf, safe_filename
from practice.models import Activity, BankAccount, Client, Letterhead, QRCode, Task, User

logger = logging.getLogger(__name__)

ADMIN_ONLY = (User.Roles.ADMIN,)


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        username = attrs.get(self.username_field)
        if username and '@' in username:
            user = User.objects.filter(email__iexact=username).first()
            if user:
                attrs[self.username_field] = user.get_username()
        return super().validate(attrs)


class CustomTokenObtainPairView(TokenObtainPairView):
    permission_classes = (AllowAny,)
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshView(TokenRefreshView):
    permission_classes = (AllowAny,)


class MeView(APIView):
    def get(self, request):
        return Response({'user': UserSerializer(request.user).data})


class BaseModelViewSet(viewsets.ModelViewSet):
    permission_classes = (ActiveUserPermission, RolePermission)
    role_map: dict[str, tuple[str, ...] | None] | None = None

    def get_permissions(self):
        if self.role_map:
            roles = self.role_map.get(self.action)
            self.allowed_roles = roles
        return super().get_permissions()


# Clients

class ClientViewSet(BaseModelViewSet):
    serializer_class = ClientSerializer
    filterset_class = ClientFilter
    search_fields = ('name', 'code', 'mobile', 'email', 'client_type')
    ordering_fields = ('name', 'created_at', 'updated_at')
    http_method_names = ['get', 'post', 'put', 'patch', 'head', 'options']
    role_map = {
        'create': ADMIN_ONLY,
        'update': ADMIN_ONLY,
        'partial_update': ADMIN_ONLY,
    }

    def get_queryset(self):
        return visible_clients_for_user(self.request.user, Client.objects.select_related('owner'))

    def get_object(self):
        client = get_client(self.kwargs[self.lookup_field])
        user = self.request.user
        if self.action == 'retrieve':
            if not visible_clients_for_user(user).filter(pk=client.pk).exists():
                raise PermissionDenied('You do not have access to this client.')
        elif client.owner_id != user.id:
            raise PermissionDenied('You do not own this client.')
        return client

    def perform_create(self, serializer):
        client = serializer.save(owner=self.request.user)
        log_activity(
            actor=self.request.user,
            type=Activity.Type.CLIENT,
            action='CREATE_CLIENT',
            description=f"Added client {client.name}.",
            related=client,
        )

    def perform_update(self, serializer):
        was_active = serializer.instance.is_active
        client = serializer.save()
        description = f"Updated client {client.name}."
        if was_active != client.is_active:
            description = f"{'Reactivated' if client.is_active else 'Deactivated'} client {client.name}."
        log_activity(
            actor=self.request.user,
            type=Activity.Type.CLIENT,
            action='UPDATE_CLIENT',
            description=description,
            related=client,
            metadata={'is_active': client.is_active},
        )


# Tasks

class TaskViewSet(BaseModelViewSet):
    serializer_class = TaskSerializer
    filterset_class = TaskFilter
    search_fields = ('title', 'service_type', 'client__name', 'client__code')
    ordering_fields = ('due_date', 'created_at', 'updated_at', 'priority', 'status')
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    role_map = {
        'list': ADMIN_ONLY,
        'create': ADMIN_ONLY,
        'partial_update': ADMIN_ONLY,
        'destroy': ADMIN_ONLY,
        'assign': ADMIN_ONLY,
        'restore': ADMIN_ONLY,
        'billing': ADMIN_ONLY,
        'issue_bill': ADMIN_ONLY,
        'edit_bill': ADMIN_ONLY,
        'payments': ADMIN_ONLY,
        'reminder': ADMIN_ONLY,
        'invoice_pdf': ADMIN_ONLY,
        'auto_archive': ADMIN_ONLY,
    }

    def get_queryset(self):
        include_archived = self.request.query_params.get('include_archived') in ('1', 'true', 'yes')
        return lifecycle.tasks_for_admin(self.request.user, include_archived=include_archived)

    def get_object(self):
        return lifecycle.visible_task(self.request.user, self.kwargs[self.lookup_field])

    def _detail(self, task, status_code=status.HTTP_200_OK):
        task = get_task(task.pk)
        return Response(TaskDetailSerializer(task).data, status=status_code)

    def _paginated(self, queryset, serializer_class=TaskSerializer):
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(serializer_class(page, many=True).data)
        return Response(serializer_class(queryset, many=True).data)

    def retrieve(self, request, pk=None):
        return Response(TaskDetailSerializer(self.get_object()).data)

    def create(self, request):
        serializer = TaskCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = lifecycle.create_task(request.user, **serializer.validated_data)
        return self._detail(task, status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = TaskUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        task = lifecycle.edit_task(request.user, pk, **serializer.validated_data)
        return self._detail(task)

    def destroy(self, request, pk=None):
        lifecycle.permanent_delete_task(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def assign(self, request, pk=None):
        serializer = TaskAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = lifecycle.assign_task(request.user, pk, serializer.validated_data['assigned_to_id'])
        return self._detail(task)

    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        serializer = TaskStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = lifecycle.update_task_status(
            request.user,
            pk,
            serializer.validated_data['status'],
            serializer.validated_data.get('note', ''),
        )
        return self._detail(task)

    @action(detail=True, methods=['post'])
    def notes(self, request, pk=None):
        note = lifecycle.add_task_note(request.user, pk, request.data.get('message', ''))
        return Response(TaskNoteSerializer(note).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def archive(self, request, pk=None):
        return self._detail(lifecycle.archive_task(request.user, pk))

    @action(detail=True, methods=['post'])
    def restore(self, request, pk=None):
        return self._detail(lifecycle.restore_task(request.user, pk))

    @action(detail=False, methods=['get'])
    def mine(self, request):
        return self._paginated(self.filter_queryset(lifecycle.tasks_for_assignee(request.user)))

    @action(detail=False, methods=['get'])
    def archived(self, request):
        return self._paginated(lifecycle.archived_tasks(request.user))

    @action(detail=False, methods=['get'])
    def summary(self, request):
        if is_admin(request.user):
            return Response(lifecycle.admin_summary(request.user))
        return Response(lifecycle.staff_summary(request.user))

    @action(detail=False, methods=['post'], url_path='auto-archive')
    def auto_archive(self, request):
        archived = lifecycle.run_auto_archive()
        return Response({'archived': archived})

    # Billing

    @action(detail=True, methods=['get'])
    def billing(self, request, pk=None):
        task = get_task(pk)
        require_task_owner(request.user, task)
        return Response(TaskBillingSerializer(task.billing).data)

    @action(detail=True, methods=['post'], url_path='issue-bill')
    def issue_bill(self, request, pk=None):
        serializer = IssueBillSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        billing = billing_service.issue_bill(request.user, pk, **serializer.validated_data)
        return Response(TaskBillingSerializer(billing).data)

    @action(detail=True, methods=['patch'], url_path='edit-bill')
    def edit_bill(self, request, pk=None):
        serializer = EditBillSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        billing = billing_service.edit_bill(request.user, pk, **serializer.validated_data)
        return Response(TaskBillingSerializer(billing).data)

    @action(detail=True, methods=['post'])
    def payments(self, request, pk=None):
        serializer = MarkPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        billing = billing_service.mark_payment(request.user, pk, **serializer.validated_data)
        return Response(TaskBillingSerializer(billing).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def reminder(self, request, pk=None):
        return Response(billing_service.send_payment_reminder(request.user, pk))

    @action(detail=True, methods=['get'], url_path='invoice-pdf')
    def invoice_pdf(self, request, pk=None):
        task = get_task(pk)
        require_task_owner(request.user, task)
        billing = task.billing
        if not billing.is_issued:
            raise InvalidState('No bill has been issued for this task.')
        pdf_file = render_pdf(render_invoice_html(billing))
        safe_number = safe_filename(billing.invoice_number or str(billing.pk))
        response = HttpResponse(pdf_file, content_type='application/pdf')
        response['Content-Disposition'] = f'inline; filename="invoice-{safe_number}.pdf"'
        return response


class BillingDashboardView(GenericAPIView):
    permission_classes = (ActiveUserPermission, RolePermission)
    allowed_roles = ADMIN_ONLY
    serializer_class = BillListSerializer
    filter_backends = (DjangoFilterBackend,)
    filterset_class = BillFilter

    def get_queryset(self):
        return billing_service.issued_bills(self.request.user)

    def get(self, request):
        queryset = self.filter_queryset(self.get_queryset())
        stats = billing_service.billing_stats(queryset)
        page = self.paginate_queryset(queryset)
        response = self.get_paginated_response(self.get_serializer(page, many=True).data)
        response.data['stats'] = stats
        return response


# Payment settings

class PaymentSettingsView(APIView):
    permission_classes = (ActiveUserPermission, RolePermission)
    allowed_roles = ADMIN_ONLY

    def get(self, request):
        return Response(PaymentSettingsSerializer(billing_service.get_payment_settings(request.user)).data)

    def patch(self, request):
        payment_settings = billing_service.get_payment_settings(request.user)
        serializer = PaymentSettingsSerializer(payment_settings, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


class PaymentSettingsChildViewSet(BaseModelViewSet):
    allowed_roles = ADMIN_ONLY
    pagination_class = None
    model = None

    def get_queryset(self):
        return self.model.objects.filter(payment_settings__admin=self.request.user)

    def perform_create(self, serializer):
        serializer.save(payment_settings=billing_service.get_payment_settings(self.request.user))


class QRCodeViewSet(PaymentSettingsChildViewSet):
    model = QRCode
    serializer_class = QRCodeSerializer


class BankAccountViewSet(PaymentSettingsChildViewSet):
    model = BankAccount
    serializer_class = BankAccountSerializer
    http_method_names = ['get', 'post', 'put', 'patch', 'head', 'options']


class LetterheadViewSet(PaymentSettingsChildViewSet):
    model = Letterhead
    serializer_class = LetterheadSerializer
    http_method_names = ['get', 'post', 'put', 'patch', 'head', 'options']

    def perform_create(self, serializer):
        letterhead = serializer.save(payment_settings=billing_service.get_payment_settings(self.request.user))
        if letterhead.is_default:
            billing_service.set_default_letterhead(self.request.user, letterhead.pk)

    def perform_update(self, serializer):
        letterhead = serializer.save()
        if letterhead.is_default:
            billing_service.set_default_letterhead(self.request.user, letterhead.pk)

    @action(detail=True, methods=['post'], url_path='set-default')
    def set_default(self, request, pk=None):
        letterhead = billing_service.set_default_letterhead(request.user, pk)
        return Response(LetterheadSerializer(letterhead).data)


# Activity and dashboards

def _limit(request, default: int = 20) -> int:
    try:
        return max(1, min(int(request.query_params.get('limit', default)), 100))
    except (TypeError, ValueError):
        return default


class ActivityViewSet(viewsets.GenericViewSet):
    permission_classes = (ActiveUserPermission, RolePermission)
    allowed_roles = ADMIN_ONLY
    serializer_class = ActivitySerializer

    def list(self, request):
        entries = recent_activities(admin=request.user, limit=_limit(request))
        return Response(ActivitySerializer(entries, many=True).data)

    @action(detail=False, methods=['get'])
    def important(self, request):
        entries = important_activities(admin=request.user, limit=_limit(request))
        return Response(ActivitySerializer(entries, many=True).data)


class DashboardView(APIView):
    permission_classes = (ActiveUserPermission, RolePermission)
    allowed_roles = ADMIN_ONLY

    def get(self, request):
        return Response(dashboards.admin_stats(request.user))


class OverdueItemsView(APIView):
    permission_classes = (ActiveUserPermission, RolePermission)
    allowed_roles = ADMIN_ONLY

    def get(self, request):
        items = dashboards.overdue_items(request.user)
        return Response({
            'tasks': TaskSerializer(items['tasks'], many=True).data,
            'bills': BillListSerializer(items['bills'], many=True).data,
            'total_overdue': items['total_overdue'],
        })


class StaffStatsView(APIView):
    def get(self, request):
        return Response(dashboards.staff_stats(request.user))


# Management

class InactiveEntitiesView(APIView):
    permission_classes = (ActiveUserPermission, RolePermission)
    allowed_roles = ADMIN_ONLY

    def get(self, request):
        entities = cleanup.inactive_entities(request.user)
        return Response({
            'staff': UserSerializer(entities['staff'], many=True).data,
            'clients': ClientSerializer(entities['clients'], many=True).data,
        })


class InactiveStaffTasksView(GenericAPIView):
    permission_classes = (ActiveUserPermission, RolePermission)
    allowed_roles = ADMIN_ONLY
    serializer_class = TaskSerializer
    filter_backends = ()

    def get(self, request):
        queryset = cleanup.inactive_staff_tasks(request.user)
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(self.get_serializer(page, many=True).data)


class DeleteInactiveStaffView(APIView):
    permission_classes = (ActiveUserPermission, RolePermission)
    allowed_roles = ADMIN_ONLY

    def delete(self, request, staff_id):
        return Response(cleanup.delete_inactive_staff(request.user, staff_id))


class DeleteInactiveClientView(APIView):
    permission_classes = (ActiveUserPermission, RolePermission)
    allowed_roles = ADMIN_ONLY

    def delete(self, request, client_id):
        return Response(cleanup.delete_inactive_client(request.user, client_id))


# Users

class UserViewSet(BaseModelViewSet):
    serializer_class = UserSerializer
    allowed_roles = ADMIN_ONLY
    search_fields = ('username', 'first_name', 'last_name', 'email')
    filterset_fields = ('is_active',)
    http_method_names = ['get', 'post', 'put', 'patch', 'head', 'options']

    def get_queryset(self):
        return User.objects.filter(role=User.Roles.STAFF).order_by('first_name', 'last_name', 'username')

    def perform_create(self, serializer):
        staff = serializer.save()
        log_activity(
            actor=self.request.user,
            type=Activity.Type.SYSTEM,
            action='REGISTER_STAFF',
            description=f"Registered staff member {staff.display_name}.",
            related=staff,
        )

    @action(detail=False, methods=['get'])
    def assignable(self, request):
        users = User.objects.filter(
            is_active=True, role__in=[User.Roles.ADMIN, User.Roles.STAFF]
        ).order_by('first_name', 'last_name', 'username')
        return Response(UserSummarySerializer(users, many=True).data)


# Health

class HealthView(APIView):
    permission_classes = (AllowAny,)
    authentication_classes = ()

    def get(self, request):
        return Response({'status': 'ok', 'timestamp': timezone.now()})


class DatabaseHealthView(APIView):
    permission_classes = (ActiveUserPermission, RolePermission)
    allowed_roles = ADMIN_ONLY

    def get(self, request):
        try:
            with connection.cursor() as cursor:
                cursor.execute('SELECT 1')
            database = 'ok'
        except DatabaseError:
            logger.exception("Database health check failed")
            database = 'unavailable'
            return Response({'status': 'error', 'database': database}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        users = User.objects.aggregate(total=Count('id'), active=Count('id', filter=Q(is_active=True)))
        clients = Client.objects.aggregate(total=Count('id'), active=Count('id', filter=Q(is_active=True)))
        tasks = Task.objects.aggregate(
            total=Count('id'),
            active=Count('id', filter=Q(is_archived=False)),
            archived=Count('id', filter=Q(is_archived=True)),
            completed=Count('id', filter=Q(status=Task.Status.COMPLETED)),
        )
        return Response({
            'status': 'ok',
            'database': database,
            'vendor': connection.vendor,
            'timestamp': timezone.now(),
            'counts': {
                'users': users,
                'clients': clients,
                'tasks': tasks,
                'activities': Activity.objects.count(),
            },
        })
