from __future__ import annotations

from django.core.exceptions import ValidationError
from rest_framework import serializers
from rest_framework.exceptions import PermissionDenied

from practice.cleanup import assignment_display
from practice.models import (
    Activity,
    BankAccount,
    Client,
    Letterhead,
    PaymentEntry,
    PaymentSettings,
    QRCode,
    Task,
    TaskAdvance,
    TaskBilling,
    TaskNote,
    TaskStatusHistory,
    User,
)

MONEY_FIELD = {'max_digits': 12, 'decimal_places': 2}


class CleanModelSerializer(serializers.ModelSerializer):
    """ModelSerializer that runs full_clean before saving."""

    def _perform_full_clean(self, instance):
        try:
            instance.full_clean()
        except ValidationError as exc:
            if hasattr(exc, 'message_dict'):
                raise serializers.ValidationError(exc.message_dict) from exc
            raise serializers.ValidationError({'detail': exc.messages}) from exc

    def create(self, validated_data, **kwargs):
        validated_data.update(kwargs)
        instance = self.Meta.model(**validated_data)
        self._perform_full_clean(instance)
        instance.save()
        return instance

    def update(self, instance, validated_data, **kwargs):
        validated_data.update(kwargs)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        self._perform_full_clean(instance)
        instance.save()
        return instance


# Users

class UserSummarySerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source='display_name', read_only=True)

    class Meta:
        model = User
        fields = ('id', 'username', 'full_name', 'email', 'role')


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source='display_name', read_only=True)
    username = serializers.CharField(required=False, max_length=150)
    password = serializers.CharField(write_only=True, required=False, allow_blank=True, min_length=6)

    class Meta:
        model = User
        fields = (
            'id',
            'username',
            'email',
            'first_name',
            'last_name',
            'full_name',
            'phone',
            'role',
            'is_active',
            'date_joined',
            'password',
        )
        read_only_fields = ('role', 'date_joined')
        extra_kwargs = {'first_name': {'required': True, 'allow_blank': False}}

    def validate(self, attrs):
        requested_role = self.initial_data.get('role') if hasattr(self, 'initial_data') else None
        current_role = self.instance.role if self.instance else User.Roles.STAFF
        if requested_role and requested_role != current_role:
            raise PermissionDenied('Role changes are not allowed.')
        if self.instance is None and not attrs.get('password'):
            raise serializers.ValidationError({'password': 'A password is required.'})
        return attrs

    def validate_email(self, value):
        value = (value or '').strip().lower()
        qs = User.objects.filter(email__iexact=value)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError('A user with this email already exists.')
        return value

    def validate_username(self, value):
        value = (value or '').strip()
        qs = User.objects.filter(username__iexact=value)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if value and qs.exists():
            raise serializers.ValidationError('A user with this username already exists.')
        return value

    def create(self, validated_data):
        password = validated_data.pop('password', None)
        if not validated_data.get('username'):
            validated_data['username'] = validated_data['email']
        validated_data['role'] = User.Roles.STAFF
        user = User(**validated_data)
        user.set_password(password)
        user.save()
        return user

    def update(self, instance, validated_data):
        password = validated_data.pop('password', None)
        user = super().update(instance, validated_data)
        if password:
            user.set_password(password)
            user.save(update_fields=['password'])
        return user


# Clients

class ClientSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = ('id', 'name', 'code', 'mobile', 'email', 'is_active')


class ClientSerializer(CleanModelSerializer):
    owner = UserSummarySerializer(read_only=True)

    class Meta:
        model = Client
        fields = (
            'id',
            'owner',
            'name',
            'code',
            'client_type',
            'pan',
            'gstin',
            'mobile',
            'alternate_mobile',
            'email',
            'address',
            'notes',
            'is_active',
            'created_at',
            'updated_at',
        )
        read_only_fields = ('created_at', 'updated_at')


# Billing

class TaskAdvanceSerializer(serializers.ModelSerializer):
    received_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = TaskAdvance
        fields = (
            'id',
            'is_paid',
            'amount',
            'receipt_number',
            'payment_mode',
            'transaction_id',
            'paid_at',
            'notes',
            'received_by',
        )
        read_only_fields = fields


class PaymentEntrySerializer(serializers.ModelSerializer):
    recorded_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = PaymentEntry
        fields = (
            'id',
            'amount',
            'payment_mode',
            'selected_qr_code',
            'transaction_id',
            'notes',
            'paid_at',
            'recorded_by',
        )
        read_only_fields = fields


class TaskBillingSerializer(serializers.ModelSerializer):
    advance = serializers.SerializerMethodField()
    payment_history = PaymentEntrySerializer(many=True, read_only=True)
    issued_by = UserSummarySerializer(read_only=True)
    effective_total = serializers.DecimalField(read_only=True, **MONEY_FIELD)
    total_received = serializers.DecimalField(read_only=True, **MONEY_FIELD)
    remaining = serializers.DecimalField(read_only=True, **MONEY_FIELD)
    display_status = serializers.SerializerMethodField()

    class Meta:
        model = TaskBilling
        fields = (
            'id',
            'task',
            'invoice_number',
            'amount',
            'tax_amount',
            'discount',
            'effective_total',
            'paid_amount',
            'total_received',
            'remaining',
            'due_date',
            'payment_mode',
            'selected_qr_code',
            'payment_status',
            'display_status',
            'transaction_id',
            'payment_notes',
            'paid_at',
            'issued_by',
            'issued_at',
            'letterhead',
            'advance',
            'payment_history',
        )
        read_only_fields = fields

    def get_advance(self, obj):
        advance = obj.get_advance()
        return TaskAdvanceSerializer(advance).data if advance else None

    def get_display_status(self, obj):
        return obj.display_status()


class BillListSerializer(serializers.ModelSerializer):
    task_id = serializers.IntegerField(source='task.id', read_only=True)
    task_title = serializers.CharField(source='task.title', read_only=True)
    client = ClientSummarySerializer(source='task.client', read_only=True)
    effective_total = serializers.DecimalField(read_only=True, **MONEY_FIELD)
    total_received = serializers.DecimalField(read_only=True, **MONEY_FIELD)
    remaining = serializers.DecimalField(read_only=True, **MONEY_FIELD)
    display_status = serializers.SerializerMethodField()
    days_overdue = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = TaskBilling
        fields = (
            'id',
            'task_id',
            'task_title',
            'client',
            'invoice_number',
            'amount',
            'tax_amount',
            'discount',
            'effective_total',
            'total_received',
            'remaining',
            'due_date',
            'payment_status',
            'display_status',
            'issued_at',
            'days_overdue',
        )
        read_only_fields = fields

    def get_display_status(self, obj):
        return obj.display_status()


# Tasks

class TaskNoteSerializer(serializers.ModelSerializer):
    created_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = TaskNote
        fields = ('id', 'message', 'created_by', 'created_at')
        read_only_fields = ('created_by', 'created_at')


class TaskStatusHistorySerializer(serializers.ModelSerializer):
    changed_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = TaskStatusHistory
        fields = ('id', 'status', 'changed_at', 'changed_by', 'note')
        read_only_fields = fields


class TaskSerializer(serializers.ModelSerializer):
    client = ClientSummarySerializer(read_only=True)
    assigned_to = UserSummarySerializer(read_only=True)
    assignment = serializers.SerializerMethodField()
    payment_status = serializers.SerializerMethodField()
    days_overdue = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Task
        fields = (
            'id',
            'owner',
            'client',
            'title',
            'service_type',
            'assessment_year',
            'period',
            'priority',
            'status',
            'due_date',
            'completed_at',
            'assigned_to',
            'legacy_assigned_name',
            'assignment',
            'is_archived',
            'archived_at',
            'archived_by',
            'auto_archived',
            'payment_status',
            'days_overdue',
            'created_at',
            'updated_at',
        )
        read_only_fields = fields

    def get_assignment(self, obj):
        return assignment_display(obj)

    def get_payment_status(self, obj):
        try:
            return obj.billing.display_status()
        except TaskBilling.DoesNotExist:
            return TaskBilling.PaymentStatus.NOT_ISSUED


class TaskDetailSerializer(TaskSerializer):
    notes = TaskNoteSerializer(many=True, read_only=True)
    status_history = TaskStatusHistorySerializer(many=True, read_only=True)
    billing = TaskBillingSerializer(read_only=True)

    class Meta(TaskSerializer.Meta):
        fields = TaskSerializer.Meta.fields + ('notes', 'status_history', 'billing')
        read_only_fields = fields


# Task and billing commands

class AdvanceInputSerializer(serializers.Serializer):
    is_paid = serializers.BooleanField(required=False, default=True)
    amount = serializers.DecimalField(min_value=0, **MONEY_FIELD)
    payment_mode = serializers.ChoiceField(choices=TaskBilling.PaymentMode.choices, required=False)
    transaction_id = serializers.CharField(required=False, allow_blank=True, max_length=100)
    paid_at = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class TaskCreateSerializer(serializers.Serializer):
    client_id = serializers.IntegerField()
    title = serializers.CharField(max_length=255)
    service_type = serializers.CharField(required=False, allow_blank=True, max_length=100)
    assessment_year = serializers.CharField(required=False, allow_blank=True, max_length=20)
    period = serializers.CharField(required=False, allow_blank=True, max_length=50)
    priority = serializers.ChoiceField(choices=Task.Priority.choices, required=False)
    due_date = serializers.DateField(required=False, allow_null=True)
    assigned_to_id = serializers.IntegerField(required=False, allow_null=True)
    advance = AdvanceInputSerializer(required=False, allow_null=True)


class TaskUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(required=False, max_length=255)
    service_type = serializers.CharField(required=False, allow_blank=True, max_length=100)
    assessment_year = serializers.CharField(required=False, allow_blank=True, max_length=20)
    period = serializers.CharField(required=False, allow_blank=True, max_length=50)
    priority = serializers.ChoiceField(choices=Task.Priority.choices, required=False)
    due_date = serializers.DateField(required=False, allow_null=True)
    assigned_to_id = serializers.IntegerField(required=False, allow_null=True)


class TaskAssignSerializer(serializers.Serializer):
    assigned_to_id = serializers.IntegerField()


class TaskStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Task.Status.choices)
    note = serializers.CharField(required=False, allow_blank=True)


class IssueBillSerializer(serializers.Serializer):
    amount = serializers.DecimalField(**MONEY_FIELD)
    due_date = serializers.DateField(required=False, allow_null=True)
    invoice_number = serializers.CharField(required=False, allow_blank=True, max_length=50)
    tax_amount = serializers.DecimalField(required=False, allow_null=True, **MONEY_FIELD)
    discount = serializers.DecimalField(required=False, allow_null=True, **MONEY_FIELD)
    letterhead_id = serializers.IntegerField(required=False, allow_null=True)


class EditBillSerializer(serializers.Serializer):
    amount = serializers.DecimalField(required=False, **MONEY_FIELD)
    due_date = serializers.DateField(required=False)
    tax_amount = serializers.DecimalField(required=False, **MONEY_FIELD)
    discount = serializers.DecimalField(required=False, **MONEY_FIELD)


class MarkPaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(required=False, allow_null=True, **MONEY_FIELD)
    payment_mode = serializers.ChoiceField(
        choices=TaskBilling.PaymentMode.choices, required=False, allow_null=True
    )
    selected_qr_code_id = serializers.IntegerField(required=False, allow_null=True)
    transaction_id = serializers.CharField(required=False, allow_blank=True, max_length=100)
    notes = serializers.CharField(required=False, allow_blank=True)
    paid_at = serializers.DateTimeField(required=False, allow_null=True)


# Payment settings

class QRCodeSerializer(CleanModelSerializer):
    class Meta:
        model = QRCode
        fields = ('id', 'name', 'upi_id', 'qr_image_url', 'is_active', 'created_at')
        read_only_fields = ('created_at',)


class BankAccountSerializer(CleanModelSerializer):
    class Meta:
        model = BankAccount
        fields = (
            'id',
            'name',
            'account_number',
            'ifsc_code',
            'account_holder_name',
            'bank_name',
            'branch',
            'is_active',
            'created_at',
        )
        read_only_fields = ('created_at',)


class LetterheadSerializer(CleanModelSerializer):
    class Meta:
        model = Letterhead
        fields = (
            'id',
            'name',
            'firm_name',
            'address',
            'phone',
            'email',
            'gstin',
            'logo_url',
            'footer_text',
            'is_default',
            'created_at',
        )
        read_only_fields = ('created_at',)


class PaymentSettingsSerializer(CleanModelSerializer):
    qr_codes = QRCodeSerializer(many=True, read_only=True)
    bank_accounts = BankAccountSerializer(many=True, read_only=True)
    letterheads = LetterheadSerializer(many=True, read_only=True)

    class Meta:
        model = PaymentSettings
        fields = (
            'id',
            'default_currency',
            'tax_enabled',
            'tax_percentage',
            'invoice_prefix',
            'next_invoice_number',
            'qr_codes',
            'bank_accounts',
            'letterheads',
            'updated_at',
        )
        read_only_fields = ('updated_at',)

    def validate_next_invoice_number(self, value):
        if self.instance is not None and value < self.instance.next_invoice_number:
            raise serializers.ValidationError('The invoice counter cannot be moved backwards.')
        return value


# Activity

class ActivitySerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = Activity
        fields = (
            'id',
            'user',
            'type',
            'action',
            'description',
            'priority',
            'related_id',
            'related_model',
            'metadata',
            'created_at',
            'expires_at',
        )
        read_only_fields = fields
