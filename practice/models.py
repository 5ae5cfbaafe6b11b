from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.db.models import Q
from django.utils import timezone

ZERO = Decimal('0')


class User(AbstractUser):
    class Roles(models.TextChoices):
        ADMIN = 'ADMIN', 'Admin'
        STAFF = 'STAFF', 'Staff'

    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=50, blank=True)
    role = models.CharField(max_length=16, choices=Roles.choices, default=Roles.STAFF)

    def __str__(self) -> str:
        return f"{self.display_name} ({self.get_role_display()})"

    @property
    def is_admin(self) -> bool:
        return self.role == self.Roles.ADMIN

    @property
    def display_name(self) -> str:
        full_name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full_name or self.username


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class AppendOnlyModel(models.Model):
    """Rows are written once; later saves of an existing row are refused."""

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError(f"{self.__class__.__name__} entries cannot be modified.")
        super().save(*args, **kwargs)


class Client(TimeStampedModel):
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='clients')
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=50, blank=True)
    client_type = models.CharField(max_length=100, blank=True)
    pan = models.CharField(max_length=20, blank=True)
    gstin = models.CharField(max_length=20, blank=True)
    mobile = models.CharField(max_length=20)
    alternate_mobile = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['owner', 'is_active'], name='client_owner_active_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})" if self.code else self.name

    def clean(self):
        super().clean()
        self.name = (self.name or '').strip()
        self.mobile = (self.mobile or '').strip()
        if not self.name:
            raise ValidationError({'name': 'Client name is required.'})
        if not self.mobile:
            raise ValidationError({'mobile': 'Mobile number is required.'})

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        self.pan = (self.pan or '').strip().upper()
        self.gstin = (self.gstin or '').strip().upper()
        self.email = (self.email or '').strip().lower()
        super().save(*args, **kwargs)


class Task(TimeStampedModel):
    class Status(models.TextChoices):
        NOT_STARTED = 'NOT_STARTED', 'Not Started'
        IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
        COMPLETED = 'COMPLETED', 'Completed'

    class Priority(models.TextChoices):
        LOW = 'LOW', 'Low'
        NORMAL = 'NORMAL', 'Normal'
        HIGH = 'HIGH', 'High'

    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='owned_tasks')
    client = models.ForeignKey(Client, on_delete=models.CASCADE, related_name='tasks')
    title = models.CharField(max_length=255)
    service_type = models.CharField(max_length=100, blank=True)
    assessment_year = models.CharField(max_length=20, blank=True)
    period = models.CharField(max_length=50, blank=True)
    priority = models.CharField(max_length=16, choices=Priority.choices, default=Priority.NORMAL)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.NOT_STARTED)
    due_date = models.DateField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_tasks'
    )
    legacy_assigned_name = models.CharField(
        max_length=255, blank=True, help_text='Name of a deleted staff member who worked on this task.'
    )
    is_archived = models.BooleanField(default=False)
    archived_at = models.DateTimeField(null=True, blank=True)
    archived_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    auto_archived = models.BooleanField(default=False)

    class Meta:
        ordering = ['due_date', '-created_at']
        indexes = [
            models.Index(fields=['owner', 'is_archived', 'status'], name='task_owner_archived_idx'),
            models.Index(fields=['assigned_to', 'is_archived'], name='task_assignee_archived_idx'),
            models.Index(fields=['status', 'is_archived', 'completed_at'], name='task_sweep_idx'),
        ]

    def __str__(self) -> str:
        return self.title

    @property
    def assignment_label(self) -> str:
        if self.assigned_to_id and self.assigned_to:
            return self.assigned_to.display_name or self.assigned_to.email
        if self.legacy_assigned_name:
            return self.legacy_assigned_name
        return 'Unassigned'


class TaskNote(TimeStampedModel):
    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name='notes')
    message = models.TextField()
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='task_notes'
    )

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self) -> str:
        return f"Note on {self.task}"


class TaskStatusHistory(AppendOnlyModel):
    ASSIGNED = 'ASSIGNED'

    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name='status_history')
    status = models.CharField(max_length=16)
    changed_at = models.DateTimeField(default=timezone.now)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    note = models.TextField(blank=True)

    class Meta:
        ordering = ['changed_at', 'id']
        verbose_name_plural = 'task status history'

    def __str__(self) -> str:
        return f"{self.task} -> {self.status}"


class PaymentSettings(TimeStampedModel):
    admin = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='payment_settings')
    default_currency = models.CharField(max_length=8, default='INR')
    tax_enabled = models.BooleanField(default=False)
    tax_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    invoice_prefix = models.CharField(max_length=20, default='INV')
    next_invoice_number = models.PositiveIntegerField(default=1)

    class Meta:
        verbose_name = 'Payment Settings'
        verbose_name_plural = 'Payment Settings'

    def __str__(self) -> str:
        return f"Payment settings for {self.admin}"

    def clean(self):
        super().clean()
        self.invoice_prefix = (self.invoice_prefix or '').strip().upper()
        if not self.invoice_prefix:
            raise ValidationError({'invoice_prefix': 'Invoice prefix cannot be blank.'})
        if self.next_invoice_number < 1:
            raise ValidationError({'next_invoice_number': 'Invoice numbering starts at 1.'})


class QRCode(TimeStampedModel):
    payment_settings = models.ForeignKey(PaymentSettings, on_delete=models.CASCADE, related_name='qr_codes')
    name = models.CharField(max_length=100)
    upi_id = models.CharField(max_length=100)
    qr_image_url = models.CharField(max_length=500, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']
        verbose_name = 'QR code'

    def __str__(self) -> str:
        return f"{self.name} ({self.upi_id})"


class BankAccount(TimeStampedModel):
    payment_settings = models.ForeignKey(PaymentSettings, on_delete=models.CASCADE, related_name='bank_accounts')
    name = models.CharField(max_length=100)
    account_number = models.CharField(max_length=50)
    ifsc_code = models.CharField(max_length=20)
    account_holder_name = models.CharField(max_length=255)
    bank_name = models.CharField(max_length=255)
    branch = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']

    def __str__(self) -> str:
        return f"{self.bank_name} - {self.account_number[-4:]}"

    def save(self, *args, **kwargs):
        self.ifsc_code = (self.ifsc_code or '').strip().upper()
        super().save(*args, **kwargs)


class Letterhead(TimeStampedModel):
    payment_settings = models.ForeignKey(PaymentSettings, on_delete=models.CASCADE, related_name='letterheads')
    name = models.CharField(max_length=100)
    firm_name = models.CharField(max_length=255)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=50, blank=True)
    email = models.EmailField(blank=True)
    gstin = models.CharField(max_length=20, blank=True)
    logo_url = models.CharField(max_length=500, blank=True)
    footer_text = models.TextField(blank=True)
    is_default = models.BooleanField(default=False)

    class Meta:
        ordering = ['-is_default', 'name']

    def __str__(self) -> str:
        return self.name


class TaskBilling(TimeStampedModel):
    class PaymentStatus(models.TextChoices):
        NOT_ISSUED = 'NOT_ISSUED', 'Not Issued'
        UNPAID = 'UNPAID', 'Unpaid'
        PARTIALLY_PAID = 'PARTIALLY_PAID', 'Partially Paid'
        PAID = 'PAID', 'Paid'
        OVERDUE = 'OVERDUE', 'Overdue'

    class PaymentMode(models.TextChoices):
        UPI = 'UPI', 'UPI'
        BANK_TRANSFER = 'BANK_TRANSFER', 'Bank Transfer'
        CASH = 'CASH', 'Cash'
        CHEQUE = 'CHEQUE', 'Cheque'
        NOT_SPECIFIED = 'NOT_SPECIFIED', 'Not Specified'

    task = models.OneToOneField(Task, on_delete=models.CASCADE, related_name='billing')
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    due_date = models.DateField(null=True, blank=True)
    payment_mode = models.CharField(max_length=16, choices=PaymentMode.choices, default=PaymentMode.NOT_SPECIFIED)
    selected_qr_code = models.ForeignKey(
        QRCode, on_delete=models.SET_NULL, null=True, blank=True, related_name='billings'
    )
    payment_status = models.CharField(
        max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.NOT_ISSUED
    )
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    transaction_id = models.CharField(max_length=100, blank=True)
    payment_notes = models.TextField(blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='issued_bills'
    )
    issued_at = models.DateTimeField(null=True, blank=True)
    invoice_number = models.CharField(max_length=50, blank=True, db_index=True)
    letterhead = models.ForeignKey(
        Letterhead, on_delete=models.SET_NULL, null=True, blank=True, related_name='billings'
    )

    class Meta:
        ordering = ['-issued_at', '-created_at']
        indexes = [
            models.Index(fields=['payment_status', 'due_date'], name='billing_status_due_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['invoice_number'],
                condition=~Q(invoice_number=''),
                name='billing_invoice_number_unique',
            ),
        ]

    def __str__(self) -> str:
        return f"Billing for {self.task}"

    @property
    def is_issued(self) -> bool:
        return self.payment_status != self.PaymentStatus.NOT_ISSUED and self.issued_at is not None

    @property
    def effective_total(self) -> Decimal:
        return (self.amount or ZERO) + (self.tax_amount or ZERO) - (self.discount or ZERO)

    @property
    def advance_received(self) -> Decimal:
        advance = self.get_advance()
        if advance and advance.is_paid:
            return advance.amount or ZERO
        return ZERO

    @property
    def total_received(self) -> Decimal:
        return (self.paid_amount or ZERO) + self.advance_received

    @property
    def remaining(self) -> Decimal:
        return self.effective_total - self.total_received

    def get_advance(self):
        try:
            return self.advance
        except TaskAdvance.DoesNotExist:
            return None

    @classmethod
    def overdue_filter(cls, today=None) -> Q:
        """Unpaid bills past their due date. OVERDUE is derived here and never stored."""
        return Q(payment_status=cls.PaymentStatus.UNPAID, due_date__lt=today or timezone.localdate())

    def is_overdue(self, today=None) -> bool:
        today = today or timezone.localdate()
        return (
            self.payment_status == self.PaymentStatus.UNPAID
            and self.due_date is not None
            and self.due_date < today
        )

    def display_status(self, today=None) -> str:
        if self.is_overdue(today):
            return self.PaymentStatus.OVERDUE
        return self.payment_status


class TaskAdvance(TimeStampedModel):
    billing = models.OneToOneField(TaskBilling, on_delete=models.CASCADE, related_name='advance')
    is_paid = models.BooleanField(default=False)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    receipt_number = models.CharField(max_length=64, blank=True)
    payment_mode = models.CharField(
        max_length=16, choices=TaskBilling.PaymentMode.choices, default=TaskBilling.PaymentMode.CASH
    )
    transaction_id = models.CharField(max_length=100, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='advances_received'
    )

    def __str__(self) -> str:
        return self.receipt_number or f"Advance for {self.billing.task}"


class PaymentEntry(AppendOnlyModel):
    billing = models.ForeignKey(TaskBilling, on_delete=models.CASCADE, related_name='payment_history')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_mode = models.CharField(max_length=16, choices=TaskBilling.PaymentMode.choices)
    selected_qr_code = models.ForeignKey(QRCode, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    transaction_id = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    paid_at = models.DateTimeField(default=timezone.now)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='payments_recorded'
    )

    class Meta:
        ordering = ['paid_at', 'id']
        verbose_name_plural = 'payment entries'

    def __str__(self) -> str:
        return f"Payment {self.amount} on {self.paid_at:%Y-%m-%d}"


def default_activity_expiry():
    return timezone.now() + timedelta(days=getattr(settings, 'ACTIVITY_RETENTION_DAYS', 60))


class Activity(AppendOnlyModel):
    """Expiring audit trail behind the dashboard feeds."""

    class Type(models.TextChoices):
        TASK = 'TASK', 'Task'
        CLIENT = 'CLIENT', 'Client'
        BILLING = 'BILLING', 'Billing'
        PAYMENT = 'PAYMENT', 'Payment'
        SYSTEM = 'SYSTEM', 'System'

    class Priority(models.TextChoices):
        INFO = 'INFO', 'Info'
        IMPORTANT = 'IMPORTANT', 'Important'
        CRITICAL = 'CRITICAL', 'Critical'

    class RelatedModel(models.TextChoices):
        TASK = 'Task', 'Task'
        CLIENT = 'Client', 'Client'
        USER = 'User', 'User'

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='activities'
    )
    type = models.CharField(max_length=16, choices=Type.choices)
    action = models.CharField(max_length=64)
    description = models.CharField(max_length=500)
    priority = models.CharField(max_length=16, choices=Priority.choices, default=Priority.INFO)
    related_id = models.PositiveBigIntegerField(null=True, blank=True)
    related_model = models.CharField(max_length=16, choices=RelatedModel.choices, blank=True)
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(default=default_activity_expiry)

    class Meta:
        ordering = ['-created_at', '-id']
        verbose_name_plural = 'activities'
        indexes = [
            models.Index(fields=['-created_at'], name='activity_created_idx'),
            models.Index(fields=['priority', '-created_at'], name='activity_priority_idx'),
            models.Index(fields=['expires_at'], name='activity_expires_idx'),
        ]

    def __str__(self) -> str:
        actor = self.user.display_name if self.user else 'System'
        return f"{actor}: {self.action}"
