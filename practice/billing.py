"""
Billing ledger for tasks: advances, issued bills, payments and invoice numbering.

Every mutation re-derives ``payment_status`` through :func:`derive_payment_status`;
OVERDUE is only ever a read-time label and is never stored.
"""
from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import Count, DecimalField, F, Q, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from practice.activity import log_activity
from practice.exceptions import InvalidState
from practice.guards import coerce_id, get_task, require_admin, require_task_owner
from practice.models import (
    ZERO,
    Activity,
    Letterhead,
    PaymentEntry,
    PaymentSettings,
    QRCode,
    Task,
    TaskAdvance,
    TaskBilling,
    User,
)
from practice.notifications.email import send_email

logger = logging.getLogger(__name__)

Status = TaskBilling.PaymentStatus
Mode = TaskBilling.PaymentMode
MONEY = DecimalField(max_digits=14, decimal_places=2)


def to_money(value, field: str = 'amount') -> Decimal:
    if value is None or value == '':
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError({'detail': f'Invalid {field}.'})


def derive_payment_status(
    *,
    amount,
    tax_amount=ZERO,
    discount=ZERO,
    advance_amount=ZERO,
    paid_amount=ZERO,
) -> str:
    """Stored status of an issued bill from its money fields alone."""
    effective_total = to_money(amount) + to_money(tax_amount) - to_money(discount)
    received = to_money(paid_amount) + to_money(advance_amount)
    if received >= effective_total:
        return Status.PAID
    if received > ZERO:
        return Status.PARTIALLY_PAID
    return Status.UNPAID


def validate_bill_amounts(amount: Decimal, tax_amount: Decimal, discount: Decimal) -> None:
    if amount <= ZERO:
        raise ValidationError({'detail': 'A bill amount greater than zero is required.'})
    if tax_amount < ZERO or discount < ZERO:
        raise ValidationError({'detail': 'Tax and discount cannot be negative.'})
    if discount > amount + tax_amount:
        raise ValidationError({'detail': 'Discount cannot exceed the bill amount plus tax.'})


def refresh_payment_status(billing: TaskBilling) -> str:
    if not billing.issued_at:
        billing.payment_status = Status.NOT_ISSUED
    else:
        billing.payment_status = derive_payment_status(
            amount=billing.amount,
            tax_amount=billing.tax_amount,
            discount=billing.discount,
            advance_amount=billing.advance_received,
            paid_amount=billing.paid_amount,
        )
    return billing.payment_status


# Payment settings and invoice numbering

def get_payment_settings(admin: User) -> PaymentSettings:
    payment_settings, _ = PaymentSettings.objects.get_or_create(
        admin=admin,
        defaults={'invoice_prefix': getattr(settings, 'INVOICE_PREFIX', 'INV')},
    )
    return payment_settings


def format_invoice_number(prefix: str, sequence: int) -> str:
    return f"{prefix}-{sequence:05d}"


def fallback_invoice_number(today=None) -> str:
    today = today or timezone.localdate()
    while True:
        candidate = f"INV-{today:%Y%m%d}-{secrets.token_hex(3).upper()}"
        if not _invoice_number_taken(candidate):
            return candidate


def _invoice_number_taken(invoice_number: str, exclude_pk=None) -> bool:
    qs = TaskBilling.objects.filter(invoice_number=invoice_number)
    if exclude_pk is not None:
        qs = qs.exclude(pk=exclude_pk)
    return qs.exists()


def _reserve_invoice_sequence(admin: User) -> str:
    """Advance the admin's counter past any number already in use and return the first free one."""
    with transaction.atomic():
        payment_settings = get_payment_settings(admin)
        payment_settings = PaymentSettings.objects.select_for_update().get(pk=payment_settings.pk)
        while True:
            PaymentSettings.objects.filter(pk=payment_settings.pk).update(
                next_invoice_number=F('next_invoice_number') + 1
            )
            payment_settings.refresh_from_db(fields=['next_invoice_number'])
            candidate = format_invoice_number(
                payment_settings.invoice_prefix, payment_settings.next_invoice_number - 1
            )
            if not _invoice_number_taken(candidate):
                return candidate


def next_invoice_number(admin: User) -> str:
    try:
        return _reserve_invoice_sequence(admin)
    except DatabaseError:
        logger.exception("Invoice counter unavailable for admin %s; using fallback number.", admin.pk)
        return fallback_invoice_number()


def default_letterhead(admin: User) -> Letterhead | None:
    return Letterhead.objects.filter(payment_settings__admin=admin, is_default=True).first()


def _owned_letterhead(admin: User, letterhead_id) -> Letterhead:
    pk = coerce_id(letterhead_id, 'letterhead id')
    letterhead = Letterhead.objects.filter(pk=pk, payment_settings__admin=admin).first()
    if not letterhead:
        raise NotFound('Letterhead not found.')
    return letterhead


def _owned_qr_code(admin: User, qr_code_id) -> QRCode:
    pk = coerce_id(qr_code_id, 'QR code id')
    qr_code = QRCode.objects.filter(pk=pk, payment_settings__admin=admin).first()
    if not qr_code:
        raise NotFound('QR code not found.')
    return qr_code


def set_default_letterhead(actor: User, letterhead_id) -> Letterhead:
    require_admin(actor)
    with transaction.atomic():
        letterhead = _owned_letterhead(actor, letterhead_id)
        Letterhead.objects.filter(payment_settings=letterhead.payment_settings).exclude(pk=letterhead.pk).update(
            is_default=False
        )
        if not letterhead.is_default:
            letterhead.is_default = True
            letterhead.save(update_fields=['is_default', 'updated_at'])
    return letterhead


# Advances

def _generate_advance_receipt_number(owner: User, on_date=None) -> str:
    on_date = on_date or timezone.localdate()
    prefix = f"ADV-{on_date:%Y%m%d}"
    base_qs = TaskAdvance.objects.filter(billing__task__owner=owner, receipt_number__startswith=prefix)
    seq = base_qs.count() + 1
    candidate = f"{prefix}-{seq:03d}"
    while base_qs.filter(receipt_number=candidate).exists():
        seq += 1
        candidate = f"{prefix}-{seq:03d}"
    return candidate


def record_advance(
    task: Task,
    actor: User,
    *,
    amount,
    is_paid: bool = True,
    payment_mode: str = Mode.CASH,
    transaction_id: str = '',
    paid_at=None,
    notes: str = '',
) -> TaskAdvance | None:
    """Attach a collected advance to the task's billing; unpaid or empty advances are not recorded."""
    amount = to_money(amount, 'advance amount')
    if amount < ZERO:
        raise ValidationError({'detail': 'Advance amount cannot be negative.'})
    if not is_paid or amount <= ZERO:
        return None
    billing = TaskBilling.objects.get_or_create(task=task)[0]
    if billing.get_advance():
        raise InvalidState('An advance has already been recorded for this task.')
    advance = TaskAdvance.objects.create(
        billing=billing,
        is_paid=True,
        amount=amount,
        receipt_number=_generate_advance_receipt_number(task.owner),
        payment_mode=payment_mode or Mode.CASH,
        transaction_id=transaction_id or '',
        paid_at=paid_at or timezone.now(),
        notes=notes or '',
        received_by=actor,
    )
    if billing.issued_at:
        refresh_payment_status(billing)
        billing.save(update_fields=['payment_status', 'updated_at'])
    return advance


# Bills and payments

def _billing_for_update(task: Task) -> TaskBilling:
    billing, _ = TaskBilling.objects.select_for_update().get_or_create(task=task)
    return billing


def issue_bill(
    actor: User,
    task_id,
    *,
    amount,
    due_date=None,
    invoice_number: str = '',
    tax_amount=None,
    discount=None,
    letterhead_id=None,
) -> TaskBilling:
    amount = to_money(amount)
    tax_amount = to_money(tax_amount, 'tax amount')
    discount = to_money(discount, 'discount')
    validate_bill_amounts(amount, tax_amount, discount)

    with transaction.atomic():
        task = get_task(task_id, for_update=True)
        require_task_owner(actor, task)
        billing = _billing_for_update(task)
        if billing.payment_status == Status.PAID:
            raise InvalidState('This bill has been paid in full and cannot be re-issued.')

        letterhead = _owned_letterhead(actor, letterhead_id) if letterhead_id else default_letterhead(actor)
        if not billing.invoice_number:
            supplied = (invoice_number or '').strip()
            if supplied and _invoice_number_taken(supplied, exclude_pk=billing.pk):
                raise ValidationError({'detail': f'Invoice number {supplied} is already in use.'})
            billing.invoice_number = supplied or next_invoice_number(actor)
        billing.amount = amount
        billing.tax_amount = tax_amount
        billing.discount = discount
        billing.due_date = due_date or (timezone.localdate() + timedelta(days=settings.BILL_DUE_DAYS))
        billing.payment_mode = Mode.NOT_SPECIFIED
        billing.issued_by = actor
        billing.issued_at = timezone.now()
        billing.letterhead = letterhead
        refresh_payment_status(billing)
        billing.save()

        log_activity(
            actor=actor,
            type=Activity.Type.BILLING,
            action='ISSUE_BILL',
            description=f"Issued bill {billing.invoice_number} for \"{task.title}\" ({task.client.name}).",
            priority=Activity.Priority.IMPORTANT,
            related=task,
            metadata={
                'invoice_number': billing.invoice_number,
                'amount': billing.effective_total,
                'payment_status': billing.payment_status,
            },
        )
    return billing


def edit_bill(actor: User, task_id, *, amount=None, due_date=None, tax_amount=None, discount=None) -> TaskBilling:
    with transaction.atomic():
        task = get_task(task_id, for_update=True)
        require_task_owner(actor, task)
        billing = _billing_for_update(task)
        if not billing.is_issued:
            raise InvalidState('No bill has been issued for this task.')
        if billing.payment_status == Status.PAID:
            raise InvalidState('Paid bills cannot be edited.')

        changed = []
        if amount is not None:
            billing.amount = to_money(amount)
            changed.append('amount')
        if tax_amount is not None:
            billing.tax_amount = to_money(tax_amount, 'tax amount')
            changed.append('tax_amount')
        if discount is not None:
            billing.discount = to_money(discount, 'discount')
            changed.append('discount')
        validate_bill_amounts(billing.amount, billing.tax_amount, billing.discount)
        if due_date is not None:
            billing.due_date = due_date
            changed.append('due_date')

        refresh_payment_status(billing)
        billing.save()

        log_activity(
            actor=actor,
            type=Activity.Type.BILLING,
            action='EDIT_BILL',
            description=f"Edited bill {billing.invoice_number} for \"{task.title}\".",
            related=task,
            metadata={'fields': changed, 'payment_status': billing.payment_status},
        )
    return billing


def mark_payment(
    actor: User,
    task_id,
    *,
    amount=None,
    payment_mode: str | None = None,
    selected_qr_code_id=None,
    transaction_id: str = '',
    notes: str = '',
    paid_at=None,
) -> TaskBilling:
    """Record one payment; without an explicit amount the full outstanding balance is paid."""
    with transaction.atomic():
        task = get_task(task_id, for_update=True)
        require_task_owner(actor, task)
        billing = _billing_for_update(task)
        if not billing.is_issued:
            raise InvalidState('No bill has been issued for this task.')
        if billing.payment_status == Status.PAID:
            raise InvalidState('This bill is already paid in full.')

        payment = to_money(amount) if amount not in (None, '') else billing.remaining
        if payment <= ZERO:
            raise ValidationError({'detail': 'Payment amount must be greater than zero.'})
        qr_code = _owned_qr_code(actor, selected_qr_code_id) if selected_qr_code_id else None
        mode = payment_mode or (Mode.UPI if qr_code else Mode.NOT_SPECIFIED)
        paid_at = paid_at or timezone.now()

        PaymentEntry.objects.create(
            billing=billing,
            amount=payment,
            payment_mode=mode,
            selected_qr_code=qr_code,
            transaction_id=transaction_id or '',
            notes=notes or '',
            paid_at=paid_at,
            recorded_by=actor,
        )
        billing.paid_amount = (billing.paid_amount or ZERO) + payment
        billing.paid_at = paid_at
        billing.transaction_id = transaction_id or ''
        billing.payment_notes = notes or ''
        billing.payment_mode = mode
        billing.selected_qr_code = qr_code
        refresh_payment_status(billing)
        billing.save()

        log_activity(
            actor=actor,
            type=Activity.Type.PAYMENT,
            action='MARK_PAID',
            description=(
                f"Recorded payment of {payment} against {billing.invoice_number} "
                f"for \"{task.title}\" ({billing.get_payment_status_display()})."
            ),
            priority=Activity.Priority.CRITICAL,
            related=task,
            metadata={
                'invoice_number': billing.invoice_number,
                'amount': payment,
                'paid_amount': billing.paid_amount,
                'payment_status': billing.payment_status,
            },
        )
    return billing


def send_payment_reminder(actor: User, task_id) -> dict:
    task = get_task(task_id)
    require_task_owner(actor, task)
    billing = task.billing
    if not billing.is_issued or billing.payment_status == Status.PAID:
        raise InvalidState('Reminders can only be sent for issued bills that are not fully paid.')
    recipient = (task.client.email or '').strip()
    if not recipient:
        raise ValidationError({'detail': 'The client has no email address on file.'})

    payment_settings = get_payment_settings(actor)
    letterhead = billing.letterhead or default_letterhead(actor)
    qr_code = payment_settings.qr_codes.filter(is_active=True).first()
    template_data = {
        'client_name': task.client.name,
        'task_title': task.title,
        'invoice_number': billing.invoice_number,
        'currency': payment_settings.default_currency,
        'total': billing.effective_total,
        'received': billing.total_received,
        'balance': billing.remaining,
        'due_date': billing.due_date,
        'upi_id': qr_code.upi_id if qr_code else '',
        'firm_name': letterhead.firm_name if letterhead else actor.display_name,
    }
    sent = send_email(
        to=recipient,
        subject=f"Payment reminder: invoice {billing.invoice_number}",
        template='practice/email/payment_reminder.txt',
        template_data=template_data,
    )
    if sent:
        log_activity(
            actor=actor,
            type=Activity.Type.PAYMENT,
            action='REMINDER_SENT',
            description=f"Sent payment reminder for {billing.invoice_number} to {recipient}.",
            related=task,
            metadata={'invoice_number': billing.invoice_number, 'to': recipient},
        )
    return {'sent': sent, 'to': recipient, 'invoice_number': billing.invoice_number}


# Dashboard aggregation

def issued_bills(actor: User):
    return (
        TaskBilling.objects.filter(task__owner=actor, issued_at__isnull=False)
        .exclude(payment_status=Status.NOT_ISSUED)
        .select_related('task', 'task__client', 'issued_by', 'advance', 'letterhead', 'selected_qr_code')
        .order_by('-issued_at', '-id')
    )


def billing_stats(queryset, *, today=None) -> dict:
    """Summary over every bill in ``queryset``, not just the current page."""
    today = today or timezone.localdate()
    totals = queryset.order_by().aggregate(
        total_bills=Count('id'),
        total_amount=Coalesce(Sum(F('amount') + F('tax_amount') - F('discount')), Value(ZERO), output_field=MONEY),
        total_paid=Coalesce(Sum('paid_amount'), Value(ZERO), output_field=MONEY),
        total_advance=Coalesce(
            Sum('advance__amount', filter=Q(advance__is_paid=True)), Value(ZERO), output_field=MONEY
        ),
        unpaid=Count('id', filter=Q(payment_status=Status.UNPAID)),
        partially_paid=Count('id', filter=Q(payment_status=Status.PARTIALLY_PAID)),
        paid=Count('id', filter=Q(payment_status=Status.PAID)),
        overdue=Count('id', filter=TaskBilling.overdue_filter(today)),
    )
    total_received = totals['total_advance'] + totals['total_paid']
    return {
        'total_bills': totals['total_bills'],
        'total_amount': totals['total_amount'],
        'total_received': total_received,
        'pending_amount': totals['total_amount'] - total_received,
        'unpaid': totals['unpaid'],
        'partially_paid': totals['partially_paid'],
        'paid': totals['paid'],
        'overdue': totals['overdue'],
    }
