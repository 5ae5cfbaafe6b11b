from __future__ import annotations

import logging
from io import BytesIO

from django.template.loader import render_to_string
from django.utils import timezone
from xhtml2pdf import pisa

from practice.billing import default_letterhead, get_payment_settings
from practice.exceptions import DocumentRenderError
from practice.models import TaskBilling

logger = logging.getLogger(__name__)


def render_invoice_html(billing: TaskBilling) -> str:
    task = billing.task
    owner = task.owner
    payment_settings = get_payment_settings(owner)
    return render_to_string(
        'practice/invoice_pdf.html',
        {
            'billing': billing,
            'task': task,
            'client': task.client,
            'letterhead': billing.letterhead or default_letterhead(owner),
            'advance': billing.get_advance(),
            'payments': list(billing.payment_history.all()),
            'currency': payment_settings.default_currency,
            'bank_account': payment_settings.bank_accounts.filter(is_active=True).first(),
            'qr_code': payment_settings.qr_codes.filter(is_active=True).first(),
            'status_label': billing.display_status(),
            'generated_on': timezone.localtime(),
        },
    )


def render_pdf(html: str) -> bytes:
    pdf_file = BytesIO()
    result = pisa.CreatePDF(html, dest=pdf_file, encoding='UTF-8')
    if result.err:
        logger.error("Invoice PDF rendering reported %s error(s)", result.err)
        raise DocumentRenderError()
    pdf_file.seek(0)
    return pdf_file.read()


def safe_filename(value: str) -> str:
    safe = ''.join(ch if ch.isalnum() or ch in '._-' else '-' for ch in value)
    return safe.strip('-') or 'document'
