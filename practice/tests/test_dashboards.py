from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied
from rest_framework.test import APIClient

from practice import billing, dashboards, lifecycle
from practice.models import Letterhead, PaymentSettings, Task, TaskBilling, User

from .helpers import make_admin, make_client, make_task, make_user


class DashboardStatsTests(TestCase):
    def setUp(self):
        self.today = timezone.localdate()
        self.admin = make_admin()
        self.staff = make_user('ravi')
        self.active_client = make_client(self.admin)
        make_client(self.admin, name='Dormant', is_active=False)
        self.late_task = make_task(
            self.admin, self.active_client, title='Late', due_date=self.today - timedelta(days=4),
            assigned_to_id=self.staff.pk,
        )
        self.soon_task = make_task(
            self.admin, self.active_client, title='Soon', due_date=self.today + timedelta(days=3)
        )
        done = make_task(self.admin, self.active_client, title='Done', advance=300)
        lifecycle.update_task_status(self.admin, done.pk, Task.Status.COMPLETED)
        billing.issue_bill(self.admin, done.pk, amount=Decimal('1000'))
        TaskBilling.objects.filter(task=done).update(due_date=self.today - timedelta(days=2))
        self.done = done

    def test_admin_stats(self):
        stats = dashboards.admin_stats(self.admin, today=self.today)

        self.assertEqual(stats['tasks']['total'], 3)
        self.assertEqual(stats['tasks']['completed'], 1)
        self.assertEqual(stats['tasks']['completed_today'], 1)
        self.assertEqual(stats['tasks']['overdue'], 1)
        self.assertEqual(stats['tasks']['due_this_week'], 1)
        self.assertEqual(stats['clients'], {'total': 2, 'active': 1, 'inactive': 1})
        self.assertEqual(stats['billing']['total_bills'], 1)
        self.assertEqual(stats['billing']['received_amount'], Decimal('300'))
        self.assertEqual(stats['billing']['pending_amount'], Decimal('700'))
        self.assertEqual(stats['billing']['overdue_count'], 0)
        self.assertEqual(stats['staff'], {'total': 1, 'active': 1})

    def test_overdue_items(self):
        items = dashboards.overdue_items(self.admin, today=self.today)

        self.assertEqual([task.pk for task in items['tasks']], [self.late_task.pk])
        self.assertEqual(items['tasks'][0].days_overdue, 4)
        self.assertEqual([bill.task_id for bill in items['bills']], [self.done.pk])
        self.assertEqual(items['bills'][0].days_overdue, 2)
        self.assertEqual(items['total_overdue'], 2)

    def test_staff_stats_cover_own_tasks(self):
        stats = dashboards.staff_stats(self.staff, today=self.today)

        self.assertEqual(stats['my_tasks']['total'], 1)
        self.assertEqual(stats['my_tasks']['overdue'], 1)
        self.assertNotIn('completed_today', stats['my_tasks'])

    def test_admin_stats_require_admin(self):
        with self.assertRaises(PermissionDenied):
            dashboards.admin_stats(self.staff)

    def test_overdue_endpoint(self):
        api = APIClient()
        api.force_authenticate(user=self.admin)

        resp = api.get(reverse('dashboard_overdue'))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['total_overdue'], 2)
        self.assertEqual(resp.json()['tasks'][0]['days_overdue'], 4)


class PaymentSettingsAPITests(TestCase):
    client_class = APIClient

    def setUp(self):
        self.admin = make_admin()
        self.client.force_authenticate(user=self.admin)

    def test_settings_are_created_on_first_read(self):
        resp = self.client.get(reverse('payment_settings'))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['default_currency'], 'INR')
        self.assertEqual(resp.json()['next_invoice_number'], 1)
        self.assertTrue(PaymentSettings.objects.filter(admin=self.admin).exists())

    def test_counter_cannot_move_backwards(self):
        self.client.patch(reverse('payment_settings'), {'next_invoice_number': 40}, format='json')

        resp = self.client.patch(reverse('payment_settings'), {'next_invoice_number': 12}, format='json')

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(PaymentSettings.objects.get(admin=self.admin).next_invoice_number, 40)

    def test_prefix_is_normalised(self):
        resp = self.client.patch(reverse('payment_settings'), {'invoice_prefix': ' ca '}, format='json')

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['invoice_prefix'], 'CA')

    def test_only_one_default_letterhead(self):
        first = self.client.post(
            reverse('letterhead-list'), {'name': 'Main', 'firm_name': 'Rao & Co', 'is_default': True}, format='json'
        )
        second = self.client.post(
            reverse('letterhead-list'), {'name': 'Branch', 'firm_name': 'Rao & Co', 'is_default': True}, format='json'
        )
        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 201)

        self.assertEqual(
            list(Letterhead.objects.filter(is_default=True).values_list('pk', flat=True)), [second.json()['id']]
        )

        resp = self.client.post(reverse('letterhead-set-default', args=[first.json()['id']]))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            list(Letterhead.objects.filter(is_default=True).values_list('pk', flat=True)), [first.json()['id']]
        )

    def test_qr_codes_are_scoped_to_the_admin(self):
        resp = self.client.post(
            reverse('qr-code-list'), {'name': 'Office UPI', 'upi_id': 'office@okbank'}, format='json'
        )
        self.assertEqual(resp.status_code, 201)

        self.client.force_authenticate(user=make_admin('partner'))
        self.assertEqual(self.client.get(reverse('qr-code-list')).json(), [])
        self.assertEqual(self.client.delete(reverse('qr-code-detail', args=[resp.json()['id']])).status_code, 404)


class CreateAdminCommandTests(TestCase):
    def test_creates_admin_once(self):
        out = StringIO()
        call_command('create_admin', '--email', 'Owner@Firm.in', '--password', 'secret99', stdout=out)
        call_command('create_admin', '--email', 'owner@firm.in', '--password', 'other', stdout=out)

        admin = User.objects.get(email='owner@firm.in')
        self.assertEqual(admin.role, User.Roles.ADMIN)
        self.assertTrue(admin.check_password('secret99'))
        self.assertIn('Admin created: owner@firm.in', out.getvalue())
        self.assertIn('Admin already exists', out.getvalue())
