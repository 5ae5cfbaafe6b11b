from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from practice import billing, invoices
from practice.models import Activity, TaskBilling, User

from .helpers import PASSWORD, make_admin, make_client, make_task, make_user


class APITestMixin:
    client_class = APIClient

    def login(self, user):
        self.client.force_authenticate(user=user)


class AuthenticationTests(APITestMixin, TestCase):
    def setUp(self):
        self.staff = make_user('ravi', email='ravi@office.in')

    def test_anonymous_requests_are_rejected(self):
        resp = self.client.get(reverse('task-mine'))
        self.assertEqual(resp.status_code, 401)

    def test_health_is_public(self):
        resp = self.client.get(reverse('health'))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['status'], 'ok')

    def test_login_with_email(self):
        resp = self.client.post(
            reverse('token_obtain_pair'), {'username': 'RAVI@office.in', 'password': PASSWORD}, format='json'
        )

        self.assertEqual(resp.status_code, 200)
        self.assertIn('access', resp.json())
        self.assertIn('refresh', resp.json())

    def test_me_returns_profile(self):
        self.login(self.staff)
        resp = self.client.get(reverse('me'))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['user']['email'], 'ravi@office.in')
        self.assertNotIn('password', resp.json()['user'])

    def test_deactivated_account_gets_forbidden(self):
        self.staff.is_active = False
        self.staff.save()
        self.login(self.staff)

        resp = self.client.get(reverse('task-mine'))

        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()['detail'], 'Your account has been disabled.')

    def test_token_issued_before_deactivation_is_refused(self):
        access = str(RefreshToken.for_user(self.staff).access_token)
        self.staff.is_active = False
        self.staff.save()

        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {access}')
        resp = self.client.get(reverse('task-mine'))

        self.assertEqual(resp.status_code, 403)

    def test_bearer_token_grants_access(self):
        access = str(RefreshToken.for_user(self.staff).access_token)
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {access}')

        resp = self.client.get(reverse('task-mine'))

        self.assertEqual(resp.status_code, 200)


class TaskAPITests(APITestMixin, TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.staff = make_user('ravi')
        self.client_record = make_client(self.admin)

    def test_staff_cannot_list_all_tasks_but_sees_own(self):
        mine = make_task(self.admin, self.client_record, title='Mine', assigned_to_id=self.staff.pk)
        make_task(self.admin, self.client_record, title='Not mine')
        self.login(self.staff)

        self.assertEqual(self.client.get(reverse('task-list')).status_code, 403)

        resp = self.client.get(reverse('task-mine'))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([row['id'] for row in resp.json()['results']], [mine.pk])

    def test_create_task(self):
        self.login(self.admin)
        resp = self.client.post(
            reverse('task-list'),
            {
                'client_id': self.client_record.pk,
                'title': 'Tax audit FY 2024-25',
                'priority': 'HIGH',
                'assigned_to_id': self.staff.pk,
                'advance': {'amount': '2000.00'},
            },
            format='json',
        )

        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertEqual(body['status'], 'NOT_STARTED')
        self.assertEqual(body['billing']['payment_status'], TaskBilling.PaymentStatus.NOT_ISSUED)
        self.assertIsNotNone(body['billing']['advance'])
        self.assertEqual(len(body['status_history']), 2)

    def test_create_task_validates_input(self):
        self.login(self.admin)
        resp = self.client.post(reverse('task-list'), {'title': 'Missing client'}, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_non_numeric_id_is_bad_request(self):
        self.login(self.admin)
        resp = self.client.get(reverse('task-detail', args=['abc']))
        self.assertEqual(resp.status_code, 400)

    def test_unknown_task_is_not_found(self):
        self.login(self.admin)
        resp = self.client.get(reverse('task-detail', args=[424242]))
        self.assertEqual(resp.status_code, 404)

    def test_assignee_updates_status(self):
        task = make_task(self.admin, self.client_record, assigned_to_id=self.staff.pk)
        self.login(self.staff)

        resp = self.client.post(reverse('task-change-status', args=[task.pk]), {'status': 'IN_PROGRESS'}, format='json')

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['status'], 'IN_PROGRESS')

    def test_delete_of_invoiced_task_conflicts(self):
        task = make_task(self.admin, self.client_record)
        billing.issue_bill(self.admin, task.pk, amount=Decimal('1500'))
        self.login(self.admin)

        resp = self.client.delete(reverse('task-detail', args=[task.pk]))

        self.assertEqual(resp.status_code, 409)

    def test_delete_plain_task(self):
        task = make_task(self.admin, self.client_record)
        self.login(self.admin)

        resp = self.client.delete(reverse('task-detail', args=[task.pk]))

        self.assertEqual(resp.status_code, 204)

    def test_archived_task_change_conflicts(self):
        task = make_task(self.admin, self.client_record)
        self.login(self.admin)
        self.client.post(reverse('task-archive', args=[task.pk]))

        resp = self.client.patch(reverse('task-detail', args=[task.pk]), {'title': 'Renamed'}, format='json')

        self.assertEqual(resp.status_code, 409)


class ClientAPITests(APITestMixin, TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.staff = make_user('ravi')
        self.visible = make_client(self.admin, name='Visible Client')
        self.hidden = make_client(self.admin, name='Hidden Client')
        make_task(self.admin, self.visible, assigned_to_id=self.staff.pk)

    def test_staff_sees_clients_of_assigned_tasks_only(self):
        self.login(self.staff)

        resp = self.client.get(reverse('client-list'))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual([row['name'] for row in resp.json()['results']], ['Visible Client'])
        self.assertEqual(self.client.get(reverse('client-detail', args=[self.hidden.pk])).status_code, 403)
        self.assertEqual(self.client.get(reverse('client-detail', args=[self.visible.pk])).status_code, 200)

    def test_staff_cannot_create_clients(self):
        self.login(self.staff)
        resp = self.client.post(reverse('client-list'), {'name': 'New', 'mobile': '9000000000'}, format='json')
        self.assertEqual(resp.status_code, 403)

    def test_admin_creates_and_deactivates_client(self):
        self.login(self.admin)
        resp = self.client.post(reverse('client-list'), {'name': 'Gupta Exports', 'mobile': '9000000001'}, format='json')
        self.assertEqual(resp.status_code, 201)
        client_id = resp.json()['id']

        resp = self.client.patch(reverse('client-detail', args=[client_id]), {'is_active': False}, format='json')

        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.json()['is_active'])
        self.assertTrue(Activity.objects.filter(action='UPDATE_CLIENT', description__startswith='Deactivated').exists())

    def test_clients_cannot_be_deleted_through_crud(self):
        self.login(self.admin)
        resp = self.client.delete(reverse('client-detail', args=[self.hidden.pk]))
        self.assertEqual(resp.status_code, 405)


class BillingDashboardAPITests(APITestMixin, TestCase):
    def setUp(self):
        self.admin = make_admin()
        client_record = make_client(self.admin)
        self.current = make_task(self.admin, client_record, title='Current bill')
        self.late = make_task(self.admin, client_record, title='Late bill')
        make_task(self.admin, client_record, title='Not billed')
        billing.issue_bill(self.admin, self.current.pk, amount=Decimal('1000'))
        billing.issue_bill(self.admin, self.late.pk, amount=Decimal('2500'))
        TaskBilling.objects.filter(task=self.late).update(due_date=timezone.localdate() - timedelta(days=3))
        self.login(self.admin)

    def test_dashboard_lists_issued_bills_with_stats(self):
        resp = self.client.get(reverse('billing_dashboard'))

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body['count'], 2)
        self.assertEqual(body['stats']['total_bills'], 2)
        self.assertEqual(body['stats']['overdue'], 1)
        self.assertEqual(Decimal(str(body['stats']['total_amount'])), Decimal('3500'))

    def test_overdue_filter(self):
        resp = self.client.get(reverse('billing_dashboard'), {'status': 'OVERDUE'})

        body = resp.json()
        self.assertEqual([row['task_id'] for row in body['results']], [self.late.pk])
        self.assertEqual(body['results'][0]['display_status'], 'OVERDUE')
        self.assertEqual(body['stats']['total_bills'], 1)

    def test_search_filter(self):
        resp = self.client.get(reverse('billing_dashboard'), {'q': 'current'})
        self.assertEqual([row['task_id'] for row in resp.json()['results']], [self.current.pk])

    def test_staff_is_forbidden(self):
        self.login(make_user('ravi'))
        self.assertEqual(self.client.get(reverse('billing_dashboard')).status_code, 403)


class InvoicePdfTests(APITestMixin, TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.task = make_task(self.admin, make_client(self.admin))
        self.login(self.admin)

    def test_unissued_bill_conflicts(self):
        resp = self.client.get(reverse('task-invoice-pdf', args=[self.task.pk]))
        self.assertEqual(resp.status_code, 409)

    @mock.patch('practice.api.views.render_pdf', return_value=b'%PDF-1.4 test')
    def test_invoice_is_served_inline(self, render):
        bill = billing.issue_bill(self.admin, self.task.pk, amount=Decimal('1000'), invoice_number='CA/2025/7')

        resp = self.client.get(reverse('task-invoice-pdf', args=[self.task.pk]))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp['Content-Type'], 'application/pdf')
        self.assertEqual(resp['Content-Disposition'], 'inline; filename="invoice-CA-2025-7.pdf"')
        self.assertEqual(resp.content, b'%PDF-1.4 test')
        self.assertIn(bill.invoice_number, render.call_args[0][0])

    def test_render_pdf_produces_document(self):
        billing.issue_bill(self.admin, self.task.pk, amount=Decimal('1000'))
        bill = TaskBilling.objects.get(task=self.task)

        html = invoices.render_invoice_html(bill)
        pdf = invoices.render_pdf(html)

        self.assertIn(bill.invoice_number, html)
        self.assertTrue(pdf.startswith(b'%PDF'))

    @mock.patch('practice.invoices.pisa.CreatePDF', return_value=mock.Mock(err=1))
    def test_render_failure_is_a_server_error(self, create_pdf):
        billing.issue_bill(self.admin, self.task.pk, amount=Decimal('1000'))

        with self.assertLogs('practice.invoices', level='ERROR'):
            resp = self.client.get(reverse('task-invoice-pdf', args=[self.task.pk]))

        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.data['detail'], 'The document could not be generated.')
        self.assertNotEqual(resp.get('Content-Type'), 'application/pdf')
        create_pdf.assert_called_once()


class UserAPITests(APITestMixin, TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.login(self.admin)

    def test_register_staff(self):
        resp = self.client.post(
            reverse('user-list'),
            {'email': 'Meera@Office.in', 'first_name': 'Meera', 'password': 'secret99', 'role': 'STAFF'},
            format='json',
        )

        self.assertEqual(resp.status_code, 201)
        user = User.objects.get(pk=resp.json()['id'])
        self.assertEqual(user.role, User.Roles.STAFF)
        self.assertEqual(user.username, 'meera@office.in')
        self.assertTrue(user.check_password('secret99'))
        self.assertNotEqual(user.password, 'secret99')
        self.assertTrue(Activity.objects.filter(action='REGISTER_STAFF').exists())

    def test_duplicate_email_is_rejected(self):
        make_user('ravi', email='ravi@office.in')
        resp = self.client.post(
            reverse('user-list'),
            {'email': 'RAVI@office.in', 'first_name': 'Ravi', 'password': 'secret99'},
            format='json',
        )
        self.assertEqual(resp.status_code, 400)

    def test_role_change_is_forbidden(self):
        staff = make_user('ravi')
        resp = self.client.patch(reverse('user-detail', args=[staff.pk]), {'role': 'ADMIN'}, format='json')

        self.assertEqual(resp.status_code, 403)
        staff.refresh_from_db()
        self.assertEqual(staff.role, User.Roles.STAFF)

    def test_deactivate_staff(self):
        staff = make_user('ravi')
        resp = self.client.patch(reverse('user-detail', args=[staff.pk]), {'is_active': False}, format='json')

        self.assertEqual(resp.status_code, 200)
        staff.refresh_from_db()
        self.assertFalse(staff.is_active)

    def test_staff_cannot_manage_users(self):
        self.login(make_user('ravi'))
        self.assertEqual(self.client.get(reverse('user-list')).status_code, 403)


class ManagementAPITests(APITestMixin, TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.login(self.admin)

    def test_delete_active_staff_conflicts(self):
        staff = make_user('ravi')
        resp = self.client.delete(reverse('delete_inactive_staff', args=[staff.pk]))
        self.assertEqual(resp.status_code, 409)

    def test_delete_inactive_staff(self):
        staff = make_user('ravi', first_name='Ravi', is_active=False)
        resp = self.client.delete(reverse('delete_inactive_staff', args=[staff.pk]))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {'tasks_preserved': 0, 'staff_name': 'Ravi'})

    def test_invalid_staff_id(self):
        resp = self.client.delete(reverse('delete_inactive_staff', args=['xyz']))
        self.assertEqual(resp.status_code, 400)

    def test_database_health(self):
        resp = self.client.get(reverse('health_db'))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['database'], 'ok')
        self.assertEqual(resp.json()['counts']['users']['total'], 1)
