from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.exceptions import ValidationError as ModelValidationError
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from practice import activity, billing, lifecycle
from practice.models import Activity, Task

from .helpers import make_admin, make_client, make_task, make_user


class LogActivityTests(TestCase):
    def setUp(self):
        self.admin = make_admin()

    @override_settings(ACTIVITY_RETENTION_DAYS=60)
    def test_entries_expire_after_retention_window(self):
        before = timezone.now()
        entry = activity.log_activity(
            actor=self.admin, type=Activity.Type.SYSTEM, action='LOGIN', description='Signed in.'
        )

        self.assertEqual(entry.user, self.admin)
        self.assertGreaterEqual(entry.expires_at, before + timedelta(days=60))
        self.assertLess(entry.expires_at, before + timedelta(days=60, minutes=1))

    def test_related_record_is_referenced(self):
        task = make_task(self.admin, make_client(self.admin))

        entry = Activity.objects.get(action='CREATE_TASK')

        self.assertEqual(entry.related_id, task.pk)
        self.assertEqual(entry.related_model, Activity.RelatedModel.TASK)
        self.assertEqual(entry.metadata['client_id'], task.client_id)

    def test_write_failure_does_not_reach_caller(self):
        with mock.patch.object(Activity.objects, 'create', side_effect=DatabaseError('disk full')):
            with self.assertLogs('practice.activity', level='ERROR'):
                result = activity.log_activity(
                    actor=self.admin, type=Activity.Type.SYSTEM, action='LOGIN', description='Signed in.'
                )

        self.assertIsNone(result)
        self.assertFalse(Activity.objects.filter(action='LOGIN').exists())

    def test_failed_log_does_not_abort_the_operation(self):
        with mock.patch.object(Activity.objects, 'create', side_effect=DatabaseError('disk full')):
            with self.assertLogs('practice.activity', level='ERROR'):
                task = make_task(self.admin, make_client(self.admin))

        self.assertIsNotNone(task.pk)

    def test_entries_are_append_only(self):
        entry = activity.log_activity(
            actor=self.admin, type=Activity.Type.SYSTEM, action='LOGIN', description='Signed in.'
        )
        entry.description = 'Edited'

        with self.assertRaises(ModelValidationError):
            entry.save()


class ActivityFeedTests(TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.now = timezone.now()
        self.info = Activity.objects.create(
            user=self.admin, type=Activity.Type.TASK, action='STATUS_CHANGE', description='Moved on.'
        )
        self.critical = Activity.objects.create(
            user=self.admin,
            type=Activity.Type.PAYMENT,
            action='PAYMENT_RECEIVED',
            description='Paid in full.',
            priority=Activity.Priority.CRITICAL,
        )
        self.expired = Activity.objects.create(
            user=self.admin,
            type=Activity.Type.BILLING,
            action='ISSUE_BILL',
            description='Old bill.',
            priority=Activity.Priority.IMPORTANT,
            created_at=self.now - timedelta(days=70),
            expires_at=self.now - timedelta(days=10),
        )

    def test_recent_feed_skips_expired_entries(self):
        feed = list(activity.recent_activities())

        self.assertEqual(feed, [self.critical, self.info])

    def test_recent_feed_limit_and_user_filter(self):
        self.assertEqual(len(activity.recent_activities(limit=1)), 1)
        self.assertEqual(list(activity.recent_activities(user=make_admin('partner'))), [])

    def test_important_feed(self):
        self.assertEqual(list(activity.important_activities()), [self.critical])

    def test_purge_removes_only_expired_entries(self):
        self.assertEqual(activity.purge_expired_activities(now=self.now), 1)
        self.assertFalse(Activity.objects.filter(pk=self.expired.pk).exists())
        self.assertEqual(Activity.objects.count(), 2)

    def test_purge_command(self):
        out = StringIO()
        call_command('purge_expired_activity', stdout=out)

        self.assertIn('Expired activity entries removed: 1', out.getvalue())


class AdminScopedFeedTests(TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.partner = make_admin('partner')
        self.staff = make_user('ravi')
        self.task = make_task(self.admin, make_client(self.admin), title='GST return', assigned_to_id=self.staff.pk)
        self.partner_task = make_task(self.partner, make_client(self.partner, name='Partner Client'), title='Audit')
        lifecycle.update_task_status(self.staff, self.task.pk, Task.Status.IN_PROGRESS)
        billing.issue_bill(self.admin, self.task.pk, amount=Decimal('500'))
        billing.issue_bill(self.partner, self.partner_task.pk, amount=Decimal('700'))

    def _feed(self, user, name='activity-list'):
        api = APIClient()
        api.force_authenticate(user=user)
        resp = api.get(reverse(name))
        self.assertEqual(resp.status_code, 200)
        return resp.json()

    def test_admin_sees_own_entries_and_staff_work_on_own_tasks(self):
        rows = self._feed(self.admin)

        self.assertTrue(rows)
        self.assertTrue(all(row['related_id'] == self.task.pk for row in rows))
        actions = {row['action'] for row in rows}
        self.assertIn('CREATE_TASK', actions)
        self.assertIn('STATUS_CHANGE', actions)
        self.assertNotIn('Audit', ' '.join(row['description'] for row in rows))

    def test_partner_sees_only_partner_entries(self):
        rows = self._feed(self.partner)

        self.assertTrue(rows)
        self.assertTrue(all(row['related_id'] == self.partner_task.pk for row in rows))
        self.assertNotIn('STATUS_CHANGE', {row['action'] for row in rows})

    def test_important_feed_is_scoped(self):
        rows = self._feed(self.admin, 'activity-important')

        self.assertEqual([row['action'] for row in rows], ['ISSUE_BILL'])
        self.assertEqual(rows[0]['related_id'], self.task.pk)

    def test_service_scope_matches_api(self):
        scoped = activity.recent_activities(admin=self.partner)

        self.assertEqual({entry.related_id for entry in scoped}, {self.partner_task.pk})
        self.assertGreater(activity.recent_activities().count(), scoped.count())
