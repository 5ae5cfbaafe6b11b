from django.test import TestCase
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from practice import cleanup, lifecycle
from practice.exceptions import InvalidState
from practice.models import Activity, Client, Task, User

from .helpers import make_admin, make_client, make_task, make_user


def _retire(task, admin):
    lifecycle.update_task_status(admin, task.pk, Task.Status.COMPLETED)
    lifecycle.archive_task(admin, task.pk)


class DeleteInactiveStaffTests(TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.staff = make_user('ravi', first_name='Ravi', last_name='Kumar')
        self.client_record = make_client(self.admin)
        self.first = make_task(self.admin, self.client_record, title='ITR 2023', assigned_to_id=self.staff.pk)
        self.second = make_task(self.admin, self.client_record, title='ITR 2024', assigned_to_id=self.staff.pk)
        _retire(self.first, self.admin)
        _retire(self.second, self.admin)

    def _deactivate(self):
        self.staff.is_active = False
        self.staff.save(update_fields=['is_active'])

    def test_deleted_staff_name_survives_on_tasks(self):
        self._deactivate()

        result = cleanup.delete_inactive_staff(self.admin, self.staff.pk)

        self.assertEqual(result, {'tasks_preserved': 2, 'staff_name': 'Ravi Kumar'})
        self.assertFalse(User.objects.filter(pk=self.staff.pk).exists())
        for task in Task.objects.filter(pk__in=[self.first.pk, self.second.pk]):
            self.assertIsNone(task.assigned_to)
            self.assertEqual(task.legacy_assigned_name, 'Ravi Kumar')
            self.assertEqual(
                cleanup.assignment_display(task),
                {'name': 'Ravi Kumar', 'email': '', 'type': 'legacy'},
            )
        self.assertTrue(Activity.objects.filter(action='DELETE_STAFF').exists())

    def test_active_staff_cannot_be_deleted(self):
        with self.assertRaises(InvalidState):
            cleanup.delete_inactive_staff(self.admin, self.staff.pk)
        self.assertTrue(User.objects.filter(pk=self.staff.pk).exists())

    def test_staff_with_open_tasks_is_kept(self):
        make_task(self.admin, self.client_record, title='Open work', assigned_to_id=self.staff.pk)
        self._deactivate()

        with self.assertRaises(InvalidState):
            cleanup.delete_inactive_staff(self.admin, self.staff.pk)
        self.assertEqual(Task.objects.filter(assigned_to=self.staff).count(), 3)

    def test_only_staff_accounts_can_be_deleted(self):
        other_admin = make_admin('partner', is_active=False)
        with self.assertRaises(PermissionDenied):
            cleanup.delete_inactive_staff(self.admin, other_admin.pk)

    def test_missing_or_invalid_ids(self):
        with self.assertRaises(NotFound):
            cleanup.delete_inactive_staff(self.admin, 987654)
        with self.assertRaises(ValidationError):
            cleanup.delete_inactive_staff(self.admin, 'not-a-number')

    def test_staff_cannot_delete_staff(self):
        colleague = make_user('meera')
        with self.assertRaises(PermissionDenied):
            cleanup.delete_inactive_staff(colleague, self.staff.pk)

    def test_inactive_staff_tasks_include_legacy_attribution(self):
        unrelated = make_task(self.admin, self.client_record, title='Someone else', assigned_to_id=make_user('meera').pk)
        self._deactivate()

        before = set(cleanup.inactive_staff_tasks(self.admin).values_list('pk', flat=True))
        self.assertEqual(before, {self.first.pk, self.second.pk})

        cleanup.delete_inactive_staff(self.admin, self.staff.pk)

        after = set(cleanup.inactive_staff_tasks(self.admin).values_list('pk', flat=True))
        self.assertEqual(after, {self.first.pk, self.second.pk})
        self.assertNotIn(unrelated.pk, after)

    def test_inactive_entities_lists_retired_records(self):
        self._deactivate()
        retired_client = make_client(self.admin, name='Old Client', is_active=False)

        entities = cleanup.inactive_entities(self.admin)

        self.assertEqual(list(entities['staff']), [self.staff])
        self.assertEqual(list(entities['clients']), [retired_client])


class AssignmentDisplayTests(TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.client_record = make_client(self.admin)

    def test_active_assignee(self):
        staff = make_user('ravi', first_name='Ravi', last_name='Kumar')
        task = make_task(self.admin, self.client_record, assigned_to_id=staff.pk)

        self.assertEqual(
            cleanup.assignment_display(task),
            {'name': 'Ravi Kumar', 'email': 'ravi@example.com', 'type': 'active'},
        )

    def test_unassigned(self):
        task = make_task(self.admin, self.client_record)

        self.assertEqual(cleanup.assignment_display(task)['type'], 'unassigned')
        self.assertEqual(cleanup.assignment_display(task)['name'], 'Unassigned')


class DeleteInactiveClientTests(TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.client_record = make_client(self.admin, name='Sharma & Co')
        self.archived = make_task(self.admin, self.client_record, title='Audit 2022')
        _retire(self.archived, self.admin)

    def _deactivate(self):
        Client.objects.filter(pk=self.client_record.pk).update(is_active=False)

    def test_client_and_archived_tasks_are_removed(self):
        self._deactivate()

        result = cleanup.delete_inactive_client(self.admin, self.client_record.pk)

        self.assertEqual(result, {'client_name': 'Sharma & Co', 'archived_tasks_deleted': 1})
        self.assertFalse(Client.objects.filter(pk=self.client_record.pk).exists())
        self.assertFalse(Task.objects.filter(pk=self.archived.pk).exists())
        self.assertTrue(Activity.objects.filter(action='DELETE_CLIENT').exists())

    def test_active_client_is_kept(self):
        with self.assertRaises(InvalidState):
            cleanup.delete_inactive_client(self.admin, self.client_record.pk)

    def test_client_with_open_tasks_is_kept(self):
        make_task(self.admin, self.client_record, title='Open')
        self._deactivate()

        with self.assertRaises(InvalidState):
            cleanup.delete_inactive_client(self.admin, self.client_record.pk)
        self.assertEqual(Task.objects.filter(client=self.client_record).count(), 2)

    def test_other_admins_client_is_not_found(self):
        self._deactivate()
        with self.assertRaises(NotFound):
            cleanup.delete_inactive_client(make_admin('partner'), self.client_record.pk)
