from decimal import Decimal

from practice import lifecycle
from practice.models import Client, User

PASSWORD = 'test-pass-123'


def make_user(username, role=User.Roles.STAFF, **extra):
    extra.setdefault('email', f'{username}@example.com')
    return User.objects.create_user(username=username, password=PASSWORD, role=role, **extra)


def make_admin(username='admin', **extra):
    return make_user(username, role=User.Roles.ADMIN, **extra)


def make_client(owner, name='Acme Traders', **extra):
    extra.setdefault('mobile', '9876543210')
    return Client.objects.create(owner=owner, name=name, **extra)


def make_task(owner, client, title='GST return', advance=None, **extra):
    if advance is not None and not isinstance(advance, dict):
        advance = {'amount': Decimal(str(advance)), 'is_paid': True}
    return lifecycle.create_task(owner, client_id=client.pk, title=title, advance=advance, **extra)
