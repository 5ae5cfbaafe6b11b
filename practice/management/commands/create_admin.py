import os

from django.core.management.base import BaseCommand

from practice.models import User


class Command(BaseCommand):
    help = "Create the first practice admin account if it does not exist yet."

    def add_arguments(self, parser):
        parser.add_argument('--email', default=os.environ.get('ADMIN_EMAIL', 'admin@example.com'))
        parser.add_argument('--password', default=os.environ.get('ADMIN_PASSWORD', 'Admin@123'))
        parser.add_argument('--first-name', default=os.environ.get('ADMIN_NAME', 'Administrator'))
        parser.add_argument('--phone', default=os.environ.get('ADMIN_PHONE', ''))

    def handle(self, *args, **options):
        email = options['email'].strip().lower()
        existing = User.objects.filter(email__iexact=email).first()
        if existing:
            self.stdout.write(self.style.WARNING(f"Admin already exists: {existing.email}"))
            return
        user = User.objects.create_user(
            username=email,
            email=email,
            password=options['password'],
            first_name=options['first_name'],
            phone=options['phone'],
            role=User.Roles.ADMIN,
        )
        self.stdout.write(self.style.SUCCESS(f"Admin created: {user.email}"))
