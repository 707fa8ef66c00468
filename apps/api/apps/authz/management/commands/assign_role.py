"""
Management command to provision a staff account and grant it a clinic role.

Usage:
    python manage.py assign_role reception@clinic.test reception
    python manage.py assign_role doctor@clinic.test practitioner --staff

Idempotent: re-running with the same arguments changes nothing. The account
gets an unusable password; credentials stay with the identity provider.
"""
from django.core.management.base import BaseCommand, CommandError
from django.contrib.auth import get_user_model
from apps.authz.models import Role, UserRole, RoleChoices


class Command(BaseCommand):
    help = 'Create the user if needed and assign the given clinic role'

    def add_arguments(self, parser):
        parser.add_argument('email')
        parser.add_argument('role', choices=RoleChoices.values)
        parser.add_argument('--staff', action='store_true', help='Also allow Django admin access')

    def handle(self, *args, **options):
        User = get_user_model()
        email = User.objects.normalize_email(options['email'])
        if not email:
            raise CommandError('Email is required')

        user, created = User.objects.get_or_create(email=email)
        if created:
            user.set_unusable_password()
            self.stdout.write(self.style.SUCCESS(f'Created user: {email}'))
        if options['staff'] and not user.is_staff:
            user.is_staff = True
        user.save()

        role, _ = Role.objects.get_or_create(name=options['role'])
        _, granted = UserRole.objects.get_or_create(user=user, role=role)
        if granted:
            self.stdout.write(self.style.SUCCESS(f'Granted role {role.name} to {email}'))
        else:
            self.stdout.write(f'{email} already has role {role.name}')
