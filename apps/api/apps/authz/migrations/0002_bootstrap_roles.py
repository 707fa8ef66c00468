# Seed the fixed clinic roles

from django.db import migrations

ROLE_NAMES = ['admin', 'practitioner', 'reception', 'accounting']


def create_roles(apps, schema_editor):
    """Create the clinic roles if missing. Idempotent."""
    Role = apps.get_model('authz', 'Role')
    for name in ROLE_NAMES:
        Role.objects.get_or_create(name=name)


def delete_unused_roles(apps, schema_editor):
    """Reverse: drop roles that nobody holds."""
    Role = apps.get_model('authz', 'Role')
    UserRole = apps.get_model('authz', 'UserRole')
    for role in Role.objects.filter(name__in=ROLE_NAMES):
        if not UserRole.objects.filter(role=role).exists():
            role.delete()


class Migration(migrations.Migration):

    dependencies = [
        ('authz', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(create_roles, delete_unused_roles),
    ]
