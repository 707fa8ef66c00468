from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from apps.clinical.models import Appointment
from apps.clinical.scheduling import overlapping_pairs
from apps.core import clock


class Command(BaseCommand):
    help = 'Report pairs of overlapping non-cancelled appointments (from --from, default today).'

    def add_arguments(self, parser):
        parser.add_argument('--from', dest='start', help='First date to check (YYYY-MM-DD)')
        parser.add_argument('--fail', action='store_true', help='Exit with an error if overlaps are found')

    def handle(self, *args, **options):
        start = clock.now().date()
        if options['start']:
            start = parse_date(options['start'])
            if start is None:
                raise CommandError('--from must use the YYYY-MM-DD format')

        self.stdout.write(self.style.NOTICE(f'Checking appointments from {start}...'))
        appointments = Appointment.objects.filter(date__gte=start).order_by('date', 'time')
        pairs = overlapping_pairs(appointments)

        for first, second in pairs:
            self.stdout.write(self.style.WARNING(
                f'{first.date}: {first.time:%H:%M}+{first.duration_minutes}m ({first.id}) '
                f'overlaps {second.time:%H:%M}+{second.duration_minutes}m ({second.id})'
            ))

        if pairs and options['fail']:
            raise CommandError(f'{len(pairs)} overlapping pair(s) found')
        self.stdout.write(self.style.SUCCESS(f'Checked: {appointments.count()}, overlaps: {len(pairs)}'))
