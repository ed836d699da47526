"""
Management command to expire lapsed enrollments.
Run: python manage.py expire_enrollments [--dry-run]
"""
from django.core.management.base import BaseCommand
from django.utils import timezone

from enrollments.models import Enrollment
from enrollments.services import EnrollmentActivator


class Command(BaseCommand):
    help = 'Expire active enrollments whose access window has ended'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List lapsed enrollments without changing them',
        )

    def handle(self, *args, **options):
        if options['dry_run']:
            lapsed = Enrollment.objects.filter(
                status=Enrollment.STATUS_ACTIVE,
                access_end_date__isnull=False,
                access_end_date__lte=timezone.now(),
            ).values_list('pk', flat=True)
            for pk in lapsed:
                self.stdout.write(f'Would expire: {pk}')
            self.stdout.write(self.style.WARNING(f'{len(lapsed)} enrollment(s) would be expired'))
            return

        expired = EnrollmentActivator.expire_lapsed()
        self.stdout.write(self.style.SUCCESS(f'Expired {len(expired)} enrollment(s)'))
