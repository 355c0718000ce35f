"""
Management command to rewrite legacy subject keys on mark records.

Older records store an opaque subject identifier instead of the subject
name. Keys owned by exactly one roster subject are rewritten; ambiguous,
unmatched and colliding records are reported and left unchanged.

Usage:
    python manage.py migrate_subject_keys --school=demo --dry-run
    python manage.py migrate_subject_keys            # every school
"""
import logging

from django.core.management.base import BaseCommand, CommandError

from gradebook.subject_keys import migrate_subject_keys
from schools.models import School

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Rewrite legacy subject identifiers on mark records to canonical subject names'

    def add_arguments(self, parser):
        parser.add_argument(
            '--school',
            type=str,
            help='School code to migrate (default: all schools)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be done without making changes',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            help='Records per transaction',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        prefix = '[DRY RUN] ' if dry_run else ''

        schools = School.objects.all()
        if options.get('school'):
            schools = schools.filter(code=options['school'])
            if not schools.exists():
                raise CommandError(f"School '{options['school']}' not found")

        total_affected = 0
        for school in schools:
            self.stdout.write(f'\nProcessing school: {school.name} ({school.code})')
            result = migrate_subject_keys(
                school.pk, dry_run=dry_run, batch_size=options.get('batch_size')
            )
            total_affected += result.affected

            self.stdout.write(
                f'  {prefix}Scanned {result.scanned}, rewritten {result.affected}, '
                f'unchanged {result.unchanged}'
            )
            for reason, count in (
                ('ambiguous', result.ambiguous),
                ('unmatched', result.unmatched),
                ('conflict', result.conflicts),
            ):
                if count:
                    values = ', '.join(sorted(result.flagged_values[reason]))
                    self.stdout.write(self.style.WARNING(
                        f'  {count} {reason} record(s) left unchanged: {values}'
                    ))

        self.stdout.write('')
        self.stdout.write(self.style.SUCCESS(
            f'{prefix}Subject-key migration complete: {total_affected} record(s) rewritten'
        ))
