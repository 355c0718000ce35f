"""
Management command to fill `assessment_name` on legacy mark records from
their `assessment_key` and `test_key` ("FA1" + "Tool 1" -> "FA1-Tool 1").

Records whose backfilled name would duplicate an existing record are
reported and left unchanged.
"""
import logging

from django.core.management.base import BaseCommand
from django.db import transaction
from django.db.models import Q

from gradebook.matching import compose_assessment_name
from gradebook.models import MarkRecord

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Backfill assessment names on mark records saved before names existed'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be done without making changes',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        prefix = '[DRY RUN] ' if dry_run else ''

        legacy = MarkRecord.objects.filter(
            Q(assessment_name__isnull=True) | Q(assessment_name=''),
        ).exclude(assessment_key='').exclude(test_key='').order_by('created_at', 'id')

        updated = 0
        skipped = 0
        with transaction.atomic():
            for record in legacy:
                name = compose_assessment_name(record.assessment_key.strip(), record.test_key.strip())
                clash = MarkRecord.objects.filter(
                    school_id=record.school_id,
                    school_class_id=record.school_class_id,
                    student_id=record.student_id,
                    subject_name=record.subject_name,
                    academic_year=record.academic_year,
                    assessment_name=name,
                ).exclude(pk=record.pk).exists()
                if clash:
                    skipped += 1
                    logger.warning(f"Record {record.pk}: '{name}' already exists, not backfilled")
                    continue

                updated += 1
                if not dry_run:
                    # update() keeps updated_at so recency ordering is unchanged
                    MarkRecord.objects.filter(pk=record.pk).update(assessment_name=name)

        if skipped:
            self.stdout.write(self.style.WARNING(f'  {skipped} record(s) skipped: name already taken'))
        self.stdout.write(self.style.SUCCESS(
            f'{prefix}Backfill completed. Updated {updated} record(s).'
        ))
