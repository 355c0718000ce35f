"""
Management command to report mark records that share a key apart from the
subject, i.e. the same assessment saved under several subject keys. These
usually point at unmigrated legacy subject identifiers.
"""
from django.core.management.base import BaseCommand, CommandError

from gradebook.stores import DjangoRecordStore
from schools.models import School


class Command(BaseCommand):
    help = 'List mark records whose key collides across subjects'

    def add_arguments(self, parser):
        parser.add_argument('--school', type=str, required=True, help='School code')
        parser.add_argument('--limit', type=int, default=50, help='Maximum collisions to list')

    def handle(self, *args, **options):
        try:
            school = School.objects.get(code=options['school'])
        except School.DoesNotExist:
            raise CommandError(f"School '{options['school']}' not found")

        duplicates = DjangoRecordStore().find_duplicate_marks(school.pk, limit=options['limit'])
        if not duplicates:
            self.stdout.write(self.style.SUCCESS('No duplicate mark keys found.'))
            return

        for dup in duplicates:
            self.stdout.write(
                f"  student {dup['student_id']} / class {dup['school_class_id']} / "
                f"{dup['assessment_name']} ({dup['academic_year']}): "
                f"{dup['count']} records across {', '.join(dup['subjects'])}"
            )
        self.stdout.write(self.style.WARNING(f'{len(duplicates)} duplicate key(s) found.'))
