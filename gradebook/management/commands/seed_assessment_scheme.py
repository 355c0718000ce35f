"""
Management command to create the standard CCE assessment scheme for a class:
FA1-FA4 (Tool 1-4, 50 marks each) and SA1-SA2 (AS1-AS6).

Usage:
    python manage.py seed_assessment_scheme --school=demo --class-name="Class 10" --year=2024-2025
"""
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from gradebook.exceptions import SchemeLocked
from gradebook.models import AssessmentGroup, AssessmentScheme, TestComponent
from gradebook.schemes import STANDARD_SCHEME
from schools.models import School


class Command(BaseCommand):
    help = 'Seed the standard FA1-FA4 / SA1-SA2 assessment scheme for a class and year'

    def add_arguments(self, parser):
        parser.add_argument('--school', type=str, required=True, help='School code')
        parser.add_argument('--class-name', type=str, required=True, help='Class name, e.g. "Class 10"')
        parser.add_argument('--year', type=str, required=True, help='Academic year, e.g. 2024-2025')
        parser.add_argument(
            '--force',
            action='store_true',
            help='Replace an existing scheme (refused once marks exist)',
        )

    def handle(self, *args, **options):
        try:
            school = School.objects.get(code=options['school'])
        except School.DoesNotExist:
            raise CommandError(f"School '{options['school']}' not found")

        class_name = options['class_name']
        year = options['year']

        try:
            with transaction.atomic():
                scheme, created = AssessmentScheme.objects.get_or_create(
                    school=school, class_name=class_name, academic_year=year
                )
                if not created:
                    if not options['force']:
                        self.stdout.write(
                            f'Scheme for {class_name} ({year}) already exists. Use --force to overwrite.'
                        )
                        return
                    for group in scheme.groups.all():
                        group.delete()

                for group_order, (group_name, group_type, tests) in enumerate(STANDARD_SCHEME):
                    group = AssessmentGroup.objects.create(
                        scheme=scheme,
                        group_name=group_name,
                        group_type=group_type,
                        order=group_order,
                    )
                    for test_order, (test_name, max_marks) in enumerate(tests):
                        TestComponent.objects.create(
                            group=group,
                            test_name=test_name,
                            max_marks=max_marks,
                            order=test_order,
                        )
        except SchemeLocked as e:
            raise CommandError(e.messages[0])

        self.stdout.write(self.style.SUCCESS(
            f'Successfully seeded assessment scheme for {class_name} ({year}): '
            f'{len(STANDARD_SCHEME)} groups'
        ))
