import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('schools', '0001_initial'),
        ('academics', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='AssessmentScheme',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('class_name', models.CharField(help_text='Class the scheme applies to (e.g., Class 10)', max_length=50)),
                ('academic_year', models.CharField(help_text='e.g., 2024-2025', max_length=9)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('school', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assessment_schemes', to='schools.school')),
            ],
            options={
                'verbose_name': 'Assessment Scheme',
                'verbose_name_plural': 'Assessment Schemes',
                'db_table': 'assessment_scheme',
                'ordering': ['school', 'academic_year', 'class_name'],
                'unique_together': {('school', 'class_name', 'academic_year')},
            },
        ),
        migrations.CreateModel(
            name='AssessmentGroup',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('group_name', models.CharField(help_text='Period name used in mark records (e.g., FA1, SA1)', max_length=50)),
                ('group_type', models.CharField(choices=[('formative', 'Formative'), ('summative', 'Summative')], max_length=10)),
                ('order', models.PositiveSmallIntegerField(default=0)),
                ('scheme', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='groups', to='gradebook.assessmentscheme')),
            ],
            options={
                'db_table': 'assessment_group',
                'ordering': ['order', 'group_name'],
                'unique_together': {('scheme', 'group_name')},
            },
        ),
        migrations.CreateModel(
            name='TestComponent',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('test_name', models.CharField(max_length=50)),
                ('max_marks', models.DecimalField(decimal_places=2, help_text='Maximum marks available for this test', max_digits=6, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('order', models.PositiveSmallIntegerField(default=0)),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tests', to='gradebook.assessmentgroup')),
            ],
            options={
                'db_table': 'test_component',
                'ordering': ['order', 'test_name'],
                'unique_together': {('group', 'test_name')},
            },
        ),
        migrations.CreateModel(
            name='MarkRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('student_id', models.CharField(max_length=64)),
                ('subject_name', models.CharField(max_length=100)),
                ('academic_year', models.CharField(max_length=9)),
                ('assessment_name', models.CharField(blank=True, max_length=120, null=True)),
                ('assessment_key', models.CharField(blank=True, max_length=50)),
                ('test_key', models.CharField(blank=True, max_length=50)),
                ('marks_obtained', models.DecimalField(decimal_places=2, max_digits=6, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('max_marks', models.DecimalField(decimal_places=2, help_text='Test maximum at the time of entry', max_digits=6, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('marked_by', models.CharField(blank=True, max_length=64)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('school', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='mark_records', to='schools.school')),
                ('school_class', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='mark_records', to='academics.schoolclass')),
            ],
            options={
                'db_table': 'mark_record',
                'ordering': ['student_id', 'subject_name', 'assessment_name'],
                'indexes': [
                    models.Index(fields=['school', 'student_id', 'academic_year'], name='mark_student_year_idx'),
                    models.Index(fields=['school_class', 'subject_name', 'academic_year'], name='mark_class_subject_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('student_id', 'school_class', 'subject_name', 'assessment_name', 'academic_year', 'school'), name='unique_mark_record'),
                ],
            },
        ),
        migrations.CreateModel(
            name='MarksEntryLock',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('academic_year', models.CharField(max_length=9)),
                ('group_name', models.CharField(max_length=50)),
                ('is_locked', models.BooleanField(default=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('school', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='marks_entry_locks', to='schools.school')),
            ],
            options={
                'db_table': 'marks_entry_lock',
                'ordering': ['academic_year', 'group_name'],
                'unique_together': {('school', 'academic_year', 'group_name')},
            },
        ),
    ]
