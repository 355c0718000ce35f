import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('schools', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='SchoolClass',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='e.g., Class 10, Class 9', max_length=50)),
                ('section', models.CharField(blank=True, help_text='A, B, C, etc.', max_length=5)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('school', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='classes', to='schools.school')),
            ],
            options={
                'verbose_name': 'Class',
                'verbose_name_plural': 'Classes',
                'db_table': 'school_class',
                'ordering': ['school', 'name', 'section'],
                'unique_together': {('school', 'name', 'section')},
            },
        ),
        migrations.CreateModel(
            name='ClassSubject',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='e.g., Mathematics, English, Science', max_length=100)),
                ('legacy_key', models.CharField(blank=True, db_index=True, help_text='Identifier stored in older mark records instead of the name', max_length=100)),
                ('paper_names', models.CharField(blank=True, help_text="Comma separated paper names, e.g. 'Physics,Biology'. Blank means paper I, plus II when paper-2 marks exist.", max_length=200)),
                ('order', models.PositiveSmallIntegerField(default=0)),
                ('school_class', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='subjects', to='academics.schoolclass')),
            ],
            options={
                'verbose_name': 'Subject Allocation',
                'verbose_name_plural': 'Subject Allocations',
                'db_table': 'class_subject',
                'ordering': ['order', 'name'],
                'unique_together': {('school_class', 'name')},
            },
        ),
        migrations.CreateModel(
            name='AttendanceMonth',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('student_id', models.CharField(db_index=True, max_length=64)),
                ('academic_year', models.CharField(help_text='e.g., 2024-2025', max_length=9)),
                ('month', models.PositiveSmallIntegerField(choices=[(0, 'June'), (1, 'July'), (2, 'August'), (3, 'September'), (4, 'October'), (5, 'November'), (6, 'December'), (7, 'January'), (8, 'February'), (9, 'March'), (10, 'April'), (11, 'May')])),
                ('working_days', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('present_days', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('school', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='attendance_months', to='schools.school')),
            ],
            options={
                'db_table': 'attendance_month',
                'ordering': ['academic_year', 'month'],
                'unique_together': {('school', 'student_id', 'academic_year', 'month')},
                'indexes': [models.Index(fields=['student_id', 'academic_year'], name='attendance_student_year_idx')],
            },
        ),
    ]
