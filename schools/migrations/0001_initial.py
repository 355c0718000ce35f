from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='School',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('short_name', models.CharField(blank=True, help_text='Short name for sidebar display', max_length=20)),
                ('code', models.SlugField(help_text='Unique school code used by batch commands (e.g., demo)', unique=True)),
                ('second_language_subject', models.CharField(blank=True, help_text='Subject graded on the second-language scale (e.g., Hindi). Blank means none.', max_length=100)),
                ('created_on', models.DateField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'school',
                'ordering': ['name'],
            },
        ),
    ]
