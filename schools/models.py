from django.db import models


class School(models.Model):
    """
    A school using the gradebook. Schools share one database; every
    school-owned record carries a foreign key to its school.
    """
    # Basic Info
    name = models.CharField(max_length=100)
    short_name = models.CharField(max_length=20, blank=True, help_text="Short name for sidebar display")
    code = models.SlugField(
        max_length=50,
        unique=True,
        help_text="Unique school code used by batch commands (e.g., demo)"
    )

    # Grading
    second_language_subject = models.CharField(
        max_length=100,
        blank=True,
        help_text="Subject graded on the second-language scale (e.g., Hindi). Blank means none."
    )

    # Metadata
    created_on = models.DateField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'school'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def display_name(self):
        """Return short_name if available, otherwise name."""
        return self.short_name or self.name
