from django.test import TestCase

from schools.models import School


class SchoolModelTest(TestCase):
    """Tests for the School model."""

    def test_display_name(self):
        """Test short_name is preferred when set."""
        school = School.objects.create(name='Demo High School', short_name='DHS', code='demo')
        self.assertEqual(school.display_name, 'DHS')

    def test_display_name_fallback(self):
        """Test the full name is used without a short name."""
        school = School.objects.create(name='Demo High School', code='demo')
        self.assertEqual(school.display_name, 'Demo High School')
        self.assertEqual(school.second_language_subject, '')
