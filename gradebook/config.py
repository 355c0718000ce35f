"""
Configuration settings for the gradebook app.

These values can be overridden in Django settings by prefixing with GRADEBOOK_.
For example, to change the attendance pass mark:
    GRADEBOOK_ATTENDANCE_PASS_PERCENTAGE = 50

All configuration values are lazily loaded to avoid Django setup issues.
"""


def _get_setting(name, default):
    """Get a gradebook setting from Django settings or use default."""
    from django.conf import settings
    return getattr(settings, f'GRADEBOOK_{name}', default)


# Define defaults as constants for direct use when Django settings are not needed
_DEFAULTS = {
    # Composite score rules
    'FORMATIVE_CEILING': 200,  # FA1-FA4 pooled marks
    'INTERNAL_DIVISOR': 10,  # 200 -> 20 internal marks
    'EXTERNAL_MARKS': 80,  # SA2 scaled to 80
    'FORMATIVE_PERIODS_FOR_AVERAGE': 4,
    'SUMMATIVE1_DISPLAY_MARKS': 50,
    'COMPOSITE_MAX': 100,

    # Attendance
    'ATTENDANCE_MONTHS': 11,  # June..April
    'ATTENDANCE_PASS_PERCENTAGE': 45,

    # Bulk operation settings
    'MIGRATION_BATCH_SIZE': 500,

    # Celery task settings
    'TASK_MAX_RETRIES': 3,
    'TASK_RETRY_DELAY': 60,  # seconds
    'BULK_TASK_SOFT_TIME_LIMIT': 600,
    'BULK_TASK_TIME_LIMIT': 660,
}


class _ConfigProxy:
    """
    Lazy configuration proxy that loads settings only when accessed.
    This avoids Django setup issues during module import.
    """

    def __getattr__(self, name):
        if name in _DEFAULTS:
            return _get_setting(name, _DEFAULTS[name])
        raise AttributeError(f"Unknown config setting: {name}")


# Module-level proxy object for attribute access
_config = _ConfigProxy()


def __getattr__(name):
    """Enable module-level attribute access via the config proxy."""
    return getattr(_config, name)
