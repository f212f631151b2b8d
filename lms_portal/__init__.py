"""LMS Portal: attendance, grade and module administration for students and lecturers."""

__version__ = "1.0.0"
