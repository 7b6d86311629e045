"""Notifications app package.

Persists notification requests raised by booking and payment events and
hands them to an external delivery endpoint through Celery.
"""
