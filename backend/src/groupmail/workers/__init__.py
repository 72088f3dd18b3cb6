"""Celery application for background delivery."""
