"""
Celery worker package
"""
