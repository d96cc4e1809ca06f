"""Persistence for appointments and schedules.

The pipeline depends on the protocols in ``booking.stores.base``; the Redis
and SQLAlchemy classes here are the production implementations.
"""
