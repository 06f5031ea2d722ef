"""
Core Configuration Logic
========================

This package contains the business logic of the configuration subsystem:
the per-user configuration session, credential obfuscation, catalog
synchronization, model classification and rotation, and rating aggregation.
"""
