"""
Legacy Challenge Resource Processor

Consumes challenge resource events from the message bus and keeps the legacy
challenge store in step: resources, registrations, payments, notifications,
forum permissions and the project user audit trail.
"""

__version__ = "0.1.0"
