"""
Notification module for the Profile Migration Assistant.
"""

from .mailer import EmailNotifier

__all__ = [
    "EmailNotifier",
]
