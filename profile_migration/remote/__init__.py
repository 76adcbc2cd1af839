"""
Remote host management module.
"""

from .winrm_client import RemoteManager

__all__ = [
    "RemoteManager",
]
