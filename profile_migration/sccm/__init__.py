"""
Management site integration.

This module provides the client for the ConfigMgr administration
service used to pair devices and follow deployments.
"""

from .client import ManagementClient, AdminServiceClient

__all__ = [
    "ManagementClient",
    "AdminServiceClient",
]
