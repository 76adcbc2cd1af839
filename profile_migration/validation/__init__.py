"""
Validation module for the Profile Migration Assistant.

Provides reachability probing of client hosts.
"""

from .connectivity import ConnectivityCheck, LivenessGate, ValidationResult, check_network_connectivity

__all__ = [
    "ConnectivityCheck",
    "LivenessGate",
    "ValidationResult",
    "check_network_connectivity",
]
