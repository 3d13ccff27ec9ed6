"""
Satchel faults - structured fault signals.

Errors in Satchel are typed faults carrying a stable code, a domain,
a severity and retry semantics, so collaborators can log and route them
without string matching.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain enumeration
- Severity: Severity levels
"""

from .core import (
    DOMAIN_DEFAULTS,
    Fault,
    FaultDomain,
    Severity,
)

__all__ = [
    "DOMAIN_DEFAULTS",
    "Fault",
    "FaultDomain",
    "Severity",
]
