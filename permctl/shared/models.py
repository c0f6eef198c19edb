"""
Core data models for permctl.

This module defines the data structures shared by the token store, the
context resolver and the command line.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Any


REDACTED_SECRET = "<redacted>"


@dataclass
class Token:
    """
    An API token and all of its metadata.

    The secret is excluded from repr() so tokens can be logged safely.
    """
    system: str
    endpoint: str
    prefix: str = ""
    secret: str = field(default="", repr=False)

    def redacted(self) -> "Token":
        """Return a copy whose secret is replaced by the placeholder."""
        return replace(self, secret=REDACTED_SECRET)

    def to_dict(self, reveal: bool = False) -> Dict[str, Any]:
        """Convert to dictionary for output, redacting unless asked not to."""
        return {
            'system': self.system,
            'endpoint': self.endpoint,
            'prefix': self.prefix,
            'secret': self.secret if reveal else REDACTED_SECRET,
        }
