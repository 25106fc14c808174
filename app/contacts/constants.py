"""
Constants for contact book operations.

Import example:
    from contacts.constants import CONTACT_CONFIG
"""

from typing import Final


class CONTACT_CONFIG:
    """Configuration for contact search."""

    SEARCH_MIN_QUERY_LENGTH: Final[int] = 2
    SEARCH_MAX_RESULTS: Final[int] = 20
    MAX_NAME_LENGTH: Final[int] = 100
