"""
contactkit - typed primitives over a personal contacts store

Find, Get, Upsert, Mutate and Groups with verified group-membership writes.
"""

from contactkit.client import ContactsClient
from contactkit.core.errors import ContactsError, ErrorCode

__version__ = "0.1.0"

__all__ = ["ContactsClient", "ContactsError", "ErrorCode", "__version__"]
