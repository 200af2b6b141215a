"""
Library Lending package.

The inventory and lending consistency engine of a library: book copy
counts, loans, reservations, fines and reader credit kept mutually
consistent under concurrent borrow, return, renew and reservation
requests.

Key Components:
- lending: borrow, return and renew (the Lending Engine)
- reservations: create, cancel and fulfill reservations
- credit: reader standing and arrears (the Credit Ledger)
- policy: hot-reloadable lending limits and fine rates
- database: SQLAlchemy schema, sessions and repositories
- tools / server: the FastMCP service surface
"""

__version__ = "0.1.0"

from .errors import ErrorKind, LendingError
from .services import LibraryServices

__all__ = [
    "ErrorKind",
    "LendingError",
    "LibraryServices",
    "__version__",
]
