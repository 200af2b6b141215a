"""
Database package for the library lending service.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management, transactional scopes and error translation (session.py)
- One repository per table, all sharing the caller's session
- Demo data generation (seed.py)

The lending engine never talks to SQLAlchemy directly except through the
session it is handed by its unit of work and the repositories built on it.
"""

from .book_repository import BookCreateSchema, BookRepository
from .loan_repository import LoanRepository
from .reader_repository import ReaderCreateSchema, ReaderRepository
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .reservation_repository import ReservationRepository
from .schema import Base, Book, LoanRecord, ReaderAccount, Reservation, SystemConfig
from .session import DatabaseManager, safe_query, translate_store_errors

__all__ = [
    "Base",
    "BaseRepository",
    "Book",
    "BookCreateSchema",
    "BookRepository",
    "DatabaseManager",
    "LoanRecord",
    "LoanRepository",
    "PaginatedResponse",
    "PaginationParams",
    "ReaderAccount",
    "ReaderCreateSchema",
    "ReaderRepository",
    "Reservation",
    "ReservationRepository",
    "SystemConfig",
    "safe_query",
    "translate_store_errors",
]
