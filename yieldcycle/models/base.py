"""
Declarative base.

Shared SQLAlchemy base class for all ledger core models.
"""

from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models."""

    pass
