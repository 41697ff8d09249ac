"""
BaseService -- abstract base for kernel services.

Services receive the caller's ``Session`` and persist with
``session.flush()``.  They never commit or roll back the caller's
transaction: the API layer (or ``session_scope()``) owns the commit point,
so several service calls compose into one atomic unit.  Where a single
operation must be all-or-nothing on its own (posting, reversal), the
service wraps it in a SAVEPOINT via ``session.begin_nested()``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from consolidation_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Abstract base class for kernel services."""

    def __init__(self, session: Session):
        self.session = session
