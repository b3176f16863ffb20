# accounting/exceptions.py
"""
Errors raised by the ledger.

Validation failures use django.core.exceptions.ValidationError, like the
rest of the model layer. Storage failures are the ORM's own DatabaseError
subclasses and are never wrapped.
"""

from django.db import DatabaseError


class LedgerError(Exception):
    """Base class for ledger failures."""
    pass


class ReferenceResolutionError(LedgerError):
    """
    The entry or sub-account a line points at could not be loaded.

    Attributes:
        model: Name of the model that failed to resolve
        pk: Primary key that was looked up
    """

    def __init__(self, model: str, pk):
        self.model = model
        self.pk = pk
        super().__init__(f"{model} {pk} not found.")


# Storage failures propagate as the ORM raises them.
PersistenceError = DatabaseError
