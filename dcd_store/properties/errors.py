"""
Property Store Errors

Catalog-level failures abort the call and propagate unchanged. Malformed
value rows are never raised; they are counted in the ingestion report.
"""

from typing import Optional


class PropertyStoreError(Exception):
    """Base class for all property store failures"""
    
    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class NotFoundError(PropertyStoreError):
    """Unknown property or entity id"""
    pass


class ConflictError(PropertyStoreError):
    """A property with the same id already exists"""
    pass


class SchemaError(PropertyStoreError):
    """Unsupported dimension count, or backend lacking the type's schema"""
    pass


class BackendUnavailableError(PropertyStoreError):
    """Connection or transport failure talking to a backend"""
    pass


class InvalidQueryError(PropertyStoreError, ValueError):
    """Rejected read parameters (aggregate function, fill policy, interval)"""
    pass
