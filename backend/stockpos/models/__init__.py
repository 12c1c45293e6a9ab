from .documents import Document
from .auth import SessionToken

__all__ = [
    'Document',
    'SessionToken',
]
