from .base import Base
from .medication import Medication
from .user import User

__all__ = [
    "Base",
    "User",
    "Medication",
]
