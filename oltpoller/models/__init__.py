"""
SQLAlchemy models for the OLT polling server.
All models must be imported here so Base.metadata sees every table.
"""

from .base import Base
from .olt import Olt
from .onu import Onu
from .alert import Alert

__all__ = [
    "Base",
    "Olt",
    "Onu",
    "Alert",
]
