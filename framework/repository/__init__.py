"""
Repositories and the unit of work shared by the library, billing and account services.
"""

from .base import BaseRepository, IRepository
from .unit_of_work import UnitOfWork

__all__ = ["BaseRepository", "IRepository", "UnitOfWork"]
