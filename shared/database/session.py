"""Database sessions"""
from shared.database.connection import get_db

__all__ = ["get_db"]
