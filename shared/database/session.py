"""Sesiones de base de datos"""
from shared.database.connection import get_db, get_session_maker

__all__ = ["get_db", "get_session_maker"]
