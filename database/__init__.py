"""
Database package
SQLAlchemy engine, session factory and ORM models
"""

from .database import Base, SessionLocal, engine, get_db

__all__ = ["Base", "SessionLocal", "engine", "get_db"]
