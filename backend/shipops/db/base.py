"""
SQLAlchemy declarative base

Every model imports Base from here so metadata.create_all() sees all tables.
"""
from sqlalchemy.orm import declarative_base

Base = declarative_base()
