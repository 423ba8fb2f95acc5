"""
debate_engine/orm/base.py
Declarative base shared by all ORM models
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def enum_value(value) -> Optional[str]:
    return value.value if value is not None else None
