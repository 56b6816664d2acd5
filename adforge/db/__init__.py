"""
Database Package
================

Exports key database components.
"""

from adforge.db.models import (
    Base,
    AgentSession, AgentDecision, AgentKnowledge,
    utcnow,
)
from adforge.db.connection import init_db, close_db, sqlite_url
