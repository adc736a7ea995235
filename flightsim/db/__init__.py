# Database module
from .engine import get_engine, get_session, session_scope, init_db, SessionLocal, Base

__all__ = ["get_engine", "get_session", "session_scope", "init_db", "SessionLocal", "Base"]
