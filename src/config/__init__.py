from .settings import settings
from .database import async_session_maker, async_session_manager, create_engine, engine
from .table_names import TableNames

__all__ = [
    "settings",
    "create_engine",
    "engine",
    "async_session_maker",
    "async_session_manager",
    "TableNames",
]
