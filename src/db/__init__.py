from src.db.database import async_session_maker, get_db, init_db, worker_session

__all__ = ["async_session_maker", "get_db", "init_db", "worker_session"]
