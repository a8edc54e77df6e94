"""Database setup shared by jobs."""
from sqlalchemy.pool import NullPool

from yieldcycle.config.database import create_engine, create_session_maker


def create_task_engine():
    """Create engine for jobs (no pooling across worker event loops)."""
    return create_engine(poolclass=NullPool)


def create_task_session_maker(engine=None):
    """Create session maker for jobs."""
    if engine is None:
        engine = create_task_engine()
    return create_session_maker(engine)


task_engine = create_task_engine()
task_session_maker = create_task_session_maker(task_engine)
