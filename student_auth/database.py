from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from student_auth.core.config import Settings


Base = declarative_base()


def build_engine(settings: Settings) -> Engine:
    url = settings.database_url
    kwargs: dict = {"echo": settings.sql_echo, "pool_pre_ping": True}

    if url.startswith("sqlite"):
        # sqlite honours `timeout` as its busy-wait on locked databases.
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.request_timeout_seconds,
        }
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_timeout"] = settings.request_timeout_seconds

    return create_engine(url, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )


def init_schema(engine: Engine) -> None:
    # Registers the users table on Base.metadata.
    from student_auth.models import user  # noqa: F401

    Base.metadata.create_all(bind=engine)
