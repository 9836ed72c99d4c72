from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings

settings = get_settings()


def use_immediate_transactions(sqlite_engine: Engine) -> Engine:
    """Make every SQLite transaction take the write lock at BEGIN.

    SQLite ignores ``FOR UPDATE`` and pysqlite defers BEGIN until the first
    write, so two check-then-insert transactions could both pass their reads.
    With ``BEGIN IMMEDIATE`` the second writer waits until the first commits.
    """

    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin_immediate(connection) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


is_sqlite = settings.database_url.startswith("sqlite")
connect_args = {"check_same_thread": False} if is_sqlite else {}

engine = create_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
    connect_args=connect_args,
)
if is_sqlite:
    use_immediate_transactions(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
