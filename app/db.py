"""Release Manager Pipeline - Database engine and session management.

SQLAlchemy sync engine/session factory for SQLite.
"""

from __future__ import annotations

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from app.config import DB_PATH
from app.models import Base, UploadJob, UploadJobStatus, UploadJobType


def get_database_url(db_path: str | None = None) -> str:
    """Get SQLite database URL.

    Args:
        db_path: Optional path override. Defaults to config.DB_PATH.

    Returns:
        SQLite connection URL string.
    """
    path = db_path if db_path is not None else DB_PATH
    return f"sqlite:///{path}"


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_path: str | None = None, echo: bool = False) -> Engine:
    """Create SQLAlchemy engine.

    Args:
        db_path: Optional path override for the database file.
        echo: If True, log all SQL statements.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = get_database_url(db_path)
    engine = create_engine(
        url,
        echo=echo,
        # Both schedulers and the API run on separate threads. Each unit of work
        # gets its own session (see create_session_factory); connections are
        # never shared between threads. The busy timeout absorbs short write
        # contention between the two schedulers.
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the given engine.

    Args:
        engine: SQLAlchemy Engine instance.

    Returns:
        Configured sessionmaker.
    """
    # - autoflush=False: explicit flush control
    # - expire_on_commit=False: records stay readable after commit, so a job
    #   snapshot taken at poll time can still be handed to the failure handler
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(db_path: str | None = None, echo: bool = False) -> tuple[Engine, sessionmaker]:
    """Initialize the database: create engine, session factory, and all tables.

    This is idempotent - safe to call multiple times.

    Args:
        db_path: Optional path override for the database file.
        echo: If True, log all SQL statements.

    Returns:
        Tuple of (engine, SessionFactory).
    """
    if db_path is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)

    engine = create_db_engine(db_path, echo=echo)
    SessionFactory = create_session_factory(engine)

    # Create all tables (idempotent via checkfirst=True default)
    Base.metadata.create_all(engine)

    return engine, SessionFactory


# --- UploadJob Creation Primitive ---


def create_upload_job(
    session: Session,
    target_entity_id: str,
    job_type: UploadJobType | str,
    local_path: str,
    job_id: str | None = None,
) -> UploadJob:
    """Create a new PENDING UploadJob.

    Note:
        This function does NOT commit the transaction. It calls session.flush()
        to assign the row but leaves commit responsibility to the caller.

    Args:
        session: Active database session.
        target_entity_id: Track id (AUDIO) or Release id (COVER_ART).
        job_type: UploadJobType value.
        local_path: Path of the staged file to upload.
        job_id: Optional explicit job id (defaults to a new uuid hex).

    Returns:
        The created UploadJob (flushed but not committed).
    """
    job = UploadJob(
        target_entity_id=target_entity_id,
        job_type=UploadJobType(job_type),
        local_path=str(local_path),
        status=UploadJobStatus.PENDING,
        retry_count=0,
    )
    if job_id is not None:
        job.id = job_id
    session.add(job)
    session.flush()
    return job
