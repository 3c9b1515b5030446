from threading import Lock

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from booking_backend.core import config
from booking_backend.scheduling.status import BUSY_STATUSES


BOOKING_OVERLAP_CONSTRAINT = 'bookings_no_overlap'


def _serialize_sqlite_writes(engine: Engine) -> None:
    # pysqlite opens transactions lazily; take the write lock up front instead so
    # the overlap re-check and the insert run under one exclusive writer.
    @event.listens_for(engine, 'connect')
    def _disable_driver_transactions(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _begin_immediate(connection):
        connection.exec_driver_sql('BEGIN IMMEDIATE')


def create_store_engine(
    database_url: str,
    timeout_seconds: float = config.STORE_TIMEOUT_SECONDS,
    echo: bool = False,
) -> Engine:
    backend = make_url(database_url).get_backend_name()

    if backend == 'sqlite':
        store_engine = create_engine(
            database_url,
            echo=echo,
            connect_args={'timeout': timeout_seconds, 'check_same_thread': False},
        )
        _serialize_sqlite_writes(store_engine)
        return store_engine

    connect_args = {}
    if backend == 'postgresql':
        connect_args = {
            'connect_timeout': max(1, int(timeout_seconds)),
            'options': f'-c statement_timeout={int(timeout_seconds * 1000)}',
        }

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_timeout=timeout_seconds,
        connect_args=connect_args,
    )


engine = create_store_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False


def _busy_status_sql() -> str:
    return ', '.join(f"'{status}'" for status in sorted(BUSY_STATUSES))


def ensure_booking_schema(bind: Engine | None = None) -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    bind = bind or engine

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(bind)

        if 'bookings' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        with bind.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_service_start ON bookings(service_id, starts_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_status_start ON bookings(status, starts_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_availability_service_weekday ON availability(service_id, weekday)')
            )

            if bind.dialect.name == 'postgresql':
                connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
                constraint_exists = connection.execute(
                    text('SELECT 1 FROM pg_constraint WHERE conname = :name'),
                    {'name': BOOKING_OVERLAP_CONSTRAINT},
                ).first()
                if not constraint_exists:
                    connection.execute(
                        text(
                            f'ALTER TABLE bookings ADD CONSTRAINT {BOOKING_OVERLAP_CONSTRAINT} '
                            'EXCLUDE USING gist ('
                            'service_id WITH =, '
                            "tstzrange(starts_at, ends_at, '[)') WITH &&"
                            f') WHERE (status IN ({_busy_status_sql()}))'
                        )
                    )

        _booking_schema_checked = True
