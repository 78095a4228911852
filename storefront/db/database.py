"""Database connection and session management"""
from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator, Optional
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def _use_immediate_transactions(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.
    
    SQLite has no SELECT ... FOR UPDATE; BEGIN IMMEDIATE gives the same
    serialization for the stock check, a second writer waits on the lock
    instead of reading a stale quantity.
    """
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
    
    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Engine and session factory with an explicit open/close lifecycle"""
    
    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        lock_timeout: float = 10.0,
        echo: bool = False
    ):
        self.database_url = database_url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.lock_timeout = lock_timeout
        self.echo = echo
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
    
    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")
    
    def open(self) -> Engine:
        """Create the engine and session factory"""
        logger.info("Initializing database connection")
        
        if self.is_sqlite:
            engine = create_engine(
                self.database_url,
                connect_args={"check_same_thread": False, "timeout": self.lock_timeout},
                echo=self.echo
            )
            _use_immediate_transactions(engine)
        else:
            connect_args = {}
            if self.database_url.startswith("postgresql"):
                connect_args["options"] = f"-c lock_timeout={int(self.lock_timeout * 1000)}"
            engine = create_engine(
                self.database_url,
                connect_args=connect_args,
                pool_pre_ping=True,
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                echo=self.echo
            )
        
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        logger.info("Database connection initialized")
        
        return engine
    
    def create_tables(self):
        """Create missing tables; existing tables are left as they are"""
        # Register the models on Base.metadata
        from storefront.models import order, product  # noqa: F401
        
        logger.info("Creating database tables")
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created")
    
    def session(self) -> Session:
        if self.SessionLocal is None:
            raise RuntimeError("Database is not open")
        return self.SessionLocal()
    
    def ping(self):
        """Run a trivial query, raises if the database is unreachable"""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    
    def close(self):
        """Dispose of the connection pool"""
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database connection pool disposed")
        self.engine = None
        self.SessionLocal = None


def get_database(request: Request) -> Database:
    """Dependency for the database handle opened in the app lifespan"""
    return request.app.state.database


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency for getting database session"""
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()
