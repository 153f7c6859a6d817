from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from tictactoe.models import Base
from dotenv import load_dotenv
import os

if not os.getenv("DATABASE_URL"):
    load_dotenv()


def make_engine(url: str):
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)

    # Utilisation conditionnelle de connect_args uniquement pour SQLite
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})

        # SQLite only honours ON DELETE CASCADE with foreign keys switched on
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    return create_engine(url, pool_pre_ping=True)


SQLALCHEMY_DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./tictactoe.db")

engine = make_engine(SQLALCHEMY_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)
