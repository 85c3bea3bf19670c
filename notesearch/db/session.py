import os
from urllib.parse import quote_plus

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from notesearch.config import settings

# Build DATABASE_URL from environment variables if not provided directly
DATABASE_URL = settings.DATABASE_URL
if not DATABASE_URL:
    POSTGRES_USER = os.getenv("POSTGRES_USER", "YourUser")
    POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "YourPassword")
    POSTGRES_DB = os.getenv("POSTGRES_DB", "YourDatabase")
    DB_HOST = os.getenv("DB_HOST", "db")  # Use 'db' for Docker, 'localhost' for local dev

    # URL encode the password to handle special characters
    encoded_password = quote_plus(POSTGRES_PASSWORD)

    DATABASE_URL = f"postgresql://{POSTGRES_USER}:{encoded_password}@{DB_HOST}:5432/{POSTGRES_DB}"

if DATABASE_URL.startswith("sqlite"):
    # Single shared connection so in-memory databases outlive each session
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
