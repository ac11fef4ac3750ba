import importlib

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from foodrescue.config import settings
from foodrescue.utils.logging import get_logger

log = get_logger("db")

DATABASE_URL = settings.DATABASE_URL

_connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # placement threads share the file; wait on the write lock instead of failing fast
    _connect_args = {"check_same_thread": False, "timeout": 30}

engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# every module that declares tables; imported before create_all so metadata is complete
MODEL_MODULES = [
    "foodrescue.models.merchant",
    "foodrescue.models.customer",
    "foodrescue.models.product",
    "foodrescue.models.bundle",
    "foodrescue.models.order",
    "foodrescue.models.idempotency",
]


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    With ``reset`` (or RESET_DB in the environment) all tables are dropped and
    recreated, which is what the test suite relies on for a clean database.
    """
    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset or settings.RESET_DB:
        log.info("resetting database schema")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.debug("database initialized (%d tables)", len(Base.metadata.tables))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
