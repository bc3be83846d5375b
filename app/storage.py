import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generator, Union

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.exc import IntegrityError

from app.auth import hash_password, verify_password
from app.config import settings

logger = logging.getLogger(__name__)

# SQLSTATE raised by PostgreSQL drivers for foreign key violations
PG_FOREIGN_KEY_VIOLATION = "23503"
SQLITE_FOREIGN_KEY_VIOLATION = "FOREIGN KEY constraint failed"

# Integer primary keys are signed 64-bit on both SQLite and PostgreSQL
MAX_ROW_ID = 2 ** 63 - 1

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# check_same_thread=False is required for SQLite to work with FastAPI's async
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    echo=False,
)


@event.listens_for(engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ships with foreign key enforcement off per connection
    if _is_sqlite:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


@dataclass(frozen=True)
class ForeignKeyViolation:
    """A write referenced a row that does not exist (e.g. an unknown username)."""
    field: str
    value: str


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {engine.url!r}")
    try:
        # Import models to register them with Base.metadata
        from app.models import User, Message

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and both tables exist, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

        inspector = inspect(engine)
        for table in ("users", "messages"):
            if not inspector.has_table(table):
                logger.error(f"Database schema not applied: '{table}' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    """Tell whether an IntegrityError came from a foreign key constraint."""
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == PG_FOREIGN_KEY_VIOLATION:
        return True
    return SQLITE_FOREIGN_KEY_VIOLATION in str(orig)


# =============================================================================
# User Repository Functions
# =============================================================================

def create_user(
    db: Session,
    username: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: str,
):
    """
    Register a new user with a bcrypt-hashed password.

    Returns:
        The created User, or None if the username is already taken
    """
    from app.models import User

    logger.info(f"Registering user: {username}")

    now = _utcnow()
    user = User(
        username=username,
        password=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        join_at=now,
        last_login_at=now,
    )

    try:
        db.add(user)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Username already taken: {username}")
        return None

    db.refresh(user)
    return user


def get_user(db: Session, username: str):
    """Return the User with this username, or None."""
    from app.models import User

    return db.query(User).filter(User.username == username).first()


def authenticate_user(db: Session, username: str, password: str):
    """
    Check a username/password pair and stamp last_login_at on success.

    Returns:
        The User if the credentials are valid, None otherwise
    """
    user = get_user(db, username)
    if user is None or not verify_password(password, user.password):
        logger.info(f"Authentication failed for user: {username}")
        return None

    user.last_login_at = _utcnow()
    db.commit()
    db.refresh(user)
    logger.info(f"User authenticated: {username}")
    return user


# =============================================================================
# Message Repository Functions
# =============================================================================

def create_message(
    db: Session,
    from_username: str,
    to_username: str,
    body: str,
) -> Union["Message", ForeignKeyViolation]:
    """
    Persist a new message; sent_at is stamped here and read_at left unset.

    Returns:
        The created Message, or a ForeignKeyViolation naming the username
        that does not exist. Other integrity errors are re-raised.
    """
    from app.models import Message

    logger.info(f"Creating message: from={from_username}, to={to_username}")

    message = Message(
        from_username=from_username,
        to_username=to_username,
        body=body,
        sent_at=_utcnow(),
    )

    try:
        db.add(message)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if not is_foreign_key_violation(e):
            raise
        # The engine does not say which key failed; the sender was verified
        # at login, so look at the recipient first.
        if get_user(db, to_username) is None:
            violation = ForeignKeyViolation(field="to_username", value=to_username)
        else:
            violation = ForeignKeyViolation(field="from_username", value=from_username)
        logger.info(f"Message rejected, unknown user: {violation.field}={violation.value}")
        return violation

    db.refresh(message)
    logger.info(f"Message created successfully: {message.id}")
    return message


def get_message(db: Session, message_id: int):
    """
    Retrieve a message with its sender and recipient loaded.

    Returns:
        Message object if found, None otherwise
    """
    from app.models import Message

    logger.info(f"Looking up message by ID: {message_id}")
    if not 0 < message_id <= MAX_ROW_ID:
        logger.info(f"Message ID out of range: {message_id}")
        return None

    result = db.query(Message).filter(Message.id == message_id).first()
    logger.info(f"Message lookup result: {'found' if result else 'not found'}")
    return result


def mark_read(db: Session, message_id: int):
    """
    Stamp read_at on a message.

    A message that is already read keeps its original read_at.

    Returns:
        The updated Message, or None if it does not exist
    """
    message = get_message(db, message_id)
    if message is None:
        return None

    if message.read_at is None:
        message.read_at = _utcnow()
        db.commit()
        db.refresh(message)
        logger.info(f"Message marked read: {message_id}")
    else:
        logger.debug(f"Message already read: {message_id}")

    return message
