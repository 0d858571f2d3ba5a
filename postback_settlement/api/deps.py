"""
Dependencies for authentication, database sessions, and settlement collaborators.
"""
from typing import Callable, Generator
from fastapi import Depends, HTTPException, status, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from postback_settlement import database
from postback_settlement.models.db import User
from postback_settlement.models.db.enums import UserRole
from postback_settlement.services.postback_notifier import PostbackNotifier
from postback_settlement.services.settlement_engine import SettlementEngine
from postback_settlement.utils import get_logger

logger = get_logger(__name__)
security = HTTPBearer()

def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = database.SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()

def get_session_factory() -> Callable[[], Session]:
    """Session factory handed to the settlement engine (one session per run)."""
    return database.SessionLocal

def get_notifier() -> PostbackNotifier:
    return PostbackNotifier()

def get_settlement_engine(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    notifier: PostbackNotifier = Depends(get_notifier),
) -> SettlementEngine:
    return SettlementEngine(session_factory, notifier)

def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Extract and validate user from API key.

    Raises:
        HTTPException: If API key is invalid or user is inactive
    """
    api_key = credentials.credentials

    user = db.query(User).filter(
        User.api_key == api_key,
        User.is_active == True  # noqa: E712
    ).first()

    if not user:
        logger.warning(
            "Authentication failed: invalid or inactive API key",
            api_key_prefix=api_key[:10] + "..." if len(api_key) > 10 else api_key
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or inactive API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info(
        "User authenticated successfully",
        user_id=user.id,
        user_name=user.name,
        user_role=user.role.value
    )
    return user

def require_admin(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Dependency that requires ADMIN role.

    Raises:
        HTTPException: If user is not an admin
    """
    if current_user.role != UserRole.ADMIN:
        logger.warning(
            "Access denied: admin required",
            user_id=current_user.id,
            user_role=current_user.role.value
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user

def verify_cron_caller(
    user_agent: str | None = Header(None, alias="User-Agent")
) -> bool:
    """
    Accept only platform cron invocations, identified by their User-Agent.
    Rejected before any settlement work (or audit write) happens.
    """
    from postback_settlement import config

    expected = config.CRON_USER_AGENT
    if user_agent != expected:
        logger.warning("Cron call rejected: unexpected caller", user_agent=user_agent)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - Not a platform cron request"
        )
    return True
