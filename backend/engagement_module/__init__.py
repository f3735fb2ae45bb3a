import logging

from sqlalchemy.orm import Session

from .config import settings
from .database import Base, engine
from .realtime import feed, stream_updates
from .routes import router
from .user_service import seed_demo_users


logger = logging.getLogger(__name__)


def init_engagement_module() -> None:
    Base.metadata.create_all(bind=engine)
    if not settings.seed_demo_users:
        return
    db = Session(bind=engine)
    try:
        seed_demo_users(db)
    finally:
        db.close()
    logger.info("Demo users seeded")


__all__ = ["feed", "init_engagement_module", "router", "stream_updates"]
