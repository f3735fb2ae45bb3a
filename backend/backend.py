from contextlib import asynccontextmanager
from datetime import datetime
import logging
import os

from fastapi import Depends, FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.orm import Session

# Configure Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

from dotenv import load_dotenv
# Load .env from the script's directory before the engagement settings are read
env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(dotenv_path=env_path, override=True)

try:
    from backend.engagement_module import init_engagement_module, router as engagement_router, stream_updates
    from backend.engagement_module.config import settings
    from backend.engagement_module.database import get_db_session
    from backend.engagement_module.middleware import resolve_user
except ImportError:
    from engagement_module import init_engagement_module, router as engagement_router, stream_updates
    from engagement_module.config import settings
    from engagement_module.database import get_db_session
    from engagement_module.middleware import resolve_user


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    try:
        logger.info("Initializing engagement store...")
        init_engagement_module()
        logger.info("Engagement store initialized.")
    except Exception as e:
        logger.error(f"Startup engagement store error: {e}")
    yield
    logger.info("Shutting down...")


app = FastAPI(title="Parent-Teacher Engagement API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(settings.upload_dir, exist_ok=True)
app.mount("/static/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")
app.include_router(engagement_router)


@app.get("/api/health")
def health_check(db: Session = Depends(get_db_session)):
    """Health check endpoint to verify the backend and its store are reachable"""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    return {
        "status": "healthy",
        "message": "Engagement backend is running",
        "database": db_status,
        "timestamp": datetime.now().isoformat(),
    }


@app.websocket("/ws/updates")
async def updates_socket(websocket: WebSocket, user_id: str = "", db: Session = Depends(get_db_session)):
    try:
        resolve_user(db, user_id)
    except HTTPException as exc:
        logger.warning(f"Rejected realtime subscriber {user_id!r}: {exc.detail}")
        await websocket.close(code=1008)
        return
    finally:
        # The stream can stay open for hours; it must not pin a pooled connection.
        db.close()
    await stream_updates(websocket, user_id)


if __name__ == "__main__":
    import uvicorn
    backend_host = os.getenv("BACKEND_HOST", "127.0.0.1")
    backend_port = int(os.getenv("BACKEND_PORT", "8000"))
    uvicorn.run(app, host=backend_host, port=backend_port)
