import logging
import os
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine, select

logger = logging.getLogger(__name__)

# ============================================================
# DB MODELS
# ============================================================

DEFAULT_DASHBOARD_TITLE = "Printer Dashboard"
DEFAULT_DASHBOARD_SUBTITLE = "A dashboard for a Klipper printer"


class DashboardSettings(SQLModel, table=True):
    """
    Persisted dashboard settings. This backend only reads them; the settings
    editor owns writes.
    """
    id: Optional[int] = Field(default=None, primary_key=True)

    visibility_mode: str = Field(default="public", index=True)
    video_feed_enabled: bool = True
    dashboard_title: str = DEFAULT_DASHBOARD_TITLE
    dashboard_subtitle: str = DEFAULT_DASHBOARD_SUBTITLE

    # Non-owning reference to a Moonraker webcam uid
    selected_camera_uid: Optional[str] = None

    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================
# SETUP
# ============================================================

sqlite_file_name = "printdash.db"
sqlite_url = f"sqlite:///{sqlite_file_name}"

DATABASE_URL = os.getenv("DATABASE_URL", sqlite_url)

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def create_db_and_tables():
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session


def default_dashboard_settings() -> DashboardSettings:
    return DashboardSettings(id=0)


def load_dashboard_settings(session: Session) -> DashboardSettings:
    """
    Newest settings row, or the defaults when the table is empty or the
    database is unavailable. Never raises; camera and status handlers must
    keep working without a database.
    """
    try:
        stmt = select(DashboardSettings).order_by(DashboardSettings.id.desc()).limit(1)
        record = session.exec(stmt).first()
    except SQLAlchemyError as e:
        logger.warning("Failed to load dashboard settings, using defaults: %s", e)
        return default_dashboard_settings()
    return record if record is not None else default_dashboard_settings()
