"""N8nConfig model: settings row for the chat assistant webhook."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from portal_tramites.database import Base


class N8nConfig(Base):
    """Connection settings for the external chat workflow.

    Only the first row with ``is_active`` set is used by the chat proxy.
    ``custom_prompts`` holds ``{"system_prompt": ..., "greeting": ...}``.
    """

    __tablename__ = "n8n_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    webhook_url = Column(String(500), nullable=False)
    api_key = Column(String(500), nullable=True)
    timeout_seconds = Column(Integer, default=30, nullable=False)
    max_retries = Column(Integer, default=3, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    custom_prompts = Column(JSON, nullable=True)
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
