"""AuditLog model: append-only record of every backoffice mutation."""

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from portal_tramites.database import Base


class AuditLog(Base):
    """Who changed which row of which table, with before/after snapshots.

    Rows are only ever inserted; no endpoint updates or deletes them.

    Attributes:
        id: Primary key.
        user_id: Id of the acting profile.
        user_email: Snapshot of the actor's email (survives user deletion).
        action: "INSERT", "UPDATE", "DELETE" or "IMPORT".
        table_name: Affected table, e.g. "tramites".
        record_id: Primary key of the affected row, or None for bulk imports.
        old_data: JSON snapshot before the change.
        new_data: JSON snapshot after the change.
        created_at: UTC timestamp of the change.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True)
    user_email = Column(String(200), nullable=True)
    action = Column(String(20), nullable=False)
    table_name = Column(String(100), nullable=False)
    record_id = Column(Integer, nullable=True)
    old_data = Column(JSON, nullable=True)
    new_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False, index=True)
