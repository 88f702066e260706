"""Usuario model: backoffice profile with role-based access control."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from portal_tramites.database import Base


class Usuario(Base):
    """Backoffice user profile.

    Roles:
        - admin: Full access, including deletions, users and chat configuration.
        - supervisor: Manages trámites and dependencias; cannot delete.
        - user: Authenticated but without backoffice permissions.

    Attributes:
        id: Primary key.
        email: Unique login email.
        full_name: Display name.
        role: Role identifier controlling permissions.
        dependencia: Name of the unit the user belongs to (free text).
        password_hash: Bcrypt-hashed password.
        is_active: Whether the account can log in.
        ultimo_acceso: Timestamp of the last successful login.
    """

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(200), unique=True, nullable=False)
    full_name = Column(String(300), nullable=True)
    role = Column(String(20), nullable=False, default="user")
    # "admin", "supervisor", "user"
    dependencia = Column(String(300), nullable=True)
    password_hash = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    ultimo_acceso = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
