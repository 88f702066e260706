"""Dependencia model: municipal organizational unit (two-level hierarchy)."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from portal_tramites.database import Base


class Dependencia(Base):
    """Top-level unit ("dependencia") or one of its sub-units ("subdependencia").

    Invariant: a ``subdependencia`` row references an existing top-level
    unit through ``dependencia_padre_id``; a ``dependencia`` row has no
    parent. ``nivel`` mirrors the hierarchy depth (1 or 2).

    Attributes:
        id: Primary key.
        codigo: Unique institutional code, e.g. "010" or "011".
        sigla: Optional unique abbreviation, e.g. "SPLA".
        nombre: Full unit name.
        tipo: "dependencia" or "subdependencia".
        dependencia_padre_id: Self FK to the parent unit (sub-units only).
        nivel: 1 for top-level units, 2 for sub-units.
        orden: Display ordering index within the same level.
        is_active: Inactive units cannot be assigned to trámites.
        responsable: Name of the person in charge.
        correo_electronico: Contact email.
        extension_telefonica: Phone extension.
        direccion: Street address.
        horario_atencion: Opening hours text.
        telefono_directo: Direct phone number.
        enlace_web: Web page of the unit.
    """

    __tablename__ = "dependencias"

    id = Column(Integer, primary_key=True, autoincrement=True)
    codigo = Column(String(20), unique=True, nullable=False)
    sigla = Column(String(30), unique=True, nullable=True)
    nombre = Column(String(300), nullable=False)
    descripcion = Column(Text, nullable=True)
    tipo = Column(String(20), nullable=False, default="dependencia")
    dependencia_padre_id = Column(
        Integer,
        ForeignKey("dependencias.id", name="dependencias_dependencia_padre_id_fkey"),
        nullable=True,
    )
    nivel = Column(Integer, default=1, nullable=False)
    orden = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Contact information
    responsable = Column(String(200), nullable=True)
    correo_electronico = Column(String(200), nullable=True)
    extension_telefonica = Column(String(30), nullable=True)
    direccion = Column(String(300), nullable=True)
    horario_atencion = Column(String(200), nullable=True)
    telefono_directo = Column(String(50), nullable=True)
    enlace_web = Column(String(500), nullable=True)

    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    padre = relationship(
        "Dependencia", remote_side=[id], back_populates="hijos", lazy="select"
    )
    hijos = relationship(
        "Dependencia",
        back_populates="padre",
        order_by="Dependencia.orden",
        lazy="select",
    )

    @property
    def dependencia_padre_nombre(self) -> str | None:
        return self.padre.nombre if self.padre is not None else None
