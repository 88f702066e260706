"""Tramite model: government procedure published in the citizen catalog."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from portal_tramites.database import Base


class Tramite(Base):
    """A procedure a citizen can carry out with the municipality.

    A trámite is owned by a primary ``Dependencia`` and optionally by one
    of its sub-units. Both links use explicitly named foreign keys so that
    queries never depend on inferred relationship names.

    Attributes:
        id: Primary key.
        nombre_tramite: Display name shown in the catalog.
        descripcion: Citizen-facing description.
        categoria: Catalog category (exact-match filter key).
        modalidad: "Presencial", "Virtual" or "Presencial y virtual".
        formulario: Optional form reference or name.
        dependencia_id: FK to the owning top-level unit.
        subdependencia_id: FK to the owning sub-unit, if any.
        requiere_pago: "Sí", "No" or NULL when unknown.
        informacion_pago: Payment details; required when requiere_pago is "Sí".
        tiempo_respuesta: Free-text response time, e.g. "15 días hábiles".
        requisitos: Requirements text.
        instrucciones: Step-by-step instructions.
        url_suit: Link to the SUIT national registry entry.
        url_gov: Link to the gov.co entry.
        is_active: Inactive trámites are hidden from the public catalog.
        created_by: Id of the profile that created the row.
        updated_by: Id of the profile that last modified the row.
    """

    __tablename__ = "tramites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nombre_tramite = Column(String(300), nullable=False)
    descripcion = Column(Text, nullable=True)
    categoria = Column(String(150), nullable=True, index=True)
    modalidad = Column(String(100), nullable=True)
    formulario = Column(String(300), nullable=True)
    dependencia_id = Column(
        Integer,
        ForeignKey("dependencias.id", name="tramites_dependencia_id_fkey"),
        nullable=True,
    )
    subdependencia_id = Column(
        Integer,
        ForeignKey("dependencias.id", name="tramites_subdependencia_id_fkey"),
        nullable=True,
    )
    requiere_pago = Column(String(10), nullable=True)  # "Sí" | "No" | NULL
    informacion_pago = Column(Text, nullable=True)
    tiempo_respuesta = Column(String(150), nullable=True)
    requisitos = Column(Text, nullable=True)
    instrucciones = Column(Text, nullable=True)
    url_suit = Column(String(500), nullable=True)
    url_gov = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    dependencia = relationship(
        "Dependencia", foreign_keys=[dependencia_id], lazy="joined"
    )
    subdependencia = relationship(
        "Dependencia", foreign_keys=[subdependencia_id], lazy="joined"
    )

    @property
    def dependencia_nombre(self) -> str | None:
        return self.dependencia.nombre if self.dependencia is not None else None

    @property
    def subdependencia_nombre(self) -> str | None:
        return self.subdependencia.nombre if self.subdependencia is not None else None
