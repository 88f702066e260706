"""initial_schema

Crea las tablas del portal: dependencias (jerarquía de dos niveles),
tramites, profiles, audit_logs y n8n_config. Las claves foráneas llevan
nombre explícito porque las consultas del catálogo y el chequeo de
arranque las referencian por nombre.

Revision ID: 3c8e51d0a4b2
Revises:
Create Date: 2025-10-06 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c8e51d0a4b2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'dependencias',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('codigo', sa.String(20), nullable=False, unique=True),
        sa.Column('sigla', sa.String(30), nullable=True, unique=True),
        sa.Column('nombre', sa.String(300), nullable=False),
        sa.Column('descripcion', sa.Text(), nullable=True),
        sa.Column('tipo', sa.String(20), nullable=False, server_default='dependencia'),
        sa.Column('dependencia_padre_id', sa.Integer(), nullable=True),
        sa.Column('nivel', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('orden', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('responsable', sa.String(200), nullable=True),
        sa.Column('correo_electronico', sa.String(200), nullable=True),
        sa.Column('extension_telefonica', sa.String(30), nullable=True),
        sa.Column('direccion', sa.String(300), nullable=True),
        sa.Column('horario_atencion', sa.String(200), nullable=True),
        sa.Column('telefono_directo', sa.String(50), nullable=True),
        sa.Column('enlace_web', sa.String(500), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['dependencia_padre_id'], ['dependencias.id'],
            name='dependencias_dependencia_padre_id_fkey',
        ),
    )

    op.create_table(
        'tramites',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('nombre_tramite', sa.String(300), nullable=False),
        sa.Column('descripcion', sa.Text(), nullable=True),
        sa.Column('categoria', sa.String(150), nullable=True),
        sa.Column('modalidad', sa.String(100), nullable=True),
        sa.Column('formulario', sa.String(300), nullable=True),
        sa.Column('dependencia_id', sa.Integer(), nullable=True),
        sa.Column('subdependencia_id', sa.Integer(), nullable=True),
        sa.Column('requiere_pago', sa.String(10), nullable=True),
        sa.Column('informacion_pago', sa.Text(), nullable=True),
        sa.Column('tiempo_respuesta', sa.String(150), nullable=True),
        sa.Column('requisitos', sa.Text(), nullable=True),
        sa.Column('instrucciones', sa.Text(), nullable=True),
        sa.Column('url_suit', sa.String(500), nullable=True),
        sa.Column('url_gov', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['dependencia_id'], ['dependencias.id'], name='tramites_dependencia_id_fkey',
        ),
        sa.ForeignKeyConstraint(
            ['subdependencia_id'], ['dependencias.id'], name='tramites_subdependencia_id_fkey',
        ),
    )
    op.create_index('ix_tramites_categoria', 'tramites', ['categoria'])

    op.create_table(
        'profiles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(200), nullable=False, unique=True),
        sa.Column('full_name', sa.String(300), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('dependencia', sa.String(300), nullable=True),
        sa.Column('password_hash', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('ultimo_acceso', sa.DateTime(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('user_email', sa.String(200), nullable=True),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('table_name', sa.String(100), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=True),
        sa.Column('old_data', sa.JSON(), nullable=True),
        sa.Column('new_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])

    op.create_table(
        'n8n_config',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('webhook_url', sa.String(500), nullable=False),
        sa.Column('api_key', sa.String(500), nullable=True),
        sa.Column('timeout_seconds', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('custom_prompts', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table('n8n_config')
    op.drop_index('ix_audit_logs_created_at', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_table('profiles')
    op.drop_index('ix_tramites_categoria', table_name='tramites')
    op.drop_table('tramites')
    op.drop_table('dependencias')
