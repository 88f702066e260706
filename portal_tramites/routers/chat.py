"""
Chat assistant router.

``router`` mounts under ``/api/chat`` (public) and ``admin_router`` under
``/api/admin/n8n-config`` (admin only); prefixes are set in ``main.py``.

Endpoints
---------
GET  /api/chat/config             Widget settings; never fails.
POST /api/chat/send               Forward a message to the webhook.
GET  /api/admin/n8n-config        Current webhook configuration.
PUT  /api/admin/n8n-config        Create or update the configuration.
POST /api/admin/n8n-config/test   Single test call to a webhook.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from portal_tramites.database import get_db
from portal_tramites.models.usuario import Usuario
from portal_tramites.schemas.chat import (
    ChatConfigResponse,
    ChatSendRequest,
    ChatSendResponse,
    N8nConfigResponse,
    N8nConfigUpdate,
    N8nTestRequest,
    N8nTestResponse,
)
from portal_tramites.services import chat_service
from portal_tramites.services.auth_service import require_role
from portal_tramites.services.chat_service import ChatNoConfigurado, ChatProxy, SolicitudReemplazada
from portal_tramites.utils.constants import ROLES_ADMIN

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])
admin_router = APIRouter(tags=["Chat (admin)"])


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


@router.get("/config", response_model=ChatConfigResponse, summary="Configuración del widget")
def chat_config(db: Annotated[Session, Depends(get_db)]) -> ChatConfigResponse:
    return chat_service.get_chat_config(db)


@router.post(
    "/send",
    response_model=ChatSendResponse,
    summary="Enviar mensaje al asistente",
    description=(
        "Reenvía el mensaje y los últimos 5 mensajes del historial al webhook configurado. "
        "Si el webhook falla se responde con un texto de respaldo (``source='fallback'``)."
    ),
    responses={
        409: {"description": "Reemplazada por un mensaje más reciente de la misma sesión."},
        503: {"description": "Asistente no configurado."},
    },
)
async def chat_send(
    data: ChatSendRequest,
    db: Annotated[Session, Depends(get_db)],
    proxy: Annotated[ChatProxy, Depends(chat_service.get_chat_proxy)],
) -> ChatSendResponse:
    try:
        config = chat_service.cargar_config(db)
    except ChatNoConfigurado as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    try:
        return await chat_service.enviar_mensaje(
            proxy, config, data.message, data.history, session_id=data.session_id
        )
    except SolicitudReemplazada as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="La solicitud fue reemplazada por un mensaje más reciente",
        ) from exc


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@admin_router.get(
    "",
    response_model=N8nConfigResponse,
    summary="Configuración del webhook",
    responses={404: {"description": "Sin configuración."}},
)
def get_config(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_ADMIN))],
) -> N8nConfigResponse:
    config = chat_service.get_n8n_config(db)
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No hay configuración del asistente",
        )
    return config


@admin_router.put("", response_model=N8nConfigResponse, summary="Guardar configuración del webhook")
def put_config(
    data: N8nConfigUpdate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_ADMIN))],
) -> N8nConfigResponse:
    return chat_service.guardar_n8n_config(db, data, current_user)


@admin_router.post(
    "/test",
    response_model=N8nTestResponse,
    summary="Probar conexión con el webhook",
    description="Sin ``webhook_url`` en el cuerpo se prueba la configuración guardada.",
    responses={400: {"description": "No hay URL que probar."}},
)
async def test_config(
    data: N8nTestRequest,
    db: Annotated[Session, Depends(get_db)],
    proxy: Annotated[ChatProxy, Depends(chat_service.get_chat_proxy)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_ADMIN))],
) -> N8nTestResponse:
    url, api_key = data.webhook_url, data.api_key
    if not url:
        guardada = chat_service.get_n8n_config(db)
        if guardada is not None:
            url, api_key = guardada.webhook_url, api_key or guardada.api_key
    if not url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="La URL del webhook es requerida")

    logger.info("n8n test by=%s url=%s", current_user.email, url)
    return await proxy.probar(url, api_key)
