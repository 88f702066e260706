"""
Chat assistant proxy.

Forwards citizen messages to the external workflow webhook (n8n) and
returns its answer. The widget must never hang or break because of the
webhook, so:

- each request is bounded by ``min(timeout_seconds, 60)``;
- transport errors and 5xx answers are retried with exponential backoff
  (tenacity), capped at 5 s between attempts;
- a process-wide circuit breaker stops calling a failing webhook for a
  while and answers with the canned fallback text instead;
- a newer message with the same ``session_id`` cancels the request still
  in flight for that session.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Callable

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from portal_tramites.config import get_settings
from portal_tramites.models.n8n_config import N8nConfig
from portal_tramites.models.usuario import Usuario
from portal_tramites.schemas.chat import (
    ChatConfigResponse,
    ChatMessage,
    ChatSendResponse,
    N8nConfigResponse,
    N8nConfigUpdate,
    N8nTestResponse,
)
from portal_tramites.services.auditoria_service import registrar_auditoria, snapshot
from portal_tramites.utils.constants import (
    CHAT_BACKOFF_MAXIMO_SEGUNDOS,
    CHAT_HISTORIAL_MAXIMO,
    CHAT_MENSAJE_PRUEBA,
    CHAT_RESPUESTA_RESPALDO,
    CHAT_TIMEOUT_MAXIMO_SEGUNDOS,
)
from portal_tramites.utils.errores import error_base_datos

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ChatNoConfigurado(Exception):
    """No active webhook configuration (maps to 503)."""


class SolicitudReemplazada(Exception):
    """The request was cancelled by a newer message of the same session (409)."""


class WebhookError(Exception):
    def __init__(self, mensaje: str, reintentable: bool = False) -> None:
        super().__init__(mensaje)
        self.reintentable = reintentable


def _es_reintentable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, WebhookError) and exc.reintentable


# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------


class EstadoCircuito(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    CLOSED -> OPEN after ``umbral`` consecutive failures. OPEN -> HALF_OPEN
    once ``timeout_segundos`` have elapsed; the next call is a probe that
    closes the circuit on success or reopens it on failure.

    Args:
        umbral: Consecutive failures that open the circuit.
        timeout_segundos: Time the circuit stays open.
        reloj: Monotonic clock, replaceable in tests.
    """

    def __init__(
        self,
        umbral: int = 3,
        timeout_segundos: float = 30.0,
        reloj: Callable[[], float] = time.monotonic,
    ) -> None:
        self.umbral = umbral
        self.timeout_segundos = timeout_segundos
        self._reloj = reloj
        self._estado = EstadoCircuito.CLOSED
        self._fallos = 0
        self._abierto_en: float | None = None

    @property
    def estado(self) -> EstadoCircuito:
        if (
            self._estado is EstadoCircuito.OPEN
            and self._abierto_en is not None
            and self._reloj() - self._abierto_en >= self.timeout_segundos
        ):
            self._estado = EstadoCircuito.HALF_OPEN
        return self._estado

    @property
    def fallos(self) -> int:
        return self._fallos

    def permite_intento(self) -> bool:
        return self.estado is not EstadoCircuito.OPEN

    def registrar_exito(self) -> None:
        if self._estado is not EstadoCircuito.CLOSED:
            logger.info("Chat circuit closed")
        self._estado = EstadoCircuito.CLOSED
        self._fallos = 0
        self._abierto_en = None

    def registrar_fallo(self) -> None:
        self._fallos += 1
        if self.estado is EstadoCircuito.HALF_OPEN or self._fallos >= self.umbral:
            self._estado = EstadoCircuito.OPEN
            self._abierto_en = self._reloj()
            logger.warning("Chat circuit opened after %d consecutive failures", self._fallos)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConfigWebhook:
    webhook_url: str
    api_key: str | None = None
    timeout_seconds: int = 30
    max_retries: int = 3
    system_prompt: str | None = None

    @property
    def timeout_efectivo(self) -> float:
        return float(min(self.timeout_seconds, CHAT_TIMEOUT_MAXIMO_SEGUNDOS))

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers


def _config_activa(db: Session) -> N8nConfig | None:
    return (
        db.query(N8nConfig)
        .filter(N8nConfig.is_active.is_(True))
        .order_by(N8nConfig.updated_at.desc(), N8nConfig.id.desc())
        .first()
    )


def cargar_config(db: Session) -> ConfigWebhook:
    """Active ``n8n_config`` row, or the ``CHAT_*`` settings when there is none.

    Raises:
        ChatNoConfigurado: Neither source provides a webhook URL.
    """
    fila = _config_activa(db)
    if fila is not None and fila.webhook_url:
        prompts = fila.custom_prompts or {}
        return ConfigWebhook(
            webhook_url=fila.webhook_url,
            api_key=fila.api_key,
            timeout_seconds=fila.timeout_seconds,
            max_retries=fila.max_retries,
            system_prompt=prompts.get("system_prompt"),
        )

    settings = get_settings()
    if settings.CHAT_WEBHOOK_URL:
        return ConfigWebhook(
            webhook_url=settings.CHAT_WEBHOOK_URL,
            api_key=settings.CHAT_API_KEY,
            timeout_seconds=settings.CHAT_TIMEOUT_SECONDS,
            max_retries=settings.CHAT_MAX_RETRIES,
        )
    raise ChatNoConfigurado("El asistente virtual no está configurado")


def get_chat_config(db: Session) -> ChatConfigResponse:
    """Public widget settings; any failure reads as "inactive"."""
    greeting = get_settings().CHAT_GREETING
    try:
        fila = _config_activa(db)
    except SQLAlchemyError:
        logger.exception("Could not read n8n_config")
        return ChatConfigResponse(is_active=False, greeting=greeting)

    if fila is None:
        return ChatConfigResponse(is_active=bool(get_settings().CHAT_WEBHOOK_URL), greeting=greeting)
    return ChatConfigResponse(
        is_active=True,
        greeting=(fila.custom_prompts or {}).get("greeting") or greeting,
    )


# ---------------------------------------------------------------------------
# Webhook client
# ---------------------------------------------------------------------------


def _texto_respuesta(data: Any) -> str | None:
    if isinstance(data, list) and data:
        data = data[0]
    if not isinstance(data, dict):
        return None
    for clave in ("response", "message", "text", "reply", "output"):
        valor = data.get(clave)
        if isinstance(valor, str) and valor.strip():
            return valor
    return None


def construir_payload(
    config: ConfigWebhook, mensaje: str, historial: list[ChatMessage]
) -> dict[str, Any]:
    """JSON body sent to the webhook; only the last messages are forwarded."""
    return {
        "message": mensaje,
        "history": [m.model_dump() for m in historial[-CHAT_HISTORIAL_MAXIMO:]],
        "system_prompt": config.system_prompt,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": "portal-tramites",
    }


class ChatProxy:
    """Webhook client shared by all chat requests of the process.

    Args:
        breaker: Circuit breaker instance.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
        wait: tenacity wait strategy between retries.
    """

    def __init__(
        self,
        breaker: CircuitBreaker | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        wait: Any = None,
    ) -> None:
        self.breaker = breaker or CircuitBreaker()
        self._transport = transport
        self._wait = wait or wait_exponential(multiplier=1, max=CHAT_BACKOFF_MAXIMO_SEGUNDOS)

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def _post(
        self, client: httpx.AsyncClient, config: ConfigWebhook, payload: dict[str, Any]
    ) -> str:
        response = await client.post(config.webhook_url, json=payload, headers=config.headers)
        if response.status_code >= 500:
            raise WebhookError(f"HTTP {response.status_code}", reintentable=True)
        if response.status_code >= 400:
            raise WebhookError(f"HTTP {response.status_code}")
        try:
            texto = _texto_respuesta(response.json())
        except ValueError as exc:
            raise WebhookError("Respuesta no es JSON") from exc
        if texto is None:
            raise WebhookError("Respuesta sin texto")
        return texto

    async def enviar(
        self, config: ConfigWebhook, mensaje: str, historial: list[ChatMessage]
    ) -> ChatSendResponse:
        """Send one message; never raises for webhook problems."""
        if not self.breaker.permite_intento():
            logger.info("Chat circuit open, answering with fallback")
            return ChatSendResponse(response=CHAT_RESPUESTA_RESPALDO, source="fallback")

        payload = construir_payload(config, mensaje, historial)
        try:
            async with self._client(config.timeout_efectivo) as client:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(config.max_retries + 1),
                    wait=self._wait,
                    retry=retry_if_exception(_es_reintentable),
                    reraise=True,
                ):
                    with attempt:
                        texto = await self._post(client, config, payload)
        except (httpx.HTTPError, WebhookError) as exc:
            self.breaker.registrar_fallo()
            logger.warning("Chat webhook failed: %s", exc)
            return ChatSendResponse(response=CHAT_RESPUESTA_RESPALDO, source="fallback")

        self.breaker.registrar_exito()
        return ChatSendResponse(response=texto, source="webhook")

    async def probar(self, webhook_url: str, api_key: str | None) -> N8nTestResponse:
        """Single test call from the admin panel (no retries, no breaker)."""
        config = ConfigWebhook(webhook_url=webhook_url, api_key=api_key)
        try:
            async with self._client(config.timeout_efectivo) as client:
                response = await client.post(
                    webhook_url,
                    json={"message": CHAT_MENSAJE_PRUEBA, "test": True},
                    headers=config.headers,
                )
        except httpx.HTTPError as exc:
            logger.warning("n8n test call failed: %s", exc)
            return N8nTestResponse(success=False, error=str(exc) or exc.__class__.__name__)

        ok = response.is_success
        return N8nTestResponse(
            success=ok,
            status_code=response.status_code,
            response=response.text[:500],
            error=None if ok else f"HTTP {response.status_code}",
        )


@lru_cache
def get_chat_proxy() -> ChatProxy:
    """Process-wide proxy, so the breaker state is shared by every request."""
    settings = get_settings()
    return ChatProxy(
        breaker=CircuitBreaker(
            umbral=settings.CHAT_CIRCUIT_THRESHOLD,
            timeout_segundos=settings.CHAT_CIRCUIT_TIMEOUT_SECONDS,
        )
    )


# ---------------------------------------------------------------------------
# Per-session cancellation
# ---------------------------------------------------------------------------


@dataclass
class _SolicitudEnCurso:
    tarea: asyncio.Task
    reemplazada: bool = field(default=False)


_en_curso: dict[str, _SolicitudEnCurso] = {}


async def enviar_mensaje(
    proxy: ChatProxy,
    config: ConfigWebhook,
    mensaje: str,
    historial: list[ChatMessage],
    session_id: str | None = None,
) -> ChatSendResponse:
    """Send *mensaje*, cancelling any older request of the same session.

    Raises:
        SolicitudReemplazada: A newer message of the session cancelled this one.
    """
    if session_id is None:
        return await proxy.enviar(config, mensaje, historial)

    anterior = _en_curso.get(session_id)
    if anterior is not None and not anterior.tarea.done():
        anterior.reemplazada = True
        anterior.tarea.cancel()
        logger.debug("Chat session %s: previous request cancelled", session_id)

    solicitud = _SolicitudEnCurso(tarea=asyncio.create_task(proxy.enviar(config, mensaje, historial)))
    _en_curso[session_id] = solicitud
    try:
        return await solicitud.tarea
    except asyncio.CancelledError:
        if solicitud.reemplazada:
            raise SolicitudReemplazada(session_id)
        raise
    finally:
        if _en_curso.get(session_id) is solicitud:
            del _en_curso[session_id]


# ---------------------------------------------------------------------------
# Admin configuration
# ---------------------------------------------------------------------------


def get_n8n_config(db: Session) -> N8nConfigResponse | None:
    fila = db.query(N8nConfig).order_by(N8nConfig.created_at.desc(), N8nConfig.id.desc()).first()
    return N8nConfigResponse.model_validate(fila) if fila is not None else None


def guardar_n8n_config(db: Session, data: N8nConfigUpdate, usuario: Usuario) -> N8nConfigResponse:
    """Update the most recent configuration row, creating it if none exists."""
    fila = db.query(N8nConfig).order_by(N8nConfig.created_at.desc(), N8nConfig.id.desc()).first()
    if fila is None:
        fila = N8nConfig(**data.model_dump(), created_by=usuario.id, updated_by=usuario.id)
        db.add(fila)
        db.flush()
        registrar_auditoria(
            db, usuario=usuario, accion="INSERT", tabla="n8n_config",
            registro_id=fila.id, despues=snapshot(fila),
        )
    else:
        antes = snapshot(fila)
        for campo, valor in data.model_dump().items():
            setattr(fila, campo, valor)
        fila.updated_by = usuario.id
        registrar_auditoria(
            db, usuario=usuario, accion="UPDATE", tabla="n8n_config",
            registro_id=fila.id, antes=antes, despues=snapshot(fila),
        )

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise error_base_datos(exc, mensaje_general="Error al guardar la configuración") from exc
    db.refresh(fila)
    logger.info("guardar_n8n_config: id=%d active=%s by=%s", fila.id, fila.is_active, usuario.email)
    return N8nConfigResponse.model_validate(fila)
