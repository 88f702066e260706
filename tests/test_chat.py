"""
Tests for the chat assistant proxy: circuit breaker, webhook client with
retries, per-session cancellation, and the public / admin endpoints.
"""

import asyncio
import json

import httpx
import pytest
from tenacity import wait_none

from portal_tramites.config import get_settings
from portal_tramites.main import app
from portal_tramites.models import AuditLog, N8nConfig
from portal_tramites.schemas.chat import ChatMessage, ChatSendResponse
from portal_tramites.services.chat_service import (
    ChatProxy,
    CircuitBreaker,
    ConfigWebhook,
    EstadoCircuito,
    SolicitudReemplazada,
    _en_curso,
    _texto_respuesta,
    construir_payload,
    enviar_mensaje,
    get_chat_proxy,
)
from portal_tramites.utils.constants import CHAT_RESPUESTA_RESPALDO

WEBHOOK = "https://n8n.example.com/webhook/chat"


class RelojFalso:
    def __init__(self) -> None:
        self.ahora = 0.0

    def __call__(self) -> float:
        return self.ahora


class Webhook:
    """Scripted ``httpx.MockTransport`` handler that records every request."""

    def __init__(self, *respuestas) -> None:
        self.respuestas = list(respuestas)
        self.peticiones: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.peticiones.append(request)
        siguiente = self.respuestas.pop(0) if len(self.respuestas) > 1 else self.respuestas[0]
        if isinstance(siguiente, Exception):
            raise siguiente
        # fresh copy, a Response can only be sent once
        return httpx.Response(siguiente.status_code, headers=siguiente.headers, content=siguiente.content)

    def proxy(self, breaker: CircuitBreaker | None = None) -> ChatProxy:
        return ChatProxy(breaker=breaker, transport=httpx.MockTransport(self), wait=wait_none())


def _ok(texto: str = "Hola, ¿en qué te ayudo?") -> httpx.Response:
    return httpx.Response(200, json={"response": texto})


# ---------------------------------------------------------------------------
# Pure pieces
# ---------------------------------------------------------------------------


class TestCircuitBreaker:
    """State transitions driven by a fake clock."""

    def test_opens_after_threshold(self) -> None:
        breaker = CircuitBreaker(umbral=3, timeout_segundos=30, reloj=RelojFalso())
        breaker.registrar_fallo()
        breaker.registrar_fallo()
        assert breaker.estado is EstadoCircuito.CLOSED
        breaker.registrar_fallo()
        assert breaker.estado is EstadoCircuito.OPEN
        assert breaker.permite_intento() is False

    def test_success_resets_counter(self) -> None:
        breaker = CircuitBreaker(umbral=2, reloj=RelojFalso())
        breaker.registrar_fallo()
        breaker.registrar_exito()
        breaker.registrar_fallo()
        assert breaker.estado is EstadoCircuito.CLOSED
        assert breaker.fallos == 1

    def test_half_open_probe(self) -> None:
        reloj = RelojFalso()
        breaker = CircuitBreaker(umbral=1, timeout_segundos=30, reloj=reloj)
        breaker.registrar_fallo()

        reloj.ahora = 29.9
        assert breaker.estado is EstadoCircuito.OPEN
        reloj.ahora = 30.0
        assert breaker.estado is EstadoCircuito.HALF_OPEN
        assert breaker.permite_intento() is True

        breaker.registrar_fallo()
        assert breaker.estado is EstadoCircuito.OPEN

        reloj.ahora = 61.0
        assert breaker.estado is EstadoCircuito.HALF_OPEN
        breaker.registrar_exito()
        assert breaker.estado is EstadoCircuito.CLOSED


class TestPayload:
    """Webhook request and response shapes."""

    @pytest.mark.parametrize(
        "data,esperado",
        [
            ({"response": "a"}, "a"),
            ({"message": "b"}, "b"),
            ({"text": "c"}, "c"),
            ({"output": "d"}, "d"),
            ([{"reply": "e"}], "e"),
            ({"response": "   ", "text": "f"}, "f"),
            ({"otro": "x"}, None),
            ([], None),
            ("texto plano", None),
        ],
    )
    def test_texto_respuesta(self, data, esperado) -> None:
        assert _texto_respuesta(data) == esperado

    def test_payload_keeps_last_five_messages(self) -> None:
        historial = [ChatMessage(role="user", content=str(i)) for i in range(8)]
        config = ConfigWebhook(webhook_url=WEBHOOK, system_prompt="Eres el asistente de Chía")

        payload = construir_payload(config, "¿Horarios?", historial)

        assert payload["message"] == "¿Horarios?"
        assert [m["content"] for m in payload["history"]] == ["3", "4", "5", "6", "7"]
        assert payload["system_prompt"] == "Eres el asistente de Chía"
        assert payload["source"] == "portal-tramites"

    def test_config_timeout_is_capped(self) -> None:
        assert ConfigWebhook(webhook_url=WEBHOOK, timeout_seconds=300).timeout_efectivo == 60.0
        assert ConfigWebhook(webhook_url=WEBHOOK, timeout_seconds=10).timeout_efectivo == 10.0

    def test_config_headers(self) -> None:
        assert "Authorization" not in ConfigWebhook(webhook_url=WEBHOOK).headers
        assert ConfigWebhook(webhook_url=WEBHOOK, api_key="k").headers["Authorization"] == "Bearer k"


# ---------------------------------------------------------------------------
# Proxy against a mocked transport
# ---------------------------------------------------------------------------


class TestChatProxy:
    """Retries, fallbacks and breaker integration."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        webhook = Webhook(_ok("Puedes pagar el predial en línea"))
        config = ConfigWebhook(webhook_url=WEBHOOK, api_key="secreto")

        respuesta = await webhook.proxy().enviar(config, "¿Cómo pago?", [])

        assert respuesta == ChatSendResponse(response="Puedes pagar el predial en línea", source="webhook")
        peticion = webhook.peticiones[0]
        assert peticion.headers["Authorization"] == "Bearer secreto"
        assert json.loads(peticion.content)["message"] == "¿Cómo pago?"

    @pytest.mark.asyncio
    async def test_retries_server_errors(self) -> None:
        webhook = Webhook(httpx.Response(500), httpx.Response(502), _ok())
        config = ConfigWebhook(webhook_url=WEBHOOK, max_retries=3)

        respuesta = await webhook.proxy().enviar(config, "hola", [])

        assert respuesta.source == "webhook"
        assert len(webhook.peticiones) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        webhook = Webhook(httpx.Response(503))
        breaker = CircuitBreaker(umbral=3)
        config = ConfigWebhook(webhook_url=WEBHOOK, max_retries=2)

        respuesta = await webhook.proxy(breaker).enviar(config, "hola", [])

        assert respuesta == ChatSendResponse(response=CHAT_RESPUESTA_RESPALDO, source="fallback")
        assert len(webhook.peticiones) == 3
        assert breaker.fallos == 1

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self) -> None:
        webhook = Webhook(httpx.Response(400, json={"error": "bad"}))

        respuesta = await webhook.proxy().enviar(ConfigWebhook(webhook_url=WEBHOOK), "hola", [])

        assert respuesta.source == "fallback"
        assert len(webhook.peticiones) == 1

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self) -> None:
        webhook = Webhook(httpx.ConnectError("sin red"), _ok())

        respuesta = await webhook.proxy().enviar(ConfigWebhook(webhook_url=WEBHOOK), "hola", [])

        assert respuesta.source == "webhook"
        assert len(webhook.peticiones) == 2

    @pytest.mark.asyncio
    async def test_unusable_body_falls_back(self) -> None:
        webhook = Webhook(httpx.Response(200, text="<html>"))
        respuesta = await webhook.proxy().enviar(ConfigWebhook(webhook_url=WEBHOOK), "hola", [])
        assert respuesta.source == "fallback"
        assert len(webhook.peticiones) == 1

    @pytest.mark.asyncio
    async def test_open_circuit_skips_webhook(self) -> None:
        webhook = Webhook(httpx.Response(500))
        breaker = CircuitBreaker(umbral=1, timeout_segundos=30, reloj=RelojFalso())
        proxy = webhook.proxy(breaker)
        config = ConfigWebhook(webhook_url=WEBHOOK, max_retries=0)

        await proxy.enviar(config, "uno", [])
        assert breaker.estado is EstadoCircuito.OPEN

        respuesta = await proxy.enviar(config, "dos", [])

        assert respuesta.source == "fallback"
        assert len(webhook.peticiones) == 1

    @pytest.mark.asyncio
    async def test_probar(self) -> None:
        webhook = Webhook(httpx.Response(200, text="ok"))
        resultado = await webhook.proxy().probar(WEBHOOK, "k")
        assert resultado.success is True
        assert resultado.status_code == 200
        assert resultado.response == "ok"
        assert json.loads(webhook.peticiones[0].content)["test"] is True

        caido = Webhook(httpx.ConnectError("rechazada"))
        resultado = await caido.proxy().probar(WEBHOOK, None)
        assert resultado.success is False
        assert resultado.error == "rechazada"


class ProxyLento:
    """Stand-in proxy whose first message never answers on its own."""

    def __init__(self) -> None:
        self.recibidos: list[str] = []

    async def enviar(self, config, mensaje, historial) -> ChatSendResponse:
        self.recibidos.append(mensaje)
        if mensaje == "primero":
            await asyncio.sleep(10)
        return ChatSendResponse(response=f"eco: {mensaje}")


class TestCancelacionPorSesion:
    """A newer message of the same session cancels the older one."""

    @pytest.mark.asyncio
    async def test_newer_message_supersedes(self) -> None:
        proxy = ProxyLento()
        config = ConfigWebhook(webhook_url=WEBHOOK)

        primera = asyncio.create_task(enviar_mensaje(proxy, config, "primero", [], session_id="s1"))
        await asyncio.sleep(0)
        segunda = await enviar_mensaje(proxy, config, "segundo", [], session_id="s1")

        assert segunda.response == "eco: segundo"
        with pytest.raises(SolicitudReemplazada):
            await primera
        assert "s1" not in _en_curso

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self) -> None:
        proxy = ProxyLento()
        config = ConfigWebhook(webhook_url=WEBHOOK)

        a, b = await asyncio.gather(
            enviar_mensaje(proxy, config, "hola", [], session_id="a"),
            enviar_mensaje(proxy, config, "buenas", [], session_id="b"),
        )

        assert (a.response, b.response) == ("eco: hola", "eco: buenas")

    @pytest.mark.asyncio
    async def test_without_session_nothing_is_tracked(self) -> None:
        respuesta = await enviar_mensaje(ProxyLento(), ConfigWebhook(webhook_url=WEBHOOK), "hola", [])
        assert respuesta.response == "eco: hola"
        assert _en_curso == {}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


def _guardar_config(db_session, **kwargs) -> N8nConfig:
    fila = N8nConfig(webhook_url=WEBHOOK, **kwargs)
    db_session.add(fila)
    db_session.commit()
    return fila


class TestChatApi:
    """/api/chat"""

    def test_config_without_webhook(self, client) -> None:
        data = client.get("/api/chat/config").json()
        assert data == {"is_active": False, "greeting": get_settings().CHAT_GREETING}

    def test_config_with_custom_greeting(self, client, db_session) -> None:
        _guardar_config(db_session, custom_prompts={"greeting": "¡Hola, vecino!"})
        assert client.get("/api/chat/config").json() == {"is_active": True, "greeting": "¡Hola, vecino!"}

    def test_send_without_configuration_is_503(self, client) -> None:
        response = client.post("/api/chat/send", json={"message": "hola"})
        assert response.status_code == 503
        assert response.json()["detail"] == "El asistente virtual no está configurado"

    def test_send_forwards_to_webhook(self, client, db_session) -> None:
        _guardar_config(db_session, api_key="clave", custom_prompts={"system_prompt": "Sé breve"})
        webhook = Webhook(_ok("El predial vence en abril"))
        app.dependency_overrides[get_chat_proxy] = lambda: webhook.proxy()

        response = client.post(
            "/api/chat/send",
            json={
                "message": "¿Cuándo vence el predial?",
                "history": [{"role": "user", "content": "hola"}],
                "session_id": "widget-1",
            },
        )

        assert response.status_code == 200
        assert response.json() == {"response": "El predial vence en abril", "source": "webhook"}
        enviado = json.loads(webhook.peticiones[0].content)
        assert enviado["system_prompt"] == "Sé breve"
        assert enviado["history"] == [{"role": "user", "content": "hola"}]

    def test_send_falls_back_when_webhook_fails(self, client, db_session) -> None:
        _guardar_config(db_session, max_retries=0)
        app.dependency_overrides[get_chat_proxy] = lambda: Webhook(httpx.Response(500)).proxy()

        response = client.post("/api/chat/send", json={"message": "hola"})

        assert response.status_code == 200
        assert response.json() == {"response": CHAT_RESPUESTA_RESPALDO, "source": "fallback"}

    def test_inactive_row_is_ignored(self, client, db_session) -> None:
        _guardar_config(db_session, is_active=False)
        assert client.post("/api/chat/send", json={"message": "hola"}).status_code == 503

    def test_empty_message_rejected(self, client) -> None:
        assert client.post("/api/chat/send", json={"message": ""}).status_code == 422


class TestN8nConfigAdmin:
    """/api/admin/n8n-config"""

    URL = "/api/admin/n8n-config"

    def test_admin_only(self, client, supervisor_headers) -> None:
        assert client.get(self.URL, headers=supervisor_headers).status_code == 403

    def test_missing_config_is_404(self, client, admin_headers) -> None:
        response = client.get(self.URL, headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "No hay configuración del asistente"

    def test_put_creates_then_updates(self, client, db_session, admin_headers) -> None:
        cuerpo = {"webhook_url": WEBHOOK, "api_key": "secreto", "timeout_seconds": 20}

        creada = client.put(self.URL, json=cuerpo, headers=admin_headers)
        assert creada.status_code == 200
        actualizada = client.put(
            self.URL, json={**cuerpo, "max_retries": 1, "is_active": False}, headers=admin_headers
        )
        assert actualizada.json()["id"] == creada.json()["id"]

        data = client.get(self.URL, headers=admin_headers).json()
        assert data["max_retries"] == 1
        assert data["is_active"] is False
        assert data["api_key"] == "secreto"
        assert "api_key" not in client.get("/api/chat/config").json()
        assert db_session.query(N8nConfig).count() == 1

        entradas = db_session.query(AuditLog).filter(AuditLog.table_name == "n8n_config").all()
        assert [e.action for e in entradas] == ["INSERT", "UPDATE"]
        assert all("api_key" not in (e.new_data or {}) for e in entradas)

    def test_connection_test_requires_url(self, client, admin_headers) -> None:
        response = client.post(f"{self.URL}/test", json={}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "La URL del webhook es requerida"

    def test_connection_test_uses_stored_config(self, client, db_session, admin_headers) -> None:
        _guardar_config(db_session, api_key="guardada")
        webhook = Webhook(httpx.Response(200, text="pong"))
        app.dependency_overrides[get_chat_proxy] = lambda: webhook.proxy()

        response = client.post(f"{self.URL}/test", json={}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert str(webhook.peticiones[0].url) == WEBHOOK
        assert webhook.peticiones[0].headers["Authorization"] == "Bearer guardada"
