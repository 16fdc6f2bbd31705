"""
Outbound messaging gateways.

The chatbot and the HTTP routes only rely on `MessageGateway`: send a text,
send a document, report the connection state. `BridgeGateway` talks to a
WhatsApp bridge sidecar over HTTP; the bridge owns the socket, pairing and
reconnection. `OfflineGateway` is used when no bridge is configured.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import httpx

from slipdesk.config import settings
from slipdesk.errors import TransportError

PDF_MIME_TYPE = "application/pdf"


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"


class MessageGateway(ABC):
    """Send-only view of the chat transport."""

    @property
    @abstractmethod
    def connection_state(self) -> ConnectionState: ...

    @abstractmethod
    def send_text(self, address: str, text: str) -> None: ...

    @abstractmethod
    def send_document(
        self, address: str, content: bytes, file_name: str, caption: str | None = None
    ) -> None: ...

    def ensure_connected(self) -> None:
        state = self.connection_state
        if state != ConnectionState.CONNECTED:
            raise TransportError(f"WhatsApp is {state.value}, not ready to send")

    def status(self) -> dict[str, Any]:
        return {"state": self.connection_state.value}

    def close(self) -> None:
        """Release transport resources."""


class OfflineGateway(MessageGateway):
    """Gateway used when no transport is configured; every send fails."""

    @property
    def connection_state(self) -> ConnectionState:
        return ConnectionState.DISCONNECTED

    def send_text(self, address: str, text: str) -> None:
        self.ensure_connected()

    def send_document(
        self, address: str, content: bytes, file_name: str, caption: str | None = None
    ) -> None:
        self.ensure_connected()


class BridgeGateway(MessageGateway):
    """
    HTTP client for a WhatsApp bridge.

    Bridge endpoints:
    - GET  /status             -> {"state": "connected" | "connecting" | "disconnected", ...}
    - POST /messages/text      json {"to", "text"}
    - POST /messages/document  multipart: to, caption, document (file)
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
        logger: logging.Logger | None = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = client or httpx.Client(base_url=base_url, headers=headers, timeout=timeout)
        self.logger = logger or logging.getLogger(__name__)

    def status(self) -> dict[str, Any]:
        try:
            response = self.client.get("/status")
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.logger.warning(f"WhatsApp bridge status unavailable: {e}")
            return {"state": ConnectionState.DISCONNECTED.value}

        if not isinstance(payload, dict):
            return {"state": ConnectionState.DISCONNECTED.value}
        return payload

    @property
    def connection_state(self) -> ConnectionState:
        try:
            return ConnectionState(self.status().get("state"))
        except ValueError:
            return ConnectionState.DISCONNECTED

    def send_text(self, address: str, text: str) -> None:
        self.ensure_connected()
        try:
            response = self.client.post("/messages/text", json={"to": address, "text": text})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to send text to {address}: {e}") from e

        self.logger.info(f"Text message sent to {address}")

    def send_document(
        self, address: str, content: bytes, file_name: str, caption: str | None = None
    ) -> None:
        self.ensure_connected()
        data = {"to": address}
        if caption:
            data["caption"] = caption
        try:
            response = self.client.post(
                "/messages/document",
                data=data,
                files={"document": (file_name or "document.pdf", content, PDF_MIME_TYPE)},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to send {file_name} to {address}: {e}") from e

        self.logger.info(f"Document {file_name} sent to {address}")

    def close(self) -> None:
        self.client.close()


# Global gateway instance
gateway = None


def get_gateway() -> MessageGateway:
    """Get or create global gateway instance."""
    global gateway
    if gateway is None:
        if settings.whatsapp_bridge_url:
            gateway = BridgeGateway(
                settings.whatsapp_bridge_url,
                token=settings.whatsapp_bridge_token,
                timeout=settings.whatsapp_bridge_timeout,
            )
        else:
            logging.getLogger(__name__).warning(
                "WHATSAPP_BRIDGE_URL not set; outbound messages are disabled"
            )
            gateway = OfflineGateway()
    return gateway
