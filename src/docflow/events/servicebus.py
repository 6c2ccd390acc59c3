"""Service Bus fan-out of coordinator events to other services."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from azure.servicebus.aio import ServiceBusClient, ServiceBusSender

from docflow.events.contracts import EventEnvelope

if TYPE_CHECKING:
    from docflow.config import ServiceBusConfig

logger = logging.getLogger(__name__)


def _message_properties(event_type: str, data: dict[str, Any] | str) -> dict[str, str]:
    """Build application properties subscribers can filter on."""
    properties = {"event_type": event_type}
    if isinstance(data, dict):
        for key in ("document_id", "execution_id"):
            value = data.get(key)
            if isinstance(value, str):
                properties[key] = value
    return properties


class ServiceBusPublisher:
    """Publish execution lifecycle events to a Service Bus topic.

    Publishing is best effort: failures are logged and never propagate to the
    coordinator, which must not fail a transition because fan-out failed.
    """

    def __init__(self, config: ServiceBusConfig) -> None:
        self._config = config
        self._client: ServiceBusClient | None = None
        self._sender: ServiceBusSender | None = None
        self.enabled = bool(config.connection_string)
        if not self.enabled:
            logger.warning(
                "AZURE_SERVICEBUS_CONNECTION_STRING is not set — "
                "execution events stay in-process"
            )

    async def _sender_for_topic(self) -> ServiceBusSender:
        if self._sender is None:
            self._client = ServiceBusClient.from_connection_string(
                self._config.connection_string
            )
            self._sender = self._client.get_topic_sender(
                topic_name=self._config.topic_name
            )
        return self._sender

    async def publish(self, event_type: str, data: dict[str, Any] | str) -> None:
        """Send one event envelope to the configured topic."""
        if not self.enabled:
            return

        from azure.servicebus import ServiceBusMessage  # noqa: PLC0415

        envelope = EventEnvelope(event=event_type, data=data)
        try:
            sender = await self._sender_for_topic()
            await sender.send_messages(
                ServiceBusMessage(
                    body=envelope.model_dump_json(),
                    subject=event_type,
                    application_properties=_message_properties(event_type, data),
                )
            )
            logger.debug(
                "Published event=%s topic=%s", event_type, self._config.topic_name
            )
        except Exception:  # noqa: BLE001
            logger.warning(
                "Failed to publish event=%s to Service Bus",
                event_type,
                exc_info=True,
            )

    async def close(self) -> None:
        if self._sender:
            await self._sender.close()
            self._sender = None
        if self._client:
            await self._client.close()
            self._client = None
