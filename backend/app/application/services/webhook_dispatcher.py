from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from time import perf_counter
from typing import Any

from app.application.services.flag_events import (
    EnvironmentSnapshot,
    FlagChangeEvent,
    FlagSnapshot,
    snapshot_flag,
)
from app.application.services.template_renderer import render_payload
from app.core.config import settings
from app.domain.models.environment_value import EnvironmentValue
from app.domain.models.flag import Flag
from app.domain.models.webhook import Webhook, WebhookEventType
from app.infrastructure.db.repository import Repository
from app.infrastructure.observability.metrics import record_webhook_delivery
from app.integrations.webhook_client import DeliveryResult, WebhookClient

logger = logging.getLogger(__name__)


def build_event_context(event: FlagChangeEvent, timestamp: str | None = None) -> dict[str, Any]:
    flag_context = event.flag.to_context()
    return {
        "event_type": event.event_type,
        "flag": flag_context,
        "environments": flag_context["environments"],
        "previous": event.previous.to_context() if event.previous else None,
        "changed_environment": event.changed_environment.to_dict() if event.changed_environment else None,
        "previous_environment": event.previous_environment.to_dict() if event.previous_environment else None,
        "timestamp": timestamp or datetime.now(UTC).isoformat(),
    }


class ChangeDispatcher:
    """Fans a flag change out to every subscribed webhook.

    Deliveries run concurrently up to ``max_concurrency``. Nothing raised by
    rendering, delivery or the repository escapes ``dispatch``; the write
    that produced the event has already committed.
    """

    def __init__(
        self,
        repository: Repository,
        client: WebhookClient | None = None,
        *,
        enabled: bool = True,
        timeout: float = 5.0,
        max_attempts: int = 2,
        retry_delay: float = 0.1,
        max_concurrency: int = 5,
    ) -> None:
        self.repository = repository
        self.client = client or WebhookClient()
        self.enabled = enabled
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.max_concurrency = max(1, max_concurrency)

    @classmethod
    def from_settings(cls, repository: Repository, client: WebhookClient | None = None) -> ChangeDispatcher:
        return cls(
            repository,
            client,
            enabled=settings.webhooks_enabled,
            timeout=settings.webhooks_timeout_seconds,
            max_attempts=settings.webhooks_max_attempts,
            retry_delay=settings.webhooks_retry_delay_seconds,
            max_concurrency=settings.webhooks_max_concurrency,
        )

    def _subscribers(self, event_type: str) -> list[Webhook]:
        filters: dict[str, Any] = {"is_active": True}
        if event_type == WebhookEventType.ENVIRONMENT_VALUE_UPDATED.value:
            filters["include_environment_changes"] = True
        webhooks = self.repository.find("Webhook", filters)
        return [webhook for webhook in webhooks if event_type in (webhook.event_types or [])]

    async def _deliver_one(
        self,
        webhook: Webhook,
        event: FlagChangeEvent,
        context: dict[str, Any],
        semaphore: asyncio.Semaphore,
    ) -> DeliveryResult:
        async with semaphore:
            started_at = perf_counter()
            try:
                body = render_payload(webhook.payload_template, context)
                result = await self.client.deliver(
                    webhook.url,
                    dict(webhook.headers or {}),
                    body,
                    timeout=self.timeout,
                    max_attempts=self.max_attempts,
                    retry_delay=self.retry_delay,
                )
            except Exception as exc:
                logger.exception(
                    "webhook_dispatch_error webhook=%s event=%s flag=%s",
                    webhook.name,
                    event.event_type,
                    event.flag.name,
                )
                result = DeliveryResult(success=False, error=str(exc))
            record_webhook_delivery(
                event_type=event.event_type,
                success=result.success,
                attempts=result.attempts,
                duration_seconds=perf_counter() - started_at,
            )
        if result.success:
            logger.debug(
                "webhook_delivered webhook=%s event=%s flag=%s status=%s attempts=%s",
                webhook.name,
                event.event_type,
                event.flag.name,
                result.status_code,
                result.attempts,
            )
        else:
            logger.warning(
                "webhook_delivery_failed webhook=%s event=%s flag=%s attempts=%s error=%s",
                webhook.name,
                event.event_type,
                event.flag.name,
                result.attempts,
                result.error,
            )
        return result

    async def dispatch(self, event: FlagChangeEvent) -> list[DeliveryResult]:
        if not self.enabled:
            return []
        try:
            webhooks = self._subscribers(event.event_type)
            if not webhooks:
                return []
            context = build_event_context(event)
            semaphore = asyncio.Semaphore(self.max_concurrency)
            tasks = [self._deliver_one(webhook, event, context, semaphore) for webhook in webhooks]
            return list(await asyncio.gather(*tasks))
        except Exception:
            logger.exception("webhook_dispatch_failed event=%s flag=%s", event.event_type, event.flag.name)
            return []

    async def dispatch_flag_change(
        self,
        event_type: str,
        flag: Flag | FlagSnapshot,
        previous: FlagSnapshot | None = None,
    ) -> list[DeliveryResult]:
        if not self.enabled:
            return []
        try:
            snapshot = flag if isinstance(flag, FlagSnapshot) else snapshot_flag(self.repository, flag)
        except Exception:
            logger.exception("webhook_snapshot_failed event=%s", event_type)
            return []
        return await self.dispatch(FlagChangeEvent(event_type=event_type, flag=snapshot, previous=previous))

    async def dispatch_environment_change(
        self,
        env_value: EnvironmentValue,
        previous_environment: EnvironmentSnapshot | None = None,
    ) -> list[DeliveryResult]:
        if not self.enabled:
            return []
        try:
            flag = self.repository.get("Flag", env_value.flag_id)
            environment = self.repository.get("Environment", env_value.environment_id)
            if flag is None or environment is None:
                return []
            event = FlagChangeEvent(
                event_type=WebhookEventType.ENVIRONMENT_VALUE_UPDATED.value,
                flag=snapshot_flag(self.repository, flag),
                changed_environment=EnvironmentSnapshot.from_value(environment, env_value),
                previous_environment=previous_environment,
            )
        except Exception:
            logger.exception("webhook_snapshot_failed event=%s", WebhookEventType.ENVIRONMENT_VALUE_UPDATED.value)
            return []
        return await self.dispatch(event)

    async def dispatch_test(self, webhook: Webhook, flag: Flag) -> DeliveryResult:
        """Send one ``webhook_test`` delivery, with the flag standing in as its own previous state."""
        started_at = perf_counter()
        try:
            snapshot = snapshot_flag(self.repository, flag)
            event = FlagChangeEvent(
                event_type=WebhookEventType.WEBHOOK_TEST.value,
                flag=snapshot,
                previous=snapshot,
            )
            body = render_payload(webhook.payload_template, build_event_context(event))
            result = await self.client.deliver_test(
                webhook.url,
                dict(webhook.headers or {}),
                body,
                timeout=self.timeout,
            )
        except Exception as exc:
            logger.exception("webhook_test_failed webhook=%s flag=%s", webhook.name, flag.name)
            result = DeliveryResult(success=False, error=str(exc), attempts=1)
        record_webhook_delivery(
            event_type=WebhookEventType.WEBHOOK_TEST.value,
            success=result.success,
            attempts=result.attempts,
            duration_seconds=perf_counter() - started_at,
        )
        logger.info(
            "webhook_test_sent webhook=%s flag=%s success=%s status=%s",
            webhook.name,
            flag.name,
            result.success,
            result.status_code,
        )
        return result
