import asyncio
import logging
from datetime import UTC, datetime

from app.application.services.flag_events import FlagChangeEvent
from app.application.services.webhook_dispatcher import ChangeDispatcher
from app.core.config import settings
from app.infrastructure.cache.redis_client import get_redis_client
from app.infrastructure.db.repository import SqlAlchemyRepository
from app.infrastructure.db.session import SessionLocal
from app.infrastructure.observability.metrics import measure_redis
from workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.tasks.dispatch_flag_change", acks_late=True)
def dispatch_flag_change(event_payload: dict) -> dict:
    try:
        event = FlagChangeEvent.from_dict(event_payload)
    except (KeyError, ValueError):
        logger.exception("flag_change_payload_invalid")
        return {"status": "invalid"}

    with SessionLocal() as db:
        dispatcher = ChangeDispatcher.from_settings(SqlAlchemyRepository(db))
        results = asyncio.run(dispatcher.dispatch(event))

    delivered = sum(1 for result in results if result.success)
    failed = len(results) - delivered
    logger.info(
        "flag_change_dispatched event=%s flag=%s delivered=%s failed=%s",
        event.event_type,
        event.flag.name,
        delivered,
        failed,
    )
    return {"status": "dispatched", "delivered": delivered, "failed": failed}


@celery_app.task(name="workers.tasks.ping")
def ping() -> str:
    return "pong"


@celery_app.task(name="workers.tasks.worker_heartbeat")
def worker_heartbeat() -> dict:
    redis_client = get_redis_client()
    now = datetime.now(UTC).isoformat()
    with measure_redis("worker_heartbeat_set"):
        redis_client.set(
            settings.worker_heartbeat_key,
            now,
            ex=max(15, settings.worker_heartbeat_ttl_seconds),
        )
    return {"heartbeat_at": now}
