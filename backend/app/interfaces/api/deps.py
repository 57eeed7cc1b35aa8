import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.application.services.access_evaluator import UNAUTHORIZED_MESSAGE, AccessEvaluator, AuthenticationResult
from app.application.services.flag_service import ChangePublisher, enqueue_flag_change
from app.core.config import settings
from app.core.security import tokens_match
from app.infrastructure.db.repository import Repository, SqlAlchemyRepository
from app.infrastructure.db.session import get_db
from app.infrastructure.logging.context import set_api_key_id
from app.integrations.webhook_client import WebhookClient

logger = logging.getLogger(__name__)

UNAUTHORIZED_DETAIL = {"error_code": "unauthorized", "message": UNAUTHORIZED_MESSAGE}


def get_repository(db: Session = Depends(get_db)) -> Repository:
    return SqlAlchemyRepository(db)


def get_change_publisher() -> ChangePublisher:
    return enqueue_flag_change


def require_api_key(
    environment: str,
    authorization: str | None = Header(default=None),
    repository: Repository = Depends(get_repository),
) -> AuthenticationResult:
    result = AccessEvaluator(repository).authenticate(authorization, environment)
    if not result.authorized:
        # The caller only ever learns "Unauthorized"; the reason stays in the logs.
        logger.debug("api_key_rejected environment=%s reason=%s", environment, result.reason)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED_DETAIL)
    set_api_key_id(str(result.api_key.id))
    return result


def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    if not settings.admin_api_token:
        logger.debug("admin_api_disabled")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED_DETAIL)
    if not tokens_match(settings.admin_api_token, x_admin_token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED_DETAIL)


def get_webhook_client() -> WebhookClient:
    return WebhookClient()
