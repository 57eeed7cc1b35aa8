from app.domain.models.api_key import ApiKey
from app.domain.models.api_key_environment import ApiKeyEnvironment
from app.domain.models.environment import Environment
from app.domain.models.environment_value import EnvironmentValue
from app.domain.models.flag import Flag, FlagType
from app.domain.models.webhook import Webhook, WebhookEventType

__all__ = [
    "ApiKey",
    "ApiKeyEnvironment",
    "Environment",
    "EnvironmentValue",
    "Flag",
    "FlagType",
    "Webhook",
    "WebhookEventType",
]
