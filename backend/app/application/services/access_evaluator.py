from __future__ import annotations

import logging
from dataclasses import dataclass

from app.core.security import extract_bearer_token
from app.domain.models.api_key import ApiKey
from app.domain.models.environment import Environment
from app.infrastructure.db.repository import Repository

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized"


@dataclass(frozen=True)
class AuthenticationResult:
    api_key: ApiKey | None
    environment: Environment | None = None
    reason: str | None = None

    @property
    def authorized(self) -> bool:
        return self.api_key is not None and self.reason is None


class AccessEvaluator:
    """Decides whether an API key may read flag state for an environment.

    A key without environment grants is unrestricted. A key with one or more
    grants may read exactly those environments and nothing else.
    """

    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    def find_environment(self, environment_name: str) -> Environment | None:
        if not environment_name:
            return None
        environments = self.repository.find("Environment", {"name": environment_name})
        return environments[0] if environments else None

    def find_api_key(self, token: str) -> ApiKey | None:
        if not token:
            return None
        api_keys = self.repository.find("ApiKey", {"token": token})
        return api_keys[0] if api_keys else None

    def granted_environment_ids(self, credential: ApiKey) -> set:
        grants = self.repository.find("ApiKeyEnvironment", {"api_key_id": credential.id})
        return {grant.environment_id for grant in grants}

    def authorize(self, credential: ApiKey | None, environment_name: str) -> bool:
        if credential is None or getattr(credential, "id", None) is None:
            return False
        environment = self.find_environment(environment_name)
        if environment is None:
            return False
        granted = self.granted_environment_ids(credential)
        return not granted or environment.id in granted

    def authenticate(self, authorization_header: str | None, environment_name: str) -> AuthenticationResult:
        """Resolve the bearer token and check it against ``environment_name``.

        An unrestricted key asking for an environment that does not exist is
        authenticated with ``environment=None`` so the caller can answer 404;
        a restricted key gets no such hint.
        """
        if not authorization_header:
            return AuthenticationResult(api_key=None, reason="missing_authorization_header")
        token = extract_bearer_token(authorization_header)
        if token is None:
            return AuthenticationResult(api_key=None, reason="invalid_authorization_header")
        api_key = self.find_api_key(token)
        if api_key is None:
            return AuthenticationResult(api_key=None, reason="unknown_api_key")

        environment = self.find_environment(environment_name)
        granted = self.granted_environment_ids(api_key)
        if environment is None:
            if granted:
                return AuthenticationResult(api_key=api_key, reason="environment_not_authorized")
            return AuthenticationResult(api_key=api_key)
        if granted and environment.id not in granted:
            return AuthenticationResult(api_key=api_key, environment=environment, reason="environment_not_authorized")
        return AuthenticationResult(api_key=api_key, environment=environment)
