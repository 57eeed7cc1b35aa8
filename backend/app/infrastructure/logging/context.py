from contextvars import ContextVar

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
_api_key_id_ctx: ContextVar[str | None] = ContextVar("api_key_id", default=None)


def set_request_id(request_id: str | None) -> object:
    return _request_id_ctx.set(request_id)


def get_request_id() -> str | None:
    return _request_id_ctx.get()


def reset_request_id(token: object) -> None:
    _request_id_ctx.reset(token)


def set_api_key_id(api_key_id: str | None) -> object:
    return _api_key_id_ctx.set(api_key_id)


def get_api_key_id() -> str | None:
    return _api_key_id_ctx.get()


def reset_api_key_id(token: object) -> None:
    _api_key_id_ctx.reset(token)
