"""
Shared aiohttp ClientSession for the worker's outbound HTTP.

Both the LLM client and the WebFetch command go through one ClassVar
session owned by this mixin. The FastAPI lifespan opens it with
`initialize_http_session()` and closes it with `close_http_session()`.

Usage example:
    ```python
    class MyService(AioHttpClientSessionClassVarMixin):
        async def fetch(self, url: str) -> str:
            async with self.http_session.get(url) as resp:
                return await resp.text()

    await AioHttpClientSessionClassVarMixin.initialize_http_session()
    ...
    await AioHttpClientSessionClassVarMixin.close_http_session()
    ```

Requests are traced at debug level; credential headers never reach the log.
"""
from typing import ClassVar

import aiohttp
from aiohttp import TraceConfig, TraceRequestStartParams
from loguru import logger as l

REDACTED_HEADERS = frozenset({'x-api-key', 'authorization', 'proxy-authorization', 'cookie'})
_BODY_LOG_LIMIT = 2000


def redact_headers(headers) -> dict[str, str]:
    """Copy of headers with credential values masked."""
    return {
        key: ('***' if key.lower() in REDACTED_HEADERS else value)
        for key, value in headers.items()
    }


async def _on_request_start(
    session: aiohttp.ClientSession,
    trace_config_ctx: aiohttp.tracing.SimpleNamespace,
    params: TraceRequestStartParams,
) -> None:
    trace_config_ctx.method = params.method
    trace_config_ctx.url = params.url
    trace_config_ctx.headers = redact_headers(params.headers)
    trace_config_ctx.body_chunks = []


async def _on_request_chunk_sent(
    session: aiohttp.ClientSession,
    trace_config_ctx: aiohttp.tracing.SimpleNamespace,
    params: aiohttp.TraceRequestChunkSentParams,
) -> None:
    trace_config_ctx.body_chunks.append(params.chunk)


async def _on_request_end(
    session: aiohttp.ClientSession,
    trace_config_ctx: aiohttp.tracing.SimpleNamespace,
    params: aiohttp.TraceRequestEndParams,
) -> None:
    body = b''.join(trace_config_ctx.body_chunks)
    body_str = body.decode('utf-8', errors='replace')[:_BODY_LOG_LIMIT] if body else "(empty)"
    l.debug(
        f"[HTTP Request] {trace_config_ctx.method} {trace_config_ctx.url} -> {params.response.status}\n"
        f"Headers: {trace_config_ctx.headers}\n"
        f"Body: {body_str}"
    )


async def _on_request_exception(
    session: aiohttp.ClientSession,
    trace_config_ctx: aiohttp.tracing.SimpleNamespace,
    params: aiohttp.TraceRequestExceptionParams,
) -> None:
    l.error(
        f"[HTTP Request Exception] {trace_config_ctx.method} {trace_config_ctx.url}\n"
        f"Exception: {type(params.exception).__name__}: {params.exception}"
    )


def _create_trace_config() -> TraceConfig:
    trace_config = TraceConfig()
    trace_config.on_request_start.append(_on_request_start)
    trace_config.on_request_chunk_sent.append(_on_request_chunk_sent)
    trace_config.on_request_end.append(_on_request_end)
    trace_config.on_request_exception.append(_on_request_exception)
    return trace_config


class AioHttpClientSessionClassVarMixin:
    """
    Mixin to provide a shared aiohttp ClientSession.

    All classes inheriting this mixin share a single global ClientSession instance.
    """

    _http_session: ClassVar[aiohttp.ClientSession | None] = None

    @classmethod
    async def initialize_http_session(cls, **session_kwargs) -> None:
        """Opens the shared session. Call once from an async context (FastAPI lifespan)."""
        assert cls._http_session is None or cls._http_session.closed, "HTTP session already initialized"

        session_kwargs.setdefault('connector', aiohttp.TCPConnector(
            limit=20,
            keepalive_timeout=60,
            enable_cleanup_closed=True,
            ttl_dns_cache=300,
        ))
        session_kwargs.setdefault('timeout', aiohttp.ClientTimeout(total=300, connect=30))

        AioHttpClientSessionClassVarMixin._http_session = aiohttp.ClientSession(
            trust_env=True,
            trace_configs=[_create_trace_config()],
            **session_kwargs,
        )
        l.info(f"{cls.__name__}: HTTP session initialized")

    @classmethod
    def get_http_session(cls) -> aiohttp.ClientSession:
        session = AioHttpClientSessionClassVarMixin._http_session
        assert session is not None and not session.closed, (
            "HTTP session not initialized. "
            "Call `AioHttpClientSessionClassVarMixin.initialize_http_session()` during application startup."
        )
        return session

    @property
    def http_session(self) -> aiohttp.ClientSession:
        return self.__class__.get_http_session()

    @classmethod
    async def close_http_session(cls) -> None:
        """Closes the shared session if it is open."""
        session = AioHttpClientSessionClassVarMixin._http_session
        if session is None or session.closed:
            return
        await session.close()
        AioHttpClientSessionClassVarMixin._http_session = None
        l.info(f"{cls.__name__}: HTTP session closed")
