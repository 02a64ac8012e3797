"""
Main FastAPI application for the worker service.

One worker process serves one conversational session on RPC_PORT. The
orchestrator is the only caller; there is no authentication layer.
"""
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger as l
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from worker import meta_config
from worker.fastapis import router
from worker.models import AnthropicClient, CommandExecutor, WorkerSession
from worker.prompts import build_system_prompt
from worker.utils.aiohttp_client_session_mixin import AioHttpClientSessionClassVarMixin

INTERNAL_ERROR_DETAIL = "Internal server error. See the worker log for details."


def build_session() -> WorkerSession:
    """Session configured from the launch-time environment."""
    system_prompt = None
    if meta_config.AUTONOMOUS:
        system_prompt = build_system_prompt(meta_config.WORKER_NAME, meta_config.load_system_prompt())
    return WorkerSession(
        meta_config.WORKER_NAME,
        AnthropicClient(),
        autonomous=meta_config.AUTONOMOUS,
        system_prompt=system_prompt,
        executor=CommandExecutor(),
    )


def create_app(session: WorkerSession | None = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        l.info(f"Worker {meta_config.WORKER_NAME} is starting up (autonomous={meta_config.AUTONOMOUS})...")
        await AioHttpClientSessionClassVarMixin.initialize_http_session()
        app.state.session = session if session is not None else build_session()
        yield
        l.info("Worker is shutting down...")
        await AioHttpClientSessionClassVarMixin.close_http_session()

    app = FastAPI(title="LLM Fleet Worker", lifespan=lifespan)

    @app.exception_handler(Exception)
    async def handle_unexpected_exceptions(request: Request, exc: Exception):
        l.exception(f"An unhandled exception occurred for request: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": INTERNAL_ERROR_DETAIL},
        )

    app.include_router(router)
    return app


def main() -> None:
    l.remove()
    l.add(sys.stderr, level=meta_config.LOG_LEVEL)
    l.info(f"Worker {meta_config.WORKER_NAME} listening on {meta_config.RPC_HOST}:{meta_config.RPC_PORT}")
    uvicorn.run(create_app(), host=meta_config.RPC_HOST, port=meta_config.RPC_PORT, log_level="warning")


if __name__ == "__main__":
    main()
