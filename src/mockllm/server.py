"""
Mock LLM Server

FastAPI-based HTTP server impersonating the OpenAI chat completions and
Anthropic messages APIs for integration tests.

Features:
- First-match-wins lookup of configured request/response pairs
- Diagnostic 404s echoing unmatched requests
- Start on an ephemeral port with readiness polling
- Graceful shutdown with a deadline
"""

import asyncio
import logging
import socket
from enum import Enum
from typing import Dict, Any, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import LOG_LEVELS, Config, load_config_from_file, parse_listen_addr
from .exceptions import (
    ConfigError,
    HealthCheckError,
    ReadinessTimeoutError,
    RetryCancelledError,
    ServerStateError,
    ShutdownTimeoutError
)
from .providers import OpenAIProvider, AnthropicProvider
from .retry import retry_with_backoff

SERVICE_NAME = "mock-llm"
HEALTH_PATH = "/health"
OPENAI_PATH = "/v1/chat/completions"
ANTHROPIC_PATH = "/v1/messages"
SUPPORTED_HINT = f"Supported: {OPENAI_PATH} (OpenAI), {ANTHROPIC_PATH} (Anthropic)"

# Hosts that bind every interface; health checks and URLs go through loopback instead
_WILDCARD_HOSTS = {"0.0.0.0": "127.0.0.1", "::": "::1", "": "127.0.0.1"}


class ServerState(Enum):
    """Lifecycle states of a MockLLMServer."""

    CREATED = "created"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    STOPPED = "stopped"


class MockLLMServer:
    """
    Mock LLM server with an explicit start/stop lifecycle.

    Each instance owns its own FastAPI app and providers, so several servers
    can run side by side in one process.

    Example:
        config = load_config_from_file('mocks.json')

        async with MockLLMServer(config) as server:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{server.base_url}/v1/chat/completions",
                    json={'model': 'gpt-4o', 'messages': [...]}
                )
    """

    def __init__(self, config: Optional[Config] = None):
        """
        Initialize mock server.

        Args:
            config: Server configuration and expectations (defaults to an empty Config)
        """
        self.config = config or Config()

        self.logger = logging.getLogger("mockllm.server")
        if self.config.log_level.lower() not in LOG_LEVELS:
            raise ConfigError(f"Invalid log_level '{self.config.log_level}', expected one of: {', '.join(LOG_LEVELS)}")
        logging.getLogger("mockllm").setLevel(getattr(logging, self.config.log_level.upper()))

        self.openai_provider = OpenAIProvider(
            self.config.openai,
            require_auth=self.config.require_openai_auth
        )
        self.anthropic_provider = AnthropicProvider(self.config.anthropic)

        self.app = self._create_app()

        self.state = ServerState.CREATED
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._socket: Optional[socket.socket] = None
        self._base_url: Optional[str] = None

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="Mock LLM Server",
            description="Mock OpenAI and Anthropic APIs serving configured responses",
            version="1.0.0",
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        @app.get(HEALTH_PATH)
        async def health():
            """Liveness plus configured mock counts."""
            return JSONResponse(content=self.health_status())

        @app.post(OPENAI_PATH)
        async def chat_completions(request: Request):
            body = await request.body()
            return self.openai_provider.handle(request.headers, body)

        @app.post(ANTHROPIC_PATH)
        async def messages(request: Request):
            body = await request.body()
            return self.anthropic_provider.handle(request.headers, body)

        # Catch-all for unknown paths and wrong methods on known paths
        @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"])
        async def not_found(request: Request, path: str):
            return JSONResponse(
                status_code=404,
                content={
                    'error': 'Endpoint not found',
                    'path': request.url.path,
                    'method': request.method,
                    'hint': SUPPORTED_HINT
                }
            )

        return app

    def health_status(self) -> Dict[str, Any]:
        return {
            'status': 'healthy',
            'service': SERVICE_NAME,
            'openai': self.openai_provider.mock_count,
            'anthropic': self.anthropic_provider.mock_count
        }

    @property
    def base_url(self) -> Optional[str]:
        """Resolved base URL once the listener is bound, else None."""
        return self._base_url

    @property
    def port(self) -> Optional[int]:
        if self._socket is None:
            return None
        return self._socket.getsockname()[1]

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app

    async def start(self, cancel: Optional[asyncio.Event] = None) -> str:
        """
        Bind the listener, serve in the background and wait until healthy.

        The listener stays bound if the server never becomes healthy; call
        stop() to release it.

        Args:
            cancel: Optional event that abandons readiness polling once set

        Returns:
            Base URL of the running server, e.g. "http://127.0.0.1:54321"

        Raises:
            ServerStateError: If a listener from a previous start is still held
            OSError: If the listen address can't be bound
            RetryCancelledError: If ``cancel`` was set during readiness polling
            ReadinessTimeoutError: If the health endpoint never reported success
        """
        if self.state in (ServerState.STARTING, ServerState.READY, ServerState.FAILED):
            raise ServerStateError(f"Server already started (state: {self.state.value}); call stop() first")

        host, port = parse_listen_addr(self.config.listen_addr)
        self.state = ServerState.STARTING

        uvicorn_config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level=self.config.log_level.lower(),
            access_log=self.config.access_log
        )

        try:
            self._socket = self._bind_socket(host, port, uvicorn_config.backlog)
        except OSError:
            self.state = ServerState.CREATED
            raise

        bound_port = self._socket.getsockname()[1]
        self._base_url = f"http://{_url_host(host)}:{bound_port}"

        self._server = uvicorn.Server(uvicorn_config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[self._socket]))

        # Overall readiness budget; a hanging health request must not stretch it
        budget = self.config.health_attempts * self.config.health_max_delay

        try:
            await asyncio.wait_for(self._wait_until_healthy(cancel), timeout=budget)
        except RetryCancelledError:
            self.state = ServerState.FAILED
            self.logger.warning(f"Readiness polling cancelled for {self._base_url}")
            raise
        except asyncio.CancelledError:
            self.state = ServerState.FAILED
            raise
        except asyncio.TimeoutError as e:
            self.state = ServerState.FAILED
            raise ReadinessTimeoutError(f"server not healthy within {budget:.2f}s") from e
        except Exception as e:
            self.state = ServerState.FAILED
            raise ReadinessTimeoutError(f"failed to health check server: {e}") from e

        self.state = ServerState.READY
        self.logger.info(
            f"Mock LLM server listening on {self._base_url} "
            f"({self.openai_provider.mock_count} OpenAI, {self.anthropic_provider.mock_count} Anthropic mocks)"
        )
        return self._base_url

    async def _wait_until_healthy(self, cancel: Optional[asyncio.Event]) -> None:
        health_url = f"{self._base_url}{HEALTH_PATH}"

        async with httpx.AsyncClient(timeout=self.config.health_max_delay, trust_env=False) as client:

            async def check_health():
                if self._serve_task.done():
                    exit_error = None if self._serve_task.cancelled() else self._serve_task.exception()
                    raise HealthCheckError("server task exited before becoming healthy") from exit_error

                response = await client.get(health_url)
                if response.status_code != 200:
                    raise HealthCheckError(f"health check failed: {response.status_code}")

            await retry_with_backoff(
                self.config.health_attempts,
                self.config.health_base_delay,
                self.config.health_max_delay,
                check_health,
                cancel=cancel
            )

    @staticmethod
    def _bind_socket(host: str, port: int, backlog: int) -> socket.socket:
        """Bind and listen so connections queue before the serve loop runs."""
        family = socket.AF_INET6 if ':' in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(backlog)
        except OSError:
            sock.close()
            raise
        return sock

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Gracefully stop the server, draining in-flight requests.

        Calling stop() on a server that was never started, or twice, is a no-op.

        Args:
            timeout: Drain deadline in seconds (defaults to config.shutdown_timeout)

        Raises:
            ShutdownTimeoutError: If draining took longer than the deadline
        """
        if self._server is None:
            self._release()
            return

        if self._serve_task.done():
            exit_error = None if self._serve_task.cancelled() else self._serve_task.exception()
            if exit_error is not None:
                self.logger.error(f"Server task for {self._base_url} had exited: {exit_error}")
            self._release()
            return

        timeout = self.config.shutdown_timeout if timeout is None else timeout
        self._server.should_exit = True

        try:
            await asyncio.wait_for(self._serve_task, timeout=timeout)
        except asyncio.TimeoutError as e:
            self.logger.warning(f"Shutdown of {self._base_url} timed out after {timeout}s")
            raise ShutdownTimeoutError(f"server did not drain within {timeout}s") from e
        finally:
            self._release()

        self.logger.info("Mock LLM server stopped")

    def _release(self) -> None:
        # uvicorn skips its own shutdown when asked to exit before startup completes,
        # and only sets `servers` once startup runs
        if self._server is not None:
            for listener in getattr(self._server, 'servers', []):
                listener.close()
        if self._socket is not None:
            self._socket.close()
        if self.state != ServerState.CREATED:
            self.state = ServerState.STOPPED
        self._server = None
        self._serve_task = None
        self._socket = None
        self._base_url = None

    async def __aenter__(self) -> 'MockLLMServer':
        try:
            await self.start()
        except (ReadinessTimeoutError, RetryCancelledError, asyncio.CancelledError):
            await self.stop()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def run(self) -> None:
        """Start the server and block until interrupted (Ctrl+C)."""
        asyncio.run(self._run_until_exit())

    async def _run_until_exit(self) -> None:
        await self.start()
        try:
            await self._serve_task
        finally:
            await self.stop()


def _url_host(host: str) -> str:
    host = _WILDCARD_HOSTS.get(host, host)
    return f"[{host}]" if ':' in host else host


def create_mock_server(
    config_file: str,
    listen_addr: Optional[str] = None,
    log_level: Optional[str] = None,
    access_log: Optional[bool] = None
) -> MockLLMServer:
    """
    Convenience function to create a mock server from a configuration file.

    Args:
        config_file: Path to a JSON or YAML configuration file
        listen_addr: Override for the configured "host:port"
        log_level: Override for the configured log level
        access_log: Override for uvicorn access logging

    Returns:
        Configured MockLLMServer instance (not started)

    Example:
        server = create_mock_server('mocks.yaml', listen_addr='127.0.0.1:8080')
        server.run()
    """
    config = load_config_from_file(config_file)

    if listen_addr is not None:
        config.listen_addr = listen_addr
    if log_level is not None:
        config.log_level = log_level
    if access_log is not None:
        config.access_log = access_log

    return MockLLMServer(config)
