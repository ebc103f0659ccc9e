"""
Tests for Mock LLM Server

Tests the FastAPI-based mock server including:
- Health and not-found routes
- Provider routes end to end
- Start/stop lifecycle on an ephemeral port
- Readiness failure and cancellation
"""

import asyncio
import json
import time

import httpx
import pytest
from unittest.mock import AsyncMock, Mock, patch
from fastapi.testclient import TestClient

from mockllm.config import Config, MockExpectation
from mockllm.exceptions import (
    ConfigError,
    HealthCheckError,
    ReadinessTimeoutError,
    RetryCancelledError,
    ServerStateError,
    ShutdownTimeoutError
)
from mockllm.server import MockLLMServer, ServerState, create_mock_server

ANTHROPIC_HEADERS = {'x-api-key': 'test-key', 'anthropic-version': '2023-06-01'}


@pytest.fixture
def openai_mock():
    """Exact OpenAI mock answering "ping" with "pong"."""
    return MockExpectation.from_dict({
        'name': 'ping-pong',
        'match': {
            'match_type': 'exact',
            'message': {'role': 'user', 'content': [{'type': 'text', 'text': 'ping'}]}
        },
        'response': {
            'id': 'chatcmpl-123',
            'object': 'chat.completion',
            'model': 'gpt-4o',
            'choices': [{
                'index': 0,
                'message': {'role': 'assistant', 'content': 'pong'},
                'finish_reason': 'stop'
            }]
        }
    })


@pytest.fixture
def anthropic_mock():
    """Contains-match Anthropic mock on the word "weather"."""
    return MockExpectation.from_dict({
        'name': 'weather',
        'match': {
            'match_type': 'contains',
            'message': {'role': 'user', 'content': [{'type': 'text', 'text': 'weather'}]}
        },
        'response': {
            'id': 'msg_123',
            'type': 'message',
            'role': 'assistant',
            'content': [{'type': 'text', 'text': 'Sunny and 22C'}],
            'stop_reason': 'end_turn'
        }
    })


@pytest.fixture
def config(openai_mock, anthropic_mock):
    return Config(
        listen_addr='127.0.0.1:0',
        openai=[openai_mock],
        anthropic=[anthropic_mock],
        health_attempts=5,
        health_base_delay=0.05,
        health_max_delay=0.5
    )


@pytest.fixture
def client(config):
    return TestClient(MockLLMServer(config).app)


def openai_request(text):
    return {
        'model': 'gpt-4o',
        'messages': [{'role': 'user', 'content': [{'type': 'text', 'text': text}]}]
    }


def anthropic_request(text):
    return {
        'model': 'claude-sonnet',
        'max_tokens': 256,
        'messages': [{'role': 'user', 'content': [{'type': 'text', 'text': text}]}]
    }


class TestMockLLMServer:
    """Test MockLLMServer construction."""

    def test_server_initialization(self, config):
        """Test initializing the server."""
        server = MockLLMServer(config)

        assert server.state == ServerState.CREATED
        assert server.base_url is None
        assert server.port is None
        assert server.openai_provider.mock_count == 1
        assert server.anthropic_provider.mock_count == 1

    def test_default_config(self):
        """Test a server without configuration has no mocks."""
        server = MockLLMServer()

        assert server.config.listen_addr == ''
        assert server.health_status()['openai'] == 0

    def test_invalid_log_level(self):
        """Test an unknown log level is rejected when the server is built."""
        with pytest.raises(ConfigError, match="log_level"):
            MockLLMServer(Config(log_level='verbose'))

    def test_apps_are_independent(self, config):
        """Test each server builds its own app."""
        first = MockLLMServer(config)
        second = MockLLMServer(Config())

        assert first.get_app() is not second.get_app()
        assert TestClient(second.app).get('/health').json()['openai'] == 0

    def test_create_mock_server(self, tmp_path):
        """Test creating a server from a configuration file with overrides."""
        path = tmp_path / 'mocks.json'
        path.write_text(json.dumps({'listen_addr': '0.0.0.0:9999', 'openai': [], 'anthropic': []}))

        server = create_mock_server(str(path), listen_addr='127.0.0.1:0', log_level='warning')

        assert server.config.listen_addr == '127.0.0.1:0'
        assert server.config.log_level == 'warning'


class TestServerRoutes:
    """Test HTTP routes through the FastAPI test client."""

    def test_health(self, client):
        """Test the health endpoint reports mock counts."""
        response = client.get('/health')

        assert response.status_code == 200
        assert response.json() == {
            'status': 'healthy',
            'service': 'mock-llm',
            'openai': 1,
            'anthropic': 1
        }

    def test_unknown_path(self, client):
        """Test an unknown path returns a structured hint."""
        response = client.get('/v1/embeddings')

        assert response.status_code == 404
        data = response.json()
        assert data['error'] == 'Endpoint not found'
        assert data['path'] == '/v1/embeddings'
        assert data['method'] == 'GET'
        assert '/v1/chat/completions' in data['hint']
        assert '/v1/messages' in data['hint']

    def test_unknown_path_post(self, client):
        """Test POST to an unknown path."""
        response = client.post('/v2/chat', json={})

        assert response.status_code == 404
        assert response.json()['method'] == 'POST'

    def test_wrong_method_on_provider_path(self, client):
        """Test GET on a provider path falls through to the not-found route."""
        response = client.get('/v1/chat/completions')

        assert response.status_code == 404
        assert response.json()['path'] == '/v1/chat/completions'

    def test_docs_disabled(self, client):
        """Test that framework documentation routes aren't exposed."""
        assert client.get('/docs').status_code == 404
        assert client.get('/openapi.json').status_code == 404

    def test_openai_match(self, client):
        """Test an exact OpenAI match returns 200 with the canned body."""
        response = client.post('/v1/chat/completions', json=openai_request('ping'))

        assert response.status_code == 200
        assert response.headers['content-type'].startswith('application/json')
        assert response.json()['choices'][0]['message']['content'] == 'pong'

    def test_openai_no_match(self, client):
        """Test a different last message returns 404 with the request echoed."""
        response = client.post('/v1/chat/completions', json=openai_request('ping!'))

        assert response.status_code == 404
        assert 'No matching mock found' in response.text
        assert 'ping!' in response.text

    def test_openai_invalid_json(self, client):
        """Test malformed JSON returns 400."""
        response = client.post(
            '/v1/chat/completions',
            content=b'{not json',
            headers={'Content-Type': 'application/json'}
        )

        assert response.status_code == 400
        assert 'Invalid JSON' in response.text

    def test_anthropic_match(self, client):
        """Test an Anthropic contains match."""
        response = client.post('/v1/messages', json=anthropic_request("what's the weather today"), headers=ANTHROPIC_HEADERS)

        assert response.status_code == 200
        assert response.json()['content'][0]['text'] == 'Sunny and 22C'

    def test_anthropic_missing_version(self, client):
        """Test a missing anthropic-version header returns 400."""
        response = client.post(
            '/v1/messages',
            json=anthropic_request("what's the weather today"),
            headers={'x-api-key': 'test-key'}
        )

        assert response.status_code == 400

    def test_anthropic_missing_key(self, client):
        """Test a missing x-api-key header returns 401."""
        response = client.post(
            '/v1/messages',
            json=anthropic_request("what's the weather today"),
            headers={'anthropic-version': '2023-06-01'}
        )

        assert response.status_code == 401

    def test_header_names_case_insensitive(self, client):
        """Test required headers are found regardless of case."""
        response = client.post(
            '/v1/messages',
            json=anthropic_request('weather?'),
            headers={'X-Api-Key': 'test-key', 'Anthropic-Version': '2023-06-01'}
        )

        assert response.status_code == 200


class TestServerLifecycle:
    """Test start/stop against a real listener."""

    def test_start_and_stop(self, config):
        """Test start returns a reachable URL and stop releases it."""
        async def scenario():
            server = MockLLMServer(config)
            base_url = await server.start()
            try:
                assert server.state == ServerState.READY
                assert base_url == f"http://127.0.0.1:{server.port}"
                async with httpx.AsyncClient(trust_env=False) as http:
                    response = await http.get(f"{base_url}/health")
                return response.status_code, response.json()
            finally:
                await server.stop()
                assert server.state == ServerState.STOPPED
                assert server.port is None

        status, body = asyncio.run(scenario())

        assert status == 200
        assert body['openai'] == 1

    def test_default_listen_address(self):
        """Test the default all-interfaces bind resolves to a loopback URL."""
        async def scenario():
            server = MockLLMServer(Config(health_base_delay=0.05))
            base_url = await server.start()
            await server.stop()
            return base_url

        base_url = asyncio.run(scenario())

        assert base_url.startswith('http://127.0.0.1:')
        assert not base_url.endswith(':0')

    def test_end_to_end_openai(self, config):
        """Test matched and unmatched OpenAI requests over the network."""
        async def scenario():
            async with MockLLMServer(config) as server:
                async with httpx.AsyncClient(base_url=server.base_url, trust_env=False) as http:
                    matched = await http.post('/v1/chat/completions', json=openai_request('ping'))
                    unmatched = await http.post('/v1/chat/completions', json=openai_request('hello'))
            return matched, unmatched

        matched, unmatched = asyncio.run(scenario())

        assert matched.status_code == 200
        assert 'pong' in matched.text
        assert unmatched.status_code == 404
        assert 'hello' in unmatched.text

    def test_end_to_end_anthropic(self, config):
        """Test Anthropic matching and header checks over the network."""
        async def scenario():
            async with MockLLMServer(config) as server:
                async with httpx.AsyncClient(base_url=server.base_url, trust_env=False) as http:
                    body = anthropic_request("what's the weather today")
                    ok = await http.post('/v1/messages', json=body, headers=ANTHROPIC_HEADERS)
                    no_version = await http.post('/v1/messages', json=body, headers={'x-api-key': 'k'})
                    no_key = await http.post('/v1/messages', json=body, headers={'anthropic-version': '2023-06-01'})
            return ok.status_code, no_version.status_code, no_key.status_code

        assert asyncio.run(scenario()) == (200, 400, 401)

    def test_concurrent_requests(self, config):
        """Test many simultaneous requests are each answered independently."""
        async def scenario():
            async with MockLLMServer(config) as server:
                async with httpx.AsyncClient(base_url=server.base_url, trust_env=False) as http:
                    requests = [
                        http.post('/v1/chat/completions', json=openai_request('ping' if i % 2 == 0 else f'miss {i}'))
                        for i in range(20)
                    ]
                    return await asyncio.gather(*requests)

        responses = asyncio.run(scenario())

        assert [r.status_code for r in responses] == [200 if i % 2 == 0 else 404 for i in range(20)]

    def test_parallel_servers(self, config):
        """Test two servers run side by side with their own mocks."""
        async def scenario():
            async with MockLLMServer(config) as first, MockLLMServer(Config(listen_addr='127.0.0.1:0')) as second:
                async with httpx.AsyncClient(trust_env=False) as http:
                    a = (await http.get(f"{first.base_url}/health")).json()
                    b = (await http.get(f"{second.base_url}/health")).json()
                return first.port, second.port, a, b

        first_port, second_port, a, b = asyncio.run(scenario())

        assert first_port != second_port
        assert a['openai'] == 1
        assert b['openai'] == 0

    def test_double_start_rejected(self, config):
        """Test starting twice without stopping raises."""
        async def scenario():
            server = MockLLMServer(config)
            await server.start()
            try:
                with pytest.raises(ServerStateError):
                    await server.start()
            finally:
                await server.stop()

        asyncio.run(scenario())

    def test_restart_after_stop(self, config):
        """Test a stopped server can be started again."""
        async def scenario():
            server = MockLLMServer(config)
            await server.start()
            await server.stop()
            base_url = await server.start()
            await server.stop()
            return base_url

        assert asyncio.run(scenario()).startswith('http://127.0.0.1:')

    def test_stop_idempotent(self, config):
        """Test stop is safe when never started and when called twice."""
        async def scenario():
            never_started = MockLLMServer(config)
            await never_started.stop()
            await never_started.stop()

            server = MockLLMServer(config)
            await server.start()
            await server.stop()
            await server.stop()
            return never_started.state, server.state

        assert asyncio.run(scenario()) == (ServerState.CREATED, ServerState.STOPPED)

    def test_bind_failure(self, config):
        """Test binding an address in use raises and leaves the server restartable."""
        async def scenario():
            first = MockLLMServer(config)
            await first.start()
            try:
                second = MockLLMServer(Config(listen_addr=f"127.0.0.1:{first.port}"))
                with pytest.raises(OSError):
                    await second.start()
                return second.state
            finally:
                await first.stop()

        assert asyncio.run(scenario()) == ServerState.CREATED

    def test_stop_deadline_exceeded(self, config):
        """Test a request outliving the drain deadline fails stop but still releases the port."""
        async def slow():
            await asyncio.sleep(5)
            return {'done': True}

        async def scenario():
            server = MockLLMServer(config)
            server.app.add_api_route('/slow', slow)
            # Ahead of the catch-all route
            server.app.router.routes.insert(0, server.app.router.routes.pop())

            base_url = await server.start()
            async with httpx.AsyncClient(trust_env=False, timeout=10) as http:
                in_flight = asyncio.create_task(http.get(f"{base_url}/slow"))
                await asyncio.sleep(0.2)

                started = time.monotonic()
                with pytest.raises(ShutdownTimeoutError):
                    await server.stop(timeout=0.3)
                elapsed = time.monotonic() - started

                in_flight.cancel()
                await asyncio.gather(in_flight, return_exceptions=True)
            return elapsed, server.state, server.port, server.base_url

        elapsed, state, port, base_url = asyncio.run(scenario())

        assert elapsed < 2.0
        assert state == ServerState.STOPPED
        assert port is None
        assert base_url is None


class TestServerReadiness:
    """Test readiness polling failures."""

    def test_readiness_timeout(self, config):
        """Test start fails after the retry budget and keeps the listener bound."""
        config.health_attempts = 3
        config.health_base_delay = 0.01
        config.health_max_delay = 0.2
        unhealthy = AsyncMock(return_value=Mock(status_code=503))

        async def scenario():
            server = MockLLMServer(config)
            started = time.monotonic()
            with patch('mockllm.server.httpx.AsyncClient.get', new=unhealthy):
                with pytest.raises(ReadinessTimeoutError) as exc_info:
                    await server.start()
            elapsed = time.monotonic() - started

            state, port = server.state, server.port
            await server.stop()
            return exc_info.value, elapsed, state, port, server.state

        error, elapsed, state, port, final_state = asyncio.run(scenario())

        assert unhealthy.await_count == 3
        assert isinstance(error.__cause__, HealthCheckError)
        assert '503' in str(error)
        assert elapsed <= config.health_attempts * config.health_max_delay + 0.2
        assert state == ServerState.FAILED
        assert port is not None
        assert final_state == ServerState.STOPPED

    def test_failed_server_requires_stop(self, config):
        """Test a failed start must be stopped before starting again."""
        config.health_attempts = 1
        unhealthy = AsyncMock(return_value=Mock(status_code=500))

        async def scenario():
            server = MockLLMServer(config)
            with patch('mockllm.server.httpx.AsyncClient.get', new=unhealthy):
                with pytest.raises(ReadinessTimeoutError):
                    await server.start()
            try:
                with pytest.raises(ServerStateError):
                    await server.start()
            finally:
                await server.stop()

        asyncio.run(scenario())

    def test_start_cancelled(self, config):
        """Test a pre-set cancel event aborts readiness polling."""
        async def scenario():
            server = MockLLMServer(config)
            cancel = asyncio.Event()
            cancel.set()
            try:
                with pytest.raises(RetryCancelledError):
                    await server.start(cancel=cancel)
                return server.state
            finally:
                await server.stop()

        assert asyncio.run(scenario()) == ServerState.FAILED

    def test_hanging_health_check_bounded(self, config):
        """Test a health request that never answers can't stretch start past the readiness budget."""
        config.health_attempts = 3
        config.health_base_delay = 0.1
        config.health_max_delay = 0.4

        async def hang(*args, **kwargs):
            await asyncio.sleep(30)

        async def scenario():
            server = MockLLMServer(config)
            started = time.monotonic()
            with patch('mockllm.server.httpx.AsyncClient.get', new=AsyncMock(side_effect=hang)):
                with pytest.raises(ReadinessTimeoutError) as exc_info:
                    await server.start()
            elapsed = time.monotonic() - started

            state = server.state
            await server.stop()
            return exc_info.value, elapsed, state

        error, elapsed, state = asyncio.run(scenario())

        assert isinstance(error.__cause__, asyncio.TimeoutError)
        assert elapsed <= config.health_attempts * config.health_max_delay + 0.2
        assert state == ServerState.FAILED

    def test_serve_task_crash_reported(self, config):
        """Test an early uvicorn exit is chained into the readiness error and stop stays quiet."""
        config.health_attempts = 3
        config.health_base_delay = 0.01
        unreachable = AsyncMock(side_effect=httpx.ConnectError('connection refused'))

        async def scenario():
            server = MockLLMServer(config)
            with patch('mockllm.server.uvicorn.Server.serve', new=AsyncMock(side_effect=RuntimeError('boom'))), \
                    patch('mockllm.server.httpx.AsyncClient.get', new=unreachable):
                with pytest.raises(ReadinessTimeoutError) as exc_info:
                    await server.start()

                await server.stop()
            return exc_info.value, server.state, server.port

        error, state, port = asyncio.run(scenario())

        assert isinstance(error.__cause__, HealthCheckError)
        assert 'exited before becoming healthy' in str(error)
        assert isinstance(error.__cause__.__cause__, RuntimeError)
        assert str(error.__cause__.__cause__) == 'boom'
        assert state == ServerState.STOPPED
        assert port is None
