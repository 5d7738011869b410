from typing import AsyncGenerator, Tuple

import pytest_asyncio

from mock_server import MockExtendServer

BASE_URL_TEMPLATE = "http://localhost:{}"


@pytest_asyncio.fixture
async def server(
    unused_tcp_port_factory,
) -> AsyncGenerator[Tuple[MockExtendServer, str], None]:
    """Start and yield a mock Extend API on a random port with its base URL."""
    port = unused_tcp_port_factory()
    server_instance = MockExtendServer(completion_time=0.3, error_rate=0.0)
    await server_instance.start(port=port)
    try:
        yield server_instance, BASE_URL_TEMPLATE.format(port)
    finally:
        await server_instance.stop()
