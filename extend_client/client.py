import os
from typing import Any, Dict, Mapping, Optional

import aiohttp
from loguru import logger

from extend_client.models import PollingConfig, Run
from extend_client.runs import (
    CLASSIFY_RUNS,
    EDIT_RUNS,
    EXTRACT_RUNS,
    PARSE_RUNS,
    SPLIT_RUNS,
    WORKFLOW_RUNS,
    RunKind,
    StatusCallback,
    create_and_poll,
)
from extend_client.schema_converter import convert_extract_request
from extend_client.webhooks import Webhooks

DEFAULT_BASE_URL = "https://api.extend.ai"
DEFAULT_API_VERSION = "2025-04-21"
USER_AGENT = "extend-client-python/0.1.0"


class RunResource:
    """create/retrieve for one run kind, plus create_and_poll on top of them"""

    def __init__(self, client: "ExtendClient", kind: RunKind):
        self.client = client
        self.kind = kind
        self.logger = logger

    def _to_run(self, data: Dict[str, Any]) -> Run:
        if self.kind.response_key is not None:
            data = data[self.kind.response_key]
        return Run.model_validate(data)

    async def create(self, request: Mapping[str, Any]) -> Run:
        data = await self.client.request("POST", self.kind.path, json=dict(request))
        return self._to_run(data)

    async def retrieve(self, run_id: str) -> Run:
        data = await self.client.request("GET", f"{self.kind.path}/{run_id}")
        return self._to_run(data)

    async def create_and_poll(
        self,
        request: Mapping[str, Any],
        config: Optional[PollingConfig] = None,
        *,
        throw_on_failure: bool = False,
        on_status_change: Optional[StatusCallback] = None,
    ) -> Run:
        """Creates a run and polls it until it reaches a terminal state"""
        return await create_and_poll(
            self,
            self.kind,
            request,
            config or self.client.polling_config,
            throw_on_failure=throw_on_failure,
            on_status_change=on_status_change,
        )


class ExtendClient:
    """
    Async client for the Extend API.

    Use as an async context manager so the underlying aiohttp session is
    closed::

        async with ExtendClient(token="...") as client:
            run = await client.extract_runs.create_and_poll(
                {"file": {"url": "https://example.com/invoice.pdf"}, "config": config}
            )
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        api_version: str = DEFAULT_API_VERSION,
        polling_config: Optional[PollingConfig] = None,
    ):
        token = token or os.getenv("EXTEND_API_KEY")
        if not token:
            raise ValueError("An API token is required (pass token= or set EXTEND_API_KEY)")

        self.token = token
        self.base_url = (base_url or os.getenv("EXTEND_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.api_version = api_version
        self.polling_config = polling_config
        self.logger = logger
        self._session: Optional[aiohttp.ClientSession] = None

        self.extract_runs = RunResource(self, EXTRACT_RUNS)
        self.classify_runs = RunResource(self, CLASSIFY_RUNS)
        self.split_runs = RunResource(self, SPLIT_RUNS)
        self.parse_runs = RunResource(self, PARSE_RUNS)
        self.edit_runs = RunResource(self, EDIT_RUNS)
        self.workflow_runs = RunResource(self, WORKFLOW_RUNS)
        self.webhooks = Webhooks()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "x-extend-api-version": self.api_version,
            "User-Agent": USER_AGENT,
        }

    async def __aenter__(self) -> "ExtendClient":
        self._get_session()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(
        self, method: str, path: str, json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Sends one API request and returns the decoded JSON body"""
        url = f"{self.base_url}/{path.lstrip('/')}"
        session = self._get_session()

        try:
            async with session.request(method, url, json=json) as response:
                response.raise_for_status()
                return await response.json()
        except aiohttp.ClientResponseError as e:
            self.logger.error(f"HTTP error {e.status} at {method} {url}: {e.message}")
            raise
        except aiohttp.ClientError as e:
            self.logger.error(f"Request to {method} {url} failed: {e}")
            raise

    async def extract(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        """Runs a synchronous extraction; typed schemas in the config are converted first"""
        return await self.request("POST", "extract", json=convert_extract_request(request))
