import asyncio
import random
from datetime import datetime
from typing import Any, Dict, List, Optional

from aiohttp import web
from loguru import logger

from extend_client.runs import RUN_KINDS, RunKind


class MockExtendServer:
    """Local stand-in for the Extend API: run create/retrieve and signed payload URLs"""

    def __init__(self, completion_time: float = 2.0, error_rate: float = 0.0):
        self.completion_time = completion_time
        self.error_rate = error_rate
        self.final_status = "PROCESSED"
        self.runs: Dict[str, Dict[str, Any]] = {}
        self.requests: List[Dict[str, Any]] = []
        self.signed_payloads: Dict[str, Any] = {}
        self.app = web.Application()
        for kind in RUN_KINDS:
            self.app.router.add_post(f"/{kind.path}", self._make_create_handler(kind))
            self.app.router.add_get(
                f"/{kind.path}/{{run_id}}", self._make_retrieve_handler(kind)
            )
        self.app.router.add_post("/extract", self.handle_extract)
        self.app.router.add_get("/signed/{payload_id}", self.handle_signed_payload)
        self.logger = logger
        self._runner: Optional[web.AppRunner] = None

    def _wrap(self, kind: RunKind, run: Dict[str, Any]) -> Dict[str, Any]:
        public = {key: value for key, value in run.items() if not key.startswith("_")}
        if kind.response_key is None:
            return public
        return {kind.response_key: public}

    def _make_create_handler(self, kind: RunKind):
        async def handle_create(request: web.Request) -> web.Response:
            body = await request.json()
            self.requests.append(
                {"path": request.path, "headers": dict(request.headers), "body": body}
            )
            run_id = f"{kind.name}_run_{len(self.runs) + 1}"
            self.runs[run_id] = {
                "id": run_id,
                "status": "PENDING",
                "failureReason": None,
                "failureMessage": None,
                "_created_at": datetime.now(),
            }
            self.logger.info(f"Created {kind.name} run {run_id}")
            return web.json_response(self._wrap(kind, self.runs[run_id]))

        return handle_create

    def _make_retrieve_handler(self, kind: RunKind):
        async def handle_retrieve(request: web.Request) -> web.Response:
            run = self.runs.get(request.match_info["run_id"])
            if run is None:
                return web.json_response({"error": "not found"}, status=404)

            elapsed = (datetime.now() - run["_created_at"]).total_seconds()

            if run["status"] in ("PENDING", "PROCESSING"):
                if random.random() < self.error_rate:
                    self._finish(run, "FAILED")
                elif elapsed >= self.completion_time:
                    self._finish(run, self.final_status)
                else:
                    run["status"] = "PROCESSING"

            self.logger.info(
                f"Returning {run['status']} for {run['id']} (elapsed: {elapsed:.1f}s)"
            )
            return web.json_response(self._wrap(kind, run))

        return handle_retrieve

    def _finish(self, run: Dict[str, Any], status: str) -> None:
        run["status"] = status
        if status == "FAILED":
            run["failureReason"] = "CORRUPT_FILE"
            run["failureMessage"] = "The file could not be read"

    async def handle_extract(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.requests.append(
            {"path": request.path, "headers": dict(request.headers), "body": body}
        )
        return web.json_response({"id": "extract_run_sync", "status": "PROCESSED"})

    async def handle_signed_payload(self, request: web.Request) -> web.Response:
        payload_id = request.match_info["payload_id"]
        if payload_id == "slow":
            await asyncio.sleep(1)
        if payload_id == "not-json":
            return web.Response(text="<html>not json</html>")
        if payload_id not in self.signed_payloads:
            return web.Response(status=404, text="expired")
        return web.json_response(self.signed_payloads[payload_id])

    async def start(self, port: int = 8080):
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "localhost", port)
        await site.start()
        self.logger.info(f"Mock Extend API started on port {port}")
        return site

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
