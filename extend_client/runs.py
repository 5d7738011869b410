import inspect
from typing import (
    Any,
    Awaitable,
    Callable,
    FrozenSet,
    Mapping,
    Optional,
    Protocol,
    Type,
    Union,
)

from loguru import logger
from pydantic import BaseModel, ConfigDict

from extend_client.errors import (
    ClassifyRunFailedError,
    EditRunFailedError,
    ExtractRunFailedError,
    ParseRunFailedError,
    RunFailedError,
    SplitRunFailedError,
    WorkflowRunFailedError,
)
from extend_client.models import PollingConfig, Run, RunStatus
from extend_client.polling import poll_until_done
from extend_client.schema_converter import convert_extract_request

StatusCallback = Callable[[Run], Union[None, Awaitable[None]]]

DEFAULT_NON_TERMINAL = frozenset(
    {RunStatus.processing.value, RunStatus.pending.value, RunStatus.cancelling.value}
)

# Workflow runs can take far longer than single processor runs
DEFAULT_WORKFLOW_MAX_WAIT_MS = 2 * 60 * 60 * 1000


class RunsTransport(Protocol):
    async def create(self, request: Mapping[str, Any]) -> Run: ...

    async def retrieve(self, run_id: str) -> Run: ...


class RunKind(BaseModel):
    """Static description of one run resource of the API"""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    # Key wrapping the run object in responses, None when the run is the body
    response_key: Optional[str] = None
    non_terminal_statuses: FrozenSet[str] = DEFAULT_NON_TERMINAL
    failed_error: Type[RunFailedError] = RunFailedError
    default_max_wait_ms: Optional[float] = None
    converts_typed_schema: bool = False


EXTRACT_RUNS = RunKind(
    name="extract",
    path="extract_runs",
    response_key="extractRun",
    non_terminal_statuses=frozenset(
        {RunStatus.processing.value, RunStatus.pending.value}
    ),
    failed_error=ExtractRunFailedError,
    converts_typed_schema=True,
)
CLASSIFY_RUNS = RunKind(
    name="classify",
    path="classify_runs",
    response_key="classifyRun",
    failed_error=ClassifyRunFailedError,
)
SPLIT_RUNS = RunKind(
    name="split",
    path="split_runs",
    failed_error=SplitRunFailedError,
)
PARSE_RUNS = RunKind(
    name="parse",
    path="parse_runs",
    response_key="parseRun",
    failed_error=ParseRunFailedError,
)
EDIT_RUNS = RunKind(
    name="edit",
    path="edit_runs",
    failed_error=EditRunFailedError,
)
WORKFLOW_RUNS = RunKind(
    name="workflow",
    path="workflow_runs",
    response_key="workflowRun",
    failed_error=WorkflowRunFailedError,
    default_max_wait_ms=DEFAULT_WORKFLOW_MAX_WAIT_MS,
)

RUN_KINDS = (EXTRACT_RUNS, CLASSIFY_RUNS, SPLIT_RUNS, PARSE_RUNS, EDIT_RUNS, WORKFLOW_RUNS)


def is_terminal_status(kind: RunKind, status: str) -> bool:
    """
    A run is terminal unless its status is one of the kind's in-progress states.

    Listing the non-terminal states keeps polling finite when the API adds new
    terminal states.
    """
    return status not in kind.non_terminal_statuses


def _polling_config_for(kind: RunKind, config: Optional[PollingConfig]) -> PollingConfig:
    if config is None:
        config = PollingConfig()
    # An explicit max_wait_ms=None keeps polling unbounded
    if kind.default_max_wait_ms is not None and "max_wait_ms" not in config.model_fields_set:
        config = config.model_copy(update={"max_wait_ms": kind.default_max_wait_ms})
    return config


async def _handle_status_change(
    run: Run, last_status: Optional[str], on_status_change: Optional[StatusCallback]
) -> None:
    """Invoke the status change callback if the status has changed"""
    if last_status == run.status or on_status_change is None:
        return
    logger.debug(f"Run {run.id} status changed to {run.status}")
    result = on_status_change(run)
    if inspect.isawaitable(result):
        await result


async def create_and_poll(
    transport: RunsTransport,
    kind: RunKind,
    request: Mapping[str, Any],
    config: Optional[PollingConfig] = None,
    *,
    throw_on_failure: bool = False,
    on_status_change: Optional[StatusCallback] = None,
) -> Run:
    """
    Creates a run and polls it until it leaves its in-progress states.

    Raises:
        PollingTimeoutError: the run is still in progress after max_wait_ms
        RunFailedError: throw_on_failure is set and the run ended FAILED
            (the subclass matches the run kind)
    """
    if kind.converts_typed_schema:
        request = convert_extract_request(request)

    created = await transport.create(request)
    logger.debug(f"Created {kind.name} run {created.id} ({created.status})")
    await _handle_status_change(created, None, on_status_change)

    last_status = created.status

    async def retrieve() -> Run:
        nonlocal last_status
        run = await transport.retrieve(created.id)
        await _handle_status_change(run, last_status, on_status_change)
        last_status = run.status
        return run

    result = await poll_until_done(
        retrieve,
        lambda run: is_terminal_status(kind, run.status),
        _polling_config_for(kind, config),
    )

    if throw_on_failure and result.status == RunStatus.failed.value:
        raise kind.failed_error(result)

    return result
