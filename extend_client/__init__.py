from extend_client.client import ExtendClient, RunResource
from extend_client.errors import (
    ClassifyRunFailedError,
    EditRunFailedError,
    ExtractRunFailedError,
    ParseRunFailedError,
    PollingTimeoutError,
    RunFailedError,
    SchemaConversionError,
    SignedUrlNotAllowedError,
    SplitRunFailedError,
    WebhookPayloadFetchError,
    WebhookSignatureVerificationError,
    WorkflowRunFailedError,
)
from extend_client.models import (
    PollingConfig,
    Run,
    RunStatus,
    SignedDataUrlPayload,
    VerifyAndParseOptions,
    VerifyOptions,
    WebhookEvent,
    WebhookEventType,
)
from extend_client.polling import (
    calculate_backoff_delay,
    calculate_hybrid_delay,
    poll_until_done,
)
from extend_client.runs import RunKind, RunsTransport, create_and_poll, is_terminal_status
from extend_client.schema import ExtendSchema, extend_schema, is_extend_schema
from extend_client.schema_converter import (
    convert,
    convert_extract_request,
    convert_typed_config,
    to_extend_json_schema,
)
from extend_client.webhooks import Webhooks, compute_signature

__all__ = [
    "ExtendClient",
    "RunResource",
    "ClassifyRunFailedError",
    "EditRunFailedError",
    "ExtractRunFailedError",
    "ParseRunFailedError",
    "PollingTimeoutError",
    "RunFailedError",
    "SchemaConversionError",
    "SignedUrlNotAllowedError",
    "SplitRunFailedError",
    "WebhookPayloadFetchError",
    "WebhookSignatureVerificationError",
    "WorkflowRunFailedError",
    "PollingConfig",
    "Run",
    "RunStatus",
    "SignedDataUrlPayload",
    "VerifyAndParseOptions",
    "VerifyOptions",
    "WebhookEvent",
    "WebhookEventType",
    "calculate_backoff_delay",
    "calculate_hybrid_delay",
    "poll_until_done",
    "RunKind",
    "RunsTransport",
    "create_and_poll",
    "is_terminal_status",
    "ExtendSchema",
    "extend_schema",
    "is_extend_schema",
    "convert",
    "convert_extract_request",
    "convert_typed_config",
    "to_extend_json_schema",
    "Webhooks",
    "compute_signature",
]
