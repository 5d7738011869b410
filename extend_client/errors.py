from typing import List, Optional

from extend_client.models import Run


class PollingTimeoutError(Exception):
    """Raised when polling exceeds the configured maximum wait time"""

    def __init__(self, message: str, elapsed_ms: float, max_wait_ms: float):
        super().__init__(message)
        self.elapsed_ms = elapsed_ms
        self.max_wait_ms = max_wait_ms


class WebhookSignatureVerificationError(Exception):
    pass


class SignedUrlNotAllowedError(Exception):
    def __init__(self):
        super().__init__(
            "Received signed URL payload but allow_signed_url option is not enabled. "
            "Either pass allow_signed_url=True to verify_and_parse() to handle signed URL payloads, "
            "or configure your webhook endpoint in the Extend dashboard to not use signed URLs."
        )


class WebhookPayloadFetchError(Exception):
    pass


class SchemaConversionError(Exception):
    """Raised when a typed schema cannot be expressed in the wire schema format"""

    def __init__(self, message: str, path: Optional[List[str]] = None):
        self.path = list(path or [])
        if self.path:
            message = f"{message} at path: {'.'.join(self.path)}"
        super().__init__(message)


class RunFailedError(Exception):
    """Raised by create_and_poll(throw_on_failure=True) when a run ends in FAILED"""

    run_label = "Run"

    def __init__(self, run: Run):
        reason = run.failure_reason or "UNKNOWN"
        super().__init__(f"{self.run_label} run failed: {reason}")
        self.run = run
        self.run_id = run.id
        self.failure_reason = run.failure_reason
        self.failure_message = run.failure_message


class ExtractRunFailedError(RunFailedError):
    run_label = "Extract"


class ClassifyRunFailedError(RunFailedError):
    run_label = "Classify"


class SplitRunFailedError(RunFailedError):
    run_label = "Split"


class ParseRunFailedError(RunFailedError):
    run_label = "Parse"


class EditRunFailedError(RunFailedError):
    run_label = "Edit"


class WorkflowRunFailedError(RunFailedError):
    run_label = "Workflow"
