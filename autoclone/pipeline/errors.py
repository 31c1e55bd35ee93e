"""
Error taxonomy for the clone pipeline.

Client-level errors (raised by ServiceClient / the SSE consumer):
  RequestTimeout  : the call exceeded its timeout and was aborted
  RemoteError     : the service answered with a non-2xx status
  StreamError     : the service emitted an `error` SSE frame
  NoCompleteEvent : the stream ended without a `complete` frame

Stage-level:
  StageFailed     : a fatal stage failed; aborts the rest of the run
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for everything the pipeline raises on purpose."""


class RequestTimeout(PipelineError):
    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        super().__init__(f"Timeout calling {endpoint}")


class RemoteError(PipelineError):
    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"API error {status}: {body}")


class StreamError(PipelineError):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NoCompleteEvent(PipelineError):
    """
    The stream ended without a terminal `complete` frame.

    If progress had already been observed the message is the generic
    "interrupted" text rather than the plain one.
    """

    def __init__(self, endpoint: str, interrupted: bool = False):
        self.endpoint = endpoint
        self.interrupted = interrupted
        if interrupted:
            message = (
                f"Stream from {endpoint} was interrupted before completing. "
                f"The connection may have been lost."
            )
        else:
            message = f"No complete event received from {endpoint}"
        super().__init__(message)


class StageFailed(PipelineError):
    """Raised by the stage executor when a fatal stage fails."""

    def __init__(self, stage: str, cause: Optional[BaseException] = None, message: str = ""):
        self.stage = stage
        self.cause = cause
        self.message = message or (str(cause) if cause else "unknown error")
        super().__init__(f"Failed at {stage}: {self.message}")
