"""HTTP execution backend talking to a remote runner service."""

from __future__ import annotations

from .backend import HttpExecutionBackend, RunnerAPIError
from .resilience import ResilientClient, build_retry
from .schema import AssetRunPayload, RunStatusResponse, SubmitRunRequest, SubmitRunResponse

__all__ = [
    "AssetRunPayload",
    "HttpExecutionBackend",
    "ResilientClient",
    "RunStatusResponse",
    "RunnerAPIError",
    "SubmitRunRequest",
    "SubmitRunResponse",
    "build_retry",
]
