# ============================================================================
# EXECUTION MESSAGES
# ============================================================================
# STATUS: Core model - Dispatcher <-> worker wire contract
# PURPOSE: Work-queue and completion-queue message bodies
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: ExecutionMessage, CompletionMessage, ErrorPayload
# DEPENDENCIES: pydantic
# ============================================================================
"""
Execution Messages

Wire format (JSON):

    Work queue (dispatcher -> worker):
        {msg_id, node_id, is_batch, params, execution_uuid,
         completion_queue_name}

    Completion queue (worker -> dispatcher):
        success: {msg_id, data?: [record]}
        failure: {msg_id?, error: {message, backtrace: [str]}}
"""

import traceback
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExecutionMessage(BaseModel):
    """One unit of work published to a work queue."""

    msg_id: int = Field(..., ge=0)
    node_id: str = Field(..., min_length=1)
    is_batch: bool = False
    params: Dict[str, Any] = Field(default_factory=dict)
    execution_uuid: str = Field(..., min_length=1)
    completion_queue_name: str = Field(..., min_length=1)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, body: str | bytes) -> "ExecutionMessage":
        return cls.model_validate_json(body)


class ErrorPayload(BaseModel):
    """Structured error reported by a worker."""

    message: str
    backtrace: List[str] = Field(default_factory=list)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorPayload":
        lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
        return cls(
            message=f"{type(exc).__name__}: {exc}",
            backtrace=[line.rstrip("\n") for line in lines],
        )


class CompletionMessage(BaseModel):
    """Reply published to a completion queue."""

    msg_id: Optional[int] = None
    data: Optional[List[Dict[str, Any]]] = None
    error: Optional[ErrorPayload] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, msg_id: int, data: Optional[List[Dict[str, Any]]] = None) -> "CompletionMessage":
        return cls(msg_id=msg_id, data=data)

    @classmethod
    def failure(cls, exc: BaseException, msg_id: Optional[int] = None) -> "CompletionMessage":
        return cls(msg_id=msg_id, error=ErrorPayload.from_exception(exc))

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_json(cls, body: str | bytes) -> "CompletionMessage":
        return cls.model_validate_json(body)


__all__ = ["ExecutionMessage", "CompletionMessage", "ErrorPayload"]
