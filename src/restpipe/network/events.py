# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Long-running operation status and lifecycle records.

This module provides the operation status vocabulary shared by pollers and
a pydantic record that tracks one operation's timing, polling and error
information.
"""

import datetime
import traceback
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_serializer

__all__ = [
    "OperationStatus",
    "StatusLike",
    "is_terminal",
    "OperationEvent",
]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class OperationStatus(str, Enum):
    """Possible states of a long-running operation."""

    NOT_STARTED = "NOT_STARTED"  # Activation has not produced a response yet
    IN_PROGRESS = "IN_PROGRESS"  # Accepted by the service, still running
    SUCCESSFULLY_COMPLETED = "SUCCESSFULLY_COMPLETED"
    FAILED = "FAILED"
    USER_CANCELLED = "USER_CANCELLED"  # Confirmed cancelled by the service

    @classmethod
    def from_string(cls, value: Union[str, "OperationStatus"]) -> "StatusLike":
        """
        Map a status string to a member, or keep it as a custom status.

        Matching ignores case. Strings that name no member are returned
        unchanged so services can report their own interim states.
        """
        if isinstance(value, cls):
            return value
        normalized = value.strip().upper()
        for member in cls:
            if member.value == normalized:
                return member
        return value


# Custom (service specific) statuses are carried as plain strings
StatusLike = Union[OperationStatus, str]

_TERMINAL = frozenset(
    {
        OperationStatus.SUCCESSFULLY_COMPLETED,
        OperationStatus.FAILED,
        OperationStatus.USER_CANCELLED,
    }
)


def is_terminal(status: StatusLike) -> bool:
    """True for completed, failed and cancelled. Custom statuses never are."""
    return isinstance(status, OperationStatus) and status in _TERMINAL


class OperationEvent(BaseModel):
    """
    Lifecycle record of one long-running operation.

    The poller owns the record and is its only writer.
    """

    operation_id: str
    status: StatusLike = OperationStatus.NOT_STARTED

    # Polling details
    status_url: Optional[str] = None
    poll_count: int = 0

    # Error details
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    error_details: Optional[str] = None  # Store traceback string
    error_payload: Any = None

    # Timing
    created_at: datetime.datetime = Field(default_factory=_utcnow)
    updated_at: datetime.datetime = Field(default_factory=_utcnow)
    activated_at: Optional[datetime.datetime] = None
    last_polled_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None

    # Logs/Metadata
    logs: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_serializer(
        "created_at", "updated_at", "activated_at", "last_polled_at", "completed_at"
    )
    def _serialize_various_dt(self, v: Optional[datetime.datetime]) -> Optional[str]:
        return v.isoformat() if v else None

    @field_serializer("status")
    def _serialize_status(self, v: StatusLike) -> str:
        return v.value if isinstance(v, OperationStatus) else v

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def _update_timestamp(self) -> None:
        """Update the updated_at timestamp to the current time."""
        self.updated_at = _utcnow()

    def update_status(self, new_status: StatusLike) -> None:
        """
        Update the status of the operation and record the timestamp.

        Args:
            new_status: The new status to set.
        """
        old_status = self.status
        self.status = new_status
        now = _utcnow()

        if old_status != new_status:  # Log status change
            self.add_log(
                f"Status changed from {_status_name(old_status)} to "
                f"{_status_name(new_status)}"
            )

        if is_terminal(new_status) and not self.completed_at:
            self.completed_at = now

        self._update_timestamp()

    def mark_activated(self) -> None:
        if not self.activated_at:
            self.activated_at = _utcnow()
            self.add_log("Operation activated")

    def record_poll(self, status: StatusLike) -> None:
        """
        Count one poll tick and apply the status it observed.

        Args:
            status: The status reported by the tick.
        """
        self.poll_count += 1
        self.last_polled_at = _utcnow()
        self.update_status(status)

    def set_error(
        self,
        exception: Optional[BaseException] = None,
        *,
        payload: Any = None,
        terminal: bool = True,
    ) -> None:
        """
        Set error information for the operation.

        Args:
            exception: The exception that occurred, if any.
            payload: Service error payload, if any.
            terminal: Also move the status to FAILED.
        """
        if exception is not None:
            self.error_type = type(exception).__name__
            self.error_message = str(exception)
            self.error_details = "".join(
                traceback.format_exception(
                    type(exception), exception, exception.__traceback__
                )
            )
            self.add_log(f"Operation error: {self.error_type} - {self.error_message}")
        if payload is not None:
            self.error_payload = payload
        if terminal:
            self.update_status(OperationStatus.FAILED)

    def add_log(self, message: str) -> None:
        """
        Add a log message to the operation's log.

        Args:
            message: The message to add.
        """
        self.logs.append(f"{_utcnow().isoformat()} - {message}")
        self._update_timestamp()


def _status_name(status: StatusLike) -> str:
    return status.value if isinstance(status, OperationStatus) else str(status)
