# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the network events module.
"""

import datetime
import unittest

from restpipe.network.events import OperationEvent, OperationStatus, is_terminal


class TestOperationStatus(unittest.TestCase):
    """Test cases for the OperationStatus enum."""

    def test_from_string_members(self):
        self.assertIs(
            OperationStatus.from_string("IN_PROGRESS"), OperationStatus.IN_PROGRESS
        )
        self.assertIs(
            OperationStatus.from_string("successfully_completed"),
            OperationStatus.SUCCESSFULLY_COMPLETED,
        )
        self.assertIs(
            OperationStatus.from_string(OperationStatus.FAILED), OperationStatus.FAILED
        )

    def test_from_string_custom_status(self):
        self.assertEqual(OperationStatus.from_string("Provisioning"), "Provisioning")
        self.assertNotIsInstance(
            OperationStatus.from_string("Provisioning"), OperationStatus
        )

    def test_is_terminal(self):
        self.assertTrue(is_terminal(OperationStatus.SUCCESSFULLY_COMPLETED))
        self.assertTrue(is_terminal(OperationStatus.FAILED))
        self.assertTrue(is_terminal(OperationStatus.USER_CANCELLED))
        self.assertFalse(is_terminal(OperationStatus.NOT_STARTED))
        self.assertFalse(is_terminal(OperationStatus.IN_PROGRESS))
        self.assertFalse(is_terminal("Provisioning"))
        # a custom string that happens to look terminal is still custom
        self.assertFalse(is_terminal("done"))


class TestOperationEvent(unittest.TestCase):
    """Test cases for the OperationEvent class."""

    def test_init_default_values(self):
        """Test initialization with default values."""
        event = OperationEvent(operation_id="op-1")

        self.assertEqual(event.operation_id, "op-1")
        self.assertEqual(event.status, OperationStatus.NOT_STARTED)
        self.assertEqual(event.poll_count, 0)
        self.assertIsNone(event.status_url)
        self.assertIsNone(event.error_type)
        self.assertIsNone(event.error_message)
        self.assertIsNone(event.error_details)
        self.assertIsNone(event.error_payload)
        self.assertIsNone(event.activated_at)
        self.assertIsNone(event.last_polled_at)
        self.assertIsNone(event.completed_at)
        self.assertIsInstance(event.created_at, datetime.datetime)
        self.assertEqual(event.logs, [])
        self.assertEqual(event.metadata, {})
        self.assertFalse(event.is_terminal)

    def test_update_status(self):
        """Test status updates and timestamp tracking."""
        event = OperationEvent(operation_id="op-1")
        before = event.updated_at

        event.update_status(OperationStatus.IN_PROGRESS)
        self.assertEqual(event.status, OperationStatus.IN_PROGRESS)
        self.assertIsNone(event.completed_at)
        self.assertGreaterEqual(event.updated_at, before)
        self.assertIn("Status changed from NOT_STARTED to IN_PROGRESS", event.logs[-1])

        event.update_status(OperationStatus.SUCCESSFULLY_COMPLETED)
        completed_at = event.completed_at
        self.assertIsNotNone(completed_at)

        # completed_at is recorded once
        event.update_status(OperationStatus.SUCCESSFULLY_COMPLETED)
        self.assertEqual(event.completed_at, completed_at)

    def test_same_status_not_logged(self):
        event = OperationEvent(operation_id="op-1")
        event.update_status(OperationStatus.NOT_STARTED)
        self.assertEqual(event.logs, [])

    def test_record_poll(self):
        event = OperationEvent(operation_id="op-1")
        event.record_poll(OperationStatus.IN_PROGRESS)
        event.record_poll("Provisioning")

        self.assertEqual(event.poll_count, 2)
        self.assertEqual(event.status, "Provisioning")
        self.assertIsNotNone(event.last_polled_at)
        self.assertIsNone(event.completed_at)

    def test_mark_activated_once(self):
        event = OperationEvent(operation_id="op-1")
        event.mark_activated()
        first = event.activated_at
        event.mark_activated()
        self.assertEqual(event.activated_at, first)
        self.assertEqual(len(event.logs), 1)

    def test_set_error(self):
        """Test setting error information."""
        event = OperationEvent(operation_id="op-1")
        try:
            raise ValueError("Test error")
        except ValueError as e:
            event.set_error(e, payload={"code": "Bad"})

        self.assertEqual(event.status, OperationStatus.FAILED)
        self.assertEqual(event.error_type, "ValueError")
        self.assertEqual(event.error_message, "Test error")
        self.assertIn("ValueError: Test error", event.error_details)
        self.assertEqual(event.error_payload, {"code": "Bad"})
        self.assertIsNotNone(event.completed_at)
        self.assertTrue(any("Operation error" in log for log in event.logs))

    def test_set_error_not_terminal(self):
        event = OperationEvent(operation_id="op-1")
        event.set_error(RuntimeError("x"), terminal=False)
        self.assertEqual(event.status, OperationStatus.NOT_STARTED)
        self.assertEqual(event.error_type, "RuntimeError")

    def test_add_log(self):
        """Test adding log messages."""
        event = OperationEvent(operation_id="op-1")
        event.add_log("Test log message")
        self.assertEqual(len(event.logs), 1)
        self.assertIn("Test log message", event.logs[0])

    def test_serialization(self):
        event = OperationEvent(operation_id="op-1")
        event.update_status(OperationStatus.FAILED)
        data = event.model_dump()
        self.assertEqual(data["status"], "FAILED")
        self.assertIsInstance(data["completed_at"], str)
        self.assertIsNone(data["activated_at"])

        event.update_status("Provisioning")
        self.assertEqual(event.model_dump()["status"], "Provisioning")
