"""Tests — logging context and configuration classes."""

import json
import logging

import pytest
from flask import g

from taskflow.config import ProductionConfig, TestingConfig
from taskflow.middleware.logging_config import ContextFilter, JSONFormatter, job_context


def _record(msg="scan finished", **extra):
    record = logging.LogRecord("taskflow.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestContextFilter:
    def test_job_name_is_stamped_inside_job_context(self):
        record = _record()
        with job_context("notification_checks"):
            ContextFilter().filter(record)
        assert record.job_name == "notification_checks"

    def test_no_job_name_outside_job_context(self):
        record = _record()
        ContextFilter().filter(record)
        assert record.job_name is None

    def test_request_id_is_stamped_inside_request(self, app):
        record = _record()
        with app.test_request_context("/api/notifications?userId=1"):
            g.request_id = "abc123"
            ContextFilter().filter(record)
        assert record.request_id == "abc123"
        assert record.path == "/api/notifications"


class TestJSONFormatter:
    def test_extra_fields_are_included(self):
        record = _record(job_name="notification_checks", duration_ms=12.5)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["msg"] == "scan finished"
        assert entry["job_name"] == "notification_checks"
        assert entry["duration_ms"] == 12.5
        assert "request_id" not in entry


class TestConfig:
    def test_testing_config_disables_background_scan(self):
        assert TestingConfig.ENABLE_SCHEDULER is False
        assert TestingConfig.TASK_DUE_SOON_DAYS == 3
        assert TestingConfig.PROJECT_DUE_SOON_DAYS == 7

    def test_production_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError):
            ProductionConfig.validate()
