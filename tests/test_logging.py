import logging

import structlog

from batchstream.logging import drop_sensitive_fields, logging_context, setup_logging


def test_drop_sensitive_fields():
    event = {"event": "Batch dispatched", "token": "secret", "body": "{}", "batch_index": 1}

    assert drop_sensitive_fields(logging.getLogger("batchstream"), "info", event) == {
        "event": "Batch dispatched",
        "batch_index": 1,
    }


def test_setup_logging_sets_package_level():
    setup_logging(level=logging.DEBUG)

    assert logging.getLogger("batchstream").level == logging.DEBUG
    setup_logging()
    assert logging.getLogger("batchstream").level == logging.WARNING


def test_logging_context_does_not_override_bound_fields():
    with structlog.contextvars.bound_contextvars(run_id="outer"):
        with logging_context(run_id="inner", input_path="calls.jsonl"):
            assert structlog.contextvars.get_contextvars() == {
                "run_id": "outer",
                "input_path": "calls.jsonl",
            }
    assert structlog.contextvars.get_contextvars() == {}
