"""Tests for per-request logging context."""

import io
import logging

from service_scheduler.logging_context import (
    NO_REQUEST,
    RequestIdFilter,
    get_actor_id,
    get_request_id,
    get_request_logger,
    request_handler,
    request_scope,
)


class TestRequestScope:
    def test_binds_and_restores(self):
        with request_scope("REQ-test", actor_id="staff-1") as rid:
            assert rid == "REQ-test"
            assert get_request_id() == "REQ-test"
            assert get_actor_id() == "staff-1"
        assert get_request_id() == NO_REQUEST
        assert get_actor_id() == NO_REQUEST

    def test_generates_id_when_missing(self):
        with request_scope() as rid:
            assert rid.startswith("REQ-")
            assert get_actor_id() == NO_REQUEST

    def test_nested_scopes_unwind(self):
        with request_scope("REQ-outer"):
            with request_scope("REQ-inner"):
                assert get_request_id() == "REQ-inner"
            assert get_request_id() == "REQ-outer"


class TestFilter:
    def test_filter_stamps_record(self):
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)
        with request_scope("REQ-abc", actor_id="tech-an"):
            RequestIdFilter().filter(record)
        assert record.request_id == "REQ-abc"
        assert record.actor_id == "tech-an"

    def test_logger_gets_single_filter(self):
        logger = get_request_logger("service_scheduler.tests.single")
        get_request_logger("service_scheduler.tests.single")
        assert sum(isinstance(f, RequestIdFilter) for f in logger.filters) == 1

    def test_handler_formats_ids(self):
        buf = io.StringIO()
        handler = request_handler()
        handler.setStream(buf)
        logger = logging.getLogger("service_scheduler.tests.format")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            with request_scope("REQ-fmt", actor_id="staff-1"):
                logger.info("Confirming appointment")
            logging.getLogger("service_scheduler.tests.format.plain").info("outside")
        finally:
            logger.removeHandler(handler)
        lines = buf.getvalue().splitlines()
        assert "[REQ-fmt staff-1]" in lines[0]
        assert "Confirming appointment" in lines[0]
        assert "[- -]" in lines[1]
