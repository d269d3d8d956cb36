import logging

from app.infra.logging import LogContextFilter, log_context


def make_record() -> logging.LogRecord:
    return logging.LogRecord("profile", logging.INFO, __file__, 1, "msg", None, None)


def test_context_fields_are_attached_to_records():
    log_filter = LogContextFilter()

    with log_context(correlation_id="c-1", action="UPDATE_PROFILE", ip=None):
        with log_context(user_id="u-1"):
            record = make_record()
            log_filter.filter(record)

    assert record.correlation_id == "c-1"
    assert record.action == "UPDATE_PROFILE"
    assert record.user_id == "u-1"
    assert record.ip == "-"


def test_context_is_reset_after_block():
    log_filter = LogContextFilter()

    with log_context(correlation_id="c-1"):
        pass
    record = make_record()
    log_filter.filter(record)

    assert record.correlation_id == "-"
