import logging

from framechain.logging_setup import LOG_SEGMENT_ID, ContextFilter, configure_logging, log_context


def _record():
    return logging.LogRecord("framechain.test", logging.INFO, __file__, 1, "msg", None, None)


def test_filter_defaults_to_dash():
    record = _record()
    assert ContextFilter().filter(record)
    assert (record.timeline_id, record.segment_id, record.job_id) == ("-", "-", "-")


def test_log_context_sets_and_resets():
    """Fields are visible inside the block and restored afterwards."""
    with log_context(timeline_id="timeline-1"):
        with log_context(segment_id="segment-2", job_id="enhance-3"):
            record = _record()
            ContextFilter().filter(record)
            assert record.timeline_id == "timeline-1"
            assert record.segment_id == "segment-2"
            assert record.job_id == "enhance-3"
        assert LOG_SEGMENT_ID.get() is None

    record = _record()
    ContextFilter().filter(record)
    assert record.timeline_id == "-"


def test_configure_logging_writes_context(tmp_path):
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    saved_flag = getattr(root, "_framechain_logging_configured", False)
    log_file = tmp_path / "logs" / "framechain.log"
    for handler in saved_handlers:
        root.removeHandler(handler)
    try:
        configure_logging(str(log_file), level="INFO", force=True)
        with log_context(timeline_id="timeline-9"):
            logging.getLogger("framechain.orchestrator").info("hello")
        for handler in root.handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert "timeline-9" in content
        assert "hello" in content

        # Second call without force keeps the existing handlers
        count = len(root.handlers)
        configure_logging(str(log_file))
        assert len(root.handlers) == count
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
        root._framechain_logging_configured = saved_flag
