"""
Test that review_logging can be imported without circular import and logger works.
"""

from __future__ import annotations


def test_logging_import():
    """Import get_logger from review_logging and use the logger."""
    from contribution_review.review_logging import get_logger

    logger = get_logger("test")
    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")
    logger.info("test_message", key="value")


def test_bind_principal():
    import structlog

    from contribution_review.review_logging import bind_principal

    try:
        logger = bind_principal("user-1")
        logger.info("test_bound_message", contribution_id=1)
        assert structlog.contextvars.get_contextvars()["principal_id"] == "user-1"
    finally:
        structlog.contextvars.clear_contextvars()
