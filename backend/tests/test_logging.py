"""
Logging helpers: credential redaction and restaurant tagging.
"""

import structlog
from loguru import logger

from covercast.log_config import SecretFilter, restaurant_context


class TestSecretFilter:
    def test_provider_credentials_are_redacted(self):
        event = {"event": "fetch", "appid": "ow-key", "ticketmaster_apikey": "tm-key", "restaurant_id": 4}

        redacted = SecretFilter()(None, "info", event)

        assert redacted["appid"] == "[REDACTED]"
        assert redacted["ticketmaster_apikey"] == "[REDACTED]"
        assert redacted["restaurant_id"] == 4


class TestRestaurantContext:
    def test_tags_loguru_records(self):
        seen = []
        handler_id = logger.add(lambda message: seen.append(message.record["extra"].get("restaurant_id")))
        try:
            with restaurant_context(7):
                logger.info("inside")
            logger.info("outside")
        finally:
            logger.remove(handler_id)

        assert seen == [7, None]

    def test_binds_structlog_contextvars(self):
        with restaurant_context(3):
            assert structlog.contextvars.get_contextvars()["restaurant_id"] == 3

        assert "restaurant_id" not in structlog.contextvars.get_contextvars()
