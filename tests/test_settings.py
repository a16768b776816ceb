"""
Tests for settings parsing and the structured logger.
"""

import io
import json
import sys
from datetime import timedelta

from loguru import logger

from pricing.settings import Settings
from pricing.utils import ServiceLogger, configure_logging


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.cache_ttl == timedelta(minutes=5)
        assert settings.race_grace == timedelta(seconds=10)
        assert settings.breaker_cool_down == timedelta(seconds=30)
        assert settings.rate_api_timeout == 5.0
        assert settings.redis_url is None

    def test_reads_environment_style_values(self):
        settings = Settings.model_validate(
            {
                "CACHE_TTL": "120",
                "RACE_GRACE": "3",
                "BREAKER_COOL_DOWN": "60",
                "RATE_API_URL": "http://rates.internal",
                "RATE_API_TIMEOUT": "2.5",
                "REDIS_URL": "redis://cache:6379/1",
                "LOG_JSON": "true",
                "UNRELATED": "ignored",
            }
        )
        assert settings.cache_ttl == timedelta(seconds=120)
        assert settings.race_grace == timedelta(seconds=3)
        assert settings.breaker_cool_down == timedelta(seconds=60)
        assert settings.rate_api_url == "http://rates.internal"
        assert settings.rate_api_timeout == 2.5
        assert settings.redis_url == "redis://cache:6379/1"
        assert settings.log_json is True


class TestServiceLogger:
    def test_binds_event_fields(self, log_records):
        ServiceLogger("PricingService").log(
            "error", "rate_limited", {"trace_id": "abc", "hotel_id": "H1", "message": "slow down"}
        )
        record = log_records[-1]
        assert record["level"].name == "ERROR"
        assert record["message"] == "slow down"
        assert record["extra"] == {
            "event": "rate_limited",
            "service": "PricingService",
            "trace_id": "abc",
            "hotel_id": "H1",
        }

    def test_message_defaults_to_event(self, log_records):
        ServiceLogger("PricingService").info("rate_cache_miss")
        assert log_records[-1]["message"] == "rate_cache_miss"

    def test_configure_logging_json(self, monkeypatch):
        buffer = io.StringIO()
        with monkeypatch.context() as m:
            m.setattr(sys, "stderr", buffer)
            configure_logging("INFO", serialize=True)
            logger.bind(event="ping").info("hello")
            logger.debug("filtered out")
        configure_logging("INFO")

        lines = buffer.getvalue().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["record"]["extra"] == {"event": "ping"}
