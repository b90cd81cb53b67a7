"""Tests for the operator entry point."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from unittest import mock

import pytest

from network_operator.main import JsonFormatter, main


class TestJsonFormatter:
    """Tests for structured log formatting."""

    def test_includes_extra_fields(self) -> None:
        record = logging.LogRecord(
            name="network_operator.reconciler",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Network created",
            args=None,
            exc_info=None,
        )
        record.vpc_id = "vnet-1"

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "Network created"
        assert data["level"] == "INFO"
        assert data["logger"] == "network_operator.reconciler"
        assert data["vpc_id"] == "vnet-1"
        assert data["timestamp"].endswith("Z")
        assert "pathname" not in data


class TestMain:
    """Tests for main() exit codes."""

    @pytest.mark.asyncio
    async def test_configuration_error_exits_1(self) -> None:
        with (
            mock.patch.dict(os.environ, {}, clear=True),
            mock.patch("network_operator.main.setup_logging"),
        ):
            assert await main() == 1

    @pytest.mark.asyncio
    async def test_secret_in_environment_exits_2(self, tmp_path: Path) -> None:
        env = {
            "AZURE_SUBSCRIPTION_ID": "12345678-1234-1234-1234-123456789012",
            "RESOURCE_GROUP_NAME": "rg-network",
            "SPECS_DIR": str(tmp_path),
            "AZURE_CLIENT_SECRET": "hunter2",
        }
        with (
            mock.patch.dict(os.environ, env, clear=True),
            mock.patch("network_operator.main.setup_logging"),
        ):
            assert await main() == 2
