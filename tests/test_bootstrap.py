# tests/test_bootstrap.py

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from tasksync.cli.bootstrap import build_transports, create_initial_state, mask_secret
from tasksync.config import Settings


def _settings(tmp_path: Path, **overrides) -> Settings:
    base = Settings(
        app_name="tasksync",
        log_level="INFO",
        data_dir=tmp_path / "data",
        user_id="u1",
        primary_transport="rest",
        fallback_enabled=True,
        rest_base_url="http://localhost:5000/api",
        graphql_endpoint="",
        graphql_api_key=None,
        aws_region="ap-northeast-1",
        http_timeout_seconds=5.0,
        stale_after_seconds=10.0,
        invalidate_delay_seconds=1.0,
        mutation_timeout_seconds=15.0,
        refresh_interval_seconds=30.0,
        notification_ttl_seconds=4.0,
    )
    return replace(base, **overrides)


def test_primary_first_then_other_configured(tmp_path: Path) -> None:
    s = _settings(
        tmp_path,
        primary_transport="graphql",
        graphql_endpoint="https://x.test/graphql",
        graphql_api_key="da2-secret",
    )
    assert [t.name for t in build_transports(s)] == ["graphql", "rest"]

    s = replace(s, primary_transport="rest")
    assert [t.name for t in build_transports(s)] == ["rest", "graphql"]


def test_memory_when_requested_or_nothing_configured(tmp_path: Path) -> None:
    assert [t.name for t in build_transports(_settings(tmp_path, primary_transport="memory"))] == ["memory"]
    assert [t.name for t in build_transports(_settings(tmp_path, rest_base_url=""))] == ["memory"]


def test_unconfigured_primary_uses_what_is_available(tmp_path: Path) -> None:
    s = _settings(tmp_path, primary_transport="graphql")
    assert [t.name for t in build_transports(s)] == ["rest"]


@pytest.mark.asyncio
async def test_create_initial_state_wires_client(tmp_path: Path) -> None:
    s = _settings(tmp_path, primary_transport="memory", invalidate_delay_seconds=0)
    state = create_initial_state(settings=s)

    assert s.data_dir.is_dir()
    assert state.client.user_id == "u1"
    assert state.client.selector.names == ["memory"]
    categories = await state.client.load_categories()
    assert [c.name for c in categories] == ["Work", "Personal", "Shopping", "Health", "Finance"]
    await state.client.aclose()


def test_mask_secret() -> None:
    assert mask_secret(None) == "<unset>"
    assert mask_secret("short") == "****"
    assert mask_secret("da2-abcdefghijkl") == "da2-...kl"
