"""Command-line behaviour tests."""
# ruff: noqa: D103

from __future__ import annotations

import asyncio
import os
import subprocess
import sys
from pathlib import Path  # noqa: TC003

import msgspec
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from enhansome.catalog import decode_registry_document
from enhansome.store import CatalogStore, init_store
from tests.helpers.registry_builders import go_document, python_document


def _database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


def _run_cli(args: list[str], tmp_path: Path) -> subprocess.CompletedProcess[str]:
    env = {
        **os.environ,
        "ENHANSOME_DATABASE_URL": _database_url(tmp_path),
        "ENHANSOME_LOG_LEVEL": "ERROR",
    }
    return subprocess.run(  # noqa: S603 - fixed argv
        [sys.executable, "-m", "enhansome.cli", *args],
        cwd=tmp_path,
        env=env,
        text=True,
        capture_output=True,
    )


def _seed(tmp_path: Path) -> None:
    async def seed() -> None:
        engine = create_async_engine(_database_url(tmp_path))
        try:
            await init_store(engine)
            store = CatalogStore(async_sessionmaker(engine, expire_on_commit=False))
            for name, payload in (("go", go_document()), ("python", python_document())):
                doc = decode_registry_document(msgspec.json.encode(payload))
                await store.index_registry(name, doc)
        finally:
            await engine.dispose()

    asyncio.run(seed())


def test_search_on_empty_catalog_prints_empty_page(tmp_path: Path) -> None:
    result = _run_cli(["search"], tmp_path)

    assert result.returncode == 0, result.stderr
    assert msgspec.json.decode(result.stdout) == {
        "data": [],
        "total": 0,
        "has_more": False,
        "next_cursor": None,
    }


def test_search_filters_seeded_catalog(tmp_path: Path) -> None:
    _seed(tmp_path)

    result = _run_cli(
        ["search", "--registry", "go", "--min-stars", "5000", "--limit", "1"],
        tmp_path,
    )

    assert result.returncode == 0, result.stderr
    page = msgspec.json.decode(result.stdout)
    assert [hit["name"] for hit in page["data"]] == ["gin"]
    assert page["total"] == 2
    assert page["has_more"] is True
    assert page["next_cursor"]


def test_search_rejects_negative_limit(tmp_path: Path) -> None:
    result = _run_cli(["search", "--limit=-1"], tmp_path)

    assert result.returncode == 2
    assert "limit must be non-negative" in result.stderr


def test_repository_lookup(tmp_path: Path) -> None:
    _seed(tmp_path)

    found = _run_cli(["repository", "pallets/flask"], tmp_path)
    missing = _run_cli(["repository", "nobody/nothing"], tmp_path)
    malformed = _run_cli(["repository", "flask"], tmp_path)

    assert found.returncode == 0, found.stderr
    hit = msgspec.json.decode(found.stdout)
    assert hit["archived"] is True
    assert hit["registries"] == ["python"]
    assert missing.returncode == 1
    assert "not listed by any registry" in missing.stderr
    assert malformed.returncode == 2
    assert "Invalid repository slug" in malformed.stderr


def test_aggregate_views(tmp_path: Path) -> None:
    _seed(tmp_path)

    languages = _run_cli(["languages"], tmp_path)
    categories = _run_cli(["categories", "--registry", "python"], tmp_path)
    registries = _run_cli(["registries"], tmp_path)

    assert msgspec.json.decode(languages.stdout) == [
        {"language": "Go", "count": 3},
        {"language": "Python", "count": 1},
    ]
    assert msgspec.json.decode(categories.stdout) == [
        {"registry": "python", "category": "Web Frameworks", "count": 2}
    ]
    assert [r["name"] for r in msgspec.json.decode(registries.stdout)] == [
        "go",
        "python",
    ]


def test_index_with_unreachable_archive_fails_run(tmp_path: Path) -> None:
    result = _run_cli(
        ["index", "--archive-url", "http://127.0.0.1:9/archive.zip"], tmp_path
    )
    status = _run_cli(["status"], tmp_path)
    history = _run_cli(["history", "--limit", "5"], tmp_path)

    assert result.returncode == 1
    outcome = msgspec.json.decode(result.stdout)
    assert outcome["status"] == "failed"
    assert outcome["errors"][0].startswith("Failed to fetch archive")
    view = msgspec.json.decode(status.stdout)
    assert view["is_running"] is False
    assert view["current"]["status"] == "failed"
    runs = msgspec.json.decode(history.stdout)
    assert [run["trigger_source"] for run in runs] == ["manual"]


def test_stop_without_active_run(tmp_path: Path) -> None:
    result = _run_cli(["stop"], tmp_path)

    assert result.returncode == 0, result.stderr
    assert msgspec.json.decode(result.stdout)["status"] == "not_running"
