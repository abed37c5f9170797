"""DaemonService: lifecycle, command validation, serialization, health."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from web_browse.browser.process import ProcessRegistry
from web_browse.daemon import service as service_mod
from web_browse.daemon.service import DaemonService, DaemonState, remove_pid_file, write_pid_file
from web_browse.exceptions import InvalidCommandError, LaunchTimeoutError
from web_browse.models import CommandRequest, FetchResult, PageInfo, SearchPayload, SearchResult
from web_browse.settings.config import Settings


class FakeSession:
    def __init__(self, fail_start: Exception | None = None) -> None:
        self.fail_start = fail_start
        self.started = False
        self.close_calls = 0
        self.cleanup_calls = 0
        self.context = MagicMock(name="context")
        self.process_id = 31337
        self.debugging_port = 9223

    async def start(self, *, keep_alive: bool = True) -> None:
        if self.fail_start:
            raise self.fail_start
        self.started = True

    async def close(self) -> None:
        self.close_calls += 1

    async def cleanup_pages(self) -> int:
        self.cleanup_calls += 1
        return 0

    def pages(self) -> list[PageInfo]:
        return [PageInfo(url="about:blank")]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    s = Settings()
    s.daemon.pid_file = str(tmp_path / "daemon.pid")
    return s


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def http_client() -> MagicMock:
    client = MagicMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def service(settings, fake_session, http_client) -> DaemonService:
    return DaemonService(settings, ProcessRegistry(), session=fake_session, http_client=http_client)


class TestLifecycle:
    @pytest.mark.anyio
    async def test_start_listens_without_claiming_pid_file(self, service, settings, fake_session) -> None:
        await service.start()
        try:
            assert service.state is DaemonState.LISTENING
            assert fake_session.started
            assert service.queue.running
            # written by the server once its socket is bound
            assert not Path(settings.daemon.pid_file).exists()
            service.mark_bound()
            assert Path(settings.daemon.pid_file).read_text().strip() == str(os.getpid())
        finally:
            await service.shutdown()

    @pytest.mark.anyio
    async def test_shutdown_is_idempotent(self, service, settings, fake_session, http_client) -> None:
        await service.start()
        service.mark_bound()

        await service.shutdown()
        await service.shutdown()

        assert service.state is DaemonState.STOPPED
        assert fake_session.close_calls == 1
        http_client.aclose.assert_awaited_once()
        assert not Path(settings.daemon.pid_file).exists()
        assert not service.queue.running

    @pytest.mark.anyio
    async def test_startup_failure_releases_and_reraises(self, settings, http_client) -> None:
        session = FakeSession(fail_start=LaunchTimeoutError(9223, "/usr/bin/brave"))
        svc = DaemonService(settings, ProcessRegistry(), session=session, http_client=http_client)

        with pytest.raises(LaunchTimeoutError):
            await svc.start()

        assert svc.state is DaemonState.STOPPED
        assert session.close_calls == 1
        assert not Path(settings.daemon.pid_file).exists()

    @pytest.mark.anyio
    async def test_foreign_pid_file_survives_start_and_shutdown(self, service, settings) -> None:
        pid_file = Path(settings.daemon.pid_file)
        pid_file.write_text("424242")

        await service.start()
        await service.shutdown()

        assert pid_file.read_text() == "424242"

    @pytest.mark.anyio
    async def test_commands_rejected_when_not_listening(self, service) -> None:
        with pytest.raises(InvalidCommandError, match="starting"):
            await service.execute(CommandRequest(command="fetch", payload={"url": "https://a/"}))


class TestValidation:
    @pytest.mark.parametrize(
        ("command", "payload", "message"),
        [
            ("screenshot", {}, "unknown command: screenshot"),
            ("fetch", {}, "fetch requires payload.url"),
            ("fetch", {"url": ""}, "fetch requires payload.url"),
            ("fetchMany", {"urls": "https://a/"}, "fetchMany requires payload.urls[]"),
            ("search", {"numResults": 3}, "search requires payload.query"),
        ],
    )
    def test_invalid_requests(self, service, command, payload, message) -> None:
        with pytest.raises(InvalidCommandError) as exc_info:
            service.prepare(CommandRequest(command=command, payload=payload))
        assert str(exc_info.value) == message


class TestExecution:
    @pytest.mark.anyio
    async def test_fetch_runs_through_queue_and_cleans_up(self, service, fake_session, monkeypatch) -> None:
        fetch = AsyncMock(return_value=FetchResult(url="https://a/", title="A", content="body"))
        monkeypatch.setattr(service_mod, "fetch_url", fetch)
        await service.start()
        try:
            data = await service.execute(CommandRequest(command="fetch", payload={"url": "https://a/"}))
        finally:
            await service.shutdown()

        assert data == {"url": "https://a/", "title": "A", "content": "body", "error": None}
        assert fetch.await_args.args[:3] == (fake_session.context, "https://a/", False)
        assert fake_session.cleanup_calls == 1
        assert service.requests == 1

    @pytest.mark.anyio
    async def test_fetch_many_keeps_order(self, service, monkeypatch) -> None:
        async def fake_fetch_urls(context, urls, truncate, options):
            return [FetchResult(url=u, title=u) for u in urls]

        monkeypatch.setattr(service_mod, "fetch_urls", fake_fetch_urls)
        await service.start()
        try:
            data = await service.execute(
                CommandRequest(command="fetchMany", payload={"urls": ["https://b/", "https://a/"], "truncate": True})
            )
        finally:
            await service.shutdown()
        assert [d["url"] for d in data] == ["https://b/", "https://a/"]

    @pytest.mark.anyio
    async def test_search_defaults_result_count(self, service, settings, monkeypatch) -> None:
        search = AsyncMock(return_value=[SearchResult(title="T", link="https://t/")])
        monkeypatch.setattr(service_mod, "search_web", search)
        await service.start()
        try:
            data = await service.execute(CommandRequest(command="search", payload={"query": "python"}))
            await service.execute(CommandRequest(command="search", payload={"query": "python", "numResults": 9}))
        finally:
            await service.shutdown()

        assert data == [{"title": "T", "link": "https://t/", "snippet": ""}]
        assert search.await_args_list[0].args[3] == settings.search.default_num_results
        assert search.await_args_list[1].args[3] == 9

    @pytest.mark.anyio
    async def test_concurrent_commands_are_serialized(self, service, monkeypatch) -> None:
        active = 0
        peak = 0

        async def slow_fetch(context, url, truncate, options):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return FetchResult(url=url)

        monkeypatch.setattr(service_mod, "fetch_url", slow_fetch)
        await service.start()
        try:
            requests = [CommandRequest(command="fetch", payload={"url": f"https://{i}/"}) for i in range(5)]
            results = await asyncio.gather(*(service.execute(r) for r in requests))
        finally:
            await service.shutdown()

        assert [r["url"] for r in results] == [f"https://{i}/" for i in range(5)]
        assert peak == 1
        assert service.requests == 5

    @pytest.mark.anyio
    async def test_failing_command_does_not_stop_daemon(self, service, monkeypatch) -> None:
        search = AsyncMock(side_effect=[RuntimeError("browser crashed"), []])
        monkeypatch.setattr(service_mod, "search_web", search)
        await service.start()
        try:
            with pytest.raises(RuntimeError):
                await service.execute(CommandRequest(command="search", payload={"query": "a"}))
            assert await service.execute(CommandRequest(command="search", payload={"query": "b"})) == []
        finally:
            await service.shutdown()


def test_health_snapshot(service) -> None:
    health = service.health().to_wire()
    assert health["status"] == "ok"
    assert health["sessionProcessId"] == 31337
    assert health["debuggingPort"] == 9223
    assert health["pageCount"] == 1
    assert health["pages"] == [{"url": "about:blank", "closed": False}]
    assert health["requests"] == 0


class TestPidFile:
    def test_remove_keeps_file_owned_by_another_process(self, tmp_path) -> None:
        path = tmp_path / "daemon.pid"
        write_pid_file(path, pid=424242)

        assert remove_pid_file(path) is False
        assert path.read_text() == "424242"

    def test_remove_deletes_own_file(self, tmp_path) -> None:
        path = tmp_path / "daemon.pid"
        write_pid_file(path)

        assert remove_pid_file(path) is True
        assert not path.exists()

    def test_remove_missing_file(self, tmp_path) -> None:
        assert remove_pid_file(tmp_path / "absent.pid") is False


@pytest.mark.anyio
async def test_search_before_start_raises_runtime_error(settings, fake_session) -> None:
    svc = DaemonService(settings, ProcessRegistry(), session=fake_session)

    with pytest.raises(RuntimeError, match="HTTP client is not started"):
        await svc._run_search(SearchPayload(query="q"))
