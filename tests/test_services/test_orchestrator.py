"""Tests for the chain orchestrator."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest

from ssh_orchestra.errors import (
    ConfigurationError,
    EndpointNotConnected,
    EndpointNotFound,
    RemoteNotConnected,
    SourceHopNotConnected,
    SourceHopNotFound,
    StreamError,
    TransportError,
    UnexpectedClose,
)
from ssh_orchestra.models import ChainConfig, ChainDefaults, ChainState, HopDescriptor, TwoHopConfig
from ssh_orchestra.services.orchestrator import ChainOrchestrator


def make_conn(stdout: str = "", stderr: str = "") -> MagicMock:
    """Fake asyncssh connection whose run() returns fixed output."""
    conn = MagicMock()
    conn.run = AsyncMock(return_value=SimpleNamespace(stdout=stdout, stderr=stderr, returncode=0))
    return conn


def lose(mock_connect: AsyncMock, attempt: int, exc: Exception | None = None) -> None:
    """Simulate asyncssh reporting loss of the connection made on `attempt`."""
    client = mock_connect.call_args_list[attempt].kwargs["client_factory"]()
    client.connection_lost(exc)


class FakeStream:
    """Reader returning queued chunks; blocks when empty."""

    def __init__(self, *chunks: str) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        for chunk in chunks:
            self._queue.put_nowait(chunk)

    async def read(self, n: int = -1) -> str:
        return await self._queue.get()


@pytest.fixture
def log() -> MagicMock:
    """Logger collaborator recording every call."""
    return MagicMock()


@pytest.fixture
def three_hops(log: MagicMock) -> ChainConfig:
    """Chain of three hops a -> b -> c."""
    return ChainConfig(
        hops=[
            {"name": "a", "host": "ha", "username": "ua"},
            {"name": "b", "host": "hb"},
            {"name": "c", "host": "hc"},
        ],
        defaults=ChainDefaults(username="ops", password="pw"),
        logger=log,
        on_hop_connected=AsyncMock(),
    )


@pytest.mark.asyncio
async def test_connect_without_hops_fails() -> None:
    """An empty chain cannot connect."""
    orchestrator = ChainOrchestrator(ChainConfig(logger=MagicMock()))

    with pytest.raises(ConfigurationError, match="No hops configured"):
        await orchestrator.connect()
    with pytest.raises(ConfigurationError):
        await orchestrator.exec_jump("ls")
    with pytest.raises(ConfigurationError):
        await orchestrator.exec_remote("ls")
    assert not orchestrator.is_connected
    assert not orchestrator.is_fully_connected


@pytest.mark.asyncio
async def test_connect_forwards_through_previous_hop(three_hops: ChainConfig, log: MagicMock) -> None:
    """Each hop after the first is tunneled through its predecessor."""
    conns = [make_conn(), make_conn(), make_conn()]
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = conns
        await orchestrator.connect()

    assert orchestrator.is_fully_connected
    assert orchestrator.is_connected
    assert orchestrator.state is ChainState.CONNECTED

    first, second, third = mock_connect.call_args_list
    assert first.args == ("ha",)
    assert "tunnel" not in first.kwargs
    assert first.kwargs["username"] == "ua"
    assert second.kwargs["tunnel"] is conns[0]
    assert second.kwargs["username"] == "ops"
    assert second.kwargs["password"] == "pw"
    assert third.kwargs["tunnel"] is conns[1]

    log.success.assert_any_call("Connected to a (ha:22)")
    log.success.assert_any_call("Forwarded to b (hb)")
    assert three_hops.on_hop_connected.await_args_list == [
        call(0, three_hops.hops[0]),
        call(1, three_hops.hops[1]),
        call(2, three_hops.hops[2]),
    ]


@pytest.mark.asyncio
async def test_connect_when_fully_connected_is_noop(three_hops: ChainConfig) -> None:
    """A second connect opens nothing and runs no hooks."""
    three_hops.on_before_connect = AsyncMock()
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        await orchestrator.connect()
        await orchestrator.connect()

    assert mock_connect.call_count == 3
    three_hops.on_before_connect.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_hop_keeps_prefix_and_resumes(three_hops: ChainConfig, log: MagicMock) -> None:
    """A failure leaves earlier hops up; the next connect resumes."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = [make_conn(), OSError("no route")]
        with pytest.raises(TransportError):
            await orchestrator.connect()

        assert len(orchestrator.sessions) == 1
        assert orchestrator.state is ChainState.PARTIALLY_CONNECTED
        log.error.assert_called_once_with("b connect error: no route")

        mock_connect.side_effect = None
        mock_connect.return_value = make_conn()
        await orchestrator.connect()

    assert orchestrator.is_fully_connected
    assert mock_connect.call_count == 4
    indices = [c.args[0] for c in three_hops.on_hop_connected.await_args_list]
    assert indices == [0, 1, 2]


@pytest.mark.asyncio
async def test_first_hop_failure_logged(three_hops: ChainConfig, log: MagicMock) -> None:
    """Failure on the first hop reports its address."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = ConnectionRefusedError("refused")
        with pytest.raises(TransportError):
            await orchestrator.connect()

    log.error.assert_called_once_with("Failed to connect to a (ha:22)")
    assert orchestrator.state is ChainState.UNCONNECTED


@pytest.mark.asyncio
async def test_callable_defaults_reread_per_attempt(log: MagicMock) -> None:
    """Rotated credentials are used by later connection attempts."""
    passwords = iter(["one", "two"])
    config = ChainConfig(
        hops=[{"name": "a", "host": "ha"}, {"name": "b", "host": "hb"}],
        defaults=lambda: ChainDefaults(password=next(passwords)),
        logger=log,
    )
    orchestrator = ChainOrchestrator(config)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        await orchestrator.connect()

    assert [c.kwargs["password"] for c in mock_connect.call_args_list] == ["one", "two"]


@pytest.mark.asyncio
async def test_exec_returns_stdout_and_logs_debug(three_hops: ChainConfig, log: MagicMock) -> None:
    """stderr is logged only in debug mode and never raises."""
    conns = [make_conn(), make_conn(stdout="out\n", stderr="warn"), make_conn()]
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = conns
        await orchestrator.connect()

    assert await orchestrator.exec("b", "ls") == "out\n"
    log.info.assert_not_called()

    assert await orchestrator.exec("b", "ls", debug=True) == "out\n"
    log.info.assert_called_once_with("Debug output: warn")
    conns[1].run.assert_awaited_with("ls", check=False)


@pytest.mark.asyncio
async def test_exec_jump_and_remote_target_ends(three_hops: ChainConfig) -> None:
    """exec_jump hits the first hop and exec_remote the last."""
    conns = [make_conn(stdout="first"), make_conn(), make_conn(stdout="last")]
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = conns
        await orchestrator.connect()

    assert await orchestrator.exec_jump("hostname") == "first"
    assert await orchestrator.exec_remote("hostname") == "last"


@pytest.mark.asyncio
async def test_exec_addressing_errors(three_hops: ChainConfig) -> None:
    """Unknown hops and hops without a session raise distinct errors."""
    orchestrator = ChainOrchestrator(three_hops)

    with pytest.raises(EndpointNotFound, match="Hop 'nope' not found"):
        await orchestrator.exec("nope", "ls")
    with pytest.raises(EndpointNotConnected, match="Tunnel for 'a' not established"):
        await orchestrator.exec("a", "ls")


@pytest.mark.asyncio
async def test_legacy_config_connects_jump_and_remote(log: MagicMock) -> None:
    """TwoHopConfig runs as a two-hop chain with its legacy hooks."""
    on_jump = AsyncMock()
    on_remote = AsyncMock()
    config = TwoHopConfig(
        jump_server={"host": "jump.example.com", "username": "ops"},
        remote_server={"host": "10.0.0.5"},
        logger=log,
        on_jump_connected=on_jump,
        on_remote_connected=on_remote,
    )
    orchestrator = ChainOrchestrator(config)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = [make_conn(), make_conn(stdout="remote")]
        await orchestrator.connect()

    on_jump.assert_awaited_once()
    on_remote.assert_awaited_once()
    assert [hop.name for hop in orchestrator.hops] == ["jump", "remote"]
    assert await orchestrator.exec("remote", "id") == "remote"


@pytest.mark.asyncio
async def test_hop_loss_reconnects_from_lost_hop(three_hops: ChainConfig, log: MagicMock) -> None:
    """Losing hop b drops b and c, then rebuilds only those."""
    conns = [make_conn() for _ in range(5)]
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = conns
        await orchestrator.connect()
        old_sessions = orchestrator.sessions

        lose(mock_connect, 1, OSError("reset by peer"))

        assert len(orchestrator.sessions) == 1
        conns[2].close.assert_called_once()

        await orchestrator.wait_for_reconnect()

    assert orchestrator.is_fully_connected
    assert mock_connect.call_count == 5
    assert mock_connect.call_args_list[3].kwargs["tunnel"] is conns[0]
    assert mock_connect.call_args_list[4].kwargs["tunnel"] is conns[3]
    assert orchestrator.sessions[0] is old_sessions[0]

    indices = [c.args[0] for c in three_hops.on_hop_connected.await_args_list]
    assert indices == [0, 1, 2, 1, 2]

    log.error.assert_any_call("b Error: reset by peer")
    log.warning.assert_any_call("Attempting to re-establish b...")


@pytest.mark.asyncio
async def test_clean_close_logs_warning(three_hops: ChainConfig, log: MagicMock) -> None:
    """A clean close is reported as a warning, not an error."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        await orchestrator.connect()
        lose(mock_connect, 2)
        await orchestrator.wait_for_reconnect()

    log.warning.assert_any_call("c Closed")
    log.error.assert_not_called()
    assert mock_connect.call_count == 4


@pytest.mark.asyncio
async def test_losses_are_coalesced_into_one_reconnect(three_hops: ChainConfig) -> None:
    """Two losses before the reconnect runs cause a single rebuild."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        await orchestrator.connect()

        lose(mock_connect, 2, OSError("c down"))
        lose(mock_connect, 0, OSError("a down"))
        assert orchestrator.sessions == []

        await orchestrator.wait_for_reconnect()

    assert orchestrator.is_fully_connected
    assert mock_connect.call_count == 6


@pytest.mark.asyncio
async def test_stale_loss_is_ignored(three_hops: ChainConfig) -> None:
    """A loss report for an already dropped session does nothing."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        await orchestrator.connect()
        stale = orchestrator.sessions[2]

        lose(mock_connect, 1, OSError("b down"))
        await orchestrator.wait_for_reconnect()
        stale._connection_lost(OSError("late report"))
        await orchestrator.wait_for_reconnect()

    assert mock_connect.call_count == 5
    assert orchestrator.is_fully_connected


@pytest.mark.asyncio
async def test_reconnect_failure_is_logged_not_raised(three_hops: ChainConfig, log: MagicMock) -> None:
    """A failed reconnect leaves a partial chain and reports via the logger."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        await orchestrator.connect()

        mock_connect.side_effect = OSError("still down")
        lose(mock_connect, 1, OSError("b down"))
        await orchestrator.wait_for_reconnect()

    assert orchestrator.state is ChainState.PARTIALLY_CONNECTED
    assert any(
        c.args[0].startswith("Failed to re-establish b:") for c in log.error.call_args_list
    )


@pytest.mark.asyncio
async def test_disconnect_closes_in_reverse_and_never_reconnects(three_hops: ChainConfig, log: MagicMock) -> None:
    """Teardown closes remotes, then hops last-to-first, without reconnecting."""
    order: list[str] = []
    conns = []
    for name in ("a", "b", "c", "db"):
        conn = make_conn()
        conn.close.side_effect = lambda name=name: order.append(name)
        conns.append(conn)

    three_hops.on_before_disconnect = AsyncMock()
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = conns
        await orchestrator.connect()
        await orchestrator.add_remote("db", {"host": "10.0.0.9"})

        await orchestrator.disconnect()

        for attempt in range(4):
            lose(mock_connect, attempt, OSError("closed"))
        await orchestrator.wait_for_reconnect()

    assert order == ["db", "c", "b", "a"]
    assert mock_connect.call_count == 4
    assert orchestrator.sessions == []
    assert orchestrator.remote_names == []
    assert orchestrator.state is ChainState.DISCONNECTED
    three_hops.on_before_disconnect.assert_awaited_once()
    log.info.assert_any_call("Disconnected remote: db")
    assert [c.args[0] for c in log.info.call_args_list if c.args[0].startswith("Disconnected:")] == [
        "Disconnected: c",
        "Disconnected: b",
        "Disconnected: a",
    ]


@pytest.mark.asyncio
async def test_disconnect_never_connected_chain(three_hops: ChainConfig) -> None:
    """Disconnecting an idle chain is harmless."""
    orchestrator = ChainOrchestrator(three_hops)

    await orchestrator.disconnect()

    assert orchestrator.sessions == []
    assert orchestrator.state is ChainState.DISCONNECTED


@pytest.mark.asyncio
async def test_disconnect_hook_failure_still_tears_down(three_hops: ChainConfig) -> None:
    """The hook error surfaces only after everything is closed."""
    three_hops.on_before_disconnect = AsyncMock(side_effect=RuntimeError("hook failed"))
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock):
        await orchestrator.connect()

    with pytest.raises(RuntimeError, match="hook failed"):
        await orchestrator.disconnect()

    assert orchestrator.sessions == []


@pytest.mark.asyncio
async def test_context_manager_connects_and_disconnects(three_hops: ChainConfig) -> None:
    """async with connects on entry and tears down on exit."""
    with patch("asyncssh.connect", new_callable=AsyncMock):
        async with ChainOrchestrator(three_hops) as orchestrator:
            assert orchestrator.is_fully_connected

    assert orchestrator.sessions == []


@pytest.mark.asyncio
async def test_context_manager_cleans_up_failed_entry(three_hops: ChainConfig) -> None:
    """A failed connect closes the hops that did come up."""
    first = make_conn()

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = [first, OSError("down")]
        with pytest.raises(TransportError):
            async with ChainOrchestrator(three_hops):
                pass

    first.close.assert_called_once()


@pytest.mark.asyncio
async def test_add_remote_uses_last_hop_and_separate_namespace(three_hops: ChainConfig) -> None:
    """Named remotes are reached through the last hop and only by remote lookups."""
    conns = [make_conn(), make_conn(), make_conn(), make_conn(stdout="db-out")]
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = conns
        await orchestrator.connect()
        await orchestrator.add_remote("db", {"host": "10.0.0.9", "port": 5022})

    remote_call = mock_connect.call_args_list[3]
    assert remote_call.args == ("10.0.0.9",)
    assert remote_call.kwargs["port"] == 5022
    assert remote_call.kwargs["tunnel"] is conns[2]
    assert remote_call.kwargs["username"] == "ops"

    assert await orchestrator.exec_on_remote("db", "psql -c 'select 1'") == "db-out"
    with pytest.raises(EndpointNotFound):
        await orchestrator.exec("db", "ls")
    with pytest.raises(RemoteNotConnected):
        await orchestrator.exec_on_remote("c", "ls")


@pytest.mark.asyncio
async def test_add_remote_from_specific_hop(three_hops: ChainConfig) -> None:
    """from_hop selects the forwarding hop."""
    conns = [make_conn(), make_conn(), make_conn(), make_conn()]
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = conns
        await orchestrator.connect()
        await orchestrator.add_remote("cache", {"host": "10.0.0.7"}, from_hop="a")

        with pytest.raises(SourceHopNotFound):
            await orchestrator.add_remote("x", {"host": "h"}, from_hop="nope")

    assert mock_connect.call_args_list[3].kwargs["tunnel"] is conns[0]


@pytest.mark.asyncio
async def test_add_remote_replaces_existing(three_hops: ChainConfig, log: MagicMock) -> None:
    """Re-adding a name closes the previous session and resets its SFTP object."""
    old_remote = make_conn(stdout="old")
    new_remote = make_conn(stdout="new")
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = [make_conn(), make_conn(), make_conn(), old_remote, new_remote]
        await orchestrator.connect()
        await orchestrator.add_remote("db", {"host": "10.0.0.9"})
        first_sftp = await orchestrator.get_sftp_for("db")

        await orchestrator.add_remote("db", {"host": "10.0.0.10"})

    old_remote.close.assert_called_once()
    log.warning.assert_any_call("Replacing existing remote connection 'db'")
    assert await orchestrator.exec_on_remote("db", "id") == "new"
    assert await orchestrator.get_sftp_for("db") is not first_sftp


@pytest.mark.asyncio
async def test_remote_loss_removes_remote_without_reconnect(three_hops: ChainConfig, log: MagicMock) -> None:
    """Losing a named remote unregisters it and leaves the chain alone."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        await orchestrator.connect()
        await orchestrator.add_remote("db", {"host": "10.0.0.9"})

        lose(mock_connect, 3, OSError("gone"))
        await orchestrator.wait_for_reconnect()

    assert mock_connect.call_count == 4
    assert orchestrator.remote_names == []
    assert orchestrator.is_fully_connected
    log.warning.assert_any_call("Remote db lost: gone")
    with pytest.raises(RemoteNotConnected):
        await orchestrator.exec_on_remote("db", "ls")


@pytest.mark.asyncio
async def test_get_sftp_is_cached_per_endpoint(three_hops: ChainConfig) -> None:
    """The same FileTransfer is returned until its hop is lost."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        await orchestrator.connect()

        last = await orchestrator.get_sftp()
        assert await orchestrator.get_remote_sftp() is last
        assert await orchestrator.get_sftp("c") is last
        jump = await orchestrator.get_jump_sftp()
        assert jump is not last
        assert jump.endpoint_name == "a"

        lose(mock_connect, 2, OSError("c down"))
        await orchestrator.wait_for_reconnect()

        assert await orchestrator.get_sftp("c") is not last


@pytest.mark.asyncio
async def test_get_sftp_hop_before_remote(three_hops: ChainConfig) -> None:
    """A hop wins over a remote of the same name in get_sftp."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock):
        await orchestrator.connect()
        await orchestrator.add_remote("b", {"host": "10.0.0.9"})
        await orchestrator.add_remote("db", {"host": "10.0.0.8"})

        hop_sftp = await orchestrator.get_sftp("b")
        remote_sftp = await orchestrator.get_sftp_for("b")

        assert hop_sftp is not remote_sftp
        assert hop_sftp.session is orchestrator.sessions[1]
        assert (await orchestrator.get_sftp("db")).endpoint_name == "db"

    with pytest.raises(EndpointNotFound):
        await orchestrator.get_sftp("nope")


@pytest.mark.asyncio
async def test_get_sftp_requires_connected_hop(three_hops: ChainConfig) -> None:
    """SFTP on an unconnected hop is refused."""
    orchestrator = ChainOrchestrator(three_hops)

    with pytest.raises(EndpointNotConnected):
        await orchestrator.get_sftp("a")
    with pytest.raises(RemoteNotConnected):
        await orchestrator.get_sftp_for("db")


@pytest.mark.asyncio
async def test_open_shell_on_last_hop(three_hops: ChainConfig) -> None:
    """open_shell defaults to the last hop with an xterm pty."""
    conns = [make_conn(), make_conn(), make_conn()]
    process = MagicMock()
    conns[2].create_process = AsyncMock(return_value=process)
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = conns
        await orchestrator.connect()

    assert await orchestrator.open_shell() is process
    conns[2].create_process.assert_awaited_once_with(term_type="xterm")


@pytest.mark.asyncio
async def test_wait_for_string_accumulates_chunks(three_hops: ChainConfig, log: MagicMock) -> None:
    """Output is collected until it contains the expected text."""
    orchestrator = ChainOrchestrator(three_hops)
    process = SimpleNamespace(stdout=FakeStream("Pass", "word: "), stderr=FakeStream())

    received = await orchestrator.wait_for_string(process, "Password:")

    assert received == "Password: "
    log.info.assert_any_call("Pass")
    log.info.assert_any_call("word: ")


@pytest.mark.asyncio
async def test_wait_for_string_stderr_fails(three_hops: ChainConfig) -> None:
    """Anything on the error stream aborts the wait."""
    orchestrator = ChainOrchestrator(three_hops)
    process = SimpleNamespace(stdout=FakeStream(), stderr=FakeStream("permission denied"))

    with pytest.raises(StreamError, match="STDERR: permission denied"):
        await orchestrator.wait_for_string(process, "$ ")


@pytest.mark.asyncio
async def test_wait_for_string_eof_fails(three_hops: ChainConfig) -> None:
    """The stream ending first raises UnexpectedClose."""
    orchestrator = ChainOrchestrator(three_hops)
    process = SimpleNamespace(stdout=FakeStream("partial", ""), stderr=FakeStream(""))

    with pytest.raises(UnexpectedClose) as exc_info:
        await orchestrator.wait_for_string(process, "done")

    assert exc_info.value.received == "partial"


@pytest.mark.asyncio
async def test_wait_for_string_timeout(three_hops: ChainConfig) -> None:
    """An optional timeout bounds the wait."""
    orchestrator = ChainOrchestrator(three_hops)
    process = SimpleNamespace(stdout=FakeStream(), stderr=FakeStream())

    with pytest.raises(TimeoutError):
        await orchestrator.wait_for_string(process, "never", timeout=0.05)


@pytest.mark.asyncio
async def test_before_connect_failure_opens_nothing(three_hops: ChainConfig) -> None:
    """An on_before_connect error propagates before any hop is dialed."""
    three_hops.on_before_connect = AsyncMock(side_effect=RuntimeError("vpn down"))
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        with pytest.raises(RuntimeError, match="vpn down"):
            await orchestrator.connect()

    mock_connect.assert_not_called()
    assert orchestrator.sessions == []
    assert orchestrator.state is ChainState.UNCONNECTED


@pytest.mark.asyncio
async def test_hop_connected_failure_stops_chain(three_hops: ChainConfig) -> None:
    """An on_hop_connected error keeps the hops opened so far and dials no further."""

    async def on_hop_connected(index: int, hop: HopDescriptor) -> None:
        if index == 1:
            raise RuntimeError(f"setup failed on {hop.name}")

    three_hops.on_hop_connected = on_hop_connected
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        with pytest.raises(RuntimeError, match="setup failed on b"):
            await orchestrator.connect()

    assert mock_connect.call_count == 2
    assert len(orchestrator.sessions) == 2
    assert orchestrator.state is ChainState.PARTIALLY_CONNECTED


@pytest.mark.asyncio
async def test_loss_during_disconnect_hook_does_not_reconnect(three_hops: ChainConfig) -> None:
    """A hop lost while on_before_disconnect runs stays down."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:

        async def on_before_disconnect() -> None:
            lose(mock_connect, 0, OSError("proxy stopped"))
            await asyncio.sleep(0)

        three_hops.on_before_disconnect = on_before_disconnect
        await orchestrator.connect()

        await orchestrator.disconnect()
        await orchestrator.wait_for_reconnect()

    assert mock_connect.call_count == 3
    assert orchestrator.sessions == []
    assert orchestrator.state is ChainState.DISCONNECTED


@pytest.mark.asyncio
async def test_disconnect_aborts_connect_in_flight(three_hops: ChainConfig) -> None:
    """A connect() suspended in a hook fails once disconnect() has run."""
    reached = asyncio.Event()
    release = asyncio.Event()

    async def on_hop_connected(index: int, hop: HopDescriptor) -> None:
        if index == 1:
            reached.set()
            await release.wait()

    three_hops.on_hop_connected = on_hop_connected
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        connecting = asyncio.create_task(orchestrator.connect())
        await reached.wait()

        await orchestrator.disconnect()
        release.set()

        with pytest.raises(TransportError) as exc_info:
            await connecting

    assert exc_info.value.endpoint_name == "b"
    assert mock_connect.call_count == 2
    assert orchestrator.sessions == []
    assert orchestrator.state is ChainState.DISCONNECTED


@pytest.mark.asyncio
async def test_add_remote_rejects_malformed_descriptor(three_hops: ChainConfig) -> None:
    """Bad remote definitions raise ConfigurationError before dialing."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        await orchestrator.connect()

        with pytest.raises(ConfigurationError, match="Invalid hop definition"):
            await orchestrator.add_remote("db", {"port": 22})
        with pytest.raises(ConfigurationError, match="has no host"):
            await orchestrator.add_remote("db", {"host": ""})
        with pytest.raises(ConfigurationError, match="has no host"):
            await orchestrator.add_remote("db", HopDescriptor(name="db", host=""))

    assert mock_connect.call_count == 3
    assert orchestrator.remote_names == []


@pytest.mark.asyncio
async def test_add_remote_from_unconnected_hop(three_hops: ChainConfig) -> None:
    """A configured hop without a session cannot forward a remote."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        mock_connect.side_effect = [make_conn(), OSError("no route")]
        with pytest.raises(TransportError):
            await orchestrator.connect()

        with pytest.raises(SourceHopNotConnected):
            await orchestrator.add_remote("db", {"host": "10.0.0.9"}, from_hop="b")
        with pytest.raises(SourceHopNotConnected):
            await orchestrator.add_remote("db", {"host": "10.0.0.9"})

    assert mock_connect.call_count == 2


@pytest.mark.asyncio
async def test_add_remote_descriptor_takes_registered_name(three_hops: ChainConfig) -> None:
    """A descriptor named differently is reported under the remote's name."""
    orchestrator = ChainOrchestrator(three_hops)

    with patch("asyncssh.connect", new_callable=AsyncMock) as mock_connect:
        await orchestrator.connect()
        await orchestrator.add_remote("db", HopDescriptor(name="other", host="10.0.0.9"))

        assert orchestrator.remote_names == ["db"]
        assert (await orchestrator.get_sftp_for("db")).endpoint_name == "db"

        mock_connect.side_effect = OSError("unreachable")
        with pytest.raises(TransportError) as exc_info:
            await orchestrator.add_remote("cache", HopDescriptor(name="other", host="10.0.0.7"))

    assert exc_info.value.endpoint_name == "cache"
