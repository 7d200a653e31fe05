"""WorkspaceController open/close flows, transfer wiring and snapshots."""

import pytest

from fakes.gateway import FakeGateway, RefusingGateway
from workspace.config import WorkspaceConfig
from workspace.controller import WorkspaceController
from workspace.errors import GatewayError, SessionConnectionError
from workspace.lifecycle import TransferState
from workspace.models import SessionKind
from workspace.registry import TabKey


@pytest.fixture
def ws(gateway, bus):
    return WorkspaceController(gateway, channel=bus)


class TestOpenFlows:
    @pytest.mark.asyncio
    async def test_open_failure_adds_no_tab(self, tree, bus):
        ws = WorkspaceController(RefusingGateway(tree), channel=bus)

        with pytest.raises(SessionConnectionError, match="Connection refused"):
            await ws.open_terminal("10.0.0.9", username="root")
        assert len(ws.registry) == 0
        assert ws.active_id is None

    @pytest.mark.asyncio
    async def test_generic_gateway_error_becomes_connection_error(self, ws, gateway):
        gateway.fail("open_session", GatewayError("handshake timed out"))

        with pytest.raises(SessionConnectionError, match="handshake timed out"):
            await ws.connect_vnc("10.0.0.5")
        assert len(ws.registry) == 0

    @pytest.mark.asyncio
    async def test_open_terminal(self, ws):
        local = await ws.open_terminal()
        remote = await ws.open_terminal("db.internal", username="ops")

        assert local.is_local and local.title == "Local"
        assert remote.title == "ops@db.internal"
        assert remote.port == 22
        assert ws.active_id == remote.id

    @pytest.mark.asyncio
    async def test_open_sftp_rides_terminal_session(self, ws, gateway):
        term = await ws.open_terminal("db.internal", username="ops")
        sftp = await ws.open_sftp(term.id)

        assert sftp.id == term.id
        assert sftp.sftp_id != term.id
        assert sftp.host == "db.internal"
        assert ws.registry.active == TabKey(SessionKind.SFTP, term.id)
        assert gateway.opened[-1].kind == SessionKind.SFTP

        pane = ws.pane(sftp.id)
        assert pane.session_id == sftp.sftp_id
        assert pane.cache.current_path == "/home/user"
        assert pane.channel_prefix == ""

    @pytest.mark.asyncio
    async def test_open_sftp_twice_activates_existing(self, ws, gateway):
        term = await ws.open_terminal()
        first = await ws.open_sftp(term.id)
        ws.activate(term.id, SessionKind.TERMINAL)
        opens = gateway.count("open_session")

        again = await ws.open_sftp(term.id)
        assert again == first
        assert gateway.count("open_session") == opens
        assert ws.registry.active.kind == SessionKind.SFTP

    @pytest.mark.asyncio
    async def test_open_sftp_needs_terminal(self, ws):
        with pytest.raises(SessionConnectionError):
            await ws.open_sftp("ghost")

    @pytest.mark.asyncio
    async def test_listing_failure_keeps_tab(self, ws, gateway):
        term = await ws.open_terminal()
        gateway.fail("resolve_path", GatewayError("permission denied"))

        sftp = await ws.open_sftp(term.id)
        assert ws.active_id == sftp.id
        assert ws.pane(sftp.id).cache.error == "permission denied"

    @pytest.mark.asyncio
    async def test_connect_ftp_anonymous(self, ws, gateway):
        ftp = await ws.connect_ftp("ftp.example.com")

        assert ftp.anonymous is True
        assert ftp.port == 21
        assert ftp.title == "FTP: ftp.example.com"
        pane = ws.pane(ftp.id)
        assert pane.channel_prefix == "ftp-"
        assert pane.navigator.resolve_after_list is True
        assert pane.cache.current_path == "/home/user"

    @pytest.mark.asyncio
    async def test_connect_vnc_and_rdp_defaults(self, ws, gateway):
        vnc = await ws.connect_vnc("10.0.0.5")
        assert (vnc.port, vnc.width, vnc.height) == (5900, 1024, 768)

        gateway.handle_dims = (1280, 800)
        rdp = await ws.connect_rdp("win.internal", "admin", "secret", connection_name="Win box")
        assert rdp.port == 3389
        assert (rdp.width, rdp.height) == (1280, 800)
        assert rdp.title == "Win box"
        assert gateway.calls[-1][1][1]["width"] == 1920

    @pytest.mark.asyncio
    async def test_config_defaults_apply(self, gateway, bus):
        config = WorkspaceConfig(defaults={"vnc_port": 5901, "ssh_port": 2222})
        ws = WorkspaceController(gateway, channel=bus, config=config)

        assert (await ws.connect_vnc("10.0.0.5")).port == 5901
        assert (await ws.open_terminal("h")).port == 2222


class TestClose:
    @pytest.mark.asyncio
    async def test_close_sftp_releases_sftp_session(self, ws, gateway):
        term = await ws.open_terminal()
        sftp = await ws.open_sftp(term.id)

        assert await ws.close_tab(SessionKind.SFTP, sftp.id)
        assert gateway.closed == [(SessionKind.SFTP, sftp.sftp_id)]
        assert ws.pane(sftp.id) is None
        assert ws.registry.active == TabKey(SessionKind.TERMINAL, term.id)

    @pytest.mark.asyncio
    async def test_close_failure_is_swallowed(self, ws, gateway):
        vnc = await ws.connect_vnc("10.0.0.5")
        gateway.fail("close_session", SessionConnectionError("already gone"))

        assert await ws.close_tab(SessionKind.VNC, vnc.id)
        assert len(ws.registry) == 0

    @pytest.mark.asyncio
    async def test_unexpected_close_failure_is_swallowed(self, ws, gateway):
        term = await ws.open_terminal()
        gateway.fail("close_session", OSError("broken pipe"))

        assert await ws.close_tab(SessionKind.TERMINAL, term.id)
        assert len(ws.registry) == 0
        assert ws.active_id is None

    @pytest.mark.asyncio
    async def test_close_unknown_tab(self, ws, gateway):
        assert await ws.close_tab(SessionKind.FTP, "ghost") is False
        assert gateway.count("close_session") == 0

    @pytest.mark.asyncio
    async def test_close_drops_transfers_and_ignores_late_completion(self, ws, gateway, bus):
        ftp = await ws.connect_ftp("ftp.example.com")
        record = await ws.upload(ftp.id, "/tmp/a.bin")
        listings = gateway.count("list_directory")

        await ws.close_tab(SessionKind.FTP, ftp.id)
        assert ws.tracker.transfers() == []
        assert bus.emit(f"ftp-transfer-complete-{record.id}") == 0
        assert gateway.count("list_directory") == listings

    @pytest.mark.asyncio
    async def test_close_all(self, ws, gateway):
        term = await ws.open_terminal()
        await ws.open_sftp(term.id)
        await ws.connect_rdp("win", "admin", "pw")

        await ws.close()
        assert len(ws.registry) == 0
        assert ws.active_id is None
        assert gateway.count("close_session") == 3


class TestTransfers:
    @pytest.mark.asyncio
    async def test_upload_defaults_to_current_directory(self, ws, gateway):
        term = await ws.open_terminal()
        sftp = await ws.open_sftp(term.id)

        record = await ws.upload(sftp.id, "C:\\Users\\me\\report.pdf")
        assert record.remote_path == "/home/user/report.pdf"
        assert record.owner_tab_id == sftp.id
        assert gateway.calls[-1][1][0] == sftp.sftp_id

    @pytest.mark.asyncio
    async def test_upload_completion_refreshes_owner_once(self, ws, gateway, bus, tree):
        ftp = await ws.connect_ftp("ftp.example.com")
        record = await ws.upload(ftp.id, "/tmp/report.pdf")
        tree["/home/user"].append(tree["/home/user/A"][0])
        listings = gateway.count("list_directory")

        bus.emit(f"ftp-transfer-progress-{record.id}", (100, 100))
        bus.emit(f"ftp-transfer-complete-{record.id}", True)
        bus.emit(f"ftp-transfer-complete-{record.id}", True)
        await ws.tracker.drain()

        assert gateway.count("list_directory") == listings + 1
        assert ws.tracker.get(record.id).status.state == TransferState.COMPLETED
        assert "inner.txt" in [e.name for e in ws.pane(ftp.id).cache.entries]

    @pytest.mark.asyncio
    async def test_download_completion_does_not_refresh(self, ws, gateway, bus):
        term = await ws.open_terminal()
        sftp = await ws.open_sftp(term.id)
        record = await ws.download(sftp.id, "/home/user/a", "/tmp/a")
        listings = gateway.count("list_directory")

        bus.emit(f"transfer-complete-{record.id}")
        await ws.tracker.drain()
        assert gateway.count("list_directory") == listings

    @pytest.mark.asyncio
    async def test_upload_folder_and_cancel(self, ws, gateway, bus):
        term = await ws.open_terminal()
        sftp = await ws.open_sftp(term.id)
        record = await ws.upload_folder(sftp.id, "/tmp/site/")

        assert record.is_folder
        assert record.remote_path == "/home/user/site"
        assert await ws.cancel_transfer(record.id)
        bus.emit(f"transfer-cancelled-{record.id}")
        assert ws.snapshot().active_transfers == ()

    @pytest.mark.asyncio
    async def test_transfer_on_non_browsing_tab(self, ws):
        vnc = await ws.connect_vnc("10.0.0.5")
        with pytest.raises(KeyError):
            await ws.upload(vnc.id, "/tmp/a")


@pytest.mark.asyncio
async def test_snapshot_and_rename(ws):
    ftp = await ws.connect_ftp("ftp.example.com", username="bob", password="pw")
    await ws.open_terminal()
    await ws.upload(ftp.id, "/tmp/a.bin")

    assert ws.rename_tab(SessionKind.FTP, ftp.id, "Mirror")
    assert ws.pane(ftp.id).tab.title == "Mirror"
    assert ws.rename_tab(SessionKind.FTP, "ghost", "x") is False

    snap = ws.snapshot()
    assert snap.tabs.tabs[SessionKind.FTP][0].title == "Mirror"
    assert snap.tabs.tabs[SessionKind.FTP][0].anonymous is False
    assert snap.directories[ftp.id].current_path == "/home/user"
    assert len(snap.active_transfers) == 1
    assert snap.active_id == ws.active_tab().id
    assert "tabs=2" in repr(ws)


def test_controller_builds_default_channel():
    ws = WorkspaceController(FakeGateway())
    assert ws.channel is not None
    assert ws.config.navigation.policy == "latest"
