import pytest

from workspace.models import FtpTab, SftpTab, SessionKind, TerminalTab, VncTab
from workspace.registry import TabKey, TabRegistry


def _terminal(tab_id: str) -> TerminalTab:
    return TerminalTab(id=tab_id, title=tab_id.upper())


@pytest.fixture
def registry():
    return TabRegistry()


class TestAddTab:
    def test_add_makes_tab_active(self, registry):
        registry.add_tab(_terminal("t1"))
        registry.add_tab(_terminal("t2"))

        assert registry.active == TabKey(SessionKind.TERMINAL, "t2")
        assert [t.id for t in registry.tabs(SessionKind.TERMINAL)] == ["t1", "t2"]

    def test_duplicate_id_within_kind_rejected(self, registry):
        registry.add_tab(_terminal("t1"))
        with pytest.raises(ValueError, match="Duplicate"):
            registry.add_tab(_terminal("t1"))
        assert len(registry) == 1

    def test_same_id_allowed_across_kinds(self, registry):
        registry.add_tab(_terminal("s1"))
        registry.add_tab(SftpTab(id="s1", title="SFTP", session_id="s1", sftp_id="sftp-9"))

        assert len(registry.find("s1")) == 2
        assert registry.active == TabKey(SessionKind.SFTP, "s1")


class TestCloseFallback:
    def test_close_active_picks_tab_now_at_same_index(self, registry):
        for tab_id in ("t1", "t2", "t3"):
            registry.add_tab(_terminal(tab_id))
        registry.set_active("t2")

        registry.close_tab(SessionKind.TERMINAL, "t2")
        assert registry.active_id == "t3"

        registry.close_tab(SessionKind.TERMINAL, "t3")
        assert registry.active_id == "t1"

    def test_close_last_of_kind_falls_back_by_priority(self, registry):
        registry.add_tab(VncTab(id="v1", title="VNC", host="10.0.0.5"))
        registry.add_tab(FtpTab(id="f1", title="FTP", host="ftp.example.com"))
        registry.add_tab(_terminal("t1"))
        registry.set_active("v1")

        registry.close_tab(SessionKind.VNC, "v1")
        assert registry.active == TabKey(SessionKind.TERMINAL, "t1")

        registry.close_tab(SessionKind.TERMINAL, "t1")
        assert registry.active == TabKey(SessionKind.FTP, "f1")

    def test_close_everything_leaves_nothing_active(self, registry):
        registry.add_tab(_terminal("t1"))
        registry.close_tab(SessionKind.TERMINAL, "t1")

        assert registry.active is None
        assert registry.active_record() is None
        assert len(registry) == 0

    def test_close_inactive_tab_keeps_active(self, registry):
        registry.add_tab(_terminal("t1"))
        registry.add_tab(_terminal("t2"))

        removed = registry.close_tab(SessionKind.TERMINAL, "t1")
        assert removed.id == "t1"
        assert registry.active_id == "t2"

    def test_close_unknown_is_noop(self, registry):
        registry.add_tab(_terminal("t1"))
        assert registry.close_tab(SessionKind.TERMINAL, "nope") is None
        assert registry.close_tab(SessionKind.FTP, "t1") is None
        assert registry.active_id == "t1"

    def test_closing_terminal_does_not_move_focus_off_its_sftp_tab(self, registry):
        registry.add_tab(_terminal("s1"))
        registry.add_tab(SftpTab(id="s1", title="SFTP", session_id="s1", sftp_id="sftp-9"))

        registry.close_tab(SessionKind.TERMINAL, "s1")
        assert registry.active == TabKey(SessionKind.SFTP, "s1")


class TestFallbackScenarios:
    """The documented close-fallback walkthroughs."""

    def test_closing_active_ftp_moves_to_next_ftp(self, registry):
        registry.add_tab(_terminal("A"))
        registry.add_tab(FtpTab(id="B", title="B", host="ftp.example.com"))
        registry.add_tab(FtpTab(id="C", title="C", host="ftp.example.com"))
        registry.set_active("B")

        registry.close_tab(SessionKind.FTP, "B")
        assert registry.active == TabKey(SessionKind.FTP, "C")

    def test_closing_only_sftp_moves_to_terminal(self, registry):
        registry.add_tab(_terminal("T"))
        registry.add_tab(SftpTab(id="S", title="S", session_id="T", sftp_id="sftp-1"))
        assert registry.active_id == "S"

        registry.close_tab(SessionKind.SFTP, "S")
        assert registry.active == TabKey(SessionKind.TERMINAL, "T")


class TestSetActive:
    def test_unknown_id_is_ignored(self, registry):
        registry.add_tab(_terminal("t1"))
        assert registry.set_active("ghost") is False
        assert registry.active_id == "t1"

    def test_kind_disambiguates_shared_ids(self, registry):
        registry.add_tab(_terminal("s1"))
        registry.add_tab(SftpTab(id="s1", title="SFTP", session_id="s1"))

        assert registry.set_active("s1", SessionKind.TERMINAL)
        assert registry.active_record().kind == SessionKind.TERMINAL

    def test_without_kind_priority_order_wins(self, registry):
        registry.add_tab(SftpTab(id="s1", title="SFTP", session_id="s1"))
        registry.add_tab(_terminal("s1"))
        registry.set_active("s1", SessionKind.SFTP)

        registry.set_active("s1")
        assert registry.active.kind == SessionKind.TERMINAL


def test_update_title_swaps_record(registry):
    registry.add_tab(_terminal("t1"))
    assert registry.update_title(SessionKind.TERMINAL, "t1", "build box")
    assert registry.get(SessionKind.TERMINAL, "t1").title == "build box"
    assert registry.update_title(SessionKind.TERMINAL, "ghost", "x") is False


def test_snapshot_is_detached_from_registry(registry):
    registry.add_tab(_terminal("t1"))
    snap = registry.snapshot()
    registry.add_tab(_terminal("t2"))

    assert [t.id for t in snap.tabs[SessionKind.TERMINAL]] == ["t1"]
    assert snap.active_id == "t1"
    assert snap.tabs[SessionKind.RDP] == ()
    assert [t.id for t in registry.snapshot().all_tabs()] == ["t1", "t2"]


def test_priority_must_cover_every_kind():
    with pytest.raises(ValueError, match="every kind"):
        TabRegistry(priority=(SessionKind.TERMINAL, SessionKind.FTP))
