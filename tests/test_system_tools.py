def test_missing_commands(monkeypatch):
    import battman.system_tools as st

    monkeypatch.setattr(st.shutil, "which", lambda name: None)
    assert st.get_missing_commands() == ["upower"]

    monkeypatch.setattr(st.shutil, "which", lambda name: f"/usr/bin/{name}")
    assert st.get_missing_commands() == []


def test_probe_reports_path(monkeypatch):
    import battman.system_tools as st

    monkeypatch.setattr(st.shutil, "which", lambda name: "/usr/bin/upower")
    (tool,) = st.probe_tools()
    assert tool.available
    assert tool.path == "/usr/bin/upower"
    assert tool.package == "upower"


def test_install_hint():
    from battman.system_tools import install_hint

    assert install_hint("upower") == "sudo dnf install upower"
    assert install_hint("acpi") == "sudo dnf install acpi"
