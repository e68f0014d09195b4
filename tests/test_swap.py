"""Tests for the swap/backup/rollback engine."""

from pathlib import Path

from opensoul.client import SWAP_MARKER, SoulState, SwapEngine

ORIGINAL = "# My Bot\r\n\r\nHand-written soul with CRLF and ünïcode.\r\n".encode("utf-8")


def write_original(engine: SwapEngine) -> Path:
    engine.soul_path.write_bytes(ORIGINAL)
    return engine.soul_path


def test_first_swap_backs_up_original(client_config):
    engine = SwapEngine(client_config)
    path = write_original(engine)

    result = engine.swap("# Ride or Die")

    assert result.backed_up is True
    assert result.path == path
    assert path.read_text(encoding="utf-8") == f"{SWAP_MARKER}\n# Ride or Die"
    assert engine.backup_path.read_bytes() == ORIGINAL
    assert engine.is_swapped()


def test_repeated_swaps_keep_single_backup(client_config):
    engine = SwapEngine(client_config)
    write_original(engine)

    engine.swap("# One")
    second = engine.swap("# Two")
    third = engine.swap("# Three")

    assert second.backed_up is False
    assert third.backed_up is False
    assert engine.backup_path.read_bytes() == ORIGINAL
    assert list(engine.backup_path.parent.iterdir()) == [engine.backup_path]


def test_rollback_restores_exact_bytes(client_config):
    engine = SwapEngine(client_config)
    write_original(engine)

    engine.swap("# One")
    engine.swap("# Two")

    assert engine.rollback() is True
    assert engine.soul_path.read_bytes() == ORIGINAL
    assert not engine.is_swapped()

    # Backup is kept, so rollback repeats
    assert engine.rollback() is True
    assert engine.soul_path.read_bytes() == ORIGINAL


def test_rollback_without_backup_changes_nothing(client_config):
    engine = SwapEngine(client_config)
    path = write_original(engine)

    assert engine.rollback() is False
    assert path.read_bytes() == ORIGINAL
    assert not engine.backup_path.exists()


def test_swap_without_existing_file(client_config):
    engine = SwapEngine(client_config)

    result = engine.swap("# Fresh")

    assert result.backed_up is False
    assert not engine.has_backup()
    assert engine.soul_path.read_text(encoding="utf-8").startswith(SWAP_MARKER)


def test_swap_creates_parent_directories(tmp_path, client_config):
    client_config.soul_path = str(tmp_path / "new" / "workspace" / "SOUL.md")
    engine = SwapEngine(client_config)

    engine.swap("# Fresh")
    assert engine.soul_path.exists()


def test_directory_soul_path_resolves_to_soul_md(tmp_path, client_config):
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    client_config.soul_path = str(workspace)

    engine = SwapEngine(client_config)
    assert engine.soul_path == workspace / "SOUL.md"


def test_swapping_a_marked_file_does_not_back_it_up(client_config):
    """A file already carrying the marker is never treated as the original."""
    engine = SwapEngine(client_config)
    engine.soul_path.write_text(f"{SWAP_MARKER}\n# Leftover", encoding="utf-8")

    assert engine.swap("# New").backed_up is False
    assert not engine.has_backup()


def test_status(client_config):
    engine = SwapEngine(client_config)

    status = engine.status()
    assert status.exists is False
    assert status.state == SoulState.ORIGINAL

    write_original(engine)
    engine.swap("\n\n# Ride or Die\nbody")

    status = engine.status()
    assert status.exists is True
    assert status.state == SoulState.SWAPPED
    assert status.has_backup is True
    assert status.preview == "# Ride or Die"
