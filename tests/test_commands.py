import os
import sys

import pytest

# Ensure the parent directory is in the path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from catalog import Song
from commands import CommandInputError, build_song_fields, parse_command, render_songs
from song_protocol import ALL, ListMode


def test_list_commands():
    assert parse_command("list peers").name == "list_peers"
    assert parse_command("  list songs  ").name == "list_local"

    remote = parse_command("list songs all")
    assert (remote.name, remote.arg) == ("list_remote", ALL)

    one = parse_command("list songs abc123")
    assert (one.name, one.arg) == ("list_remote", ListMode("abc123"))


def test_commands_are_case_sensitive():
    with pytest.raises(CommandInputError):
        parse_command("List Peers")


@pytest.mark.parametrize("verb,name", [("delete", "delete"), ("publish", "publish"), ("private", "private")])
def test_id_commands(verb, name):
    cmd = parse_command(f"{verb} song 12")
    assert (cmd.name, cmd.arg) == (name, 12)


@pytest.mark.parametrize("line", ["delete song abc", "publish song -1", "private song 1.5", "delete song", "publish song +3"])
def test_bad_ids_are_rejected(line):
    with pytest.raises(CommandInputError):
        parse_command(line)


def test_create_forms():
    assert parse_command("create song").arg is None
    assert parse_command("create song T|A|L|true").arg == ("T", "A", "L", "true")
    # explicit may be left out
    assert parse_command("create song T|A|L").arg == ("T", "A", "L", "")


def test_create_needs_three_fields():
    with pytest.raises(CommandInputError):
        parse_command("create song T|A")
    with pytest.raises(CommandInputError):
        build_song_fields(["T", " ", "", "true"])
    assert build_song_fields(["", "A", "L", "yes"]) == ("", "A", "L", "yes")


def test_chat_and_unknown():
    cmd = parse_command("chat hello there")
    assert (cmd.name, cmd.arg) == ("chat", "hello there")
    with pytest.raises(CommandInputError):
        parse_command("chat   ")
    with pytest.raises(CommandInputError):
        parse_command("dance")


def test_render_marks_explicit_titles():
    songs = [Song(0, "Loud", "X", "la", "yes", True), Song(1, "Soft", "Y", "lu", "no", False)]
    rows = render_songs(songs)
    assert len(rows) == 3
    assert "Loud [E]" in rows[1] and "(public)" in rows[1]
    assert "[E]" not in rows[2] and "(private)" in rows[2]
    assert "(public)" not in render_songs(songs, show_visibility=False)[1]
