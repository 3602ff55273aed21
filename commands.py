import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from catalog import Song
from song_protocol import ALL, ListMode

SONG_FIELDS = ("title", "artist", "lyrics", "explicit")
MIN_SONG_FIELDS = 3
CANCEL_WORD = "cancel"

HELP_TEXT = """Commands:
  list peers                 show discovered peers
  list songs                 show the local catalog
  list songs all             ask every peer for its public songs
  list songs <peer id>       ask one peer for its public songs
  create song                create a song (prompts for each field, "cancel" aborts)
  create song t|a|l|e        create a song inline: title|artist|lyrics|explicit
  delete song <id>           delete a local song
  publish song <id>          make a local song public
  private song <id>          make a local song private
  chat <message>             send a message to every peer
  help                       show this text
  quit                       stop the node"""

_ID_PATTERN = re.compile(r"[0-9]+")


class CommandInputError(Exception):
    """Operator input that cannot be executed (bad id, too few fields, unknown command)."""


@dataclass
class Command:
    name: str
    arg: Any = None


def parse_song_id(text: str) -> int:
    text = text.strip()
    if not _ID_PATTERN.fullmatch(text):
        raise CommandInputError(f"invalid id: {text!r}")
    return int(text)


def build_song_fields(values: List[str]) -> Tuple[str, str, str, str]:
    """
    Validates collected (title, artist, lyrics, explicit) values.
    Missing trailing values are treated as empty.
    """
    if len(values) > len(SONG_FIELDS):
        raise CommandInputError("too many fields - Format: title|artist|lyrics|explicit")
    values = [v.strip() for v in values] + [""] * (len(SONG_FIELDS) - len(values))
    if sum(1 for v in values if v) < MIN_SONG_FIELDS:
        raise CommandInputError("too few arguments - Format: title|artist|lyrics|explicit")
    return tuple(values)


def parse_command(line: str) -> Command:
    """
    Maps one operator line to a Command.
    Raises CommandInputError for malformed or unknown input.
    """
    cmd = line.strip()

    if cmd == "list peers":
        return Command("list_peers")
    if cmd == "list songs":
        return Command("list_local")
    if cmd.startswith("list songs "):
        target = cmd[len("list songs "):].strip()
        return Command("list_remote", ALL if target == "all" else ListMode(target=target))

    if cmd == "create song":
        return Command("create")
    if cmd.startswith("create song "):
        rest = cmd[len("create song "):]
        return Command("create", build_song_fields(rest.split("|")))

    for verb, name in (("delete song", "delete"), ("publish song", "publish"), ("private song", "private")):
        if cmd == verb or cmd.startswith(verb + " "):
            return Command(name, parse_song_id(cmd[len(verb):]))

    if cmd.startswith("chat "):
        text = cmd[len("chat "):].strip()
        if text:
            return Command("chat", text)
        raise CommandInputError("empty chat message")

    if cmd == "help":
        return Command("help")
    if cmd == "quit":
        return Command("quit")

    raise CommandInputError(f"unknown command: {cmd!r}")


def format_title(song: Song) -> str:
    return f"{song.title} [E]" if song.is_explicit else song.title


def render_songs(songs: List[Song], show_visibility: bool = True) -> List[str]:
    """
    Renders songs as aligned text rows, header first.
    """
    titles = [format_title(s) for s in songs]
    title_w = max([len("Title")] + [len(t) for t in titles])
    artist_w = max([len("Artist")] + [len(s.artist) for s in songs])

    header = f"{'Id':>4}  {'Title':<{title_w}}  {'Artist':<{artist_w}}  Lyrics"
    if show_visibility:
        header = f"{header}  (visibility)"
    rows = [header]
    for song, title in zip(songs, titles):
        row = f"{song.id:>4}  {title:<{title_w}}  {song.artist:<{artist_w}}  {song.lyrics}"
        if show_visibility:
            row = f"{row}  ({'public' if song.public else 'private'})"
        rows.append(row)
    return rows


def prompt_for(field_index: int) -> Optional[str]:
    if field_index >= len(SONG_FIELDS):
        return None
    return f"{SONG_FIELDS[field_index].capitalize()}: "
