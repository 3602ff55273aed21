import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, asdict
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

TRUTHY_EXPLICIT = {"true", "yes", "y", "1", "explicit", "e"}
NEW_CATALOG_MODE = 0o644


class PersistenceError(Exception):
    """Catalog file missing, unreadable, malformed, or not writable."""


def is_explicit(flag: str) -> bool:
    return flag.strip().lower() in TRUTHY_EXPLICIT


@dataclass
class Song:
    id: int
    title: str
    artist: str
    lyrics: str
    explicit: str
    public: bool = False

    @property
    def is_explicit(self) -> bool:
        return is_explicit(self.explicit)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> 'Song':
        """
        Builds a Song from a decoded JSON object.
        Raises ValueError if a field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Song record must be an object, got {type(data).__name__}")

        song_id = data.get("id")
        # bool is an int subclass, reject it explicitly
        if not isinstance(song_id, int) or isinstance(song_id, bool) or song_id < 0:
            raise ValueError(f"Invalid song id: {song_id!r}")

        for field in ("title", "artist", "lyrics", "explicit"):
            if not isinstance(data.get(field), str):
                raise ValueError(f"Song field '{field}' must be a string")

        if not isinstance(data.get("public"), bool):
            raise ValueError("Song field 'public' must be a boolean")

        return cls(
            id=song_id,
            title=data["title"],
            artist=data["artist"],
            lyrics=data["lyrics"],
            explicit=data["explicit"],
            public=data["public"]
        )


class CatalogStore:
    """
    Owns the node's persisted list of songs.

    There is no in-memory cache: every operation does its own
    load -> mutate -> save cycle against the JSON document at `path`.
    """
    def __init__(self, path: str):
        self.path = path
        self.revision = 0

    def initialize(self):
        """
        Creates an empty catalog document if none exists yet.
        """
        if os.path.exists(self.path):
            return
        self.save([])
        logger.info(f"Initialized empty catalog at {self.path}")

    def load(self) -> List[Song]:
        try:
            with open(self.path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise PersistenceError(f"cannot read catalog {self.path}: {e}") from e

        try:
            records = json.loads(content.decode("utf-8"))
            if not isinstance(records, list):
                raise ValueError("catalog document must be a JSON array")
            return [Song.from_dict(r) for r in records]
        except ValueError as e:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors too
            raise PersistenceError(f"malformed catalog {self.path}: {e}") from e

    def save(self, songs: List[Song]):
        data = json.dumps([s.to_dict() for s in songs], ensure_ascii=False)
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            # Write next to the target then swap, so readers never see a partial file
            fd, tmp_path = tempfile.mkstemp(prefix=".songs-", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            # mkstemp files are 0600; keep the mode the catalog already had
            if os.path.exists(self.path):
                shutil.copymode(self.path, tmp_path)
            else:
                os.chmod(tmp_path, NEW_CATALOG_MODE)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise PersistenceError(f"cannot write catalog {self.path}: {e}") from e
        self.revision += 1

    def create(self, title: str, artist: str, lyrics: str, explicit: str) -> Song:
        songs = self.load()
        new_id = max((s.id for s in songs), default=-1) + 1
        song = Song(
            id=new_id,
            title=title,
            artist=artist,
            lyrics=lyrics,
            explicit=explicit,
            public=False
        )
        songs.append(song)
        self.save(songs)
        logger.info(f"Created song {song.id}: {title!r} by {artist!r}")
        return song

    def delete(self, song_id: int) -> bool:
        """
        Removes the song with `song_id`.
        Returns False (and leaves the file untouched) if there is no such song.
        """
        songs = self.load()
        for index, song in enumerate(songs):
            if song.id == song_id:
                del songs[index]
                self.save(songs)
                logger.info(f"Deleted song {song_id}")
                return True
        return False

    def set_visibility(self, song_id: int, public: bool) -> bool:
        """
        Sets the public flag on `song_id`.
        Returns False if no song matched; the catalog is then unchanged.
        """
        songs = self.load()
        matched = False
        for song in songs:
            if song.id == song_id:
                song.public = public
                matched = True
        if not matched:
            return False
        self.save(songs)
        logger.info(f"Song {song_id} is now {'public' if public else 'private'}")
        return True

    def public_snapshot(self) -> List[Song]:
        return [s for s in self.load() if s.public]
