# -*- coding: utf-8 -*-

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional


@dataclass
class Song:
    hypem_id: str
    artist: str
    title: str
    url: Optional[str] = None


@dataclass
class Charts:
    """
    A stored chart: position -> song, always iterated in position order.
    created_date is set once when the chart is built.
    """
    id: Optional[int] = None
    songs: Dict[int, Song] = field(default_factory=dict)
    _created_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc), init=False, repr=False)

    def __post_init__(self):
        self.songs = dict(sorted(self.songs.items()))

    @property
    def created_date(self) -> datetime:
        return self._created_date

    def set_songs(self, songs: Mapping[int, Song]) -> None:
        self.songs = dict(sorted(songs.items()))

    def put(self, position: int, song: Song) -> None:
        songs = dict(self.songs)
        songs[position] = song
        self.set_songs(songs)

    def __str__(self) -> str:
        return f"Charts{{id={self.id}, songs={self.songs}, createdDate={self.created_date.isoformat()}}}"
