"""
Channel, stream and catalog data models.
Built by the playlist transformer from M3U directives.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_GENRE = "Other channels"
CHANNEL_ID_PREFIX = "tv|"


class StreamDescriptor(BaseModel):
    """Stream URL plus the headers needed to play it."""
    model_config = ConfigDict(frozen=True)

    url: str
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def user_agent(self) -> Optional[str]:
        return self.headers.get("User-Agent")


class Channel(BaseModel):
    """Live TV channel parsed from an #EXTINF record."""
    model_config = ConfigDict(frozen=True)

    id: str  # tvg-id, or the trimmed display name
    name: str
    genres: list[str] = Field(default_factory=lambda: [DEFAULT_GENRE])
    logo: Optional[str] = None
    number: Optional[int] = None  # tvg-chno
    tvg: dict[str, str] = Field(default_factory=dict)
    stream: StreamDescriptor

    @property
    def catalog_id(self) -> str:
        """Namespace-qualified id, e.g. 'tv|RaiUno.it'."""
        return f"{CHANNEL_ID_PREFIX}{self.id}"

    @property
    def display_name(self) -> str:
        """Name prefixed with the channel number when known."""
        if self.number is not None:
            return f"{self.number}. {self.name}"
        return self.name


class Catalog(BaseModel):
    """Immutable snapshot of channels and genres from one transformation pass."""
    model_config = ConfigDict(frozen=True)

    channels: tuple[Channel, ...] = ()
    genres: tuple[str, ...] = (DEFAULT_GENRE,)
    built_at: Optional[datetime] = None
    version: int = 0

    def __len__(self) -> int:
        return len(self.channels)


class ProxyStream(BaseModel):
    """Alternate delivery URL through the HLS proxy."""
    name: str
    title: str
    url: str
