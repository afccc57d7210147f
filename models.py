import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import AllowedIntervals, RotationHistoryLimit
from security import sanitize_id

CORNER_TOP_RIGHT = "TopRight"
CORNER_TOP_LEFT = "TopLeft"
CORNER_BOTTOM_RIGHT = "BottomRight"
CORNER_BOTTOM_LEFT = "BottomLeft"
CORNERS = (CORNER_TOP_RIGHT, CORNER_TOP_LEFT, CORNER_BOTTOM_RIGHT, CORNER_BOTTOM_LEFT)

MAX_CACHE_BOUNDS = 1000
MAX_HISTORY = 100
MAX_BLACKLIST = 1000

DEFAULT_CACHE_BOUNDS = 50
DEFAULT_TYPOGRAPHY_SCALE = 1.0


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ("" if value is None else str(value))


def _as_number(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class ArtworkResult:
    """One candidate artwork as returned by a catalog"""
    id: str
    title: str
    artist: str
    date: str
    medium: str
    image_url: str
    provider_name: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "date": self.date,
            "medium": self.medium,
            "imageUrl": self.image_url,
            "providerName": self.provider_name,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["ArtworkResult"]:
        if not isinstance(data, dict):
            return None
        return cls(
            id=sanitize_id(data.get("id")),
            title=_as_text(data.get("title")),
            artist=_as_text(data.get("artist")),
            date=_as_text(data.get("date")),
            medium=_as_text(data.get("medium")),
            image_url=_as_text(data.get("imageUrl")),
            provider_name=_as_text(data.get("providerName")),
        )


@dataclass
class WallArtConfig:
    update_interval_minutes: int = AllowedIntervals[0]
    last_update_time: Optional[datetime] = None
    autostart_enabled: bool = True
    cache_bounds: int = DEFAULT_CACHE_BOUNDS
    active_artwork: Optional[ArtworkResult] = None
    blacklisted_artwork_ids: List[str] = field(default_factory=list)
    provider_toggles: Dict[str, bool] = field(default_factory=dict)
    history: List[ArtworkResult] = field(default_factory=list)
    background_dimming: float = 0.0
    background_blur: float = 0.0
    typography_position: str = CORNER_TOP_RIGHT
    typography_scale: float = DEFAULT_TYPOGRAPHY_SCALE

    def validate(self) -> "WallArtConfig":
        """
        Repair every field in place so a hand-edited file or a careless caller
        can never leave an out-of-range value behind.
        """
        if isinstance(self.update_interval_minutes, bool) or self.update_interval_minutes not in AllowedIntervals:
            self.update_interval_minutes = AllowedIntervals[0]
        else:
            self.update_interval_minutes = int(self.update_interval_minutes)

        self.last_update_time = _parse_timestamp(self.last_update_time)
        self.autostart_enabled = bool(self.autostart_enabled)
        self.cache_bounds = int(_clamp(_as_number(self.cache_bounds, DEFAULT_CACHE_BOUNDS), 0, MAX_CACHE_BOUNDS))

        if isinstance(self.active_artwork, dict):
            self.active_artwork = ArtworkResult.from_dict(self.active_artwork)
        elif not isinstance(self.active_artwork, ArtworkResult):
            self.active_artwork = None

        seen = set()
        blacklist: List[str] = []
        for artwork_id in self.blacklisted_artwork_ids or []:
            if isinstance(artwork_id, (str, int)) and not isinstance(artwork_id, bool):
                artwork_id = str(artwork_id)
                if artwork_id and artwork_id not in seen:
                    seen.add(artwork_id)
                    blacklist.append(artwork_id)
        self.blacklisted_artwork_ids = blacklist[-MAX_BLACKLIST:]

        toggles = self.provider_toggles if isinstance(self.provider_toggles, dict) else {}
        self.provider_toggles = {
            str(name): bool(enabled) for name, enabled in toggles.items() if isinstance(enabled, bool)
        }

        history: List[ArtworkResult] = []
        for entry in self.history or []:
            if isinstance(entry, dict):
                entry = ArtworkResult.from_dict(entry)
            if isinstance(entry, ArtworkResult):
                history.append(entry)
        self.history = history[:MAX_HISTORY]

        self.background_dimming = _clamp(_as_number(self.background_dimming, 0.0), 0.0, 1.0)
        self.background_blur = _clamp(_as_number(self.background_blur, 0.0), 0.0, 100.0)
        if self.typography_position not in CORNERS:
            self.typography_position = CORNER_TOP_RIGHT
        self.typography_scale = _clamp(
            _as_number(self.typography_scale, DEFAULT_TYPOGRAPHY_SCALE), 0.1, 5.0
        )
        return self

    def is_provider_enabled(self, name: str) -> bool:
        return self.provider_toggles.get(name, True)

    def record_rotation(self, artwork: ArtworkResult, when: datetime,
                        limit: int = RotationHistoryLimit) -> None:
        self.active_artwork = artwork
        self.last_update_time = when
        self.history.insert(0, artwork)
        del self.history[limit:]

    def blacklist(self, artwork_id: str) -> None:
        if artwork_id and artwork_id not in self.blacklisted_artwork_ids:
            self.blacklisted_artwork_ids.append(artwork_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updateIntervalMinutes": self.update_interval_minutes,
            "lastUpdateTime": self.last_update_time.isoformat() if self.last_update_time else None,
            "autostartEnabled": self.autostart_enabled,
            "cacheBounds": self.cache_bounds,
            "activeArtwork": self.active_artwork.to_dict() if self.active_artwork else None,
            "blacklistedArtworkIds": list(self.blacklisted_artwork_ids),
            "providerToggles": dict(self.provider_toggles),
            "history": [entry.to_dict() for entry in self.history],
            "backgroundDimming": self.background_dimming,
            "backgroundBlur": self.background_blur,
            "typographyPosition": self.typography_position,
            "typographyScale": self.typography_scale,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WallArtConfig":
        """Build an unvalidated config; call validate() before use"""
        defaults = cls()
        history = data.get("history")
        blacklist = data.get("blacklistedArtworkIds")
        return cls(
            update_interval_minutes=data.get("updateIntervalMinutes", defaults.update_interval_minutes),
            last_update_time=data.get("lastUpdateTime"),
            autostart_enabled=data.get("autostartEnabled", defaults.autostart_enabled),
            cache_bounds=data.get("cacheBounds", defaults.cache_bounds),
            active_artwork=data.get("activeArtwork"),
            blacklisted_artwork_ids=list(blacklist) if isinstance(blacklist, list) else [],
            provider_toggles=data.get("providerToggles") or {},
            history=list(history) if isinstance(history, list) else [],
            background_dimming=data.get("backgroundDimming", defaults.background_dimming),
            background_blur=data.get("backgroundBlur", defaults.background_blur),
            typography_position=data.get("typographyPosition", defaults.typography_position),
            typography_scale=data.get("typographyScale", defaults.typography_scale),
        )
