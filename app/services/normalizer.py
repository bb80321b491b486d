"""Result normalizer: provider payloads to canonical media records.

Search providers reshape their responses depending on engine and query:
videos can arrive under ``video_results``, ``videos``, inside each organic
result's ``inline_videos``, or as the organic result itself. This module is
the only place that knows those shapes. Everything is data:

- ``CANDIDATE_LOCATIONS``: ordered lookups; every hit is unioned
- ``FIELD_RULES``: per canonical attribute, ordered fallback paths + default

Items with no identity field (link / id / url) are dropped, never given a
made-up id. Duplicates keep the first-seen record.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any

from app.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PLACEHOLDER_IMAGE = "https://via.placeholder.com/320x180?text=No+Image"

_WIRE_TEXT_FIELDS = (
    "title", "channelName", "source", "imageUrl", "thumbnailUrl", "views",
    "publishedDate", "duration", "link", "description",
)


class MediaKind(StrEnum):
    VIDEO = "video"
    IMAGE = "image"


# ── Canonical record ─────────────────────────────────────────────────


@dataclass
class MediaRecord:
    """Provider-agnostic search result."""

    id: str
    title: str
    channel_or_source: str
    image_url: str
    secondary_url: str
    metric: str
    published_label: str
    duration_label: str
    link: str
    description: str
    kind: MediaKind

    def to_dict(self) -> dict[str, str]:
        """Wire representation (camelCase, ``channelName`` or ``source``)."""
        owner_field = "channelName" if self.kind == MediaKind.VIDEO else "source"
        return {
            "id": self.id,
            "title": self.title,
            owner_field: self.channel_or_source,
            "imageUrl": self.image_url,
            "thumbnailUrl": self.secondary_url,
            "views": self.metric,
            "publishedDate": self.published_label,
            "duration": self.duration_label,
            "link": self.link,
            "description": self.description,
            "type": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MediaRecord:
        """Rebuild a record from its wire form.

        Values are coerced to text: entries written by older releases carry
        raw provider values (``views`` as an int). Raises ``TypeError`` or
        ``ValueError`` for anything that is not a usable record.
        """
        if not isinstance(data, dict):
            raise TypeError(f"expected a dict, got {type(data).__name__}")
        record_id = _scalar_text(data.get("id")) or _scalar_text(data.get("link"))
        if not record_id:
            raise ValueError("record has no id")
        text = {key: _scalar_text(data.get(key)) for key in _WIRE_TEXT_FIELDS}
        return cls(
            id=record_id,
            title=text["title"],
            channel_or_source=text["channelName"] or text["source"],
            image_url=text["imageUrl"],
            secondary_url=text["thumbnailUrl"],
            metric=text["views"],
            published_label=text["publishedDate"],
            duration_label=text["duration"],
            link=text["link"],
            description=text["description"],
            kind=MediaKind(data.get("type") or MediaKind.VIDEO),
        )


@dataclass
class Suggestion:
    title: str
    snippet: str
    link: str
    source: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


# ── Extraction rules ─────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldRule:
    """Ordered dotted paths; the first non-empty scalar wins."""

    paths: tuple[str, ...]
    default: str = ""


@dataclass(frozen=True)
class CandidateLocation:
    """A list in the payload that may hold raw items.

    ``key`` names a top-level list. With ``nested`` set, each element's
    ``nested`` list is used instead. ``accept`` filters the yielded items.
    """

    key: str
    nested: str | None = None
    accept: Callable[[dict], bool] | None = None


def _is_youtube_item(item: dict) -> bool:
    link = item.get("link")
    return isinstance(link, str) and ("youtube.com" in link or "youtu.be" in link)


CANDIDATE_LOCATIONS: dict[MediaKind, tuple[CandidateLocation, ...]] = {
    MediaKind.VIDEO: (
        CandidateLocation("video_results"),
        CandidateLocation("videos"),
        CandidateLocation("organic_results", nested="video_results"),
        CandidateLocation("organic_results", nested="inline_videos"),
        CandidateLocation("organic_results", accept=_is_youtube_item),
        CandidateLocation("results"),
        CandidateLocation("items"),
    ),
    MediaKind.IMAGE: (
        CandidateLocation("images_results"),
        CandidateLocation("image_results"),
        CandidateLocation("results"),
        CandidateLocation("items"),
    ),
}

ID_PATHS: dict[MediaKind, tuple[str, ...]] = {
    MediaKind.VIDEO: ("link", "id", "video_id", "url"),
    MediaKind.IMAGE: ("link", "id", "original", "url"),
}

FIELD_RULES: dict[MediaKind, dict[str, FieldRule]] = {
    MediaKind.VIDEO: {
        "title": FieldRule(("title", "name", "snippet"), "Untitled"),
        "channel_or_source": FieldRule(("channel.name", "channel", "uploader", "source"), "Unknown"),
        "image_url": FieldRule(("thumbnail.static", "thumbnail", "image", "thumbnailUrl", "thumbnail_url")),
        "secondary_url": FieldRule(("thumbnail.rich", "thumbnail.static", "thumbnail", "image")),
        "metric": FieldRule(("views", "view_count", "formatted_views"), "0"),
        "published_label": FieldRule(("published_date", "published_time", "date"), "Recently"),
        "duration_label": FieldRule(("length", "duration", "video_length"), "N/A"),
        "link": FieldRule(("link", "url")),
        "description": FieldRule(("description", "snippet")),
    },
    MediaKind.IMAGE: {
        "title": FieldRule(("title", "name", "snippet"), "Untitled"),
        "channel_or_source": FieldRule(("source", "source_name", "channel.name"), "Unknown"),
        "image_url": FieldRule(("original", "thumbnail", "image", "url")),
        "secondary_url": FieldRule(("thumbnail", "original", "image")),
        "metric": FieldRule(("views",), "0"),
        "published_label": FieldRule(("date", "published_date"), "Recently"),
        "duration_label": FieldRule(("duration",), "N/A"),
        "link": FieldRule(("link", "source_url", "url")),
        "description": FieldRule(("snippet", "description")),
    },
}


def _dig(item: Any, path: str) -> Any:
    current = item
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return ""


def extract(item: dict, paths: tuple[str, ...]) -> str:
    """First non-empty scalar found along ``paths``, as text ("" if none)."""
    for path in paths:
        text = _scalar_text(_dig(item, path))
        if text:
            return text
    return ""


def iter_candidates(payload: Any, kind: MediaKind) -> Iterator[dict]:
    """Yield raw items from every known location, in lookup order."""
    if not isinstance(payload, dict):
        return
    for loc in CANDIDATE_LOCATIONS[kind]:
        container = payload.get(loc.key)
        if not isinstance(container, list):
            continue
        for entry in container:
            if not isinstance(entry, dict):
                continue
            if loc.nested is None:
                if loc.accept is None or loc.accept(entry):
                    yield entry
                continue
            inner = entry.get(loc.nested)
            if not isinstance(inner, list):
                continue
            for sub in inner:
                if isinstance(sub, dict) and (loc.accept is None or loc.accept(sub)):
                    yield sub


# ── Entry points ─────────────────────────────────────────────────────


def normalize(
    payload: Any,
    kind: MediaKind,
    *,
    placeholder_image: str = DEFAULT_PLACEHOLDER_IMAGE,
) -> list[MediaRecord]:
    """Canonical, deduplicated records from a raw provider payload.

    Never fails on missing descriptive fields; returns ``[]`` for payloads
    with nothing usable.
    """
    rules = FIELD_RULES[kind]
    id_paths = ID_PATHS[kind]

    seen: set[str] = set()
    records: list[MediaRecord] = []
    scanned = dropped = duplicates = 0

    for item in iter_candidates(payload, kind):
        scanned += 1
        record_id = extract(item, id_paths)
        if not record_id:
            dropped += 1
            continue
        if record_id in seen:
            duplicates += 1
            continue
        seen.add(record_id)

        values = {name: extract(item, rule.paths) or rule.default for name, rule in rules.items()}
        if not values["image_url"]:
            values["image_url"] = placeholder_image
        if not values["secondary_url"]:
            values["secondary_url"] = values["image_url"]

        records.append(MediaRecord(id=record_id, kind=kind, **values))

    logger.debug(
        "normalize_completed",
        kind=kind.value,
        scanned=scanned,
        kept=len(records),
        dropped=dropped,
        duplicates=duplicates,
    )
    return records


def normalize_suggestions(payload: Any) -> list[Suggestion]:
    """Organic web results as ``{title, snippet, link, source}``; linkless items dropped."""
    if not isinstance(payload, dict) or not isinstance(payload.get("organic_results"), list):
        return []
    seen: set[str] = set()
    out: list[Suggestion] = []
    for item in payload["organic_results"]:
        if not isinstance(item, dict):
            continue
        link = extract(item, ("link",))
        if not link or link in seen:
            continue
        seen.add(link)
        out.append(Suggestion(
            title=extract(item, ("title",)),
            snippet=extract(item, ("snippet",)),
            link=link,
            source=extract(item, ("source", "displayed_link")),
        ))
    return out
