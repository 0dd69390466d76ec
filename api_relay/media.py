"""
One shape for photos, whether they come from a Drive listing or a Photos Picker selection.
"""
from dataclasses import asdict, dataclass

# Google image URLs accept a sizing suffix
THUMBNAIL_SUFFIX = "=w200-h200"


@dataclass(frozen=True)
class MediaItem:
    id: str
    display_name: str
    primary_url: str
    thumbnail_url: str | None
    mime_type: str | None = None
    width: int | None = None
    height: int | None = None
    creation_time: str | None = None

    def to_dict(self) -> dict:
        d = asdict(self)
        return {
            "id": d["id"],
            "displayName": d["display_name"],
            "primaryUrl": d["primary_url"],
            "thumbnailUrl": d["thumbnail_url"],
            "mimeType": d["mime_type"],
            "width": d["width"],
            "height": d["height"],
            "creationTime": d["creation_time"],
        }


def _as_int(value) -> int | None:
    # Picker and Drive both send dimensions as strings sometimes
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def thumbnail_for(url: str | None) -> str | None:
    if not url:
        return None
    return url + THUMBNAIL_SUFFIX


def from_picker_item(raw: dict) -> MediaItem | None:
    """Photos Picker mediaItem -> MediaItem. Items without a baseUrl can't be shown; returns None."""
    media_file = raw.get("mediaFile") or {}
    base_url = media_file.get("baseUrl")
    if not base_url:
        return None
    metadata = media_file.get("mediaFileMetadata") or raw.get("mediaFileMetadata") or {}
    item_id = str(raw.get("id", ""))
    return MediaItem(
        id=item_id,
        display_name=media_file.get("filename") or f"Photo {item_id}",
        primary_url=base_url,
        thumbnail_url=thumbnail_for(base_url),
        mime_type=media_file.get("mimeType"),
        width=_as_int(metadata.get("width")),
        height=_as_int(metadata.get("height")),
        creation_time=raw.get("createTime"),
    )


def from_drive_file(raw: dict) -> MediaItem:
    """Drive files.list entry (image) -> MediaItem."""
    metadata = raw.get("imageMediaMetadata") or {}
    item_id = str(raw.get("id", ""))
    primary_url = raw.get("webViewLink") or raw.get("webContentLink") or ""
    # thumbnailLink already carries a size suffix (=s220); swap it for ours
    thumbnail = raw.get("thumbnailLink")
    if thumbnail and "=" in thumbnail.rsplit("/", 1)[-1]:
        thumbnail = thumbnail.rsplit("=", 1)[0]
    return MediaItem(
        id=item_id,
        display_name=raw.get("name") or f"Photo {item_id}",
        primary_url=primary_url,
        thumbnail_url=thumbnail_for(thumbnail),
        mime_type=raw.get("mimeType"),
        width=_as_int(metadata.get("width")),
        height=_as_int(metadata.get("height")),
        creation_time=raw.get("createdTime"),
    )


def normalize_picker_items(raw_items: list[dict]) -> list[MediaItem]:
    items = []
    for raw in raw_items:
        item = from_picker_item(raw)
        if item is not None:
            items.append(item)
    return items


def normalize_drive_files(raw_files: list[dict]) -> list[MediaItem]:
    return [from_drive_file(f) for f in raw_files]
