"""Tests for media item normalization."""
import json

from api_relay.media import from_drive_file, from_picker_item, normalize_picker_items


def test_picker_item_normalized(make_picker_item):
    item = from_picker_item(make_picker_item("m1", base_url="https://lh3.example/abc"))
    assert item.to_dict() == {
        "id": "m1",
        "displayName": "m1.jpg",
        "primaryUrl": "https://lh3.example/abc",
        "thumbnailUrl": "https://lh3.example/abc=w200-h200",
        "mimeType": "image/jpeg",
        "width": 4032,
        "height": 3024,
        "creationTime": "2024-05-01T10:00:00Z",
    }


def test_picker_item_without_filename_gets_default_name(make_picker_item):
    raw = make_picker_item("m7")
    del raw["mediaFile"]["filename"]
    assert from_picker_item(raw).display_name == "Photo m7"


def test_picker_item_without_base_url_is_skipped(make_picker_item):
    items = normalize_picker_items([make_picker_item("ok"), {"id": "bad", "mediaFile": {}}, {"id": "bare"}])
    assert [i.id for i in items] == ["ok"]


def test_normalization_is_idempotent(make_picker_item):
    raw = make_picker_item("m1")
    first = json.dumps(from_picker_item(raw).to_dict(), sort_keys=True)
    second = json.dumps(from_picker_item(raw).to_dict(), sort_keys=True)
    assert first == second


def test_drive_file_normalized_to_same_shape(make_picker_item):
    raw = {
        "id": "d1",
        "name": "beach.png",
        "mimeType": "image/png",
        "createdTime": "2023-07-04T12:00:00.000Z",
        "webViewLink": "https://drive.example/file/d1/view",
        "thumbnailLink": "https://lh3.example/drive-thumb=s220",
        "imageMediaMetadata": {"width": 800, "height": 600},
    }
    drive = from_drive_file(raw).to_dict()
    picker = from_picker_item(make_picker_item()).to_dict()
    assert drive.keys() == picker.keys()
    assert drive["thumbnailUrl"] == "https://lh3.example/drive-thumb=w200-h200"
    assert drive["primaryUrl"] == "https://drive.example/file/d1/view"
    assert (drive["width"], drive["height"]) == (800, 600)
    assert drive["creationTime"] == "2023-07-04T12:00:00.000Z"


def test_drive_file_without_thumbnail():
    item = from_drive_file({"id": "d2", "name": "x.jpg", "webViewLink": "https://drive.example/d2"})
    assert item.thumbnail_url is None
    assert item.width is None
