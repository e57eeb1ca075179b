import pytest

from uploader.services.pipeline.content_type import (
    content_type_tag,
    detect_magic_type,
    detect_mime_type,
)


@pytest.mark.parametrize(
    ("head", "expected"),
    [
        (b"%PDF-1.4", "application/pdf"),
        (b"\x89PNG\r\n\x1a\n\x00\x00", "image/png"),
        (b"\xff\xd8\xff\xe0", "image/jpeg"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"\x00\x00\x00\x18ftypmp42", "video/mp4"),
        (b"\x00\x00\x00\x14ftypqt  ", "video/quicktime"),
        (b"plain text", None),
    ],
)
def test_detect_magic_type(head: bytes, expected: str | None) -> None:
    assert detect_magic_type(head) == expected


def test_extension_is_used_when_bytes_are_unknown() -> None:
    assert detect_mime_type("clip.mp4", b"") == "video/mp4"
    assert detect_mime_type("notes.unknownext", b"") is None


@pytest.mark.parametrize(
    ("mime", "tag"),
    [
        ("image/png", "Image"),
        ("application/pdf", "PDF"),
        ("video/mp4", "Video"),
        ("application/zip", "Image"),
        (None, "Image"),
    ],
)
def test_content_type_tag(mime: str | None, tag: str) -> None:
    assert content_type_tag(mime) == tag
