from __future__ import annotations

import mimetypes

CONTENT_TYPE_IMAGE = "Image"
CONTENT_TYPE_PDF = "PDF"
CONTENT_TYPE_VIDEO = "Video"

SNIFF_BYTES = 64

_SIGNATURES: list[tuple[bytes, str]] = [
    (b"%PDF", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
    (b"\x1a\x45\xdf\xa3", "video/webm"),
]


def detect_magic_type(head: bytes) -> str | None:
    for signature, mime in _SIGNATURES:
        if head.startswith(signature):
            return mime

    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    if head[:4] == b"RIFF" and head[8:12] == b"AVI ":
        return "video/x-msvideo"
    if head[4:8] == b"ftyp":
        brand = head[8:12]
        if brand in {b"heic", b"heix", b"mif1", b"avif"}:
            return "image/heic" if brand != b"avif" else "image/avif"
        if brand == b"qt  ":
            return "video/quicktime"
        return "video/mp4"
    return None


def detect_mime_type(file_name: str, head: bytes) -> str | None:
    guessed_mime, _ = mimetypes.guess_type(file_name)
    return detect_magic_type(head) or guessed_mime


def content_type_tag(mime: str | None) -> str:
    if not mime:
        return CONTENT_TYPE_IMAGE
    if mime.startswith("image/"):
        return CONTENT_TYPE_IMAGE
    if mime == "application/pdf":
        return CONTENT_TYPE_PDF
    if mime.startswith("video/"):
        return CONTENT_TYPE_VIDEO
    return CONTENT_TYPE_IMAGE
