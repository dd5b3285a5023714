import pytest

from utils.blob_store import LocalPayload
from utils.media_validation import (
    VIDEO_SLOT,
    THUMBNAIL_SLOT,
    validate_title,
    validate_description,
    validate_payload,
    parse_declared_duration,
)

MIB = 1024 * 1024


def _payload(content_type, size):
    return LocalPayload(path="/nonexistent", content_type=content_type, size=size)


@pytest.mark.parametrize("title,ok", [
    ("Hi", False),
    ("   Hi   ", False),
    ("Hey", True),
    ("x" * 100, True),
    ("x" * 101, False),
    (None, False),
])
def test_validate_title(title, ok):
    assert validate_title(title)[0] is ok


def test_validate_description():
    assert validate_description("Ten chars!")[0] is True
    assert validate_description("too short")[0] is False
    assert validate_description("x" * 1001)[0] is False
    assert validate_description(None)[0] is False


def test_missing_payload():
    ok, err = validate_payload(None, VIDEO_SLOT, required=True)
    assert not ok
    assert err == "Video and thumbnail files are required"
    assert validate_payload(None, THUMBNAIL_SLOT, required=False) == (True, "")


def test_payload_type_and_size():
    assert validate_payload(_payload("video/mp4", 10 * MIB), VIDEO_SLOT, True)[0]
    assert validate_payload(_payload("video/mpeg; codecs=avc1", MIB), VIDEO_SLOT, True)[0]
    assert validate_payload(_payload("image/jpeg", 5 * MIB), THUMBNAIL_SLOT, True)[0]

    assert not validate_payload(_payload("video/webm", MIB), VIDEO_SLOT, True)[0]
    assert not validate_payload(_payload("image/png", MIB), VIDEO_SLOT, True)[0]
    assert not validate_payload(_payload("video/mp4", 0), VIDEO_SLOT, True)[0]

    ok, err = validate_payload(_payload("video/mp4", 100 * MIB + 1), VIDEO_SLOT, True)
    assert not ok
    assert "100MB" in err
    ok, err = validate_payload(_payload("image/png", 5 * MIB + 1), THUMBNAIL_SLOT, True)
    assert not ok
    assert "5MB" in err


@pytest.mark.parametrize("raw,expected", [
    (None, (True, None)),
    ("", (True, None)),
    ("12.5", (True, 12.5)),
    ("0", (False, None)),
    ("-1", (False, None)),
    ("nan", (False, None)),
    ("inf", (False, None)),
    ("ten", (False, None)),
])
def test_parse_declared_duration(raw, expected):
    ok, _, value = parse_declared_duration(raw)
    assert (ok, value) == expected
