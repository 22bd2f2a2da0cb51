import pytest

from app.interview.audio import (
    build_stored_name,
    discard_upload,
    estimate_bitrate_kbps,
    expected_size_bounds,
    is_allowed_upload,
    store_upload,
    validate_duration_and_size,
)
from app.interview.errors import InvalidAudioMetadata


def test_bitrate_table():
    assert estimate_bitrate_kbps("audio/wav") == 768
    assert estimate_bitrate_kbps("audio/x-wav") == 768
    assert estimate_bitrate_kbps("audio/mpeg") == 128
    assert estimate_bitrate_kbps("audio/mp4") == 128
    assert estimate_bitrate_kbps("audio/aac") == 128
    assert estimate_bitrate_kbps("audio/webm") == 48
    assert estimate_bitrate_kbps("") == 48


def test_expected_bounds_have_a_floor():
    lower, upper = expected_size_bounds(1, "audio/webm")
    assert lower == 4000
    assert upper == 24000


@pytest.mark.parametrize("duration", [0, -5, 180.5, "abc", None, float("inf"), float("nan")])
def test_duration_out_of_range_is_rejected(duration):
    with pytest.raises(InvalidAudioMetadata):
        validate_duration_and_size(duration, 60000, "audio/webm")


def test_size_must_match_duration():
    # 30s of webm is ~180kB, accepted between 45kB and 720kB
    assert validate_duration_and_size("30", 60000, "audio/webm") == 30.0
    with pytest.raises(InvalidAudioMetadata):
        validate_duration_and_size(30, 40000, "audio/webm")
    with pytest.raises(InvalidAudioMetadata):
        validate_duration_and_size(30, 800000, "audio/webm")


def test_near_empty_clip_is_rejected():
    with pytest.raises(InvalidAudioMetadata):
        validate_duration_and_size(2, 3000, "audio/webm")


def test_max_duration_is_inclusive():
    assert validate_duration_and_size(180, 1_500_000, "audio/webm") == 180.0


def test_allowed_uploads():
    assert is_allowed_upload("answer.webm", "application/octet-stream")
    assert is_allowed_upload("blob", "audio/mpeg")
    assert not is_allowed_upload("notes.txt", "text/plain")


def test_stored_name_is_sanitized():
    name = build_stored_name("my answer!.exe")
    assert name.startswith("my_answer_-")
    assert name.endswith(".webm")


def test_store_and_discard_upload(tmp_path):
    upload = store_upload(tmp_path / "answers", "answer.wav", "audio/wav", b"abc")
    assert upload.path.exists()
    assert upload.size == 3
    assert upload.to_audio_file().storage_path == str(upload.path)

    discard_upload(upload)
    assert not upload.path.exists()
    discard_upload(upload)
