"""Tests for size and profile selection."""

import pytest

from capture_control.camera.capabilities import (
    build_capability_set,
    estimate_jpeg_bytes,
    normalize_sizes,
    pick_picture_size,
    pick_thumbnail_size,
    pick_video_profile,
    select_preview_size,
)
from capture_control.camera.state import SelectionPolicy, Size

MAX_PIXELS = 5 * 1024 * 1024
JPEG_BYTES = 300 * 1024


def policy(**kwargs) -> SelectionPolicy:
    kwargs.setdefault("max_pixel_count", MAX_PIXELS)
    kwargs.setdefault("estimated_jpeg_bytes", JPEG_BYTES)
    return SelectionPolicy(**kwargs)


# =============================================================================
# pick_picture_size
# =============================================================================


def test_picture_size_smallest_covering_target():
    sizes = [Size(640, 480), Size(1024, 768), Size(1600, 1200)]
    assert pick_picture_size(sizes, policy(target_size=Size(800, 600))) == Size(1024, 768)


def test_picture_size_largest_under_ceiling_without_target():
    sizes = [Size(640, 480), Size(3264, 2448), Size(2592, 1944), Size(1600, 1200)]
    # 3264x2448 is ~8 MP, above the 5 MP ceiling
    assert pick_picture_size(sizes, policy()) == Size(2592, 1944)


def test_picture_size_falls_back_to_first_when_all_exceed_ceiling():
    sizes = [Size(4000, 3000), Size(3264, 2448)]
    assert pick_picture_size(sizes, policy()) == Size(4000, 3000)


def test_picture_size_never_returns_out_of_catalog_size():
    sizes = [Size(320, 240), Size(640, 480)]
    for p in (policy(), policy(target_size=Size(5000, 5000)), policy(target_file_size=1)):
        assert pick_picture_size(sizes, p) in sizes


def test_picture_size_target_not_covered_uses_largest_qualifying():
    sizes = [Size(640, 480), Size(1024, 768)]
    assert pick_picture_size(sizes, policy(target_size=Size(2000, 2000))) == Size(1024, 768)


def test_picture_size_respects_target_file_size():
    sizes = [Size(640, 480), Size(1600, 1200), Size(2592, 1944)]
    # 1600x1200 estimates to ~110 KiB, 2592x1944 to ~295 KiB
    chosen = pick_picture_size(sizes, policy(target_file_size=150 * 1024))
    assert chosen == Size(1600, 1200)
    assert estimate_jpeg_bytes(chosen, policy()) <= 150 * 1024


def test_picture_size_file_size_filter_empty_falls_back_to_first():
    sizes = [Size(1600, 1200), Size(2592, 1944)]
    assert pick_picture_size(sizes, policy(target_file_size=10)) == Size(1600, 1200)


def test_picture_size_rejects_empty_input():
    with pytest.raises(ValueError):
        pick_picture_size([], policy())


# =============================================================================
# pick_thumbnail_size
# =============================================================================


def test_thumbnail_none_when_no_aspect_match():
    thumbs = [Size(176, 144), Size(160, 160)]
    assert pick_thumbnail_size(thumbs, Size(1600, 1200), 320, 480) is None


def test_thumbnail_smallest_that_fills_screen():
    thumbs = [Size(640, 480), Size(160, 120), Size(320, 240), Size(1024, 768)]
    assert pick_thumbnail_size(thumbs, Size(1600, 1200), 320, 480) == Size(640, 480)


def test_thumbnail_largest_when_none_fill_screen():
    thumbs = [Size(160, 120), Size(320, 240)]
    assert pick_thumbnail_size(thumbs, Size(1600, 1200), 1080, 1920) == Size(320, 240)


def test_thumbnail_aspect_tolerance_is_strict():
    # 160/121 is within 0.05 of 4:3; 150/120 = 1.25 is not
    thumbs = [Size(150, 120), Size(160, 121)]
    assert pick_thumbnail_size(thumbs, Size(1600, 1200), 1, 1) == Size(160, 121)


# =============================================================================
# pick_video_profile
# =============================================================================

PROFILES = {"720p": Size(1280, 720), "cif": Size(352, 288), "qcif": Size(176, 144)}


def test_video_profile_qcif_when_file_size_target():
    chosen = pick_video_profile(PROFILES, ["720p"], policy(target_file_size=1024))
    assert chosen.name == "qcif"
    assert (chosen.width, chosen.height, chosen.rotation) == (176, 144, 0)


def test_video_profile_preferred_order():
    assert pick_video_profile(PROFILES, ["1080p", "720p"], policy()).name == "720p"


def test_video_profile_defaults_to_cif():
    assert pick_video_profile(PROFILES, ["1080p"], policy()).name == "cif"


def test_video_profile_first_in_enumeration_order():
    profiles = {"480p": Size(720, 480), "720p": Size(1280, 720)}
    assert pick_video_profile(profiles, [], policy()).name == "480p"


def test_video_profile_file_size_target_without_qcif():
    profiles = {"480p": Size(720, 480), "cif": Size(352, 288)}
    assert pick_video_profile(profiles, ["480p"], policy(target_file_size=1)).name == "480p"


# =============================================================================
# Preview and normalization
# =============================================================================


def test_preview_size_prefers_aspect_then_smallest_covering():
    previews = [Size(1280, 720), Size(960, 640), Size(480, 320), Size(352, 288)]
    assert select_preview_size(previews, 320, 480) == Size(480, 320)


def test_preview_size_largest_when_nothing_covers():
    previews = [Size(240, 160), Size(360, 240)]
    assert select_preview_size(previews, 1080, 1620) == Size(360, 240)


def test_preview_size_none_without_candidates():
    assert select_preview_size([], 320, 480) is None


def test_normalize_sizes_accepts_mixed_formats():
    raw = [{"width": 640, "height": 480}, (320, 240), "160x120", "bogus", {"width": 0, "height": 10}, (320, 240)]
    assert normalize_sizes(raw) == (Size(640, 480), Size(320, 240), Size(160, 120))


def test_build_capability_set_keeps_profile_order():
    caps = build_capability_set(
        {
            "pictureSizes": [{"width": 640, "height": 480}],
            "recorderProfiles": {
                "qcif": {"video": {"width": 176, "height": 144}},
                "cif": {"video": {"width": 352, "height": 288}},
            },
            "flashModes": ["off", "auto"],
            "focusModes": ["auto"],
        }
    )
    assert list(caps.recorder_profiles) == ["qcif", "cif"]
    assert caps.picture_sizes == (Size(640, 480),)
    assert caps.supports_focus("auto")
    assert not caps.supports_flash(["off", "auto", "on"])
