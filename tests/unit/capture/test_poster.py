"""PosterExtractor tests with an in-memory decoder."""

import io

import numpy as np
import pytest
from PIL import Image

from capture_control.capture import poster
from capture_control.capture.poster import (
    OpenCvDecoder,
    PosterExtractor,
    PyAvDecoder,
    default_decoder,
    encode_jpeg,
    poster_path_for,
)
from capture_control.core.errors import ExtractionFailure
from tests.infrastructure.mocks import MockDeviceStorage, StaticDecoder

VIDEO_REL = "DCIM/100CAMRA/VID_0001.3gp"
VIDEO_ABS = "/sdcard/videos/" + VIDEO_REL


@pytest.fixture
def storages():
    videos = MockDeviceStorage("videos")
    pictures = MockDeviceStorage("pictures")
    videos.files[VIDEO_ABS] = b"video-bytes"
    return videos, pictures


def test_poster_path_replaces_extension():
    assert poster_path_for(VIDEO_REL) == "DCIM/100CAMRA/VID_0001.jpg"


def test_encode_jpeg_produces_decodable_image():
    image = np.full((48, 64, 3), 200, dtype=np.uint8)
    blob = encode_jpeg(image, quality=70)
    with Image.open(io.BytesIO(blob)) as decoded:
        assert decoded.format == "JPEG"
        assert decoded.size == (64, 48)


@pytest.mark.asyncio
async def test_extract_builds_asset_and_stores_poster(storages):
    videos, pictures = storages
    extractor = PosterExtractor(videos, pictures, decoder=StaticDecoder(width=352, height=288, rotation="270"))

    asset = await extractor.extract(VIDEO_REL, VIDEO_ABS)

    assert asset.video == b"video-bytes"
    assert (asset.width, asset.height, asset.rotation) == (352, 288, 270)
    assert asset.poster_path == "/sdcard/pictures/DCIM/100CAMRA/VID_0001.jpg"
    assert pictures.files[asset.poster_path] == asset.poster


@pytest.mark.asyncio
async def test_unparseable_rotation_defaults_to_zero(storages):
    videos, pictures = storages
    extractor = PosterExtractor(videos, pictures, decoder=StaticDecoder(rotation="sideways"))
    assert (await extractor.extract(VIDEO_REL, VIDEO_ABS)).rotation == 0


@pytest.mark.asyncio
async def test_poster_save_failure_still_returns_asset(storages):
    videos, pictures = storages
    pictures.fail_add = True
    extractor = PosterExtractor(videos, pictures, decoder=StaticDecoder())

    asset = await extractor.extract(VIDEO_REL, VIDEO_ABS)

    assert asset.poster_path == "DCIM/100CAMRA/VID_0001.jpg"
    assert asset.poster


@pytest.mark.asyncio
async def test_decode_failure_raises_extraction_failure(storages):
    videos, pictures = storages
    extractor = PosterExtractor(videos, pictures, decoder=StaticDecoder(fail=True))
    with pytest.raises(ExtractionFailure):
        await extractor.extract(VIDEO_REL, VIDEO_ABS)
    assert pictures.files == {}


@pytest.mark.asyncio
async def test_missing_video_raises_extraction_failure(storages):
    videos, pictures = storages
    extractor = PosterExtractor(videos, pictures, decoder=StaticDecoder())
    with pytest.raises(ExtractionFailure):
        await extractor.extract("DCIM/100CAMRA/VID_0002.3gp", "/sdcard/videos/DCIM/100CAMRA/VID_0002.3gp")


def test_default_decoder_follows_pyav_availability(monkeypatch):
    monkeypatch.setattr(poster, "_HAS_PYAV", True)
    assert isinstance(default_decoder(), PyAvDecoder)
    assert isinstance(default_decoder(use_pyav=False), OpenCvDecoder)

    monkeypatch.setattr(poster, "_HAS_PYAV", False)
    assert isinstance(default_decoder(use_pyav=True), OpenCvDecoder)


def test_opencv_decoder_rejects_garbage():
    with pytest.raises(ExtractionFailure):
        OpenCvDecoder().decode(b"definitely not a video")
