import pytest
from PIL import Image, features

from distbuild import optimiser
from distbuild.optimiser import (
    ImageCodec,
    group_by_next_gen,
    next_gen_path,
    detect_codec,
    process_images,
    process_one,
)

needs_webp = pytest.mark.skipif(not features.check("webp"), reason="Pillow built without WebP")


def write_jpeg(path):
    Image.new("RGB", (20, 10), (0, 90, 40)).save(path, "JPEG")


@needs_webp
def test_images_with_codec_write_original_and_webp(config):
    report = process_images(config, ImageCodec())

    img = config.dist / "img"
    with Image.open(img / "a.jpg") as im:
        assert im.format == "JPEG"
    with Image.open(img / "a.webp") as im:
        assert im.format == "WEBP"
        assert im.size == (32, 24)
    with Image.open(img / "b.png") as im:
        assert im.format == "PNG"
    with Image.open(img / "b.webp") as im:
        assert im.format == "WEBP"
    assert report.processed == 3
    assert report.fallbacks == 0


@needs_webp
def test_images_non_raster_copied_verbatim(config):
    process_images(config, ImageCodec())

    src = config.img_dir / "icons" / "menu.svg"
    dst = config.dist / "img" / "icons" / "menu.svg"
    assert dst.read_bytes() == src.read_bytes()
    assert not (config.dist / "img" / "icons" / "menu.webp").exists()


def test_images_without_codec_are_byte_identical(config):
    report = process_images(config, None)

    for name in ("a.jpg", "b.png"):
        assert (config.dist / "img" / name).read_bytes() == (config.img_dir / name).read_bytes()
    assert not list((config.dist / "img").rglob("*.webp"))
    assert report.fallbacks == 0


def test_broken_image_falls_back_to_copy(config):
    broken = config.img_dir / "broken.png"
    broken.write_bytes(b"this is not a png")

    report = process_images(config, ImageCodec())

    assert (config.dist / "img" / "broken.png").read_bytes() == b"this is not a png"
    assert not (config.dist / "img" / "broken.webp").exists()
    assert report.fallbacks >= 1


def test_jpeg_extension_is_case_insensitive(config):
    calls = []

    class RecordingCodec(ImageCodec):
        def encode_webp(self, src, dst):
            calls.append(("webp", src.name, dst.name))
            dst.write_bytes(b"webp")

        def encode_original(self, src, dst):
            calls.append(("orig", src.name, dst.name))
            dst.write_bytes(b"orig")

    (config.img_dir / "PHOTO.JPEG").write_bytes(b"raw")
    process_images(config, RecordingCodec())

    assert ("orig", "PHOTO.JPEG", "PHOTO.JPEG") in calls
    assert (config.dist / "img" / "PHOTO.JPEG").read_bytes() == b"orig"
    assert (config.dist / "img" / "PHOTO.webp").read_bytes() == b"webp"
    assert not list((config.dist / "img").glob("*.part"))


def test_next_gen_path_swaps_extension(tmp_path):
    assert next_gen_path(tmp_path / "img" / "hero.jpeg") == tmp_path / "img" / "hero.webp"


def test_detect_codec_without_webp(monkeypatch):
    monkeypatch.setattr(optimiser.features, "check", lambda name: False)

    assert detect_codec() is None


def test_detect_codec_with_webp(monkeypatch):
    monkeypatch.setattr(optimiser.features, "check", lambda name: True)

    codec = detect_codec()
    assert isinstance(codec, ImageCodec)
    assert codec.quality == 80
    assert codec.compress_level == 8


@needs_webp
def test_failed_sibling_keeps_existing_webp(config):
    write_jpeg(config.img_dir / "logo.jpg")
    (config.img_dir / "logo.png").write_bytes(b"not a png")
    codec = ImageCodec()

    status, fell_back = process_one(config, config.img_dir / "logo.jpg", codec)
    assert not fell_back
    status, fell_back = process_one(config, config.img_dir / "logo.png", codec)
    assert fell_back

    img = config.dist / "img"
    with Image.open(img / "logo.webp") as im:
        assert im.format == "WEBP"
    assert (img / "logo.png").read_bytes() == b"not a png"
    assert not (img / "logo.webp.part").exists()


@needs_webp
def test_same_stem_sources_share_one_worker(config):
    write_jpeg(config.img_dir / "logo.jpg")
    (config.img_dir / "logo.png").write_bytes(b"not a png")

    report = process_images(config, ImageCodec())

    with Image.open(config.dist / "img" / "logo.webp") as im:
        assert im.format == "WEBP"
    assert (config.dist / "img" / "logo.png").read_bytes() == b"not a png"
    assert report.fallbacks == 1


def test_group_by_next_gen(config):
    images = [config.img_dir / "logo.jpg", config.img_dir / "logo.png", config.img_dir / "hero.jpg"]

    groups = group_by_next_gen(config, images)

    assert sorted(len(g) for g in groups) == [1, 2]
    assert [config.img_dir / "logo.jpg", config.img_dir / "logo.png"] in groups
