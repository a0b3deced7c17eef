import os
from pathlib import Path

import pytest

from idcard_extractor.errors import IndexOutOfRange, InvalidFileType, LimitExceeded
from idcard_extractor.pipeline.images import ImageSet, IncomingFile, PreviewHandle, guess_mime_type


def _previews(directory: Path):
    return sorted(p.name for p in directory.iterdir())


def test_add_keeps_upload_order_and_writes_previews(image_set, make_jpeg, preview_dir):
    result = image_set.add([make_jpeg("a.jpg"), make_jpeg("b.jpg"), make_jpeg("c.jpg")])

    assert result.ok
    assert [img.name for img in image_set] == ["a.jpg", "b.jpg", "c.jpg"]
    assert len(_previews(preview_dir)) == 3
    for image in image_set:
        assert os.path.isfile(image.preview.path)


def test_png_and_webp_are_accepted(image_set, image_bytes):
    result = image_set.add(
        [
            IncomingFile.from_bytes("front.png", "image/png", image_bytes("PNG")),
            IncomingFile.from_bytes("back.webp", "image/webp", image_bytes("WEBP")),
        ]
    )
    assert len(result.added) == 2
    assert [img.mime_type for img in image_set] == ["image/png", "image/webp"]


def test_disallowed_type_rejects_whole_batch(image_set, make_jpeg, preview_dir):
    gif = IncomingFile.from_bytes("anim.gif", "image/gif", b"GIF89a")
    with pytest.raises(InvalidFileType) as info:
        image_set.add([make_jpeg("ok.jpg"), gif])

    assert "anim.gif" in info.value.message
    assert len(image_set) == 0
    assert _previews(preview_dir) == []


def test_over_limit_batch_is_rejected_and_set_unchanged(preview_dir, make_jpeg):
    images = ImageSet(preview_dir=str(preview_dir), max_files=10)
    images.add([make_jpeg(f"{i}.jpg") for i in range(8)])

    with pytest.raises(LimitExceeded) as info:
        images.add([make_jpeg(f"extra{i}.jpg") for i in range(5)])

    assert info.value.message == "You can only upload a maximum of 10 files."
    assert len(images) == 8
    images.reset()


def test_default_limit_is_one_hundred(image_set):
    assert image_set.max_files == 100
    assert image_set.remaining == 100


def test_limit_is_checked_before_reading_any_file(image_set):
    read = []

    def _reader():
        read.append(1)
        return b""

    files = [IncomingFile("x.jpg", "image/jpeg", _reader) for _ in range(101)]
    with pytest.raises(LimitExceeded):
        image_set.add(files)
    assert read == []


def test_unreadable_file_is_reported_and_others_are_kept(image_set, make_jpeg):
    def _boom():
        raise OSError("disk gone")

    result = image_set.add(
        [
            make_jpeg("a.jpg"),
            IncomingFile("broken.jpg", "image/jpeg", _boom),
            IncomingFile.from_bytes("garbage.png", "image/png", b"not an image"),
            make_jpeg("b.jpg"),
        ]
    )

    assert not result.ok
    assert result.errors == ["Failed to read file: broken.jpg.", "Failed to read file: garbage.png."]
    assert [img.name for img in image_set] == ["a.jpg", "b.jpg"]


def test_remove_shifts_later_images_and_releases_preview(image_set, make_jpeg):
    image_set.add([make_jpeg("a.jpg"), make_jpeg("b.jpg"), make_jpeg("c.jpg")])
    doomed = image_set[1].preview.path

    removed = image_set.remove(1)

    assert removed.name == "b.jpg"
    assert removed.preview.released
    assert not os.path.exists(doomed)
    assert [img.name for img in image_set] == ["a.jpg", "c.jpg"]


@pytest.mark.parametrize("index", [-1, 3, 10])
def test_remove_out_of_range_raises(image_set, make_jpeg, index):
    image_set.add([make_jpeg("a.jpg"), make_jpeg("b.jpg"), make_jpeg("c.jpg")])
    with pytest.raises(IndexOutOfRange):
        image_set.remove(index)
    assert len(image_set) == 3


def test_reset_releases_every_preview(image_set, make_jpeg, preview_dir):
    image_set.add([make_jpeg("a.jpg"), make_jpeg("b.jpg")])
    handles = [img.preview for img in image_set]

    image_set.reset()

    assert len(image_set) == 0
    assert all(h.released for h in handles)
    assert _previews(preview_dir) == []


def test_context_manager_resets_on_exit(preview_dir, make_jpeg):
    with ImageSet(preview_dir=str(preview_dir)) as images:
        images.add([make_jpeg("a.jpg")])
        assert len(_previews(preview_dir)) == 1
    assert _previews(preview_dir) == []


def test_release_is_idempotent(tmp_path):
    path = tmp_path / "p.png"
    path.write_bytes(b"x")
    handle = PreviewHandle(str(path))
    handle.release()
    handle.release()
    assert handle.released
    assert not path.exists()


def test_from_path_guesses_type_and_reads_lazily(tmp_path, image_bytes):
    card = tmp_path / "Card.JPEG"
    card.write_bytes(image_bytes("JPEG"))
    incoming = IncomingFile.from_path(str(card))
    assert incoming.name == "Card.JPEG"
    assert incoming.mime_type == "image/jpeg"
    assert incoming.reader() == card.read_bytes()


@pytest.mark.parametrize(
    "name, expected",
    [("a.jpg", "image/jpeg"), ("b.PNG", "image/png"), ("c.webp", "image/webp"), ("d.gif", "image/gif")],
)
def test_guess_mime_type(name, expected):
    assert guess_mime_type(name) == expected


def test_ninety_eight_plus_five_exceeds_default_limit(image_set, make_jpeg):
    image_set.add([make_jpeg(f"{i}.jpg") for i in range(98)])
    assert len(image_set) == 98

    with pytest.raises(LimitExceeded) as info:
        image_set.add([make_jpeg(f"late{i}.jpg") for i in range(5)])

    assert info.value.message == "You can only upload a maximum of 100 files."
    assert (info.value.current, info.value.incoming) == (98, 5)
    assert len(image_set) == 98
    assert image_set.add([make_jpeg("late0.jpg"), make_jpeg("late1.jpg")]).ok
    assert len(image_set) == 100
