"""Shared fixtures for the image processing client tests.

Images are generated on the fly with Pillow, EXIF blocks with piexif and
multi-page PDFs with Pillow's PDF writer, so the suite needs no binary
fixtures on disk.
"""

import io
from pathlib import Path

import piexif
import pytest
from PIL import Image

from mediaproc.client import ImageProcessingClient


@pytest.fixture
def client():
    c = ImageProcessingClient.create()
    yield c
    if not c.closed:
        c.close()


def png_bytes(width, height, color=(200, 30, 30), mode="RGB"):
    img = Image.new(mode, (width, height), color=color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def write_image(path, width, height, fmt=None, color=(200, 30, 30), orientation=None):
    """Write a solid image to *path*, optionally tagging an EXIF orientation."""
    img = Image.new("RGB", (width, height), color=color)
    params = {}
    if orientation is not None:
        params["exif"] = piexif.dump({"0th": {piexif.ImageIFD.Orientation: orientation}})
    img.save(str(path), format=fmt, **params)
    return Path(path)


def write_pdf(path, page_sizes):
    """Write a PDF with one page per ``(width, height)`` in points."""
    pages = [Image.new("RGB", size, color=(20 * i % 255, 90, 160)) for i, size in enumerate(page_sizes)]
    pages[0].save(str(path), format="PDF", save_all=True, append_images=pages[1:], resolution=72.0)
    return Path(path)


@pytest.fixture
def three_page_pdf(tmp_path):
    return write_pdf(tmp_path / "doc.pdf", [(144, 72), (144, 72), (144, 72)])


@pytest.fixture
def one_page_pdf(tmp_path):
    return write_pdf(tmp_path / "single.pdf", [(72, 144)])
