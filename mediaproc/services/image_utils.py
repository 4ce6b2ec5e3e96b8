from __future__ import annotations

import os
from contextlib import contextmanager
from io import BytesIO
from pathlib import Path
from typing import IO, Iterator, Optional, Union

from PIL import ExifTags, Image

from mediaproc.config import BACKGROUND_COLOR, COMPRESSION_QUALITY, RESAMPLE_FILTER
from mediaproc.errors import ProcessingError
from mediaproc.utils.logging import get_logger

logger = get_logger(__name__)

ImageSource = Union[str, "os.PathLike[str]", IO[bytes]]

# Pillow writers that cannot store an alpha or palette channel as-is.
_OPAQUE_FORMATS = {"JPEG"}
_OPAQUE_MODES = ("RGB", "L", "CMYK")
# Modes every common writer accepts.
_PORTABLE_MODES = ("1", "L", "LA", "P", "RGB", "RGBA")
# Writers that store device and high-depth modes (CMYK, LAB, I;16) natively.
_WIDE_MODE_FORMATS = {"TIFF"}


@contextmanager
def load_image(source: ImageSource) -> Iterator[Image.Image]:
	"""Decode *source* fully and close the image handle on exit."""
	try:
		img = Image.open(source)
	except Exception as exc:
		raise ProcessingError(f"failed to read image: {exc}") from exc
	try:
		try:
			img.load()
		except Exception as exc:
			raise ProcessingError(f"failed to read image: {exc}") from exc
		yield img
	finally:
		img.close()


def apply_exif_orientation(img: Image.Image, exif) -> Image.Image:
	orientation = None
	if exif:
		tmp = {}
		for tag_id, value in exif.items():
			tag = ExifTags.TAGS.get(tag_id, tag_id)
			tmp[str(tag)] = value
		orientation = tmp.get("Orientation")
	if orientation is None:
		return img
	o = int(orientation)
	if o == 1:
		return img
	if o == 2:
		return img.transpose(Image.FLIP_LEFT_RIGHT)
	if o == 3:
		return img.rotate(180, expand=True)
	if o == 4:
		return img.transpose(Image.FLIP_TOP_BOTTOM)
	if o == 5:
		return img.transpose(Image.FLIP_LEFT_RIGHT).rotate(90, expand=True)
	if o == 6:
		return img.rotate(270, expand=True)
	if o == 7:
		return img.transpose(Image.FLIP_LEFT_RIGHT).rotate(270, expand=True)
	if o == 8:
		return img.rotate(90, expand=True)
	return img


def auto_orient(img: Image.Image) -> Image.Image:
	"""Rotate *img* upright per its EXIF tag; failures leave it untouched."""
	try:
		return apply_exif_orientation(img, img.getexif())
	except Exception as exc:
		logger.error("Auto-orientation failed: %s", exc)
		return img


def flatten_on_white(img: Image.Image) -> Image.Image:
	if img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info):
		rgba = img.convert("RGBA")
		background = Image.new("RGB", rgba.size, BACKGROUND_COLOR)
		background.paste(rgba, mask=rgba.getchannel("A"))
		return background
	if img.mode != "RGB":
		return img.convert("RGB")
	return img


def scale_to_height(width: int, height: int, target_height: int) -> int:
	# round half up, never collapse to zero
	return max(1, int(width * target_height / float(height) + 0.5))


def scale_to_width(width: int, height: int, target_width: int) -> int:
	return max(1, int(height * target_width / float(width) + 0.5))


def resize_image(img: Image.Image, width: int, height: int) -> Image.Image:
	try:
		return img.resize((width, height), RESAMPLE_FILTER)
	except Exception as exc:
		raise ProcessingError(f"failed to resize image: {exc}") from exc


def resolve_format(name: str) -> str:
	"""Map a short format name or extension ("jpg", "png", ".webp") to a Pillow writer id."""
	key = name.strip().lstrip(".")
	Image.init()
	if key.upper() in Image.SAVE:
		return key.upper()
	fmt = Image.registered_extensions().get("." + key.lower())
	if fmt is None or fmt not in Image.SAVE:
		raise ProcessingError(f"failed to set image format: unsupported format {name!r}")
	return fmt


def format_for_path(path: Union[str, "os.PathLike[str]"]) -> Optional[str]:
	ext = Path(path).suffix.lower()
	if not ext:
		return None
	fmt = Image.registered_extensions().get(ext)
	if fmt is None or fmt not in Image.SAVE:
		return None
	return fmt


def prepare_for_format(img: Image.Image, fmt: str) -> Image.Image:
	"""Convert *img* to a mode the *fmt* writer can store."""
	if fmt in _OPAQUE_FORMATS:
		return img if img.mode in _OPAQUE_MODES else flatten_on_white(img)
	if fmt in _WIDE_MODE_FORMATS or img.mode in _PORTABLE_MODES:
		return img
	if "A" in img.getbands() or "transparency" in img.info:
		return img.convert("RGBA")
	return img.convert("RGB")


def encode_image(img: Image.Image, fmt: str) -> bytes:
	buffer = BytesIO()
	try:
		img = prepare_for_format(img, fmt)
		img.save(buffer, format=fmt, quality=COMPRESSION_QUALITY)
	except Exception as exc:
		raise ProcessingError(f"failed to get image blob: {exc}") from exc
	blob = buffer.getvalue()
	if not blob:
		raise ProcessingError("empty result image")
	return blob


def write_file(path: Union[str, "os.PathLike[str]"], blob: bytes) -> None:
	try:
		Path(path).write_bytes(blob)
	except OSError as exc:
		raise ProcessingError(f"failed to write image: {exc}") from exc
