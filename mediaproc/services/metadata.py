from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional, Union

import piexif
from PIL import Image

from mediaproc.models import ImageMeta
from mediaproc.services.image_utils import auto_orient, load_image
from mediaproc.utils.logging import get_logger

logger = get_logger(__name__)


def _to_int_safe(v: Any) -> Optional[int]:
	if v is None:
		return None
	if isinstance(v, (int,)):
		return v
	if isinstance(v, (list, tuple)) and v:
		try:
			return int(v[0])
		except (TypeError, ValueError):
			return None
	try:
		return int(v)
	except (TypeError, ValueError):
		return None


def read_exif_orientation(img: Image.Image, path: Union[str, "os.PathLike[str]"]) -> int:
	"""Return the EXIF orientation code, 0 when the image carries none."""
	try:
		ex = piexif.load(str(path))
		value = _to_int_safe(ex.get("0th", {}).get(piexif.ImageIFD.Orientation))
		if value is not None:
			return value
	except Exception as exc:
		# piexif only understands JPEG/TIFF/WebP containers
		logger.debug("piexif could not read %s: %s", path, exc)
	value = _to_int_safe(img.getexif().get(piexif.ImageIFD.Orientation))
	return value or 0


def _content_length(path: Union[str, "os.PathLike[str]"]) -> int:
	try:
		return Path(path).stat().st_size
	except OSError:
		return 0


def extract_meta(path: Union[str, "os.PathLike[str]"]) -> ImageMeta:
	with load_image(path) as img:
		meta = ImageMeta(
			format_name=img.format or "",
			width=img.width,
			height=img.height,
			exif_orientation=read_exif_orientation(img, path),
			content_length=_content_length(path),
		)
		oriented = auto_orient(img)
		if oriented is not img:
			oriented.close()
	return meta
