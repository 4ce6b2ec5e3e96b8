from __future__ import annotations

from typing import List

import numpy as np
from PIL import Image

from mediaproc.config import BACKGROUND_COLOR
from mediaproc.errors import ProcessingError
from mediaproc.services.image_utils import flatten_on_white, resize_image, scale_to_height


def vertical_montage(images: List[Image.Image], target_height: int) -> Image.Image:
	"""Stack *images* in a single column, each scaled to *target_height*.

	Tiles are concatenated edge to edge with no border. Narrower tiles are
	centred on the background colour of the widest one.
	"""
	if not images:
		raise ProcessingError("failed to create montage: no images")
	rows: List[np.ndarray] = []
	for img in images:
		w = scale_to_height(img.width, img.height, target_height)
		tile = resize_image(flatten_on_white(img), w, target_height)
		rows.append(np.asarray(tile, dtype=np.uint8))
	strip_w = max(r.shape[1] for r in rows)
	strip = np.empty((target_height * len(rows), strip_w, 3), dtype=np.uint8)
	strip[...] = BACKGROUND_COLOR
	y = 0
	for r in rows:
		x = (strip_w - r.shape[1]) // 2
		strip[y:y + r.shape[0], x:x + r.shape[1]] = r
		y += r.shape[0]
	return Image.fromarray(strip)
