from __future__ import annotations

import os

from PIL import Image

# Encoder quality applied to every written image (ignored by lossless formats).
COMPRESSION_QUALITY = 95

# Rasterization density for PDF pages, in dots per inch.
PDF_DENSITY = 300

# PDF user space is defined at 72 points per inch.
PDF_POINTS_PER_INCH = 72

RESAMPLE_FILTER = Image.LANCZOS

BACKGROUND_COLOR = (255, 255, 255)

LOG_LEVEL = os.getenv("MEDIAPROC_LOG_LEVEL", "INFO").upper()
