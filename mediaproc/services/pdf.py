from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

import pypdfium2 as pdfium
from PIL import Image

from mediaproc.config import PDF_DENSITY, PDF_POINTS_PER_INCH
from mediaproc.errors import ProcessingError


class PdfDocument:
	"""Scoped PDFium document that rasterizes pages at a fixed density.

	Pages are rendered onto a transparent canvas so callers decide how to
	flatten them. Every page and bitmap handle is closed before
	``render_page`` returns, and the document itself on ``__exit__``.
	"""

	def __init__(self, path: Union[str, "os.PathLike[str]"], density: int = PDF_DENSITY) -> None:
		self.path = Path(path)
		self.density = density
		self._pdf: Optional[pdfium.PdfDocument] = None

	def __enter__(self) -> "PdfDocument":
		try:
			self._pdf = pdfium.PdfDocument(str(self.path))
		except (pdfium.PdfiumError, OSError) as exc:
			raise ProcessingError(f"failed to read PDF: {exc}") from exc
		return self

	def __exit__(self, exc_type, exc, tb) -> None:
		if self._pdf is not None:
			self._pdf.close()
			self._pdf = None

	def __len__(self) -> int:
		if self._pdf is None:
			return 0
		return len(self._pdf)

	def render_page(self, index: int) -> Image.Image:
		if self._pdf is None:
			raise ProcessingError("PDF document is not open")
		scale = self.density / float(PDF_POINTS_PER_INCH)
		try:
			page = self._pdf[index]
		except (pdfium.PdfiumError, IndexError) as exc:
			raise ProcessingError(f"failed to load page {index + 1}: {exc}") from exc
		try:
			bitmap = page.render(scale=scale, fill_color=(255, 255, 255, 0))
			try:
				# to_pil() shares the bitmap buffer; copy before it is released
				return bitmap.to_pil().copy()
			finally:
				bitmap.close()
		except pdfium.PdfiumError as exc:
			raise ProcessingError(f"failed to render page {index + 1}: {exc}") from exc
		finally:
			page.close()


def page_output_path(output_path: Union[str, "os.PathLike[str]"], page_number: int, page_count: int) -> Path:
	"""Return ``<stem>_page<N><ext>`` for multi-page runs, else *output_path* itself."""
	path = Path(output_path)
	if page_count <= 1:
		return path
	return path.with_name(f"{path.stem}_page{page_number}{path.suffix}")
