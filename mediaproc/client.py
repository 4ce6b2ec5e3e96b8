"""Serialized facade over the Pillow / PDFium imaging engines.

Every public method of :class:`ImageProcessingClient` runs under one client-wide
lock. Pillow's plugin registry and decoders share process-global state and
PDFium is not thread-safe at all, so the engines must never see two calls at
once. Do not replace this lock with per-operation or per-image locking unless
both engines are confirmed safe for concurrent handle use.
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from io import BytesIO
from typing import IO, Iterator, List, Optional, Union

from PIL import Image

from mediaproc.errors import ClientClosedError, InvalidInputError, ProcessingError
from mediaproc.models import ImageMeta
from mediaproc.services.image_utils import (
	auto_orient,
	encode_image,
	flatten_on_white,
	format_for_path,
	load_image,
	resize_image,
	resolve_format,
	scale_to_height,
	scale_to_width,
	write_file,
)
from mediaproc.services.metadata import extract_meta
from mediaproc.services.montage import vertical_montage
from mediaproc.services.pdf import PdfDocument, page_output_path
from mediaproc.utils.logging import get_logger

logger = get_logger(__name__)

PathLike = Union[str, "os.PathLike[str]"]
Source = Union[bytes, bytearray, memoryview, IO[bytes]]


def _require_paths(*paths: Optional[PathLike]) -> None:
	for p in paths:
		if p is None or not os.fspath(p):
			raise InvalidInputError("input or output path is empty")


def _require_existing(path: PathLike) -> None:
	if not os.path.exists(path):
		raise InvalidInputError(f"input file does not exist: {os.fspath(path)}")


def _check_dimensions(width: int, height: int) -> None:
	if width is None or height is None or width <= 0 or height <= 0:
		raise InvalidInputError(f"invalid dimensions: {width}x{height}")


def _read_source(source: Source) -> bytes:
	if isinstance(source, (bytes, bytearray, memoryview)):
		data = bytes(source)
	else:
		if not callable(getattr(source, "read", None)):
			raise InvalidInputError(f"source must be bytes or a binary stream, not {type(source).__name__}")
		try:
			data = source.read()
		except (OSError, ValueError) as exc:
			raise ProcessingError(f"failed to read image data: {exc}") from exc
		if not isinstance(data, (bytes, bytearray, memoryview)):
			raise InvalidInputError(f"source stream returned {type(data).__name__}, expected bytes")
		data = bytes(data)
	if not data:
		raise InvalidInputError("source is empty")
	return data


def _write_stream(destination: IO[bytes], blob: bytes) -> None:
	try:
		destination.write(blob)
	except (OSError, ValueError) as exc:
		raise ProcessingError(f"failed to write image data: {exc}") from exc


def _output_format(requested: Optional[str], output_path: Optional[PathLike], source_format: Optional[str]) -> str:
	if requested:
		return resolve_format(requested)
	if output_path is not None:
		fmt = format_for_path(output_path)
		if fmt is not None:
			return fmt
	return source_format or "PNG"


class ImageProcessingClient:
	"""Owns the imaging engine for the process and serializes access to it.

	Create one with :meth:`create` (or use it as a context manager) and call
	:meth:`close` exactly once when done.
	"""

	_registry_lock = threading.Lock()
	_live_clients = 0

	def __init__(self) -> None:
		Image.init()
		with ImageProcessingClient._registry_lock:
			if ImageProcessingClient._live_clients:
				logger.warning("Another image processing client is already live in this process")
			ImageProcessingClient._live_clients += 1
		self._lock = threading.Lock()
		self._closed = False
		logger.info("Image engine initialized")

	@classmethod
	def create(cls) -> "ImageProcessingClient":
		return cls()

	def close(self) -> None:
		with self._lock:
			if self._closed:
				logger.warning("Image processing client already closed")
				return
			self._closed = True
		with ImageProcessingClient._registry_lock:
			ImageProcessingClient._live_clients -= 1
		logger.info("Image engine terminated")

	@property
	def closed(self) -> bool:
		return self._closed

	def __enter__(self) -> "ImageProcessingClient":
		return self

	def __exit__(self, exc_type, exc, tb) -> None:
		self.close()

	@contextmanager
	def _session(self) -> Iterator[None]:
		with self._lock:
			if self._closed:
				raise ClientClosedError("image processing client is closed")
			yield

	# -- stream operations -------------------------------------------------

	def resize(
		self,
		source: Source,
		destination: IO[bytes],
		width: int,
		height: int,
		output_format: Optional[str] = None,
	) -> None:
		"""Resize encoded image bytes from *source* and write them to *destination*.

		*source* may be raw bytes or a binary stream. The output keeps the
		decoded format unless *output_format* overrides it.
		"""
		with self._session():
			if source is None or destination is None:
				raise InvalidInputError("source or destination is None")
			_check_dimensions(width, height)
			data = _read_source(source)
			with load_image(BytesIO(data)) as img:
				fmt = _output_format(output_format, None, img.format)
				blob = self._resize_and_encode(img, width, height, fmt)
			_write_stream(destination, blob)

	def convert_format(self, source: Source, destination: IO[bytes], output_format: str) -> None:
		with self._session():
			if source is None or destination is None:
				raise InvalidInputError("source or destination is None")
			if not output_format:
				raise InvalidInputError("format is empty")
			data = _read_source(source)
			fmt = resolve_format(output_format)
			with load_image(BytesIO(data)) as img:
				oriented = auto_orient(img)
				blob = encode_image(oriented, fmt)
			_write_stream(destination, blob)

	# -- file operations ---------------------------------------------------

	def resize_file(
		self,
		input_path: PathLike,
		output_path: PathLike,
		width: int,
		height: int,
		output_format: Optional[str] = None,
	) -> None:
		with self._session():
			_require_paths(input_path, output_path)
			_check_dimensions(width, height)
			logger.info("Reading image %s", input_path)
			with load_image(input_path) as img:
				fmt = _output_format(output_format, output_path, img.format)
				blob = self._resize_and_encode(img, width, height, fmt)
			logger.info("Writing %s image %s", fmt, output_path)
			write_file(output_path, blob)

	def resize_by_height(self, input_path: PathLike, output_path: PathLike, target_height: int) -> None:
		"""Resize to *target_height*, deriving the width from the aspect ratio."""
		with self._session():
			_require_paths(input_path, output_path)
			if target_height is None or target_height <= 0:
				raise InvalidInputError("target height must be positive")
			_require_existing(input_path)
			self._resize_keeping_aspect(input_path, output_path, height=target_height)

	def resize_by_width(self, input_path: PathLike, output_path: PathLike, target_width: int) -> None:
		"""Resize to *target_width*, deriving the height from the aspect ratio."""
		with self._session():
			_require_paths(input_path, output_path)
			if target_width is None or target_width <= 0:
				raise InvalidInputError("target width must be positive")
			_require_existing(input_path)
			self._resize_keeping_aspect(input_path, output_path, width=target_width)

	def open_image(self, path: PathLike) -> ImageMeta:
		"""Decode *path* and return its format, stored dimensions and EXIF orientation."""
		with self._session():
			_require_paths(path)
			return extract_meta(path)

	def get_image_metadata(self, path: PathLike) -> ImageMeta:
		return self.open_image(path)

	def convert_pdf_to_images(
		self,
		input_path: PathLike,
		output_path: PathLike,
		max_pages: int,
		target_height_per_page: int,
		create_montage: bool,
	) -> None:
		"""Rasterize a PDF at 300 DPI into page images or one vertical montage.

		Without a montage each page is written on its own; a page that fails is
		logged and skipped. With a montage, all pages are stacked into a
		single image at *output_path* and any failure to produce it raises.
		*max_pages* of 0 means every page.
		"""
		with self._session():
			_require_paths(input_path, output_path)
			if target_height_per_page is None or target_height_per_page <= 0:
				raise InvalidInputError("target height must be positive")
			_require_existing(input_path)

			with PdfDocument(input_path) as pdf:
				total = len(pdf)
				count = min(total, max_pages) if max_pages and max_pages > 0 else total
				logger.info(
					"Converting PDF %s: %d of %d pages, page height %d, montage=%s",
					input_path, count, total, target_height_per_page, create_montage,
				)
				if create_montage:
					self._write_montage(pdf, count, output_path, target_height_per_page)
					return
				for index in range(count):
					try:
						self._write_page(pdf, index, count, output_path, target_height_per_page)
					except ProcessingError as exc:
						logger.error("Failed to process page %d of %s: %s", index + 1, input_path, exc)

	# -- helpers (lock held) -----------------------------------------------

	def _resize_and_encode(self, img: Image.Image, width: int, height: int, fmt: str) -> bytes:
		oriented = auto_orient(img)
		resized = resize_image(oriented, width, height)
		return encode_image(resized, fmt)

	def _resize_keeping_aspect(
		self,
		input_path: PathLike,
		output_path: PathLike,
		width: Optional[int] = None,
		height: Optional[int] = None,
	) -> None:
		logger.info("Reading image %s", input_path)
		with load_image(input_path) as img:
			oriented = auto_orient(img)
			if height is not None:
				width = scale_to_height(oriented.width, oriented.height, height)
			else:
				height = scale_to_width(oriented.width, oriented.height, width)
			logger.info("Resizing %s to %dx%d", input_path, width, height)
			fmt = _output_format(None, output_path, img.format)
			resized = resize_image(oriented, width, height)
			blob = encode_image(resized, fmt)
		logger.info("Writing %s image %s", fmt, output_path)
		write_file(output_path, blob)

	def _page_image(self, pdf: PdfDocument, index: int) -> Image.Image:
		page = pdf.render_page(index)
		flat = flatten_on_white(page)
		if flat is not page:
			page.close()
		return auto_orient(flat)

	def _write_page(
		self,
		pdf: PdfDocument,
		index: int,
		count: int,
		output_path: PathLike,
		target_height: int,
	) -> None:
		logger.info("Processing page %d", index + 1)
		img = self._page_image(pdf, index)
		try:
			width = scale_to_height(img.width, img.height, target_height)
			resized = resize_image(img, width, target_height)
		finally:
			img.close()
		page_path = page_output_path(output_path, index + 1, count)
		fmt = _output_format(None, page_path, None)
		blob = encode_image(resized, fmt)
		write_file(page_path, blob)
		logger.info("Wrote page %d to %s", index + 1, page_path)

	def _write_montage(self, pdf: PdfDocument, count: int, output_path: PathLike, target_height: int) -> None:
		pages: List[Image.Image] = []
		try:
			for index in range(count):
				try:
					pages.append(self._page_image(pdf, index))
				except ProcessingError as exc:
					logger.error("Failed to add page %d to montage: %s", index + 1, exc)
			montage = vertical_montage(pages, target_height)
		finally:
			for page in pages:
				page.close()
		fmt = _output_format(None, output_path, None)
		try:
			blob = encode_image(montage, fmt)
			write_file(output_path, blob)
		except ProcessingError as exc:
			raise ProcessingError(f"failed to write montage image: {exc}") from exc
		logger.info("Wrote %d-page montage to %s", len(pages), output_path)
