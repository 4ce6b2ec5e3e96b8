from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class ImageMeta:
	format_name: str = ""
	width: int = 0
	height: int = 0
	exif_orientation: int = 0
	content_length: int = 0

	def to_dict(self) -> Dict[str, Any]:
		return asdict(self)
