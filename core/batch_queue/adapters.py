"""
Concrete collaborators: a Pillow-backed converter and a resolver over a
directory of uploads.
"""

import os
from pathlib import Path
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from config.constants import (
    MAX_FILE_SIZE,
    SOURCE_EXTENSIONS,
    SUPPORTED_FORMATS,
    TEMP_FILE_PREFIX,
)
from config.logging_config import get_logger

from .errors import ConversionError, ConversionErrorKind
from .interfaces import Converter, ItemRef, ItemResolver

logger = get_logger(__name__)


def converted_path(source_path: str, fmt: str) -> Path:
    """photo.jpg -> photo.webp, in the same directory"""
    return Path(source_path).with_suffix(f".{fmt.lower()}")


class PillowConverter(Converter):
    """
    Converts with Pillow, writing through a temp file that is renamed into
    place so a crash never leaves a half-written output.
    """

    def __init__(self, max_file_size: int = MAX_FILE_SIZE):
        self.max_file_size = max_file_size

    @staticmethod
    def format_supported(fmt: str) -> bool:
        Image.init()
        return fmt.upper() in Image.SAVE

    def convert(self, source_path: str, fmt: str, quality: int) -> int:
        src = Path(source_path)
        fmt = fmt.lower()

        if fmt not in SUPPORTED_FORMATS or not self.format_supported(fmt):
            raise ConversionError(
                ConversionErrorKind.FORMAT_DISABLED,
                f"Format {fmt} is not available",
            )
        if not src.is_file():
            raise ConversionError(
                ConversionErrorKind.FILE_NOT_FOUND,
                f"Original file not found: {src}",
            )
        if src.suffix.lower() not in SOURCE_EXTENSIONS:
            raise ConversionError(
                ConversionErrorKind.INVALID_FILE_TYPE,
                f"Unsupported source type: {src.suffix}",
            )

        original_size = src.stat().st_size
        if self.max_file_size and original_size > self.max_file_size:
            raise ConversionError(
                ConversionErrorKind.FILE_TOO_LARGE,
                f"File too large: {original_size} bytes (max {self.max_file_size})",
            )

        target = converted_path(str(src), fmt)
        temp_path = target.with_name(f"{TEMP_FILE_PREFIX}{target.name}")

        try:
            with Image.open(src) as img:
                # Preserve transparency for PNG/GIF
                if img.mode in ("RGBA", "LA", "P"):
                    img = img.convert("RGBA")
                else:
                    img = img.convert("RGB")
                img.save(temp_path, fmt.upper(), quality=quality)
            os.replace(temp_path, target)
        except PermissionError as e:
            raise ConversionError(ConversionErrorKind.PERMISSION_DENIED, str(e)) from e
        except UnidentifiedImageError as e:
            raise ConversionError(ConversionErrorKind.INVALID_FILE_TYPE, str(e)) from e
        except MemoryError as e:
            raise ConversionError(
                ConversionErrorKind.RESOURCE_CONTENTION,
                f"Out of memory converting {src.name}",
            ) from e
        except (OSError, ValueError) as e:
            raise ConversionError(
                ConversionErrorKind.CONVERSION_FAILED,
                f"Conversion to {fmt} failed: {e}",
            ) from e
        finally:
            if temp_path.exists():
                temp_path.unlink()

        saved = original_size - target.stat().st_size
        logger.debug(f"Converted {src.name} to {fmt}, saved {saved} bytes")
        return max(0, saved)


class DirectoryItemResolver(ItemResolver):
    """
    Items are source images under root, identified by their POSIX path
    relative to root.
    """

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def _is_source(self, path: Path) -> bool:
        return (
            path.suffix.lower() in SOURCE_EXTENSIONS
            and not path.name.startswith(TEMP_FILE_PREFIX)
        )

    def _path_for(self, item_id: str) -> Optional[Path]:
        """Path for an id, None if it escapes root"""
        path = (self.root / item_id).resolve()
        try:
            path.relative_to(self.root)
        except ValueError:
            logger.warning(f"Rejected item id outside upload root: {item_id}")
            return None
        return path

    def _ref(self, path: Path) -> ItemRef:
        return ItemRef(
            item_id=path.relative_to(self.root).as_posix(),
            file_size=path.stat().st_size,
        )

    def list_candidates(self, limit: int = 0, offset: int = 0) -> List[ItemRef]:
        if not self.root.is_dir():
            return []
        paths = sorted(
            p for p in self.root.rglob("*")
            if p.is_file() and self._is_source(p)
        )
        paths = paths[offset:]
        if limit > 0:
            paths = paths[:limit]
        return [self._ref(p) for p in paths]

    def get_item(self, item_id: str) -> Optional[ItemRef]:
        path = self._path_for(item_id)
        if path is None or not path.is_file() or not self._is_source(path):
            return None
        return self._ref(path)

    def resolve_path(self, item_id: str) -> Optional[str]:
        path = self._path_for(item_id)
        if path is None or not path.is_file():
            return None
        return str(path)

    def exists_converted(self, path: str, fmt: str) -> bool:
        return converted_path(path, fmt).exists()
