import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Tuple

import config

logger = logging.getLogger(__name__)


class UploadStorage:
    """Writes submitted binaries into the public uploads directory.

    Files are named ``{epoch millis}_{short id}{ext}`` and referenced from
    submission documents by filename only.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def unique_filename(ext: str, short_id: str = None) -> str:
        short_id = short_id or uuid.uuid4().hex[:8]
        return f"{int(time.time() * 1000)}_{short_id}{ext}"

    def save_stream(self, stream: BinaryIO, original_name: str) -> Tuple[str, int]:
        self.ensure_directory()
        ext = os.path.splitext(os.path.basename(original_name or ""))[1].lower()
        filename = self.unique_filename(ext)
        target = self.directory / filename
        stream.seek(0)
        with open(target, "wb") as out:
            shutil.copyfileobj(stream, out)
        logger.info("Stored upload %s as %s", original_name, filename)
        return filename, target.stat().st_size

    def save_bytes(self, data: bytes, ext: str, short_id: str = None) -> Tuple[str, Path]:
        self.ensure_directory()
        filename = self.unique_filename(ext, short_id)
        target = self.directory / filename
        with open(target, "wb") as out:
            out.write(data)
        return filename, target


_storage = UploadStorage(config.UPLOAD_DIR)


def get_upload_storage() -> UploadStorage:
    return _storage
