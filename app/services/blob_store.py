# app/services/blob_store.py
from pathlib import Path
from typing import Protocol

from ..logging_config import get_logger

logger = get_logger(__name__)

OCTET_STREAM = "application/octet-stream"


def version_blob_path(room_id: str, subroom_name: str, version_index: int) -> str:
    return f"rooms/{room_id}/subrooms/{subroom_name}/versions/{version_index}.bin"


class BlobStore(Protocol):
    def put(self, path: str, data: bytes, content_type: str = OCTET_STREAM) -> None: ...

    def get(self, path: str) -> bytes: ...

    def exists(self, path: str) -> bool: ...

    def delete(self, path: str) -> None: ...


class LocalBlobStore:
    """ローカルディレクトリに blob を置く実装（開発・テスト用）。"""

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        root = self.root.resolve()
        if root != target and root not in target.parents:
            raise ValueError(f"blob path escapes the store root: {path}")
        return target

    def put(self, path: str, data: bytes, content_type: str = OCTET_STREAM) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug(f"Stored blob {path} ({len(data)} bytes, {content_type})")

    def get(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_file():
            target.unlink()
            logger.debug(f"Deleted blob {path}")
