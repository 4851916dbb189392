"""Test helpers for storage and naming tests.

Provides:
- ScriptedStore: an ObjectStoreClient whose exists() answers follow a script
- UUID_TOKEN_PATTERN: regex for the "-<uuid4>" disambiguator
"""

import re
from collections.abc import Callable, Iterable
from pathlib import Path

from imagestore.storage import ObjectHandle, ObjectStoreClient

UUID_TOKEN = r"-[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}"
UUID_TOKEN_PATTERN = re.compile(UUID_TOKEN)


class ScriptedStore(ObjectStoreClient):
    """Store whose existence answers come from a script.

    Each script entry is a bool (the answer) or an exception instance (raised).
    Once the script is used up, `default` answers every further call.
    Alternatively pass `answer`, a callable taking (key, call_index).
    """

    def __init__(
        self,
        script: Iterable[bool | Exception] = (),
        *,
        default: bool = False,
        answer: Callable[[str, int], bool] | None = None,
    ):
        self._script = list(script)
        self._default = default
        self._answer = answer
        self.calls: list[str] = []

    async def exists(self, key: str) -> bool:
        index = len(self.calls)
        self.calls.append(key)

        if self._answer is not None:
            return self._answer(key, index)

        if index < len(self._script):
            step = self._script[index]
            if isinstance(step, Exception):
                raise step
            return step

        return self._default

    async def put(self, local_path, key, *, content_type="application/octet-stream", if_absent=False):
        raise AssertionError("resolver must not upload")

    async def set_public(self, handle: ObjectHandle) -> None:
        raise AssertionError("resolver must not change ACLs")

    async def delete(self, key: str) -> None:
        raise AssertionError("resolver must not delete")

    def public_url(self, key: str) -> str:
        return f"https://scripted.test/{key}"


def write_image(tmp_path: Path, name: str = "upload.bin", content: bytes = b"\x89PNG\r\n") -> Path:
    """Write a small file to upload and return its path."""
    path = tmp_path / name
    path.write_bytes(content)
    return path
