"""Unique object name resolution.

Given a desired key, finds one that no object currently occupies while
keeping sequential existence checks to a minimum.

The first candidate is the bare name (directory + base_name + extension), so
the common no-collision case yields a readable, predictable key. Every later
candidate carries a freshly generated UUID instead of an incrementing index.
With an index, each of "-1", "-2", ... must be checked back to back and anyone
able to pre-create those keys can force an arbitrary number of round trips per
upload. A random token says nothing about the next one, so a resolution costs
about two checks even under contention.

Key composition:
    candidate = directory + base_name + disambiguator + extension

The same string is used for the existence check and returned to the caller as
the upload key.
"""

import uuid

from imagestore.logging import get_logger
from imagestore.storage.client import ObjectStoreClient, StorageError

logger = get_logger(__name__)

DISAMBIGUATOR_SEPARATOR = "-"


class UniqueNameExhaustedError(StorageError):
    """Every candidate allowed by the attempt ceiling was taken.

    Attributes:
        attempts: Number of existence checks made.
        last_candidate: The last key that was found taken.
    """

    def __init__(self, attempts: int, last_candidate: str):
        super().__init__(
            f"No free name after {attempts} attempts (last tried {last_candidate})",
            code="E_NAME_EXHAUSTED",
        )
        self.attempts = attempts
        self.last_candidate = last_candidate


def new_disambiguator() -> str:
    """Return a fresh disambiguator token: separator + canonical UUID4."""
    return f"{DISAMBIGUATOR_SEPARATOR}{uuid.uuid4()}"


def compose_candidate(
    directory: str,
    base_name: str,
    disambiguator: str = "",
    extension: str | None = None,
) -> str:
    """Compose a candidate key.

    The extension includes its separator (".jpg") and is omitted entirely
    when None or empty.
    """
    return f"{directory}{base_name}{disambiguator}{extension or ''}"


class NameResolver:
    """Resolve desired object names into keys that are free in a store.

    The resolver only reads from the store. Checking and uploading are two
    separate steps with no reservation in between: two concurrent resolutions
    can both see a key as free and both upload to it, and the second upload
    overwrites the first. Callers that need stronger guarantees can upload
    with ``put(..., if_absent=True)`` and re-resolve on ObjectConflictError.

    Instances hold no mutable state and can be shared across requests.
    """

    def __init__(self, store: ObjectStoreClient, *, max_attempts: int | None = None):
        """Initialize the resolver.

        Args:
            store: Store whose exists() is consulted.
            max_attempts: Maximum existence checks per resolve() call.
                None means unbounded.

        Raises:
            ValueError: If max_attempts is less than 1.
        """
        if max_attempts is not None and max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._store = store
        self._max_attempts = max_attempts

    @property
    def store(self) -> ObjectStoreClient:
        return self._store

    @property
    def max_attempts(self) -> int | None:
        return self._max_attempts

    async def resolve(
        self,
        directory: str,
        base_name: str,
        extension: str | None = None,
        attempt: int = 0,
    ) -> str:
        """Return a key that did not exist at the moment it was checked.

        Args:
            directory: Caller-normalized key prefix (e.g. "images/2024/05/").
            base_name: Caller-sanitized stem. May be empty.
            extension: Extension including separator, or None.
            attempt: Starting attempt number. 0 tries the bare name first.

        Returns:
            The first free candidate key.

        Raises:
            ValueError: If attempt is negative.
            UniqueNameExhaustedError: If max_attempts checks all collided.
            StorageError: Any error raised by store.exists(), unchanged.
        """
        if attempt < 0:
            raise ValueError(f"attempt must be >= 0, got {attempt}")

        checks = 0
        while True:
            disambiguator = new_disambiguator() if attempt else ""
            candidate = compose_candidate(directory, base_name, disambiguator, extension)

            # Store failures propagate; they are never read as taken or free
            taken = await self._store.exists(candidate)
            checks += 1

            if not taken:
                logger.debug("unique_name_resolved", key=candidate, checks=checks)
                return candidate

            logger.debug("unique_name_collision", key=candidate, attempt=attempt)

            if self._max_attempts is not None and checks >= self._max_attempts:
                logger.warning(
                    "unique_name_exhausted",
                    directory=directory,
                    base_name=base_name,
                    checks=checks,
                )
                raise UniqueNameExhaustedError(checks, candidate)

            attempt += 1
