"""Object storage port for submitted document files.

The documents service only talks to this interface; the S3 adapter and the
in-memory test double both implement it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO, Optional
from uuid import UUID


@dataclass
class StoredFile:
    """Metadata for a file stored in object storage.

    Attributes:
        storage_key: Key in object storage ({owner_id}/{epoch_ms}_{sha256[:8]}{ext})
        sha256: SHA256 hash of file content (hex)
        size_bytes: File size in bytes
        mime_type: MIME type of the file
    """
    storage_key: str
    sha256: str
    size_bytes: int
    mime_type: str


class ObjectStoragePort(ABC):
    """Contract for storing, retrieving and removing document files.

    Keys are namespaced by the owning student's id, so every student's files
    live under their own prefix. Each upload gets a fresh key; identical
    content uploaded twice produces two objects.
    """

    @abstractmethod
    async def store_file(
        self,
        file: BinaryIO,
        owner_id: UUID,
        filename: str,
        mime_type: str,
    ) -> StoredFile:
        """Store a file under the owner's prefix.

        Args:
            file: Readable binary stream
            owner_id: Student the file belongs to
            filename: Original filename (extension is kept in the key)
            mime_type: MIME type of the file

        Returns:
            StoredFile describing the new object

        Raises:
            StorageError: If upload fails or storage is unavailable
            ValueError: If the stream is empty
        """

    @abstractmethod
    async def retrieve_file(self, storage_key: str) -> BinaryIO:
        """Return a readable stream for the object.

        Raises:
            FileNotFoundError: If the key does not exist
            StorageError: If retrieval fails
        """

    @abstractmethod
    async def delete_file(self, storage_key: str) -> bool:
        """Delete an object. Returns False if it did not exist."""

    @abstractmethod
    async def file_exists(self, storage_key: str) -> bool:
        """Check whether an object exists."""

    @abstractmethod
    async def generate_presigned_url(
        self,
        storage_key: str,
        expires_in_seconds: int = 3600,
        download_name: Optional[str] = None,
    ) -> str:
        """Generate a time-limited download URL.

        With ``download_name`` the browser saves the file under that name
        instead of the storage key.

        Raises:
            FileNotFoundError: If the key does not exist
            StorageError: If URL generation fails
        """
