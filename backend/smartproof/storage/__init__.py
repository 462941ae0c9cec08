"""Blob storage backends."""

from smartproof.storage.blob import BlobNotFoundError, BlobStore, LocalBlobStore, MemoryBlobStore

__all__ = ["BlobNotFoundError", "BlobStore", "LocalBlobStore", "MemoryBlobStore"]
