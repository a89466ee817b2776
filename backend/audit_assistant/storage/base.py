"""
Object Store — Abstract Base

Durable storage for raw uploaded bytes. The pipeline only speaks this
protocol; S3 is the production backend, tests use an in-memory fake.

Contract:
  - put() returns an opaque location; callers never build keys themselves.
  - signed_url() yields a short-lived URL an external service can fetch.
  - Operations on an unknown location raise NotFoundError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class SignedUrl:
    url:        str
    expires_in: int   # seconds


class ObjectStore(ABC):

    @abstractmethod
    async def put(self, data: bytes, content_type: str, key: str) -> str:
        """Store bytes under `key`; return the location handle."""

    @abstractmethod
    async def get(self, location: str) -> bytes:
        """Fetch stored bytes."""

    @abstractmethod
    async def signed_url(self, location: str, ttl_seconds: int) -> SignedUrl:
        """Short-lived read URL for `location`."""

    @abstractmethod
    async def delete(self, location: str) -> None:
        """Remove the object. Deleting a missing object is not an error."""


def evidence_key(prefix: str, tenant_id: object, project_id: object, document_id: object, filename: str) -> str:
    """
    Build a scope-partitioned object key.
    Pattern:  <prefix>/<tenant_id>/<project_id>/documents/<document_id>/<filename>

    Tenant, project and document ids are server-controlled; the filename is
    sanitized so it can never escape its partition.
    """
    safe_name = filename.replace("/", "_").replace("\\", "_").replace("..", "_")
    return f"{prefix}/{tenant_id}/{project_id}/documents/{document_id}/{safe_name}"
