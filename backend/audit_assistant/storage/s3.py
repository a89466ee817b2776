"""
S3 Object Store — evidence file storage

Every object lives under a scope-partitioned key (see evidence_key):

    s3://<BUCKET>/projects/<tenant_id>/<project_id>/documents/<document_id>/<file>

The location handle returned by put() IS the key; it is produced
server-side and never accepted raw from a client.

Signed URLs handed to the extraction service are GET-only, scoped to the
exact key and short-lived (settings.signed_url_ttl_seconds, default 60 s).
Existence is checked before signing so an expired / deleted handle fails
fast with NotFoundError instead of surfacing later as an opaque
extraction-service error.
"""

from __future__ import annotations

import logging

import aioboto3
from botocore.exceptions import ClientError

from audit_assistant.core.config import settings
from audit_assistant.core.errors import NotFoundError, ServiceUnavailableError
from audit_assistant.storage.base import ObjectStore, SignedUrl

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


def _translate(exc: ClientError, key: str) -> Exception:
    code   = exc.response.get("Error", {}).get("Code", "")
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
    if code in _NOT_FOUND_CODES:
        return NotFoundError(f"Object not found: {key}")
    if status >= 500 or code in ("SlowDown", "ServiceUnavailable", "InternalError"):
        return ServiceUnavailableError(f"S3 unavailable ({code}) for {key}", status_code=status)
    return exc


class S3ObjectStore(ObjectStore):
    """Async S3 operations against a single evidence bucket."""

    def __init__(self, bucket: str | None = None, session: aioboto3.Session | None = None) -> None:
        self._bucket  = bucket or settings.s3_bucket
        self._session = session or aioboto3.Session()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client(
            "s3",
            region_name=settings.aws_region,
            # In production: IAM role assumed via ECS task role / IRSA.
            # In local dev: reads AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY.
        )

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def put(self, data: bytes, content_type: str, key: str) -> str:
        async with self._client() as s3:
            try:
                await s3.put_object(
                    Bucket=self._bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
            except ClientError as exc:
                raise _translate(exc, key) from exc

        logger.info("S3 upload ok | bucket=%s key=%s size=%d", self._bucket, key, len(data))
        return key

    async def get(self, location: str) -> bytes:
        async with self._client() as s3:
            try:
                resp = await s3.get_object(Bucket=self._bucket, Key=location)
                return await resp["Body"].read()
            except ClientError as exc:
                raise _translate(exc, location) from exc

    async def signed_url(self, location: str, ttl_seconds: int) -> SignedUrl:
        async with self._client() as s3:
            try:
                await s3.head_object(Bucket=self._bucket, Key=location)
            except ClientError as exc:
                raise _translate(exc, location) from exc

            url = await s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": location},
                ExpiresIn=ttl_seconds,
            )
        logger.debug("S3 presigned GET | key=%s ttl=%ds", location, ttl_seconds)
        return SignedUrl(url=url, expires_in=ttl_seconds)

    async def delete(self, location: str) -> None:
        async with self._client() as s3:
            try:
                await s3.delete_object(Bucket=self._bucket, Key=location)
            except ClientError as exc:
                err = _translate(exc, location)
                if isinstance(err, NotFoundError):
                    return
                raise err from exc
        logger.info("S3 delete | bucket=%s key=%s", self._bucket, location)
