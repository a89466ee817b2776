"""
Unit Tests — S3 Object Store
═════════════════════════════
Tests for audit_assistant/storage/s3.py

Coverage:
  ✅ put() writes to the configured bucket and returns the key as location
  ✅ get() reads the object body
  ✅ signed_url() checks existence, then presigns a GET with the given TTL
  ✅ Missing object → NotFoundError (head / get)
  ✅ Throttling / 5xx → ServiceUnavailableError (retryable)
  ✅ Other client errors propagate unchanged
  ✅ delete() of a missing object is not an error
  ✅ evidence_key() is scope-partitioned and sanitizes the filename
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from audit_assistant.core.errors import NotFoundError, ServiceUnavailableError
from audit_assistant.storage.base import evidence_key
from audit_assistant.storage.s3 import S3ObjectStore

KEY = "projects/t/p/documents/d/report.pdf"


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _client_error(code: str, status: int = 400) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": "test"}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "operation",
    )


def _build_s3_mock() -> MagicMock:
    """Build a mock S3 client context manager."""
    s3 = AsyncMock()
    s3.__aenter__ = AsyncMock(return_value=s3)
    s3.__aexit__  = AsyncMock(return_value=None)
    body = AsyncMock()
    body.read = AsyncMock(return_value=b"%PDF-1.4")
    s3.put_object             = AsyncMock(return_value={"ETag": '"abc"'})
    s3.get_object             = AsyncMock(return_value={"Body": body})
    s3.head_object            = AsyncMock(return_value={"ContentLength": 8})
    s3.generate_presigned_url = AsyncMock(return_value=f"https://s3.test/{KEY}?X-Amz-Signature=sig")
    s3.delete_object          = AsyncMock(return_value={})
    return s3


def _store(s3_mock: MagicMock) -> S3ObjectStore:
    session = MagicMock()
    session.client.return_value = s3_mock
    return S3ObjectStore(bucket="test-bucket", session=session)


# ─────────────────────────────────────────────────────────────────────────────
# Tests
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestS3ObjectStore:

    async def test_put_returns_key(self):
        s3_mock = _build_s3_mock()

        with patch("audit_assistant.storage.s3.aioboto3.Session") as mock_session:
            mock_session.return_value.client.return_value = s3_mock
            location = await S3ObjectStore(bucket="test-bucket").put(b"%PDF", "application/pdf", KEY)

        assert location == KEY
        s3_mock.put_object.assert_awaited_once_with(
            Bucket="test-bucket", Key=KEY, Body=b"%PDF", ContentType="application/pdf",
        )

    async def test_get_reads_body(self):
        s3_mock = _build_s3_mock()
        assert await _store(s3_mock).get(KEY) == b"%PDF-1.4"
        s3_mock.get_object.assert_awaited_once_with(Bucket="test-bucket", Key=KEY)

    async def test_signed_url_checks_existence_then_presigns(self):
        s3_mock = _build_s3_mock()

        signed = await _store(s3_mock).signed_url(KEY, 60)

        s3_mock.head_object.assert_awaited_once_with(Bucket="test-bucket", Key=KEY)
        s3_mock.generate_presigned_url.assert_awaited_once_with(
            "get_object", Params={"Bucket": "test-bucket", "Key": KEY}, ExpiresIn=60,
        )
        assert signed.expires_in == 60
        assert signed.url.startswith("https://s3.test/")

    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    async def test_signed_url_for_missing_object(self, code):
        s3_mock = _build_s3_mock()
        s3_mock.head_object.side_effect = _client_error(code, 404)

        with pytest.raises(NotFoundError):
            await _store(s3_mock).signed_url(KEY, 60)
        s3_mock.generate_presigned_url.assert_not_awaited()

    async def test_get_missing_object(self):
        s3_mock = _build_s3_mock()
        s3_mock.get_object.side_effect = _client_error("NoSuchKey", 404)

        with pytest.raises(NotFoundError):
            await _store(s3_mock).get(KEY)

    @pytest.mark.parametrize("code,status", [("SlowDown", 503), ("InternalError", 500)])
    async def test_server_side_errors_are_transient(self, code, status):
        s3_mock = _build_s3_mock()
        s3_mock.put_object.side_effect = _client_error(code, status)

        with pytest.raises(ServiceUnavailableError) as exc_info:
            await _store(s3_mock).put(b"%PDF", "application/pdf", KEY)
        assert exc_info.value.retryable

    async def test_access_denied_propagates_unchanged(self):
        s3_mock = _build_s3_mock()
        s3_mock.put_object.side_effect = _client_error("AccessDenied", 403)

        with pytest.raises(ClientError):
            await _store(s3_mock).put(b"%PDF", "application/pdf", KEY)

    async def test_delete_missing_object_is_silent(self):
        s3_mock = _build_s3_mock()
        s3_mock.delete_object.side_effect = _client_error("NoSuchKey", 404)

        await _store(s3_mock).delete(KEY)

    async def test_delete(self):
        s3_mock = _build_s3_mock()
        await _store(s3_mock).delete(KEY)
        s3_mock.delete_object.assert_awaited_once_with(Bucket="test-bucket", Key=KEY)


@pytest.mark.unit
class TestEvidenceKey:

    def test_scope_partitioned(self):
        key = evidence_key("projects", "t1", "p1", "d1", "Q3 report.pdf")
        assert key == "projects/t1/p1/documents/d1/Q3 report.pdf"

    def test_filename_cannot_escape_partition(self):
        key = evidence_key("projects", "t1", "p1", "d1", "../../other/secret.pdf")
        assert key.startswith("projects/t1/p1/documents/d1/")
        assert "/.." not in key
        assert key.count("/") == 5
