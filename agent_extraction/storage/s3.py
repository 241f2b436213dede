"""
S3 artifact store.

Objects are written under a single bucket and key prefix:

    s3://<BUCKET>/<PREFIX>/<artifact_name>

The prefix is server-controlled; artifact names are validated as flat
keys before they are joined, so a caller can never escape the prefix.

Credentials come from the standard botocore chain (env vars, shared
config, instance / task role). s3_endpoint_url points the client at
LocalStack or MinIO in development.
"""

from __future__ import annotations

import logging
import mimetypes

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from agent_extraction.core.errors import ArtifactStoreError
from agent_extraction.storage.base import ArtifactStore

logger = logging.getLogger(__name__)

_MISSING_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


class S3ArtifactStore(ArtifactStore):

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: str = "us-east-1",
        endpoint_url: str | None = None,
    ) -> None:
        if not bucket:
            raise ValueError("bucket must be non-empty")
        self._bucket       = bucket
        self._prefix       = prefix.strip("/")
        self._region       = region
        self._endpoint_url = endpoint_url or None
        self._session      = get_session()

    @property
    def backend_name(self) -> str:
        return "s3"

    @property
    def bucket(self) -> str:
        return self._bucket

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.create_client(
            "s3",
            region_name=self._region,
            endpoint_url=self._endpoint_url,
        )

    def key_for(self, name: str) -> str:
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise ArtifactStoreError(f"Invalid artifact name: {name!r}")
        return f"{self._prefix}/{name}" if self._prefix else name

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def save(self, name: str, data: bytes) -> None:
        key = self.key_for(name)
        ct  = mimetypes.guess_type(name)[0] or "application/octet-stream"

        try:
            async with self._client() as s3:
                await s3.put_object(
                    Bucket=self._bucket,
                    Key=key,
                    Body=data,
                    ContentType=ct,
                )
        except (ClientError, BotoCoreError) as exc:
            logger.error("S3 upload failed | bucket=%s key=%s error=%s", self._bucket, key, exc)
            raise ArtifactStoreError(f"Failed to save artifact {name}") from exc

        logger.info("S3 upload ok | bucket=%s key=%s size=%d", self._bucket, key, len(data))

    async def read(self, name: str) -> bytes | None:
        key = self.key_for(name)
        try:
            async with self._client() as s3:
                resp = await s3.get_object(Bucket=self._bucket, Key=key)
                return await resp["Body"].read()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _MISSING_CODES:
                logger.debug("S3 object not found | bucket=%s key=%s", self._bucket, key)
                return None
            logger.error("S3 download failed | bucket=%s key=%s error=%s", self._bucket, key, exc)
            raise ArtifactStoreError(f"Failed to read artifact {name}") from exc
        except BotoCoreError as exc:
            logger.error("S3 download failed | bucket=%s key=%s error=%s", self._bucket, key, exc)
            raise ArtifactStoreError(f"Failed to read artifact {name}") from exc
