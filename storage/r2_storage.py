"""
MEDIAEDIT R2 Result Storage
═══════════════════════════════════════════════════════════════════════════════
Cloudflare R2 storage for processed edit results.

R2 is S3-compatible, so we use boto3 with custom endpoint.

Environment Variables Required:
- R2_ACCOUNT_ID: Cloudflare account ID
- R2_ACCESS_KEY_ID: R2 API access key
- R2_SECRET_ACCESS_KEY: R2 API secret key
- R2_BUCKET_NAME: Bucket name (e.g., "mediaedit-results")
- R2_PUBLIC_URL: Public CDN URL (e.g., "https://pub-xxx.r2.dev")

Author: Barrios A2I
Version: 2.0.0
═══════════════════════════════════════════════════════════════════════════════
"""

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from edit_engine.errors import ResolutionError, UploadError

logger = logging.getLogger("mediaedit.r2_storage")

# Thread pool for async boto3 operations
_executor = ThreadPoolExecutor(max_workers=4)

RESULT_PREFIX = "processed"
MULTIPART_THRESHOLD = 100_000_000
PART_SIZE = 50 * 1024 * 1024


class R2ResultStorage:
    """
    Cloudflare R2 storage for processed videos.

    upload() stores bytes under processed/<filename> and returns the public URL;
    read() fetches an object back by that URL.
    """

    def __init__(
        self,
        account_id: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        bucket_name: Optional[str] = None,
        public_url: Optional[str] = None,
        client: Any = None,
    ):
        # Load from environment if not provided
        self.account_id = account_id or os.getenv("R2_ACCOUNT_ID")
        self.access_key_id = access_key_id or os.getenv("R2_ACCESS_KEY_ID")
        self.secret_access_key = secret_access_key or os.getenv("R2_SECRET_ACCESS_KEY")
        self.bucket_name = bucket_name or os.getenv("R2_BUCKET_NAME", "mediaedit-results")
        self.public_url = (public_url or os.getenv("R2_PUBLIC_URL", "")).rstrip("/")

        self._validate_config()

        self.endpoint_url = f"https://{self.account_id}.r2.cloudflarestorage.com"

        self.client = client or boto3.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"}
            )
        )

        logger.info(f"[R2Storage] Initialized (bucket: {self.bucket_name})")

    def _validate_config(self):
        missing = []
        if not self.account_id:
            missing.append("R2_ACCOUNT_ID")
        if not self.access_key_id:
            missing.append("R2_ACCESS_KEY_ID")
        if not self.secret_access_key:
            missing.append("R2_SECRET_ACCESS_KEY")
        if not self.public_url:
            missing.append("R2_PUBLIC_URL")

        if missing:
            logger.warning(f"[R2Storage] Missing config: {missing}. Storage operations will fail.")

    @property
    def is_configured(self) -> bool:
        return all([
            self.account_id,
            self.access_key_id,
            self.secret_access_key,
            self.bucket_name,
            self.public_url,
        ])

    def _key_for_url(self, url: str) -> str:
        prefix = f"{self.public_url}/"
        if not url.startswith(prefix):
            raise ResolutionError(f"URL is not served by bucket {self.bucket_name}: {url}", url=url)
        return url[len(prefix):]

    async def upload(self, filename: str, data: bytes, content_type: str = "video/mp4") -> str:
        """
        Upload bytes to R2.

        Returns:
            Public CDN URL for the uploaded object
        """
        if not self.is_configured:
            raise UploadError("R2 storage is not configured")

        key = f"{RESULT_PREFIX}/{filename}"
        logger.info(f"[R2Storage] Uploading {len(data)} bytes -> {key}")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(_executor, self._sync_upload, key, data, content_type)
        except (BotoCoreError, ClientError) as e:
            raise UploadError(f"R2 upload failed for {key}: {e}") from e

        public_url = f"{self.public_url}/{key}"
        logger.info(f"[R2Storage] Uploaded: {public_url}")
        return public_url

    def _sync_upload(self, key: str, data: bytes, content_type: str):
        # Multipart for large files
        if len(data) > MULTIPART_THRESHOLD:
            self._multipart_upload(key, data, content_type)
        else:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000",
            )

    def _multipart_upload(self, key: str, data: bytes, content_type: str):
        response = self.client.create_multipart_upload(
            Bucket=self.bucket_name,
            Key=key,
            ContentType=content_type,
            CacheControl="public, max-age=31536000"
        )
        upload_id = response["UploadId"]

        parts = []
        try:
            for part_number, offset in enumerate(range(0, len(data), PART_SIZE), start=1):
                response = self.client.upload_part(
                    Bucket=self.bucket_name,
                    Key=key,
                    UploadId=upload_id,
                    PartNumber=part_number,
                    Body=data[offset:offset + PART_SIZE]
                )
                parts.append({"PartNumber": part_number, "ETag": response["ETag"]})

            self.client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts}
            )
        except (BotoCoreError, ClientError):
            self.client.abort_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id
            )
            raise

    async def read(self, url: str) -> bytes:
        key = self._key_for_url(url)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(_executor, self._sync_read, key)
        except (BotoCoreError, ClientError) as e:
            raise ResolutionError(f"R2 read failed for {key}: {e}", url=url) from e

    def _sync_read(self, key: str) -> bytes:
        response = self.client.get_object(Bucket=self.bucket_name, Key=key)
        return response["Body"].read()

    async def check_connection(self) -> Dict[str, Any]:
        """Test R2 connection and return status."""
        result = {
            "configured": self.is_configured,
            "connected": False,
            "bucket_exists": False,
            "error": None
        }

        if not self.is_configured:
            result["error"] = "Missing R2 configuration"
            return result

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                _executor,
                lambda: self.client.head_bucket(Bucket=self.bucket_name)
            )
            result["connected"] = True
            result["bucket_exists"] = True

        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            result["error"] = f"R2 error: {error_code}"
            if error_code == "404":
                result["connected"] = True  # Connected but bucket not found

        except BotoCoreError as e:
            result["error"] = str(e)

        return result


# ═══════════════════════════════════════════════════════════════════════════════
# IN-MEMORY STORAGE (for testing without R2)
# ═══════════════════════════════════════════════════════════════════════════════

class MemoryResultStorage:
    """Keeps uploads in a dict; URLs are stable for the life of the process."""

    def __init__(self, public_url: str = "memory://processed"):
        self.public_url = public_url.rstrip("/")
        self.objects: Dict[str, bytes] = {}
        logger.info("[MemoryStorage] Initialized (no actual uploads)")

    @property
    def is_configured(self) -> bool:
        return True

    async def upload(self, filename: str, data: bytes, content_type: str = "video/mp4") -> str:
        url = f"{self.public_url}/{filename}"
        self.objects[url] = bytes(data)
        logger.info(f"[MemoryStorage] Stored {len(data)} bytes -> {url}")
        return url

    async def read(self, url: str) -> bytes:
        try:
            return self.objects[url]
        except KeyError:
            raise ResolutionError(f"No stored object at {url}", url=url) from None

    async def check_connection(self) -> Dict[str, Any]:
        return {"configured": True, "connected": True, "bucket_exists": True, "error": None}


if __name__ == "__main__":
    # Quick test
    async def main():
        print("\n[R2Storage] Connection Test")
        print("=" * 60)

        storage = R2ResultStorage()
        status = await storage.check_connection()

        print(f"Configured: {status['configured']}")
        print(f"Connected: {status['connected']}")
        print(f"Bucket exists: {status['bucket_exists']}")
        if status['error']:
            print(f"Error: {status['error']}")

    asyncio.run(main())
