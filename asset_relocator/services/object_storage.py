"""
Destination object-store client for S3-compatible providers.

Small payloads go up with a single PutObject; anything above the multipart
threshold is streamed through boto3's managed transfer in fixed-size parts.
"""
import io
import re
from typing import Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from asset_relocator.core.exceptions import InvalidEndpoint, ProbeFailed, UploadFailed
from asset_relocator.core.logging_config import LogCategory, log_debug, log_info

MIB = 1024 * 1024
DEFAULT_MULTIPART_THRESHOLD = 5 * MIB
DEFAULT_PART_SIZE = 5 * MIB
DEFAULT_PART_CONCURRENCY = 4

# https://{account_id}.r2.cloudflarestorage.com
ENDPOINT_PATTERN = re.compile(r"^https://([^./]+)\.r2\.cloudflarestorage\.com/?$")

NOT_FOUND_CODES = {"404", "NotFound", "NoSuchKey"}


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in NOT_FOUND_CODES or status == 404


class ObjectStoreClient:
    """
    put/head interface over the destination bucket.

    Public URLs use the custom public domain when configured, otherwise the
    canonical provider URL derived from the account id in the endpoint.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        bucket: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: str = "auto",
        public_url: Optional[str] = None,
        multipart_threshold: int = DEFAULT_MULTIPART_THRESHOLD,
        part_size: int = DEFAULT_PART_SIZE,
        part_concurrency: int = DEFAULT_PART_CONCURRENCY,
        client=None,
    ):
        if not bucket:
            raise InvalidEndpoint("Destination bucket is not configured")
        if not endpoint:
            raise InvalidEndpoint("Destination endpoint is not configured")

        self.endpoint = endpoint
        self.bucket = bucket
        self.public_url = public_url.rstrip("/") if public_url else None
        self.multipart_threshold = multipart_threshold
        self.transfer_config = TransferConfig(
            multipart_threshold=multipart_threshold,
            multipart_chunksize=part_size,
            max_concurrency=part_concurrency,
        )
        # Resolve eagerly so a malformed endpoint aborts at startup
        self._account_id = None if self.public_url else self.extract_account_id()

        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )

    @classmethod
    def from_settings(cls, settings, client=None) -> "ObjectStoreClient":
        return cls(
            endpoint=settings.aws_endpoint,
            bucket=settings.aws_bucket,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_access_secret,
            region=settings.aws_region,
            public_url=settings.r2_public_url,
            multipart_threshold=settings.multipart_threshold_bytes,
            part_size=settings.multipart_part_size_bytes,
            part_concurrency=settings.multipart_concurrency,
            client=client,
        )

    def upload(self, payload: bytes, key: str, content_type: Optional[str]) -> str:
        """
        Upload bytes under ``key`` and return the public URL.

        Raises:
            UploadFailed: On any transport or service error
        """
        extra_args = {"ContentType": content_type} if content_type else {}
        try:
            if len(payload) > self.multipart_threshold:
                log_debug(
                    "Starting multipart upload",
                    category=LogCategory.STORAGE,
                    key=key,
                    size=len(payload),
                )
                self.client.upload_fileobj(
                    io.BytesIO(payload),
                    self.bucket,
                    key,
                    ExtraArgs=extra_args,
                    Config=self.transfer_config,
                )
            else:
                self.client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=payload,
                    **extra_args,
                )
        except (ClientError, BotoCoreError, S3UploadFailedError) as exc:
            raise UploadFailed(key, exc) from exc

        log_info("Uploaded object", category=LogCategory.STORAGE, key=key, size=len(payload))
        return self.public_url_for(key)

    def head(self, key: str) -> Optional[int]:
        """
        Metadata-only probe.

        Returns:
            Object size in bytes, or None when the object does not exist

        Raises:
            ProbeFailed: For any error other than "not found"
        """
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                return None
            raise ProbeFailed(f"HEAD {key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise ProbeFailed(f"HEAD {key} failed: {exc}") from exc
        return int(response.get("ContentLength", 0))

    def exists(self, key: str) -> bool:
        return self.head(key) is not None

    def public_url_for(self, key: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{key}"
        account_id = self._account_id or self.extract_account_id()
        return f"https://{self.bucket}.{account_id}.r2.cloudflarestorage.com/{key}"

    def extract_account_id(self) -> str:
        match = ENDPOINT_PATTERN.match(self.endpoint or "")
        if not match:
            raise InvalidEndpoint(
                f"Invalid endpoint format: {self.endpoint}. "
                "Expected https://<account_id>.r2.cloudflarestorage.com"
            )
        return match.group(1)
