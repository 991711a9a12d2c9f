"""
ObjectStoreProbe - existence, read and write primitives against S3.

No method retries; callers own retry policy. "Not found" is an answer
(``False`` / ``None``), not an error. Credential and connectivity problems
always propagate.
"""

import io
import logging
from typing import BinaryIO, Optional, Union

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from cloudspec.common.aws_clients import get_s3_client
from cloudspec.common.config import CloudSpecSettings, get_settings
from cloudspec.common.error_handlers import handle_network_error, handle_s3_error, is_not_found

logger = logging.getLogger(__name__)

Body = Union[str, bytes, bytearray, BinaryIO]


def _as_stream(body: Body) -> BinaryIO:
    if isinstance(body, str):
        return io.BytesIO(body.encode("utf-8"))
    if isinstance(body, (bytes, bytearray)):
        return io.BytesIO(bytes(body))
    if hasattr(body, "read"):
        return body
    raise TypeError(f"unsupported body type {type(body).__name__}; expected str, bytes or a binary stream")


class ObjectStoreProbe:

    def __init__(self, s3_client=None, settings: Optional[CloudSpecSettings] = None):
        self.settings = settings or get_settings()
        self._s3 = s3_client

    @property
    def s3(self):
        """Lazy S3 client initialization."""
        if self._s3 is None:
            self._s3 = get_s3_client(self.settings.region)
        return self._s3

    def exists(self, bucket: str, key: str) -> bool:
        """
        True when ``key`` exists in ``bucket``.

        Raises:
            AuthenticationError / S3OperationError / ExternalServiceError for
            anything other than "not found"
        """
        try:
            self.s3.head_object(Bucket=bucket, Key=key)
            return True
        except ClientError as e:
            if is_not_found(e):
                return False
            raise handle_s3_error(e, "head_object", bucket, key) from e
        except BotoCoreError as e:
            raise handle_network_error(e, "s3", "head_object") from e

    def put(self, bucket: str, key: str, body: Body) -> bool:
        """
        Upload ``body`` (text, bytes or a binary stream) through the managed
        transfer, which switches to multipart for large streams.

        Returns:
            True on success, False when S3 rejected the upload
        """
        try:
            self.s3.upload_fileobj(_as_stream(body), bucket, key)
        except (ClientError, S3UploadFailedError) as e:
            logger.error("Error creating object s3://%s/%s: %s", bucket, key, e)
            return False
        except BotoCoreError as e:
            raise handle_network_error(e, "s3", "upload_fileobj") from e
        logger.debug("Uploaded s3://%s/%s", bucket, key)
        return True

    def get_content(self, bucket: str, key: str) -> Optional[str]:
        """
        Full object body decoded as UTF-8, or None when it cannot be retrieved.
        """
        try:
            response = self.s3.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            logger.info("Could not get s3://%s/%s: %s", bucket, key, e)
            return None
        except BotoCoreError as e:
            raise handle_network_error(e, "s3", "get_object") from e

        with response["Body"] as stream:
            return stream.read().decode("utf-8")
