#!/usr/bin/env python

"""Pull-based access to a blob body that is still in transit."""

import logging

from typing import Optional

from .errors import DigestMismatch, NetworkError, StreamClosed
from .formatteddigest import FormattedDigest
from .hashinggenerator import HashingGenerator

LOGGER = logging.getLogger(__name__)


class BlobStream:
    """
    Single-use handle over an in-progress blob download.

    Chunks are produced in the order they arrive; their boundaries carry no meaning. The underlying connection is
    released when the body is exhausted, when a read fails, and when the stream is closed early (i.e. by leaving an
    "async with" block, or by dropping the stream), whichever comes first. A read that fails or is cancelled
    leaves the stream closed; later reads raise StreamClosed.

        async with await client.blob("library/busybox", digest) as blob:
            async for chunk in blob:
                ...
    """

    def __init__(
        self, transport_response, *, digest: FormattedDigest, verify: bool = False
    ):
        """
        Args:
            transport_response: The transport response whose body is to be streamed.
            digest: The digest the blob was requested by.
            verify: If True, the final read fails with DigestMismatch when the content does not match the digest.
        """
        self.digest = FormattedDigest.parse(digest)
        self.transport_response = transport_response
        self.verify = verify

        self._closed = False
        self._exhausted = False
        self._failure = None  # type: Optional[BaseException]
        self._hashing_generator = HashingGenerator(
            transport_response.iter_chunks(), digest=self.digest, verify=verify
        )
        self._iterator = self._hashing_generator.__aiter__()

    def __del__(self):
        # Dropped without close(); the connection cannot be reused.
        if not getattr(self, "_closed", True):
            self._closed = True
            self.transport_response.close()

    async def __aenter__(self) -> "BlobStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.chunk()
        if chunk is None:
            raise StopAsyncIteration
        return chunk

    @property
    def closed(self) -> bool:
        """True once the underlying connection has been given up."""
        return self._closed

    @property
    def content_length(self) -> Optional[int]:
        """The total length of the blob, if reported by the registry."""
        return self.transport_response.content_length

    @property
    def content_type(self) -> Optional[str]:
        """The content type of the blob, if reported by the registry."""
        return self.transport_response.content_type

    @property
    def exhausted(self) -> bool:
        """True once the whole body was read (and, if requested, verified)."""
        return self._exhausted

    async def chunk(self) -> Optional[bytes]:
        """
        Retrieves the next chunk of the blob.

        Returns:
            The next chunk, or None once the end of the blob was reached.
        """
        if self._exhausted:
            return None
        if self._closed:
            raise StreamClosed(
                f"Blob stream is closed: {self.digest}"
            ) from self._failure

        try:
            return await self._iterator.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
            self._release()
            return None
        except (DigestMismatch, NetworkError) as exception:
            LOGGER.debug("Blob stream failed: %s: %s", self.digest, exception)
            self._failure = exception
            await self.close()
            raise
        except BaseException as exception:
            # Includes cancellation (i.e. asyncio.wait_for); the generator is finished, the body is not.
            self._failure = exception
            await self.close()
            raise

    async def close(self):
        """Releases the underlying connection; unread content is discarded."""
        if self._closed:
            return
        self._closed = True
        if not self._exhausted:
            self.transport_response.close()
        await self._iterator.aclose()

    def get_digest(self) -> FormattedDigest:
        """Retrieves the digest value of the content read so far."""
        return self._hashing_generator.get_digest()

    def get_size(self) -> int:
        """Retrieves the number of bytes read so far."""
        return self._hashing_generator.get_size()

    def _release(self):
        self._closed = True
        self.transport_response.release()
