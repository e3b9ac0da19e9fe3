from contextlib import AbstractAsyncContextManager
from typing import Any, Optional

import asynctempfile


class AsyncChunkStager:
    """Stages file chunks in a temporary file until the last one arrives.

    Attributes
    ----------
    client : Any
        Aioboto3 S3 client.
    bucket : str
        S3 bucket.
    key : str
        S3 file key.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        key: str
    ):
        self.client = client
        self.bucket = bucket
        self.key = key
        self.size = 0
        self._chunk_num = 0
        self.file: Any = None

    async def open(self) -> 'AsyncChunkStager':
        self.file = await asynctempfile.TemporaryFile('w+b')
        return self

    async def write(self, data: bytes, chunk_num: int) -> None:
        if chunk_num != self._chunk_num + 1:
            raise ValueError(f'expected chunk {self._chunk_num + 1}, got {chunk_num}')
        await self.file.write(data)
        self._chunk_num = chunk_num
        self.size += len(data)

    async def commit(self) -> None:
        await self.file.seek(0)
        data = await self.file.read()
        await self.client.put_object(Body=data, Bucket=self.bucket, Key=self.key)
        await self.close()

    async def close(self) -> None:
        if self.file is not None:
            await self.file.close()
            self.file = None


class AsyncS3Reader(AbstractAsyncContextManager[Any]):
    """Async S3 stream reader.

    Attributes
    ----------
    client : Any
        Aioboto3 S3 client.
    bucket : str
        S3 bucket.
    key : str
        S3 file key.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        key: str
    ):
        self.client = client
        self.bucket = bucket
        self.key = key

    async def __aenter__(self) -> 'AsyncS3Reader':
        obj = await self.client.get_object(Bucket=self.bucket, Key=self.key)
        self.stream = obj['Body']
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stream.close()

    async def read(self, chunk: Optional[int] = None) -> bytes:
        if chunk is None:
            return await self.stream.read()
        return await self.stream.read(chunk)
