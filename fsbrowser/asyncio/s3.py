import base64
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Optional

import aioboto3
import yaml
from botocore.exceptions import BotoCoreError, ClientError

from fsbrowser.asyncio.connector import ContentsConnector
from fsbrowser.errors import NotFoundError, TransportError
from fsbrowser.utils import paths
from fsbrowser.utils.entry import DirectoryEntry, SaveModel
from fsbrowser.utils.s3 import AsyncChunkStager, AsyncS3Reader

logger = logging.getLogger(__name__)

_MISSING_CODES = {'404', 'NoSuchKey', 'NotFound'}


class AsyncS3Contents(ContentsConnector):
    """Async S3 contents.

    Attributes
    ----------
    endpoint_url : str
        Endpoint URL.
    aws_access_key_id : str
        AWS access key ID
    aws_secret_access_key : str
        AWS secret access key
    bucket : str
        Bucket served as the contents root.
    prefix : str, default=''
        Key prefix inside the bucket.
    drive_name : str, default=''
        Drive name.
    """

    def __init__(
        self,
        endpoint_url: str,
        aws_access_key_id: str,
        aws_secret_access_key: str,
        bucket: str,
        prefix: str = '',
        drive_name: str = ''
    ) -> None:
        super().__init__(drive_name)
        self.endpoint_url = endpoint_url
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self.bucket = bucket
        self.prefix = prefix.strip('/')
        self.client: Any = None
        self._staged: dict[str, AsyncChunkStager] = {}

    @asynccontextmanager
    async def connect(self) -> AsyncGenerator['AsyncS3Contents', None]:
        """Connects to S3.

        Yields
        -------
        AsyncS3Contents
            Class instance
        """
        async with aioboto3.Session().client(
                's3', endpoint_url=self.endpoint_url,
                aws_access_key_id=self.aws_access_key_id,
                aws_secret_access_key=self.aws_secret_access_key
        ) as client:
            self.client = client
            try:
                yield self
            finally:
                for stager in self._staged.values():
                    await stager.close()
                self._staged.clear()
                self.client = None

    @classmethod
    def from_yaml(cls, path: str) -> 'AsyncS3Contents':
        """Creates class instance from configuration path.

        Parameters
        ----------
        path : str
            path to configuration file.

        Returns
        -------
        AsyncS3Contents
            Class instance.
        """
        with open(path) as f:
            config = yaml.safe_load(f)
        return cls(**config)

    async def get(self, path: str, content: bool = True) -> DirectoryEntry:
        local = self.local_path(path).strip('/')
        try:
            if local:
                head = await self._head(self._key(local))
                if head is not None:
                    return await self._file_model(local, head, content)
            children = await self._list(local)
        except (BotoCoreError, ClientError) as err:
            raise TransportError(f"Failed to read '{path}': {err}") from err
        if children is None:
            raise NotFoundError(path)
        return DirectoryEntry(
            name=paths.basename(local), path=self._api_path(local), type='directory',
            format='json' if content else None, content=children if content else None
        )

    async def save(self, path: str, model: SaveModel) -> DirectoryEntry:
        local = self.local_path(path).strip('/')
        key = self._key(local)
        try:
            if model.type == 'directory':
                await self.client.put_object(Bucket=self.bucket, Key=key + '/')
            elif model.chunk is None:
                await self.client.put_object(Body=model.payload(), Bucket=self.bucket, Key=key)
            else:
                stager = await self._stager(key, model.chunk)
                await stager.write(model.payload(), model.chunk)
                if not model.last:
                    return DirectoryEntry(name=model.name, path=self._api_path(local), type='file', size=stager.size)
                del self._staged[key]
                try:
                    await stager.commit()
                finally:
                    await stager.close()
        except (BotoCoreError, ClientError) as err:
            raise TransportError(f"Failed to save '{path}': {err}") from err
        except ValueError as err:
            await self._discard(key)
            raise TransportError(f"Failed to save '{path}': {err}") from err
        entry = await self.get(path, content=False)
        self._emit_change('save', None, entry)
        return entry

    async def delete(self, path: str) -> None:
        entry = await self.get(path, content=False)
        local = self.local_path(path).strip('/')
        try:
            if entry.type == 'file':
                await self.client.delete_object(Bucket=self.bucket, Key=self._key(local))
            else:
                paginator = self.client.get_paginator('list_objects_v2')
                async for page in paginator.paginate(Bucket=self.bucket, Prefix=self._key(local) + '/'):
                    for item in page.get('Contents', []):
                        await self.client.delete_object(Bucket=self.bucket, Key=item['Key'])
        except (BotoCoreError, ClientError) as err:
            raise TransportError(f"Failed to delete '{path}': {err}") from err
        self._emit_change('delete', entry, None)

    async def get_download_url(self, path: str) -> str:
        key = self._key(self.local_path(path).strip('/'))
        return await self.client.generate_presigned_url(
            'get_object', Params={'Bucket': self.bucket, 'Key': key}, ExpiresIn=3600
        )

    async def _head(self, key: str) -> Optional[dict[str, Any]]:
        try:
            return await self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as err:
            if err.response.get('Error', {}).get('Code') in _MISSING_CODES:
                return None
            raise

    async def _list(self, local: str) -> Optional[list[DirectoryEntry]]:
        prefix = self._key(local) + '/' if self._key(local) else ''
        paginator = self.client.get_paginator('list_objects_v2')
        found = not local
        result = []
        async for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix, Delimiter='/'):
            for item in page.get('CommonPrefixes', []):
                found = True
                name = item['Prefix'][len(prefix):].rstrip('/')
                if name:
                    result.append(DirectoryEntry(name=name, path=self._api_path(paths.join(local, name)),
                                                 type='directory'))
            for item in page.get('Contents', []):
                found = True
                name = item['Key'][len(prefix):]
                if name:
                    result.append(DirectoryEntry(
                        name=name, path=self._api_path(paths.join(local, name)), type='file',
                        last_modified=item.get('LastModified'), size=item.get('Size')
                    ))
        return result if found else None

    async def _file_model(self, local: str, head: dict[str, Any], content: bool) -> DirectoryEntry:
        body, fmt = None, None
        if content:
            async with AsyncS3Reader(self.client, bucket=self.bucket, key=self._key(local)) as reader:
                data = await reader.read()
            try:
                body, fmt = data.decode('utf-8'), 'text'
            except UnicodeDecodeError:
                body, fmt = base64.b64encode(data).decode('ascii'), 'base64'
        return DirectoryEntry(
            name=paths.basename(local), path=self._api_path(local), type='file',
            last_modified=head.get('LastModified'), mimetype=head.get('ContentType'),
            size=head.get('ContentLength'), format=fmt, content=body
        )

    async def _stager(self, key: str, chunk: int) -> AsyncChunkStager:
        if chunk == 1:
            await self._discard(key)
            self._staged[key] = await AsyncChunkStager(self.client, bucket=self.bucket, key=key).open()
        elif key not in self._staged:
            raise ValueError(f'chunk {chunk} received before chunk 1')
        return self._staged[key]

    async def _discard(self, key: str) -> None:
        stager = self._staged.pop(key, None)
        if stager is not None:
            logger.debug("discarding staged upload '%s'", key)
            await stager.close()

    def _key(self, local: str) -> str:
        return '/'.join(part for part in (self.prefix, local) if part)

    def _api_path(self, local: str) -> str:
        return f'{self.drive_name}:{local}' if self.drive_name else local

