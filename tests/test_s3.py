import base64
import datetime

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from fsbrowser.asyncio.s3 import AsyncS3Contents
from fsbrowser.asyncio.sessions import InMemorySessionRegistry
from fsbrowser.config import BrowserConfig
from fsbrowser.errors import NotFoundError, TransportError
from fsbrowser.model import BrowserModel
from fsbrowser.utils.entry import SaveModel


class FakeBody:

    def __init__(self, data: bytes):
        self.data = data

    async def read(self, size=None):
        data, self.data = (self.data, b'') if size is None else (self.data[:size], self.data[size:])
        return data

    def close(self):
        pass


class FakePaginator:

    def __init__(self, client):
        self.client = client

    async def paginate(self, Bucket, Prefix='', Delimiter=None):
        contents, prefixes = [], []
        for key in sorted(self.client.objects):
            if not key.startswith(Prefix):
                continue
            rest = key[len(Prefix):]
            if Delimiter and Delimiter in rest:
                common = Prefix + rest.split(Delimiter, 1)[0] + Delimiter
                if {'Prefix': common} not in prefixes:
                    prefixes.append({'Prefix': common})
            else:
                contents.append({'Key': key, 'Size': len(self.client.objects[key]), 'LastModified': self.client.now})
        yield {'Contents': contents, 'CommonPrefixes': prefixes}


class FakeS3Client:

    def __init__(self, objects=None):
        self.objects = dict(objects or {})
        self.now = datetime.datetime(2024, 1, 1)
        self.puts = []
        self.denied = False
        self.unreachable = False

    async def head_object(self, Bucket, Key):
        if self.unreachable:
            raise EndpointConnectionError(endpoint_url='https://s3.local')
        if self.denied:
            raise ClientError({'Error': {'Code': '403', 'Message': 'Forbidden'}}, 'HeadObject')
        if Key not in self.objects or Key.endswith('/'):
            raise ClientError({'Error': {'Code': '404', 'Message': 'Not Found'}}, 'HeadObject')
        return {'ContentLength': len(self.objects[Key]), 'ContentType': 'text/plain', 'LastModified': self.now}

    async def get_object(self, Bucket, Key):
        return {'Body': FakeBody(self.objects[Key])}

    async def put_object(self, Bucket, Key, Body=b''):
        if self.unreachable:
            raise EndpointConnectionError(endpoint_url='https://s3.local')
        self.puts.append(Key)
        self.objects[Key] = Body

    async def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)

    def get_paginator(self, name):
        return FakePaginator(self)

    async def generate_presigned_url(self, method, Params, ExpiresIn):
        return f"https://s3.local/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


@pytest.fixture
def s3():
    contents = AsyncS3Contents('https://s3.local', 'key', 'secret', 'bucket', prefix='root')
    contents.client = FakeS3Client({
        'root/a/x.ipynb': b'{}',
        'root/a/y.txt': b'hello',
        'root/a/b/c.txt': b'c',
        'root/top.txt': b'top',
        'other/z.txt': b'z',
    })
    return contents


def chunk_model(data: bytes, chunk: int, last: bool) -> SaveModel:
    return SaveModel(type='file', name='big.bin', format='base64',
                     content=base64.b64encode(data).decode('ascii'), chunk=chunk, last=last)


@pytest.mark.asyncio
async def test_get_root(s3):
    entry = await s3.get('')
    assert entry.type == 'directory'
    assert sorted((child.name, child.type) for child in entry.children) == [('a', 'directory'), ('top.txt', 'file')]


@pytest.mark.asyncio
async def test_get_directory(s3):
    entry = await s3.get('a')
    assert entry.path == 'a'
    assert sorted(child.path for child in entry.children) == ['a/b', 'a/x.ipynb', 'a/y.txt']


@pytest.mark.asyncio
async def test_get_file(s3):
    entry = await s3.get('a/y.txt')
    assert (entry.type, entry.format, entry.content, entry.size) == ('file', 'text', 'hello', 5)
    head = await s3.get('a/y.txt', content=False)
    assert head.content is None


@pytest.mark.asyncio
async def test_get_missing(s3):
    with pytest.raises(NotFoundError):
        await s3.get('a/missing')


@pytest.mark.asyncio
async def test_client_error_is_transport_error(s3):
    s3.client.denied = True
    with pytest.raises(TransportError):
        await s3.get('a/y.txt')


@pytest.mark.asyncio
async def test_empty_directory_marker(s3):
    await s3.save('empty', SaveModel(type='directory', name='empty'))
    entry = await s3.get('empty')
    assert entry.type == 'directory'
    assert entry.children == ()


@pytest.mark.asyncio
async def test_save_chunks_commits_on_last(s3):
    changes = []
    s3.file_changed.connect(changes.append)
    await s3.save('a/big.bin', chunk_model(b'one-', 1, False))
    await s3.save('a/big.bin', chunk_model(b'two-', 2, False))
    assert 'root/a/big.bin' not in s3.client.objects
    assert changes == []
    entry = await s3.save('a/big.bin', chunk_model(b'three', 3, True))
    assert s3.client.objects['root/a/big.bin'] == b'one-two-three'
    assert entry.size == 13
    assert len(changes) == 1


@pytest.mark.asyncio
async def test_chunk_out_of_order(s3):
    with pytest.raises(TransportError):
        await s3.save('a/big.bin', chunk_model(b'two-', 2, False))
    await s3.save('a/big.bin', chunk_model(b'one-', 1, False))
    with pytest.raises(TransportError):
        await s3.save('a/big.bin', chunk_model(b'three', 3, True))
    assert 'root/a/big.bin' not in s3.client.objects


@pytest.mark.asyncio
async def test_delete_directory(s3):
    changes = []
    s3.file_changed.connect(changes.append)
    await s3.delete('a')
    assert sorted(s3.client.objects) == ['other/z.txt', 'root/top.txt']
    assert changes[0].name == 'delete'
    assert changes[0].old_value.path == 'a'


@pytest.mark.asyncio
async def test_download_url(s3):
    assert await s3.get_download_url('a/y.txt') == 'https://s3.local/bucket/root/a/y.txt?expires=3600'


def test_from_yaml(tmp_path):
    config = tmp_path / 's3.yaml'
    config.write_text(
        'endpoint_url: https://s3.local\n'
        'aws_access_key_id: key\n'
        'aws_secret_access_key: secret\n'
        'bucket: bucket\n'
        'drive_name: S3\n'
    )
    contents = AsyncS3Contents.from_yaml(str(config))
    assert (contents.bucket, contents.drive_name, contents.prefix) == ('bucket', 'S3', '')


@pytest.mark.asyncio
async def test_unreachable_endpoint_is_transport_error(s3):
    s3.client.unreachable = True
    with pytest.raises(TransportError):
        await s3.get('a/y.txt')
    with pytest.raises(TransportError):
        await s3.save('a/new.txt', SaveModel(type='file', name='new.txt', format='text', content='new'))


@pytest.mark.asyncio
async def test_unreachable_endpoint_reported_by_model(s3):
    model = BrowserModel(s3, InMemorySessionRegistry(), config=BrowserConfig(auto=False))
    failures = []
    model.connection_failure.connect(failures.append)
    s3.client.unreachable = True
    await model.cd('a')
    assert model.path == ''
    assert len(failures) == 1
    assert isinstance(failures[0], TransportError)
    model.dispose()
