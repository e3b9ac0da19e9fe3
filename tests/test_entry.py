import base64

from fsbrowser.errors import BrowserError, ContentsError, NotFoundError, SizeLimitError, UploadError
from fsbrowser.utils.entry import DirectoryEntry, SaveModel


def test_payload():
    assert SaveModel(type='file', name='a', format='text', content='hé').payload() == 'hé'.encode('utf-8')
    encoded = base64.b64encode(b'\x00\xff').decode('ascii')
    assert SaveModel(type='file', name='a', format='base64', content=encoded).payload() == b'\x00\xff'
    assert SaveModel(type='directory', name='a').payload() == b''


def test_children():
    child = DirectoryEntry(name='x', path='a/x', type='file')
    assert DirectoryEntry(name='a', path='a', type='directory', content=[child]).children == (child,)
    assert DirectoryEntry(name='a', path='a', type='directory').children == ()
    assert DirectoryEntry(name='x', path='a/x', type='file', content='text').children == ()


def test_error_hierarchy():
    error = NotFoundError('a/missing')
    assert isinstance(error, ContentsError)
    assert isinstance(error, BrowserError)
    assert error.path == 'a/missing'
    assert 'a/missing' in str(error)
    assert issubclass(SizeLimitError, UploadError)
