import posixpath


def split_drive(path: str) -> tuple[str, str]:
    """Split a leading ``drive:`` prefix off a path."""
    if ':' in path.split('/', 1)[0]:
        drive, _, local = path.partition(':')
        return drive, local.lstrip('/')
    return '', path


def resolve(root: str, path: str) -> str:
    """Resolve ``path`` against ``root``, never ascending above the root."""
    if path.startswith('/'):
        joined = path
    else:
        joined = posixpath.join('/', root, path)
    return posixpath.normpath(joined).lstrip('/')


def dirname(path: str) -> str:
    return posixpath.dirname(path.rstrip('/'))


def basename(path: str) -> str:
    return posixpath.basename(path.rstrip('/'))


def join(directory: str, name: str) -> str:
    return f'{directory}/{name}' if directory else name
