import argparse
import asyncio
import logging
import os.path
from typing import Any, Optional

import asyncio_pool
import yaml
from tqdm.auto import tqdm

from fsbrowser.asyncio.connector import ContentsConnector
from fsbrowser.asyncio.local import AsyncLocalContents
from fsbrowser.asyncio.s3 import AsyncS3Contents
from fsbrowser.asyncio.sessions import InMemorySessionRegistry
from fsbrowser.asyncio.state import YamlStateStore
from fsbrowser.config import BrowserConfig
from fsbrowser.errors import BrowserError
from fsbrowser.model import BrowserModel
from fsbrowser.upload import FileSource, UploadSource
from fsbrowser.utils.entry import ChangedArgs, DirectoryEntry

logger = logging.getLogger(__name__)


class Prompter:
    """Terminal confirmations.

    Attributes
    ----------
    assume_yes : bool, default=False
        Answer yes without asking.
    """

    def __init__(self, assume_yes: bool = False):
        self.assume_yes = assume_yes

    async def confirm(self, question: str) -> bool:
        if self.assume_yes:
            return True
        answer = await asyncio.get_running_loop().run_in_executor(None, input, f'{question} [y/N] ')
        return answer.strip().lower() in ('y', 'yes')

    async def confirm_large(self, source: UploadSource) -> bool:
        size = round(source.size / (1024 * 1024))
        return await self.confirm(f"The file size of '{source.name}' is {size} MB. Do you still want to upload it?")

    async def confirm_overwrite(self, name: str) -> bool:
        return await self.confirm(f"'{name}' already exists. Overwrite?")


class CLI:
    """File browser commands.

    Attributes
    ----------
    model : BrowserModel
        File browser model.
    """

    def __init__(self, model: BrowserModel):
        self.model = model
        self._sizes: dict[str, int] = {}
        self._sent: dict[str, int] = {}
        self._bytes_pbar: Optional[tqdm] = None
        model.upload_changed.connect(self._on_upload_changed)

    async def ls(self, path: str = '.') -> list[DirectoryEntry]:
        """List directory.

        Parameters
        ----------
        path : str, default='.'
            Directory path, relative to the current directory.

        Returns
        -------
        list[DirectoryEntry]
            Directory entries.
        """
        await self.model.cd(path)
        return list(self.model.items())

    async def upload(
        self,
        local_paths: list[str],
        path: str = '.',
        num_workers: int = 4
    ) -> list[str]:
        """Upload local files into a directory.

        Parameters
        ----------
        local_paths : list[str]
            Local file paths.
        path : str, default='.'
            Destination directory.
        num_workers : int, default=4
            Max concurrent uploads.

        Returns
        -------
        list[str]
            Error files.
        """
        await self.model.cd(path)
        sources = [await FileSource.open(local_path) for local_path in local_paths]
        files_pbar = tqdm(total=len(sources), desc='Files')
        self._bytes_pbar = tqdm(total=sum(source.size for source in sources), desc='Bytes')
        futures = []
        async with asyncio_pool.AioPool(size=num_workers) as pool:
            for source in sources:
                futures.append(await pool.spawn(self._upload_file(source, files_pbar)))
        self._bytes_pbar = None
        return [source.path for source, future in zip(sources, futures) if not future.result()]

    async def _upload_file(self, source: FileSource, files_pbar: tqdm) -> bool:
        self._sizes[source.name] = source.size
        try:
            await self.model.upload(source)
        except BrowserError as err:
            logger.error("failed to upload '%s': %s", source.path, err)
            return False
        finally:
            files_pbar.update(1)
        chunked = self.model.contents.supports_chunked and source.size > self.model.config.chunk_size
        if self._bytes_pbar is not None and not chunked:
            self._bytes_pbar.update(source.size)
        return True

    def _on_upload_changed(self, change: ChangedArgs) -> None:
        task = change.new_value or change.old_value
        name = os.path.basename(task.path)
        size = self._sizes.get(name, 0)
        if change.name == 'start':
            self._sent[task.path] = 0
            return
        if change.name == 'update':
            sent = int(change.new_value.progress * size)
        elif change.name == 'finish':
            sent = size
        else:
            self._sent.pop(task.path, None)
            return
        delta = sent - self._sent.get(task.path, 0)
        self._sent[task.path] = sent
        if self._bytes_pbar is not None:
            self._bytes_pbar.update(delta)


def build_contents(config: dict[str, Any]) -> ContentsConnector:
    """Create contents connector from the ``contents`` configuration section.

    Parameters
    ----------
    config : dict[str, Any]
        Section with a ``type`` of ``'local'`` or ``'s3'`` and connector arguments.

    Returns
    -------
    ContentsConnector
        Contents connector.
    """
    config = dict(config)
    kind = config.pop('type', 'local')
    if kind == 'local':
        return AsyncLocalContents(**config)
    elif kind == 's3':
        return AsyncS3Contents(**config)
    raise ValueError(f"invalid contents type: '{kind}'")


def print_entries(entries: list[DirectoryEntry]) -> None:
    for entry in entries:
        name = entry.name + '/' if entry.type == 'directory' else entry.name
        size = '' if entry.size is None else str(entry.size)
        modified = '' if entry.last_modified is None else entry.last_modified.strftime('%Y-%m-%d %H:%M')
        print(f'{size:>12}  {modified:16}  {name}')


async def main() -> None:
    parser = argparse.ArgumentParser(
        prog='fsbrowser',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='to see action help message:\n  fsbrowser ls -h\n  fsbrowser upload -h'
    )
    parser.add_argument('--config_path', required=True, type=str, help='path to configuration file')
    parser.add_argument('--verbose', action='store_true', help='debug logging')
    subparsers = parser.add_subparsers(dest='action')
    ls_parser = subparsers.add_parser('ls', help='list directory')
    upload_parser = subparsers.add_parser('upload', help='upload files')
    subparsers.required = True
    ls_parser.add_argument('path', nargs='?', default='.', type=str, help='directory path')
    upload_parser.add_argument('local_paths', nargs='+', type=str, help='local files')
    upload_parser.add_argument('--path', default='.', type=str, help='destination directory')
    upload_parser.add_argument('--workers', type=int, default=4, help='max concurrent uploads')
    upload_parser.add_argument('--yes', action='store_true', help='confirm large files and overwrites')
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    with open(args.config_path) as f:
        config = yaml.safe_load(f) or {}
    contents = build_contents(config.get('contents') or {})
    browser_config = BrowserConfig.from_dict({**(config.get('browser') or {}), 'auto': False})
    state = YamlStateStore(config['state_path']) if config.get('state_path') else None

    async with contents.connect():
        prompter = Prompter(assume_yes=getattr(args, 'yes', False))
        model = BrowserModel(
            contents, InMemorySessionRegistry(), state=state, config=browser_config,
            confirm_large=prompter.confirm_large, confirm_overwrite=prompter.confirm_overwrite
        )
        model.connection_failure.connect(lambda error: print(f'Error: {error}'))
        cli = CLI(model)
        async with model.connect():
            await model.restore('cli')
            if args.action == 'ls':
                print_entries(await cli.ls(args.path))
            elif args.action == 'upload':
                error_files = await cli.upload(args.local_paths, path=args.path, num_workers=args.workers)
                print(f'Error files: {error_files}')
            else:
                raise ValueError(f"invalid action: '{args.action}'")


def run() -> None:
    asyncio.run(main())


if __name__ == '__main__':
    run()
