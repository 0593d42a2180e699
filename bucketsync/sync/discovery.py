"""Device identity, staging bootstrap and remote store discovery.

The sync folder holds one subfolder per device, each with that device's
exported store file:

    <sync_dir>/<device_id>/<store_filename>
"""

import logging
from pathlib import Path

from ..config import SyncConfig
from ..errors import FilesystemError
from ..stores import FileStore, ServerStore

logger = logging.getLogger(__name__)


def get_device_id(server: ServerStore) -> str:
    """Get this device's id from the live store.

    Raises:
        ConnectivityError: If the server cannot be reached.
    """
    return server.get_info()["device_id"]


def _mkdir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Could not create directory {path}: {e}") from e


def setup_local_remote(
    sync_dir: Path,
    device_id: str,
    config: SyncConfig | None = None,
) -> FileStore:
    """Ensure this device's staging store exists in the sync folder.

    Safe to call on every pass: existing folders and store files are reused.

    Args:
        sync_dir: Root of the shared sync folder.
        device_id: This device's id.
        config: Sync settings (store file name).

    Returns:
        The connected staging FileStore.
    """
    config = config or SyncConfig()

    _mkdir(sync_dir)
    remote_dir = sync_dir / device_id
    _mkdir(remote_dir)

    store = FileStore(remote_dir / config.store_filename)
    store.connect()
    logger.info(f"Set up remote for local device at {store.db_path}")
    return store


def find_remotes(sync_dir: Path, extension: str = ".db") -> list[Path]:
    """Find every store file in the sync folder's device subfolders.

    Args:
        sync_dir: Root of the shared sync folder.
        extension: File extension of store files (e.g. ".db").

    Returns:
        Sorted list of store file paths.

    Raises:
        FilesystemError: If the sync folder or a device subfolder cannot be listed.
    """
    try:
        device_dirs = [p for p in sync_dir.iterdir() if p.is_dir()]
        dbs = [
            path
            for device_dir in device_dirs
            for path in device_dir.iterdir()
            if path.is_file() and path.suffix == extension
        ]
    except OSError as e:
        raise FilesystemError(f"Could not list sync directory {sync_dir}: {e}") from e

    return sorted(dbs)


def find_remotes_nonlocal(
    sync_dir: Path,
    device_id: str,
    extension: str = ".db",
) -> list[Path]:
    """Find store files of other devices.

    Any path containing this device's id is treated as our own.
    """
    return [
        path
        for path in find_remotes(sync_dir, extension)
        if device_id not in str(path)
    ]


def remote_device_id(path: Path) -> str:
    """Device id of a remote store, taken from its subfolder name."""
    return path.parent.name
