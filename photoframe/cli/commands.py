"""Command handlers for the photoframe CLI.

Each handler takes the parsed arguments and loaded settings and returns a
process exit code.
"""

import argparse
import signal
import threading
import time
from types import FrameType
from typing import Optional

from PIL import Image, UnidentifiedImageError

from ..config.settings import PhotoFrameSettings
from ..display.composer import FrameComposer
from ..display.imaging import pack_image, unpack_frame
from ..exceptions import PhotoFrameError
from ..rotation import RotationSelector
from ..service import FrameService
from ..store.database import AlbumRepository, ConnectionPool, open_connection_pool
from ..store.models import Orientation
from ..telemetry import TelemetryRecorder
from ..utils.logging import get_logger
from ..web.server import FrameWebServer

logger = get_logger(__name__)


def _open_pool(settings: PhotoFrameSettings, pool_size: Optional[int] = None) -> ConnectionPool:
    return open_connection_pool(
        settings.database_path,
        pool_size or settings.store.pool_size,
        settings.store.busy_timeout,
    )


def run_serve(args: argparse.Namespace, settings: PhotoFrameSettings) -> int:
    """Serve frames until interrupted."""
    try:
        if args.host:
            settings.host = args.host
        if args.port is not None:
            settings.port = args.port
        if args.workers is not None:
            settings.workers = args.workers
        settings.validate_server_config()
    except ValueError as e:
        logger.error(str(e))
        return 1

    pool = _open_pool(settings)
    service = FrameService(
        pool,
        selector=RotationSelector(),
        composer=FrameComposer(settings.seam_policy),
        recorder=TelemetryRecorder(),
    )
    server = FrameWebServer(settings, service)

    shutdown = threading.Event()

    def _signal_handler(signum: int, _frame: Optional[FrameType]) -> None:
        logger.info(f"Received signal {signum}, shutting down")
        shutdown.set()

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    try:
        server.start()
        while not shutdown.wait(1.0):
            pass
    finally:
        server.stop()
        pool.close()

    return 0


def run_init_db(_args: argparse.Namespace, settings: PhotoFrameSettings) -> int:
    """Create the database schema."""
    pool = _open_pool(settings, pool_size=1)
    pool.close()
    print(f"Database ready: {settings.database_path}")
    return 0


def run_album(args: argparse.Namespace, settings: PhotoFrameSettings) -> int:
    """Dispatch `album` sub-actions."""
    handlers = {
        "add": _album_add,
        "remove": _album_remove,
        "list": _album_list,
    }
    pool = _open_pool(settings, pool_size=1)
    try:
        with pool.lease() as conn:
            return handlers[args.album_command](args, AlbumRepository(conn))
    finally:
        pool.close()


def _album_add(args: argparse.Namespace, album: AlbumRepository) -> int:
    try:
        with Image.open(args.image) as image:
            orientation = None if args.orientation == "auto" else Orientation(args.orientation)
            pixels, orientation = pack_image(image, orientation, dither=not args.no_dither)
    except (OSError, UnidentifiedImageError) as e:
        logger.error(f"Could not read picture {args.image}: {e}")
        return 1

    item_id = args.item_id or args.image.stem
    album.add_item(item_id, pixels, orientation, product_url=args.url)
    print(f"Added {item_id} ({orientation.value}, {len(pixels)} bytes)")
    return 0


def _album_remove(args: argparse.Namespace, album: AlbumRepository) -> int:
    if not album.remove_item(args.item_id):
        logger.error(f"No album item named {args.item_id}")
        return 1
    print(f"Removed {args.item_id}")
    return 0


def _album_list(_args: argparse.Namespace, album: AlbumRepository) -> int:
    entries = album.list_items()
    if not entries:
        print("Album is empty")
        return 0

    for entry in entries:
        shown = (
            time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(entry.last_shown))
            if entry.last_shown
            else "never"
        )
        print(f"{entry.id:<32} {entry.orientation.value:<9} {shown:<19} {entry.product_url}")
    print(f"{len(entries)} item(s)")
    return 0


def run_preview(args: argparse.Namespace, settings: PhotoFrameSettings) -> int:
    """Render a composed frame to a PNG without advancing the rotation."""
    composer = FrameComposer(settings.seam_policy)
    pool = _open_pool(settings, pool_size=1)
    try:
        with pool.lease() as conn:
            if args.items:
                album = AlbumRepository(conn)
                items = []
                for item_id in args.items:
                    item = album.get_item(item_id)
                    if item is None:
                        logger.error(f"No album item named {item_id}")
                        return 1
                    items.append(item)
                frame = composer.compose_items(items)
            else:
                selection = RotationSelector().preview(conn, int(time.time()))
                frame = composer.compose(selection)
    except PhotoFrameError as e:
        logger.error(f"Could not compose preview: {e}")
        return 1
    finally:
        pool.close()

    unpack_frame(frame).save(args.output, format="PNG")
    print(f"Wrote {args.output}")
    return 0


COMMANDS = {
    "serve": run_serve,
    "init-db": run_init_db,
    "album": run_album,
    "preview": run_preview,
}
