"""
Per-artwork layout migration.

Moves (or copies) one artwork's files into <artist user id>/<external id>/
under the content root and rewrites its image paths in a single transaction.
Any failure before the metadata commit undoes the file transfers, so an
artwork is either fully migrated or left exactly as it was.
"""
import logging
import os
import posixpath
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from ..database import AsyncSessionLocal
from ..models import Artwork, Image
from .content_store import ContentStore
from .types import (
    CopyVerificationError,
    DEFAULT_JUNK_ENTRIES,
    MigrationResult,
    MigrationStatus,
    SafetyOptions,
    TransferMode,
)

logger = logging.getLogger(__name__)


def normalize_rel_path(path: str) -> str:
    """Forward slashes, no leading slash."""
    return path.replace("\\", "/").lstrip("/")


def is_under(rel_path: str, rel_dir: str) -> bool:
    return rel_path == rel_dir or rel_path.startswith(rel_dir + "/")


def belongs_to(filename: str, external_id: str) -> bool:
    """Whether a file in a shared directory belongs to the artwork.

    The external id must be followed by a separator (a1_p0.jpg, a1.json), so
    artwork a1 never claims a10_p0.jpg.
    """
    if not filename.startswith(external_id):
        return False
    rest = filename[len(external_id):]
    return rest == "" or not rest[0].isalnum()


def to_abs(content_root: Path, rel_path: str) -> Path:
    return content_root.joinpath(*normalize_rel_path(rel_path).split("/"))


async def load_artwork(session_factory, artwork_id: int) -> Optional[Artwork]:
    async with session_factory() as db:
        result = await db.execute(
            select(Artwork)
            .options(selectinload(Artwork.images), selectinload(Artwork.artist))
            .where(Artwork.id == artwork_id)
        )
        return result.scalar_one_or_none()


async def update_image_paths(session_factory, images: Iterable[Image], target_rel_dir: str) -> None:
    """Point every image at target_rel_dir. All rows or none."""
    async with session_factory() as db:
        async with db.begin():
            for image in images:
                file_name = posixpath.basename(normalize_rel_path(image.path))
                new_path = "/" + posixpath.join(target_rel_dir, file_name)
                await db.execute(
                    update(Image).where(Image.id == image.id).values(path=new_path)
                )


async def migrate_artwork(
    artwork_id: int,
    content_root,
    safety: Optional[SafetyOptions] = None,
    *,
    session_factory=None,
    store: Optional[ContentStore] = None,
    junk_entries: Optional[Iterable[str]] = None
) -> MigrationResult:
    """Migrate a single artwork.

    Args:
        artwork_id: Artwork to migrate
        content_root: Directory all image paths are relative to
        safety: Transfer mode, copy verification and source cleanup options
        session_factory: Async session factory (defaults to the app database)
        store: Filesystem operations (defaults to the real filesystem)
        junk_entries: OS metadata entries removed before the empty-directory check

    Returns:
        MigrationResult with status and the log lines explaining it
    """
    safety = safety or SafetyOptions()
    session_factory = session_factory or AsyncSessionLocal
    store = store or ContentStore()
    junk = set(DEFAULT_JUNK_ENTRIES if junk_entries is None else junk_entries)
    content_root = Path(content_root)

    logs: list[str] = []

    def log(msg: str, level: int = logging.INFO):
        logs.append(msg)
        logger.log(level, msg)

    def result(status: MigrationStatus) -> MigrationResult:
        return MigrationResult(artwork_id=artwork_id, status=status, logs=logs)

    try:
        artwork = await load_artwork(session_factory, artwork_id)
    except Exception as e:
        log(f"[Migrate] ID:{artwork_id} Failed: {e}", logging.ERROR)
        return result(MigrationStatus.FAILED)
    if artwork is None:
        log(f"Artwork {artwork_id} not found", logging.WARNING)
        return result(MigrationStatus.FAILED)

    if not artwork.artist or not artwork.artist.user_id or not artwork.external_id or not artwork.images:
        log("Incomplete data (artist, external id or images missing)", logging.WARNING)
        return result(MigrationStatus.FAILED)

    external_id = artwork.external_id
    images = list(artwork.images)
    target_rel_dir = posixpath.join(artwork.artist.user_id, external_id)
    target_abs_dir = to_abs(content_root, target_rel_dir)

    # The first image stands for the artwork's current location
    current_rel_path = normalize_rel_path(images[0].path)
    source_abs_dir = to_abs(content_root, current_rel_path).parent

    if is_under(current_rel_path, target_rel_dir):
        log(f"Path already canonical: {images[0].path}")
        return result(MigrationStatus.SKIPPED)

    expected_files = [posixpath.basename(normalize_rel_path(img.path)) for img in images]

    moves: list[tuple[Path, Path]] = []
    copies: list[tuple[Path, Path]] = []
    committed = False

    async def rollback_moves():
        for src, dest in reversed(moves):
            try:
                await store.rename(dest, src)
            except OSError as e:
                log(f"[Migrate] Rollback failed: {dest} -> {src} ({e})", logging.ERROR)
        moves.clear()

    async def rollback_copies():
        for _, dest in reversed(copies):
            try:
                await store.unlink(dest)
            except OSError as e:
                log(f"[Migrate] Failed to remove copy: {dest} ({e})", logging.ERROR)
        copies.clear()

    try:
        if not await store.exists(source_abs_dir):
            # Files may have been moved by an earlier, interrupted run
            if await store.exists(target_abs_dir):
                target_files = set(await store.list_dir(target_abs_dir))
                if target_files:
                    if all(name in target_files for name in expected_files):
                        await update_image_paths(session_factory, images, target_rel_dir)
                        log(f"Repaired paths to {target_rel_dir}")
                        return result(MigrationStatus.SUCCESS)
                    log("Source directory not found, target directory already has files", logging.WARNING)
                    return result(MigrationStatus.FAILED)
            log(f"Source directory not found: {source_abs_dir}", logging.WARNING)
            return result(MigrationStatus.FAILED)

        source_files = await store.list_dir(source_abs_dir)
        # Only plain files; the target dir itself sits here in the flat <owner>/ layout
        related_files = sorted([
            f for f in source_files
            if belongs_to(f, external_id) and not await store.is_dir(source_abs_dir / f)
        ])

        if not related_files:
            log("No related files found in source directory", logging.WARNING)
            return result(MigrationStatus.FAILED)

        missing = [name for name in expected_files if name not in related_files]
        if missing:
            log(f"Files missing from source directory: {', '.join(missing[:3])}", logging.WARNING)
            return result(MigrationStatus.FAILED)

        await store.make_dirs(target_abs_dir)

        for file_name in related_files:
            src = source_abs_dir / file_name
            dest = target_abs_dir / file_name
            if src == dest:
                continue
            if safety.transfer_mode == TransferMode.COPY:
                try:
                    await store.copy_exclusive(src, dest)
                except FileExistsError:
                    # Copied by an earlier run
                    continue
                copies.append((src, dest))
            else:
                await store.rename(src, dest)
                moves.append((src, dest))

        if safety.transfer_mode == TransferMode.COPY and safety.verify_after_copy:
            for file_name in related_files:
                src = source_abs_dir / file_name
                dest = target_abs_dir / file_name
                if src == dest:
                    continue
                if await store.size(src) != await store.size(dest):
                    raise CopyVerificationError(f"Copy verification failed: {file_name}")

        try:
            await update_image_paths(session_factory, images, target_rel_dir)
        except Exception as e:
            await rollback_moves()
            log(f"[Migrate] Database update failed: {e}", logging.ERROR)
            raise
        committed = True

        if safety.cleanup_source:
            await _cleanup_source(
                store, content_root, source_abs_dir, related_files,
                copy_mode=safety.transfer_mode == TransferMode.COPY,
                junk=junk, log=log
            )

        log(f"Migrated to {target_rel_dir}")
        return result(MigrationStatus.SUCCESS)

    except Exception as e:
        if not committed:
            if moves:
                await rollback_moves()
            if copies:
                await rollback_copies()
        log(f"[Migrate] ID:{artwork_id} Failed: {e}", logging.ERROR)
        return result(MigrationStatus.FAILED)


async def _cleanup_source(store, content_root: Path, source_abs_dir: Path, related_files, *, copy_mode, junk, log):
    if copy_mode:
        for file_name in related_files:
            try:
                await store.unlink(source_abs_dir / file_name)
            except OSError as e:
                log(f"[Migrate] Failed to remove source file: {file_name} ({e})", logging.WARNING)

    if os.path.normpath(source_abs_dir) == os.path.normpath(content_root):
        log(f"[Migrate] Source directory is the content root, not removing: {source_abs_dir}")
        return

    try:
        for entry in await store.list_dir(source_abs_dir):
            if entry in junk:
                await store.remove_entry(source_abs_dir / entry)

        remaining = await store.list_dir(source_abs_dir)
        if not remaining:
            await store.remove_dir(source_abs_dir)
            log(f"[Migrate] Removed empty directory: {source_abs_dir}")
        else:
            log(
                f"[Migrate] Source directory not empty, keeping it: {source_abs_dir} "
                f"({len(remaining)} left: {', '.join(sorted(remaining)[:3])}...)"
            )
    except OSError as e:
        log(f"[Migrate] Could not remove source directory {source_abs_dir}: {e}", logging.WARNING)
