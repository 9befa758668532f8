"""File system helpers: device-safe renames, tree copies and scoped path joins."""

from __future__ import annotations

import errno
import os
import re
import shutil
import stat

_ERROR_PRIVILEGE_NOT_HELD = 1314
_ERROR_NOT_SAME_DEVICE = 0x11
_MAX_SYMLINK_EXPANSIONS = 255
_LONG_PATH_LIMIT = 248


class SourceNotDirectoryError(NotADirectoryError):
    """The source of a directory copy is not a directory."""


class DestinationExistsError(FileExistsError):
    """The destination of a directory copy already exists."""


def rename_with_fallback(src, dst):
    """Rename src to dst, copying and removing src when they live on different devices."""
    try:
        os.stat(src)
    except OSError as exc:
        raise OSError(f"cannot stat {src}: {exc}") from exc

    try:
        _rename(src, dst)
    except OSError as exc:
        if not _is_cross_device(exc):
            raise OSError(f"link error: cannot rename {src} to {dst}: {exc}") from exc
        _rename_by_copy(src, dst)


def _rename(src, dst):
    """Rename that refuses to replace an existing directory, on every platform."""
    try:
        dst_info = os.lstat(dst)
    except OSError:
        dst_info = None
    if dst_info is not None and stat.S_ISDIR(dst_info.st_mode):
        src_info = os.lstat(src)
        if src == dst or not os.path.samestat(src_info, dst_info):
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), dst)
    os.rename(src, dst)


def _is_cross_device(exc):
    if exc.errno == errno.EXDEV:
        return True
    return os.name == "nt" and getattr(exc, "winerror", None) == _ERROR_NOT_SAME_DEVICE


def _rename_by_copy(src, dst):
    try:
        source_is_dir = is_dir(src)
    except OSError:
        source_is_dir = False

    kind = "directory" if source_is_dir else "file"
    try:
        if source_is_dir:
            copy_dir(src, dst)
        else:
            copy_file(src, dst)
    except OSError as exc:
        raise OSError(
            f"rename fallback failed: cannot rename {src} to {dst}: copying {kind} failed: {exc}"
        ) from exc

    try:
        _remove_all(src)
    except OSError as exc:
        raise OSError(f"cannot delete {src}: {exc}") from exc


def _remove_all(path):
    try:
        info = os.lstat(path)
    except FileNotFoundError:
        return
    if stat.S_ISDIR(info.st_mode):
        shutil.rmtree(path)
    else:
        os.remove(path)


def copy_dir(src, dst):
    """Recursively copy the directory src to dst, which must not exist yet.

    Permissions are preserved and symlinks are recreated rather than followed.
    """
    src = _clean(src)
    dst = _clean(dst)

    # lstat, so a symlink pointing at a parent directory cannot cause a loop.
    info = os.lstat(src)
    if not stat.S_ISDIR(info.st_mode):
        raise SourceNotDirectoryError("source is not a directory")

    try:
        os.stat(dst)
    except FileNotFoundError:
        pass
    else:
        raise DestinationExistsError("destination already exists")

    try:
        os.makedirs(dst, mode=stat.S_IMODE(info.st_mode))
    except OSError as exc:
        raise OSError(f"cannot mkdir {dst}: {exc}") from exc

    try:
        with os.scandir(src) as listing:
            entries = sorted(listing, key=lambda entry: entry.name)
    except OSError as exc:
        raise OSError(f"cannot read directory {src}: {exc}") from exc

    for entry in entries:
        src_path = os.path.join(src, entry.name)
        dst_path = os.path.join(dst, entry.name)
        if entry.is_dir(follow_symlinks=False):
            try:
                copy_dir(src_path, dst_path)
            except OSError as exc:
                raise OSError(f"copying directory failed: {exc}") from exc
        else:
            try:
                copy_file(src_path, dst_path)
            except OSError as exc:
                raise OSError(f"copying file failed: {exc}") from exc


def copy_file(src, dst):
    """Copy the file src to dst, replacing its contents and copying its mode.

    A symlink is cloned as a symlink with the same target.
    """
    try:
        link = is_symlink(src)
    except OSError as exc:
        raise OSError(f"symlink check failed: {exc}") from exc

    if link:
        try:
            os.symlink(os.readlink(src), dst)
            return
        except OSError as exc:
            # Without the privilege to create symlinks on Windows, fall back
            # to copying the contents.
            if not (os.name == "nt" and getattr(exc, "winerror", None) == _ERROR_PRIVILEGE_NOT_HELD):
                raise

    with open(src, "rb") as fin, open(dst, "wb") as fout:
        shutil.copyfileobj(fin, fout)

    mode = os.stat(src).st_mode
    if os.name == "nt":
        dst = _fix_long_path(dst)
    os.chmod(dst, stat.S_IMODE(mode))


def is_dir(name):
    """Return True if name is a directory; raise NotADirectoryError if it is not."""
    info = os.stat(name)
    if not stat.S_ISDIR(info.st_mode):
        raise NotADirectoryError(f'"{name}" is not a directory')
    return True


def is_symlink(path):
    """Return whether path is a symbolic link."""
    return stat.S_ISLNK(os.lstat(path).st_mode)


def secure_join(root, unsafe_path):
    """Join unsafe_path to root, resolving symlinks as if root were the file system root.

    The result never lies outside root, whatever ".." elements or symlinks the
    path holds.
    """
    sep = os.sep
    resolved = ""
    expansions = 0
    remaining = unsafe_path
    while remaining:
        if expansions > _MAX_SYMLINK_EXPANSIONS:
            raise OSError(errno.ELOOP, os.strerror(errno.ELOOP), root + sep + remaining)
        component, _, remaining = remaining.partition(sep)

        scoped = _clean(sep + resolved + component)
        if scoped == sep:
            resolved = ""
            continue

        full = _clean(root + scoped)
        try:
            info = os.lstat(full)
        except (FileNotFoundError, NotADirectoryError):
            info = None

        if info is None or not stat.S_ISLNK(info.st_mode):
            resolved += component + sep
            continue

        expansions += 1
        target = os.readlink(full)
        if os.path.isabs(target):
            resolved = ""
        remaining = target + sep + remaining

    return _clean(root + _clean(sep + resolved))


def _clean(path):
    cleaned = os.path.normpath(path)
    if os.sep == "/" and cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _is_windows_separator(char):
    return char in "\\/"


def _fix_long_path(path):
    """Return the extended-length (\\\\?\\-prefixed) form of a long absolute Windows path.

    Short, relative, UNC and ".."-containing paths are returned unchanged.
    """
    if len(path) < _LONG_PATH_LIMIT:
        return path
    if path.startswith("\\\\"):
        return path
    if not _is_abs(path):
        return path

    components = re.split(r"[\\/]", path)
    if ".." in components:
        return path
    kept = [component for component in components if component not in ("", ".")]
    result = "\\\\?\\" + "\\".join(kept)
    if len(kept) == 1:
        # A drive's root directory needs a trailing separator.
        result += "\\"
    return result


def _is_abs(path):
    volume = _volume_name(path)
    if not volume:
        return False
    rest = path[len(volume):]
    return bool(rest) and _is_windows_separator(rest[0])


def _volume_name(path):
    if len(path) < 2:
        return ""
    first = path[0]
    if path[1] == ":" and first.isascii() and first.isalnum():
        return path[:2]

    length = len(path)
    if (
        length >= 5
        and _is_windows_separator(path[0])
        and _is_windows_separator(path[1])
        and not _is_windows_separator(path[2])
        and path[2] != "."
    ):
        for index in range(3, length - 1):
            if not _is_windows_separator(path[index]):
                continue
            index += 1
            if _is_windows_separator(path[index]) or path[index] == ".":
                break
            end = index
            while end < length and not _is_windows_separator(path[end]):
                end += 1
            return path[:end]
    return ""