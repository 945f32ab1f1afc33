"""Filesystem helpers for materialising bundle trees.

Version directories are built in two passes: the *shape* of the extracted
bundle (directories only) is captured as a nested mapping and recreated under
the target, then every regular file is hard-linked into place. Paths listed
as ignored (manifest template and data files) are skipped by both passes.
"""
from __future__ import annotations

import os
from collections.abc import Iterable, Iterator
from pathlib import Path, PurePosixPath

TreeTemplate = dict[str, "TreeTemplate"]


def _normalise_ignored(ignored: Iterable[str]) -> frozenset[str]:
    return frozenset(PurePosixPath(item).as_posix() for item in ignored)


def _is_ignored(relative: str, ignored: frozenset[str]) -> bool:
    if relative in ignored:
        return True
    return any(relative.startswith(f"{prefix}/") for prefix in ignored)


def _walk(root: Path, relative: PurePosixPath | None = None) -> Iterator[tuple[str, os.DirEntry[str]]]:
    directory = root if relative is None else root / relative
    with os.scandir(directory) as entries:
        for entry in sorted(entries, key=lambda item: item.name):
            child = PurePosixPath(entry.name) if relative is None else relative / entry.name
            yield child.as_posix(), entry
            if entry.is_dir(follow_symlinks=False):
                yield from _walk(root, child)


def tree_to_template(root: Path, ignored: Iterable[str] = ()) -> TreeTemplate:
    """Return the directory shape below *root* as a nested mapping."""
    skip = _normalise_ignored(ignored)
    template: TreeTemplate = {}
    for relative, entry in _walk(root):
        if not entry.is_dir(follow_symlinks=False) or _is_ignored(relative, skip):
            continue
        node = template
        for part in PurePosixPath(relative).parts:
            node = node.setdefault(part, {})
    return template


def template_to_tree(target: Path, template: TreeTemplate, *, ignore_existing: bool = True) -> None:
    """Recreate the directory shape described by *template* under *target*."""
    for name, children in template.items():
        directory = target / name
        try:
            directory.mkdir()
        except FileExistsError:
            if not ignore_existing or not directory.is_dir():
                raise
        template_to_tree(directory, children, ignore_existing=ignore_existing)


def hard_link_files(source: Path, target: Path, ignored: Iterable[str] = ()) -> int:
    """Hard-link every non-directory entry of *source* into *target*.

    Returns the number of links created. The directory shape must already
    exist under *target*.
    """
    skip = _normalise_ignored(ignored)
    count = 0
    for relative, entry in _walk(source):
        if entry.is_dir(follow_symlinks=False) or _is_ignored(relative, skip):
            continue
        os.link(entry.path, target / relative, follow_symlinks=False)
        count += 1
    return count


__all__ = ["TreeTemplate", "hard_link_files", "template_to_tree", "tree_to_template"]
