"""Discovery of work items in a directory."""

import logging
from pathlib import Path
from typing import Iterable

from maketalk.errors import FatalPrecondition, NamingConventionError
from maketalk.schemas.work import WorkItem, parse_section_id

logger = logging.getLogger(__name__)


def list_sources(directory: Path, extensions: Iterable[str]) -> list[Path]:
    """Files in `directory` whose suffix is one of `extensions`, sorted by name."""
    wanted = {ext.lower() for ext in extensions}
    if not directory.is_dir():
        return []
    return sorted(
        (p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in wanted),
        key=lambda p: p.name,
    )


def check_naming(paths: Iterable[Path]) -> list[WorkItem]:
    """
    Turn paths into work items, enforcing the NN-name prefix.

    Every offending file is collected before raising so the operator can
    rename them all in one go.

    Raises:
        NamingConventionError: If any file lacks the two-digit prefix
    """
    items = []
    unnumbered = []
    for path in paths:
        if parse_section_id(path.name) is None:
            unnumbered.append(path.name)
        else:
            items.append(WorkItem.from_path(path))

    if unnumbered:
        raise NamingConventionError(unnumbered)
    return items


def find_sources(project_dir: Path, extensions: Iterable[str]) -> list[WorkItem]:
    """
    Raw inputs of a fresh run, validated before any output is touched.

    Raises:
        FatalPrecondition: If no raw input exists
        NamingConventionError: If any input lacks the NN- prefix
    """
    extensions = list(extensions)
    sources = list_sources(project_dir, extensions)
    if not sources:
        raise FatalPrecondition(f"No {'/'.join(extensions)} files found in {project_dir}")
    return check_naming(sources)


def discover(directory: Path, extensions: Iterable[str]) -> list[WorkItem]:
    """Scan `directory` and return named work items in filename order."""
    items = check_naming(list_sources(directory, extensions))
    logger.debug(f"Discovered {len(items)} item(s) in {directory}")
    return items
