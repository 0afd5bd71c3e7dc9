"""Loading GraphQL documents used by tests."""

from __future__ import annotations

from importlib import resources as importlib_resources
from pathlib import Path
from typing import Iterable

from graphql_testkit.conf import get_setting
from graphql_testkit.exceptions import fail
from graphql_testkit.logging import get_logger

logger = get_logger("resources")


def _candidate_paths(identifier: str, search_dirs: Iterable[str]) -> list[Path]:
    candidate = Path(identifier)
    if candidate.is_absolute():
        return [candidate]
    paths = [Path(directory) / identifier for directory in search_dirs]
    paths.append(Path.cwd() / identifier)
    return paths


def _read_package_resource(identifier: str) -> str | None:
    package, _, relative = identifier.partition(":")
    if not package or not relative or "/" in package or "\\" in package:
        return None
    try:
        resource = importlib_resources.files(package).joinpath(relative)
    except (ModuleNotFoundError, TypeError):
        return None
    if not resource.is_file():
        return None
    return resource.read_text(encoding="utf-8")


def load_resource(
    identifier: str, search_dirs: Iterable[str] | None = None
) -> str:
    """
    Return the raw text of a GraphQL resource.

    Resolution order:
        1. ``package:relative/path`` inside an importable package.
        2. ``identifier`` as an absolute path.
        3. ``identifier`` relative to each directory in ``search_dirs``
           (defaults to the ``RESOURCE_DIRS`` setting).
        4. ``identifier`` relative to the current working directory.

    Raises:
        GraphQLTestFailure: If no candidate can be read.
    """
    directories = list(
        get_setting("RESOURCE_DIRS") if search_dirs is None else search_dirs
    )
    try:
        text = _read_package_resource(identifier)
        if text is not None:
            logger.debug(
                "loaded package resource", context={"resource": identifier}
            )
            return text
        for path in _candidate_paths(identifier, directories):
            if path.is_file():
                logger.debug(
                    "loaded file resource",
                    context={"resource": identifier, "path": str(path)},
                )
                return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as error:
        fail(
            f"Test setup failure - could not load GraphQL resource: {identifier}",
            error,
        )
    fail(f"Test setup failure - could not load GraphQL resource: {identifier}")
