"""
Mappers for references relative to the open document or the workspace.
"""

import os

from loguru import logger

from .base import MapperConfig, PathMapper, join_path

_WILDCARD = "/*"


def _strip_wildcard(value: str) -> str:
    return value[: -len(_WILDCARD)] if value.endswith(_WILDCARD) else value


def _as_list(targets: str | list[str]) -> list[str]:
    return [targets] if isinstance(targets, str) else list(targets)


class RelativeToOpenFileMapper(PathMapper):
    """Resolve references against the directory of the referencing document."""

    def map(self, file_name: str, url: str, relative_image_dir: str = "") -> str | None:
        path_name = os.path.normpath(url)
        if path_name == "." or not file_name:
            return None

        directory = os.path.dirname(file_name)
        candidates = [join_path(directory, path_name)]
        if relative_image_dir:
            candidates.insert(0, join_path(directory, relative_image_dir, path_name))

        for candidate in candidates:
            if self.exists(candidate):
                return candidate
        return None


class RelativeToWorkspaceRootMapper(PathMapper):
    """
    Resolve references against the workspace root.

    Candidate paths are tested in order, each one first under the workspace root
    and then under every additional source folder:

    1. the reference itself
    2. the reference under every target of the empty-string alias
    3. the reference with a matching alias prefix replaced by each of its targets

    The first existing (or cached) candidate wins.
    """

    def __init__(self, cache=None):
        super().__init__(cache)
        self._aliases: list[tuple[list[str], list[str]]] = []
        self._global_prefixes: list[str] = []

    def refresh_config(self, config: MapperConfig) -> None:
        super().refresh_config(config)
        self._aliases = []
        self._global_prefixes = []
        for alias, targets in config.path_alias_table.items():
            targets = [_strip_wildcard(target.replace("\\", "/")) for target in _as_list(targets)]
            alias = _strip_wildcard(alias)
            if alias == "":
                self._global_prefixes.extend(targets)
            else:
                self._aliases.append((alias.split("/"), targets))
        # Longer aliases first so "@app/ui" wins over "@app"
        self._aliases.sort(key=lambda entry: len(entry[0]), reverse=True)
        logger.debug(
            "Workspace mapper configured: root={}, folders={}, aliases={}",
            config.workspace_folder,
            config.additional_source_folders,
            len(self._aliases) + bool(self._global_prefixes),
        )

    def map(self, file_name: str, url: str, relative_image_dir: str = "") -> str | None:
        if not self.config.workspace_folder:
            return None

        path_name = os.path.normpath(url).replace("\\", "/")
        if path_name == ".":
            return None

        for test_path in self.candidate_paths(path_name):
            for root in self._roots():
                candidate = join_path(root, test_path)
                if self.exists(candidate):
                    return candidate
        return None

    def candidate_paths(self, path_name: str) -> list[str]:
        """List the workspace relative paths to test for a normalized reference."""
        candidates = [path_name]
        candidates.extend(join_path(prefix, path_name) for prefix in self._global_prefixes)

        segments = path_name.split("/")
        for alias_segments, targets in self._aliases:
            if segments[: len(alias_segments)] == alias_segments:
                rest = segments[len(alias_segments) :]
                candidates.extend("/".join([target, *rest]) for target in targets)
        return candidates

    def _roots(self) -> list[str]:
        root = os.path.normpath(self.config.workspace_folder)
        roots = [root]
        for folder in self.config.additional_source_folders:
            roots.append(os.path.normpath(folder) if os.path.isabs(folder) else join_path(root, folder))
        return roots
