"""Locate the packaged server distribution and expand it into a local installation."""

from __future__ import annotations

import re
import shutil
import time
from pathlib import Path
from typing import Protocol

from kcdist.constants import BIN_DIR_NAME
from kcdist.errors import PreparationError
from kcdist.logging import HarnessLogComponent, get_logger
from kcdist.models import HarnessConfig
from kcdist.utils import ensure_dir, format_elapsed_ms, make_executable, remove_dir

logger = get_logger(HarnessLogComponent.DISTRIBUTION)

_ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".tar.bz2", ".tar.xz", ".tar", ".zip")


class ArtifactResolver(Protocol):
    """Anything that can hand us a packaged distribution on local disk."""

    def resolve(self) -> Path: ...


class LocalArtifactResolver:
    """Resolve an archive given by an explicit path."""

    def __init__(self, path: Path):
        self.path: Path = path

    def resolve(self) -> Path:
        if not self.path.is_file():
            raise PreparationError(f"Distribution artifact not found at {self.path}")
        return self.path


def _version_key(version: str) -> list[int | str]:
    # re.split with a group alternates text and digit runs, so positions always compare alike
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", version)]


class MavenRepositoryResolver:
    """Resolve an archive from a local Maven repository layout.

    The highest version directory wins when no version is pinned.
    """

    def __init__(
        self,
        repository: Path,
        group_id: str,
        artifact_id: str,
        packaging: str,
        version: str | None = None,
    ):
        self.repository: Path = repository
        self.group_id: str = group_id
        self.artifact_id: str = artifact_id
        self.packaging: str = packaging
        self.version: str | None = version

    @property
    def artifact_dir(self) -> Path:
        return self.repository.joinpath(*self.group_id.split("."), self.artifact_id)

    def _latest_version(self) -> str:
        if not self.artifact_dir.is_dir():
            raise PreparationError(
                f"Could not obtain distribution artifact: {self.artifact_dir} does not exist"
            )
        versions = [p.name for p in self.artifact_dir.iterdir() if p.is_dir()]
        if not versions:
            raise PreparationError(
                f"Could not obtain distribution artifact: no versions under {self.artifact_dir}"
            )
        return max(versions, key=_version_key)

    def resolve(self) -> Path:
        version = self.version or self._latest_version()
        path = self.artifact_dir / version / f"{self.artifact_id}-{version}.{self.packaging}"
        if not path.is_file():
            raise PreparationError(f"Could not obtain distribution artifact: {path}")
        return path


def resolver_for(config: HarnessConfig) -> ArtifactResolver:
    """Pick the resolver matching the configuration."""
    if config.artifact is not None:
        return LocalArtifactResolver(config.artifact)
    return MavenRepositoryResolver(
        repository=config.maven_repository,
        group_id=config.group_id,
        artifact_id=config.artifact_id,
        packaging=config.packaging,
        version=config.version,
    )


def strip_archive_suffix(name: str) -> str:
    for suffix in _ARCHIVE_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name.rsplit(".", 1)[0]


class DistributionPreparer:
    """Make sure an unpacked, executable copy of the server exists on disk."""

    def __init__(self, config: HarnessConfig, resolver: ArtifactResolver | None = None):
        self.config: HarnessConfig = config
        self.resolver: ArtifactResolver = resolver or resolver_for(config)

    def installation_dir_for(self, archive: Path) -> Path:
        """`keycloak-server-x-dist-1.0.zip` -> `<dist_root>/keycloak.x-1.0`."""
        name = archive.name.replace(self.config.artifact_id, self.config.install_prefix)
        return self.config.dist_root / strip_archive_suffix(name)

    def prepare(self) -> Path:
        """Resolve the artifact and expand it if needed.

        Returns:
            The installation directory

        Raises:
            PreparationError: If the artifact cannot be resolved or expanded
        """
        try:
            return self._prepare()
        except PreparationError:
            raise
        except Exception as e:
            raise PreparationError(f"Failed to prepare distribution: {e}") from e

    def _prepare(self) -> Path:
        dist_root = self.config.dist_root
        ensure_dir(dist_root)
        archive = self.resolver.resolve()
        dist_path = self.installation_dir_for(archive)

        if self.config.recreate or not dist_path.exists():
            if remove_dir(dist_path):
                logger.info(f"Removed stale installation {dist_path}")
            phase_start = time.perf_counter()
            try:
                shutil.unpack_archive(str(archive), str(dist_root))
            except (shutil.ReadError, ValueError) as e:
                raise PreparationError(f"Failed to expand {archive}: {e}") from e
            logger.info(
                f"Expanded {archive.name} into {dist_path} ({format_elapsed_ms(phase_start)})"
            )
            if not dist_path.is_dir():
                raise PreparationError(
                    f"Archive {archive} did not contain the expected directory {dist_path.name}"
                )
        else:
            logger.debug(f"Reusing installation {dist_path}")

        launcher = dist_path / BIN_DIR_NAME / self.config.launcher
        if not launcher.is_file():
            raise PreparationError(f"Launcher script not found at {launcher}")
        # archives do not always keep mode bits
        make_executable(launcher)
        return dist_path
