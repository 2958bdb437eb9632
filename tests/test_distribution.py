"""Tests for artifact resolution and installation preparation."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from conftest import ARCHIVE_NAME, INSTALL_NAME, build_distribution
from kcdist.distribution import (
    DistributionPreparer,
    LocalArtifactResolver,
    MavenRepositoryResolver,
    resolver_for,
    strip_archive_suffix,
)
from kcdist.errors import PreparationError
from kcdist.models import HarnessConfig


@pytest.fixture
def config(make_config: Callable[..., HarnessConfig]) -> HarnessConfig:
    return make_config()


class TestResolvers:
    """Tests for locating the distribution archive."""

    def test_local_resolver(self, tmp_path: Path) -> None:
        archive = build_distribution(tmp_path, "#!/bin/sh\n")
        assert LocalArtifactResolver(archive).resolve() == archive

    def test_local_resolver_missing(self, tmp_path: Path) -> None:
        with pytest.raises(PreparationError, match="not found"):
            _ = LocalArtifactResolver(tmp_path / "nope.zip").resolve()

    def test_maven_resolver_picks_highest_version(self, tmp_path: Path) -> None:
        base = tmp_path / "org" / "keycloak" / "keycloak-server-x-dist"
        for version in ["1.9.0", "1.10.0", "1.2.0"]:
            build_distribution(
                base / version,
                "#!/bin/sh\n",
                archive_name=f"keycloak-server-x-dist-{version}.zip",
            )
        resolver = MavenRepositoryResolver(
            tmp_path, "org.keycloak", "keycloak-server-x-dist", "zip"
        )
        assert resolver.resolve().name == "keycloak-server-x-dist-1.10.0.zip"

    def test_maven_resolver_pinned_version(self, tmp_path: Path) -> None:
        base = tmp_path / "org" / "keycloak" / "keycloak-server-x-dist"
        build_distribution(
            base / "2.0", "#!/bin/sh\n", archive_name="keycloak-server-x-dist-2.0.zip"
        )
        resolver = MavenRepositoryResolver(
            tmp_path, "org.keycloak", "keycloak-server-x-dist", "zip", version="3.0"
        )
        with pytest.raises(PreparationError, match="Could not obtain"):
            _ = resolver.resolve()

    def test_maven_resolver_empty_repository(self, tmp_path: Path) -> None:
        resolver = MavenRepositoryResolver(
            tmp_path, "org.keycloak", "keycloak-server-x-dist", "zip"
        )
        with pytest.raises(PreparationError, match="does not exist"):
            _ = resolver.resolve()

    def test_resolver_for_config(self, tmp_path: Path) -> None:
        assert isinstance(
            resolver_for(HarnessConfig(artifact=tmp_path / "a.zip")), LocalArtifactResolver
        )
        assert isinstance(resolver_for(HarnessConfig()), MavenRepositoryResolver)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("keycloak.x-1.0.zip", "keycloak.x-1.0"),
        ("keycloak.x-1.0.tar.gz", "keycloak.x-1.0"),
        ("keycloak.x-1.0.tgz", "keycloak.x-1.0"),
        ("keycloak.x-1.0.jar", "keycloak.x-1.0"),
    ],
)
def test_strip_archive_suffix(name: str, expected: str) -> None:
    assert strip_archive_suffix(name) == expected


class TestDistributionPreparer:
    """Tests for expanding the archive into an installation."""

    def test_installation_dir_name(self, config: HarnessConfig) -> None:
        preparer = DistributionPreparer(config)
        assert preparer.installation_dir_for(Path(ARCHIVE_NAME)) == (
            config.dist_root / INSTALL_NAME
        )

    def test_expands_archive(self, config: HarnessConfig) -> None:
        path = DistributionPreparer(config).prepare()
        assert path == config.dist_root / INSTALL_NAME
        assert (path / "bin" / "kc.sh").is_file()
        assert (path / "conf" / "keycloak.conf").is_file()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX mode bits")
    def test_launcher_is_executable(self, config: HarnessConfig) -> None:
        path = DistributionPreparer(config).prepare()
        assert os.access(path / "bin" / "kc.sh", os.X_OK)

    def test_reuses_existing_installation(self, config: HarnessConfig) -> None:
        path = DistributionPreparer(config).prepare()
        marker = path / "marker.txt"
        marker.write_text("still here")

        assert DistributionPreparer(config).prepare() == path
        assert marker.exists()

    def test_recreate_reexpands(self, config: HarnessConfig) -> None:
        path = DistributionPreparer(config).prepare()
        marker = path / "marker.txt"
        marker.write_text("stale")

        recreate = config.model_copy(update={"recreate": True})
        assert DistributionPreparer(recreate).prepare() == path
        assert not marker.exists()
        assert (path / "bin" / "kc.sh").is_file()

    def test_corrupt_archive(self, config: HarnessConfig) -> None:
        assert config.artifact is not None
        config.artifact.write_bytes(b"definitely not a zip")
        with pytest.raises(PreparationError, match="Failed to expand"):
            _ = DistributionPreparer(config).prepare()

    def test_archive_without_installation_dir(
        self, tmp_path: Path, config: HarnessConfig
    ) -> None:
        archive = build_distribution(tmp_path / "other", "#!/bin/sh\n", install_name="other")
        odd = config.model_copy(update={"artifact": archive})
        with pytest.raises(PreparationError, match="expected directory"):
            _ = DistributionPreparer(odd).prepare()

    def test_missing_launcher(self, config: HarnessConfig) -> None:
        odd = config.model_copy(update={"launcher": "kc.bat"})
        with pytest.raises(PreparationError, match="Launcher script not found"):
            _ = DistributionPreparer(odd).prepare()

    def test_unexpected_errors_are_wrapped(self, config: HarnessConfig) -> None:
        class BrokenResolver:
            def resolve(self) -> Path:
                raise OSError("disk on fire")

        with pytest.raises(PreparationError, match="disk on fire") as exc_info:
            _ = DistributionPreparer(config, BrokenResolver()).prepare()
        assert isinstance(exc_info.value.__cause__, OSError)
