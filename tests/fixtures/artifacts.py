"""Archive and manifest builders for testing the supply pipeline.

Artifacts are real .tar.gz / .zip files on local disk referenced from a
generated manifest.yml through file:// URIs, so fetch, checksum
verification and extraction all run for real.
"""

import hashlib
import io
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest
import yaml

from stackkit.manifest.manifest import Manifest


# ============================================================================
# Archives and manifests
# ============================================================================


def write_tar_gz(path: Path, files: Dict[str, str], modes: Optional[Dict[str, int]] = None):
    """Create a .tar.gz at path containing files (archive name -> content)."""
    modes = modes or {}
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = modes.get(name, 0o644)
            tar.addfile(info, io.BytesIO(data))


def write_zip(path: Path, files: Dict[str, str]):
    """Create a .zip at path containing files (archive name -> content)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)


def sha256_of(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def tree_snapshot(root: Path) -> Dict[str, bytes]:
    """Relative path -> content for every file below root."""
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


class ManifestBuilder:
    """
    Builds a manifest.yml whose artifacts are real archives on local disk.

    Every artifact is referenced through a file:// URI with its true SHA256,
    so Manifest.fetch exercises the same copy-and-verify path as an offline
    buildpack.
    """

    def __init__(self, root: Path):
        self.root = root
        self.artifacts_dir = root / "artifacts"
        self.dependencies: List[dict] = []
        self.defaults: List[dict] = []
        self.deprecations: List[dict] = []

    def _register(self, name: str, version: str, path: Path, sha256: Optional[str] = None):
        self.dependencies.append(
            {
                "name": name,
                "version": version,
                "uri": path.as_uri(),
                "sha256": sha256 or sha256_of(path),
                "cf_stacks": ["cflinuxfs3"],
            }
        )
        return path

    def add_tar(
        self,
        name: str,
        version: str,
        files: Dict[str, str],
        modes: Optional[Dict[str, int]] = None,
        sha256: Optional[str] = None,
    ) -> Path:
        path = self.artifacts_dir / f"{name}-{version}.tar.gz"
        write_tar_gz(path, files, modes)
        return self._register(name, version, path, sha256)

    def add_zip(self, name: str, version: str, files: Dict[str, str]) -> Path:
        path = self.artifacts_dir / f"{name}-{version}.zip"
        write_zip(path, files)
        return self._register(name, version, path)

    def add_file(self, name: str, version: str, file_name: str, content: str) -> Path:
        path = self.artifacts_dir / f"{name}-{version}" / file_name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return self._register(name, version, path)

    def add_default(self, name: str, version: str):
        self.defaults.append({"name": name, "version": version})

    def add_deprecation(self, name: str, version_line: str, date: str, link: str = ""):
        self.deprecations.append(
            {"name": name, "version_line": version_line, "date": date, "link": link}
        )

    def write(self) -> Path:
        path = self.root / "manifest.yml"
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "language": "logstash",
            "default_versions": self.defaults,
            "dependencies": self.dependencies,
            "dependency_deprecation_dates": self.deprecations,
        }
        path.write_text(yaml.safe_dump(data))
        return path

    def build(self) -> Manifest:
        return Manifest(self.write())


@pytest.fixture
def manifest_builder(tmp_path: Path) -> ManifestBuilder:
    """ManifestBuilder rooted in a fresh buildpack directory."""
    return ManifestBuilder(tmp_path / "buildpack")
