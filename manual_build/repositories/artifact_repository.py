from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from manual_build.domain.models import FileKind

ARTIFACT_NAMES: Dict[FileKind, str] = {
    FileKind.HTML: "index.html",
    FileKind.SASS: "main.css",
    FileKind.JS: "main.js",
}


@dataclass
class ArtifactRepository:
    """
    Repository pattern: encapsulates where build outputs live in the
    public directory and how they get replaced.
    """
    public_dir: Path

    def ensure_public_dir(self) -> Path:
        self.public_dir.mkdir(parents=True, exist_ok=True)
        return self.public_dir

    def artifact_for(self, kind: FileKind) -> Path:
        return self.public_dir / ARTIFACT_NAMES[kind]

    def _temp_in_public(self, suffix: str) -> Path:
        fd, tmp = tempfile.mkstemp(prefix=".building-", suffix=suffix, dir=str(self.ensure_public_dir()))
        os.close(fd)
        return Path(tmp)

    def write_text(self, kind: FileKind, text: str) -> Path:
        """Write the artifact in full, then swap it in over the old one."""
        target = self.artifact_for(kind)
        tmp = self._temp_in_public(target.suffix)
        try:
            tmp.write_text(text, encoding="utf-8")
            os.replace(tmp, target)
        finally:
            if tmp.exists():
                tmp.unlink()
        return target

    def copy_in(self, kind: FileKind, source: Path) -> Path:
        """Byte-for-byte copy of source over the artifact."""
        target = self.artifact_for(kind)
        tmp = self._temp_in_public(target.suffix)
        try:
            shutil.copyfile(source, tmp)
            os.replace(tmp, target)
        finally:
            if tmp.exists():
                tmp.unlink()
        return target

    def staging_path(self, kind: FileKind) -> Path:
        """Empty temp file beside the artifact for a tool that writes its own output."""
        return self._temp_in_public(self.artifact_for(kind).suffix)

    def promote_bundle(self, kind: FileKind, staged: Path) -> Path:
        """
        Move a finished bundle and its source map over the artifact. The
        bundle's sourceMappingURL is pointed at the final map name first.
        """
        target = self.artifact_for(kind)
        staged_map, target_map = _map_for(staged), _map_for(target)
        if staged_map.exists():
            data = staged.read_bytes()
            data = data.replace(
                f"sourceMappingURL={staged_map.name}".encode("utf-8"),
                f"sourceMappingURL={target_map.name}".encode("utf-8"),
            )
            staged.write_bytes(data)
            os.replace(staged_map, target_map)
        os.replace(staged, target)
        return target

    def discard(self, staged: Path) -> None:
        staged.unlink(missing_ok=True)
        _map_for(staged).unlink(missing_ok=True)


def _map_for(path: Path) -> Path:
    return path.with_name(path.name + ".map")
