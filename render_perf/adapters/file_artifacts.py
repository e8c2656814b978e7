from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from ..ports.artifacts import ArtifactSink


class FileArtifactSink(ArtifactSink):
    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    def attach(self, name: str, payload: Mapping[str, Any]) -> str:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"{name}.json"
        path.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str), encoding="utf-8")
        return str(path)
