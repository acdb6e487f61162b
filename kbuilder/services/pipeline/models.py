"""流水线数据模型"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from kbuilder.core.models import BuildRequest, BuildState


@dataclass
class PipelineReport:
    """单次构建的执行报告"""

    request: BuildRequest
    state: BuildState = BuildState.INIT
    source_tree: Path | None = None
    built_version: str = ""
    saved_log: Path | None = None
    packages: list[Path] = field(default_factory=list)
    steps: list[dict[str, Any]] = field(default_factory=list)
    error: str = ""

    @property
    def success(self) -> bool:
        return self.state == BuildState.DONE

    def record(self, step: str, status: str, **detail: Any) -> None:
        self.steps.append({"step": step, "status": status, **detail})
