"""Orchestrator 单元测试"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from kbuilder.core.exceptions import ExecutionError, KernelBuilderError, StorageError
from kbuilder.core.models import BuildRequest, BuildState
from kbuilder.services.pipeline import Orchestrator, PipelineReport, PipelineSteps

ORDER = [
    "install_dependencies", "acquire", "extract", "configure",
    "compile", "save_log", "archive",
]


@pytest.fixture()
def container(tmp_path):
    c = MagicMock()
    c.workdir.build_dir = tmp_path / "build" / "linux"
    c.workdir.log_path = tmp_path / "build.log"
    c.kernel.install_dependencies.return_value = False
    c.fetcher.acquire.return_value = True
    c.fetcher.extract.return_value = tmp_path / "build" / "linux" / "linux-6.1.55"
    c.kernel.configure.return_value = tmp_path / "config"
    c.kernel.compile.return_value = "6.1.55-kb"
    c.logs.save.return_value = tmp_path / "logs" / "build-20261019-000"
    c.archive.archive.return_value = [tmp_path / "debs" / "6.1.55-kb" / "a.deb"]
    return c


@pytest.fixture()
def request_():
    return BuildRequest(kernel_version="6.1.55")


class TestOrchestrator:
    def test_stage_order(self, container) -> None:
        assert [name for name, _, _ in Orchestrator(container).stages()] == ORDER

    def test_success(self, container, request_) -> None:
        report = Orchestrator(container).run(request_)
        assert report.success
        assert report.state is BuildState.DONE
        assert [s["step"] for s in report.steps] == ORDER
        assert report.steps[0]["status"] == "skipped"
        assert report.built_version == "6.1.55-kb"
        assert report.saved_log == container.logs.save.return_value
        assert report.packages == container.archive.archive.return_value

    def test_archive_keyed_by_built_version(self, container, request_) -> None:
        Orchestrator(container).run(request_)
        container.archive.archive.assert_called_once_with(
            "6.1.55-kb", container.workdir.build_dir,
        )
        container.logs.save.assert_called_once_with(container.workdir.log_path)

    def test_compile_uses_extracted_tree(self, container, request_) -> None:
        Orchestrator(container).run(request_)
        tree = container.fetcher.extract.return_value
        container.kernel.configure.assert_called_once_with(request_, tree)
        container.kernel.compile.assert_called_once_with(request_, tree)

    def test_failure_stops_pipeline(self, container, request_) -> None:
        container.kernel.configure.side_effect = ExecutionError(
            "make", ["olddefconfig"], 2,
        )
        report = PipelineReport(request=request_)
        with pytest.raises(ExecutionError):
            Orchestrator(container).run(request_, report)
        assert report.state is BuildState.FAILED
        assert not report.success
        assert "make" in report.error
        assert report.steps[-1]["step"] == "configure"
        assert report.steps[-1]["status"] == "failed"
        container.kernel.compile.assert_not_called()
        container.logs.save.assert_not_called()
        container.archive.archive.assert_not_called()

    def test_state_tracks_last_completed_step(self, container, request_) -> None:
        container.logs.save.side_effect = OSError("disk full")
        report = PipelineReport(request=request_)
        states = []
        orch = Orchestrator(container)
        real_compile = orch.steps.compile

        def compile_step(req, rep):
            real_compile(req, rep)
            states.append(rep.state)

        orch.steps.compile = compile_step
        with pytest.raises(StorageError):
            orch.run(request_, report)
        assert states == [BuildState.CONFIGURED]
        assert report.state is BuildState.FAILED


    def test_filesystem_error_wrapped(self, container, request_) -> None:
        container.logs.save.side_effect = FileExistsError(17, "File exists")
        report = PipelineReport(request=request_)
        with pytest.raises(StorageError, match="save_log") as exc_info:
            Orchestrator(container).run(request_, report)
        assert isinstance(exc_info.value.__cause__, FileExistsError)
        assert exc_info.value.errno == 17
        assert report.steps[-1] == {
            "step": "save_log", "status": "failed", "error": str(exc_info.value),
        }
        container.archive.archive.assert_not_called()


class TestPipelineSteps:
    def test_acquire_cached(self, container, request_) -> None:
        container.fetcher.acquire.return_value = False
        report = PipelineReport(request=request_)
        PipelineSteps(container).acquire(request_, report)
        container.cache.ensure_dir.assert_called_once()
        assert report.steps == [{"step": "acquire", "status": "cached", "version": "6.1.55"}]

    def test_configure_before_extract(self, container, request_) -> None:
        with pytest.raises(KernelBuilderError, match="尚未解压"):
            PipelineSteps(container).configure(request_, PipelineReport(request=request_))

    def test_extract_sets_tree(self, container, request_) -> None:
        report = PipelineReport(request=request_)
        PipelineSteps(container).extract(request_, report)
        assert isinstance(report.source_tree, Path)
        container.fetcher.extract.assert_called_once_with(
            "6.1.55", container.workdir.build_dir,
        )
