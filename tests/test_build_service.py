"""BuildService 端到端测试（模拟工具链，不访问网络、不需要 root）"""

from __future__ import annotations

import logging
import os
import signal

import pytest

from kbuilder.core.exceptions import (
    ArchiveError,
    BuildInterrupted,
    ExecutionError,
    StorageError,
    ValidationError,
)
from kbuilder.core.models import BuildRequest, BuildState
from kbuilder.services.build_service import BuildService

VERSION = "6.1.55"
BUILT = "6.1.0-kb1"


@pytest.fixture()
def service(config, toolchain) -> BuildService:
    return BuildService(config, toolchain)


def _request(tmp_path, kconfig, name="wd", **kwargs) -> BuildRequest:
    return BuildRequest(
        kernel_version=VERSION, kconfig=str(kconfig),
        work_dir=str(tmp_path / name), jobs=4, **kwargs,
    )


def _debs(config) -> list[str]:
    root = config.deb_dir
    if not os.path.isdir(root):
        return []
    return sorted(
        os.path.join(d, f)
        for d in os.listdir(root)
        for f in os.listdir(os.path.join(root, d))
    )


class TestSuccess:
    def test_full_build(self, tmp_path, config, service, toolchain, kconfig) -> None:
        req = _request(tmp_path, kconfig)
        report = service.run(req)

        assert report.state is BuildState.DONE
        assert report.built_version == BUILT
        assert _debs(config) == [
            f"{BUILT}/linux-headers-{BUILT}_6.1.0-kb1-1_amd64.deb",
            f"{BUILT}/linux-image-{BUILT}_6.1.0-kb1-1_amd64.deb",
        ]
        assert report.saved_log is not None
        assert report.saved_log.parent == tmp_path / "logs"
        assert report.saved_log.name.startswith("build-")
        # 工作目录已清理，成功时不保留旁路日志
        assert not (tmp_path / "wd").exists()
        assert not (tmp_path / "wd.log").exists()

    def test_command_sequence(self, tmp_path, service, toolchain, kconfig) -> None:
        service.run(_request(tmp_path, kconfig))
        assert toolchain.programs() == [
            "wget", "wget", "unxz", "gpg2", "tar", "make", "make", "strings",
        ]
        assert toolchain.calls_to("make") == [
            ["make", "olddefconfig"],
            ["make", "-j4", "bindeb-pkg"],
        ]

    def test_tmpdir_passed_to_children(self, tmp_path, service, toolchain, kconfig) -> None:
        service.run(_request(tmp_path, kconfig))
        assert {env["TMPDIR"] for env in toolchain.envs} == {str(tmp_path / "wd" / "tmp")}
        assert os.environ.get("TMPDIR") != str(tmp_path / "wd" / "tmp")

    def test_tmpfs_mounted_and_unmounted(self, tmp_path, service, toolchain, kconfig) -> None:
        service.run(_request(tmp_path, kconfig, tmpfs=True))
        bd = str(tmp_path / "wd" / "build" / "linux")
        assert toolchain.calls[0] == ["mount", "-t", "tmpfs", "-o", "size=100%", "none", bd]
        assert toolchain.calls[-1] == ["umount", "-f", bd]

    def test_keep_work_dir(self, tmp_path, service, kconfig) -> None:
        service.run(_request(tmp_path, kconfig, keep_work_dir=True))
        wd = tmp_path / "wd"
        assert (wd / "build.log").is_file()
        assert (wd / "build" / "linux" / f"linux-{VERSION}" / ".config").is_file()

    def test_default_workdir_under_scratch(self, tmp_path, config, service, kconfig) -> None:
        req = BuildRequest(kernel_version=VERSION, kconfig=str(kconfig))
        service.run(req)
        assert os.listdir(config.tmp_dir) == []


class TestCache:
    def test_second_build_skips_download(self, tmp_path, config, service, toolchain, kconfig) -> None:
        service.run(_request(tmp_path, kconfig, name="wd1"))
        first = len(toolchain.calls)

        # 同一构建版本已归档，第二次在归档步骤失败
        with pytest.raises(ArchiveError):
            service.run(_request(tmp_path, kconfig, name="wd2"))
        second = [c[0] for c in toolchain.calls[first:]]
        assert "wget" not in second
        assert "gpg2" not in second
        assert second[0] == "tar"
        assert (tmp_path / "wd2.log").is_file()
        assert not (tmp_path / "wd2").exists()


class TestFailure:
    def test_bad_signature(self, tmp_path, config, service, toolchain, kconfig) -> None:
        toolchain.fail("gpg2", rc=1, output="gpg: BAD signature from \"x\"\n")
        with pytest.raises(ExecutionError, match="gpg2"):
            service.run(_request(tmp_path, kconfig))

        assert os.listdir(config.distfile_dir) == []
        assert _debs(config) == []
        assert not os.path.exists(config.log_dir)
        assert not (tmp_path / "wd").exists()
        log = (tmp_path / "wd.log").read_text(encoding="utf-8")
        assert "BAD signature" in log

    def test_compile_failure_no_partial_archive(self, tmp_path, config, service, toolchain, kconfig) -> None:
        def make(args, cwd, out):
            if "bindeb-pkg" in args:
                out.write(b"error: implicit declaration\n")
                return 2
            return 0

        toolchain.on("make", make)
        with pytest.raises(ExecutionError):
            service.run(_request(tmp_path, kconfig))
        assert _debs(config) == []
        assert "strings" not in toolchain.programs()
        assert (tmp_path / "wd.log").is_file()

    def test_existing_work_dir_refused(self, tmp_path, service, toolchain, kconfig) -> None:
        (tmp_path / "wd").mkdir()
        with pytest.raises(ValidationError):
            service.run(_request(tmp_path, kconfig))
        assert toolchain.calls == []
        assert (tmp_path / "wd").is_dir()

    def test_signal_during_compile(self, tmp_path, config, service, toolchain, kconfig) -> None:
        def make(args, cwd, out):
            if "bindeb-pkg" in args:
                os.kill(os.getpid(), signal.SIGTERM)
            return 0

        toolchain.on("make", make)
        before = signal.getsignal(signal.SIGTERM)
        with pytest.raises(BuildInterrupted):
            service.run(_request(tmp_path, kconfig, tmpfs=True))

        assert toolchain.calls[-1][0] == "umount"
        assert not (tmp_path / "wd").exists()
        assert (tmp_path / "wd.log").is_file()
        assert _debs(config) == []
        assert signal.getsignal(signal.SIGTERM) == before


class TestRunLog:
    def test_log_covers_mount(self, tmp_path, service, kconfig, caplog) -> None:
        caplog.set_level(logging.INFO)
        report = service.run(_request(tmp_path, kconfig, tmpfs=True))
        text = report.saved_log.read_text(encoding="utf-8")
        assert f"工作目录: {tmp_path / 'wd'}" in text
        assert "已挂载 tmpfs" in text

    def test_mount_failure_preserves_log(self, tmp_path, service, toolchain, kconfig) -> None:
        toolchain.fail("mount", rc=32, output="mount: only root can use \"--types\" option\n")
        with pytest.raises(ExecutionError, match="mount"):
            service.run(_request(tmp_path, kconfig, tmpfs=True))

        assert toolchain.programs() == ["mount"]
        assert not (tmp_path / "wd").exists()
        log = (tmp_path / "wd.log").read_text(encoding="utf-8")
        assert "mount returned non-zero exit status 32" in log
        assert "only root can use" in log

    def test_unusable_log_dir(self, tmp_path, config, service, kconfig) -> None:
        blocker = tmp_path / "logs-file"
        blocker.write_text("")
        config.log_dir = str(blocker)
        with pytest.raises(StorageError, match="save_log"):
            service.run(_request(tmp_path, kconfig))
        assert _debs(config) == []
        assert (tmp_path / "wd.log").is_file()
