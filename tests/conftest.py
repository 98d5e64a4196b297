import json
import os
import shutil
from pathlib import Path

import pytest

from robomirror.backup_manager import BackupManager
from robomirror.robocopy import ToolResult


class FakeRobocopy:
    """Stands in for robocopy: same flags, same exit code bits, real file changes."""

    def __init__(self):
        self.calls = []
        self.cwds = []
        self.forced_codes = {}

    def __call__(self, cmd, on_line=None):
        self.calls.append(cmd)
        self.cwds.append(Path(os.getcwd()))
        source, destination = Path(cmd[1]), Path(cmd[2])
        flags = cmd[3:]
        log_file = next(Path(f[len("/LOG+:"):]) for f in flags if f.startswith("/LOG+:"))
        mirror = "/MIR" in flags
        list_only = "/L" in flags

        if source.name in self.forced_codes:
            return ToolResult(self.forced_codes[source.name], "forced result")

        if not source.is_dir():
            message = f"ERROR 2 (0x00000002) Accessing Source Directory {source}"
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(message + "\n")
            if on_line is not None:
                on_line(message)
            return ToolResult(16, message)

        copied = []
        for src_file in sorted(p for p in source.rglob("*") if p.is_file()):
            rel = src_file.relative_to(source)
            dst_file = destination / rel
            if not dst_file.exists() or dst_file.read_bytes() != src_file.read_bytes():
                copied.append(rel)
                if not list_only:
                    dst_file.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(src_file, dst_file)

        extras = []
        if destination.exists():
            for dst_file in sorted(p for p in destination.rglob("*") if p.is_file()):
                rel = dst_file.relative_to(destination)
                if not (source / rel).exists():
                    extras.append(rel)
        if mirror and not list_only:
            for rel in extras:
                (destination / rel).unlink()

        lines = [f"New File\t{rel}" for rel in copied]
        lines += [f"*EXTRA File\t{rel}" for rel in extras]
        output = "\n".join(lines)
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(output + "\n")
        if on_line is not None:
            for line in lines:
                on_line(line)

        code = (1 if copied else 0) | (2 if extras else 0)
        return ToolResult(code, output)


@pytest.fixture
def fake_robocopy():
    return FakeRobocopy()


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def manager(log_dir, fake_robocopy):
    return BackupManager(log_dir, runner=fake_robocopy)


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="backup_jobs.json", directory=None):
        directory = Path(directory) if directory else tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        if isinstance(data, str):
            path.write_text(data, encoding="utf-8")
        else:
            path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write
