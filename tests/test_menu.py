import pytest

from robomirror.config import BackupJob, JobRegistry, load_config
from robomirror.menu import InteractiveShell


def _scripted(answers):
    answers = iter(answers)

    def _input(prompt):
        try:
            return next(answers)
        except StopIteration:
            raise EOFError

    return _input


@pytest.fixture
def registry(tmp_path):
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "a.txt").write_text("a", encoding="utf-8")
    (tmp_path / "music").mkdir()
    return JobRegistry(
        [
            BackupJob(name="Docs", source="docs", destination="docs_bak", mirror=True),
            BackupJob(name="Music", source="music", destination="music_bak", mirror=False, schedule="0 3 * * 0"),
        ],
        source=tmp_path / "backup_jobs.json",
    )


def _shell(manager, registry, answers, tmp_path, **kwargs):
    output = []
    shell = InteractiveShell(
        manager,
        registry,
        invocation_dir=tmp_path,
        input_func=_scripted(answers),
        output_func=output.append,
        **kwargs,
    )
    return shell, output


def test_exit_immediately(manager, registry, tmp_path, fake_robocopy):
    shell, output = _shell(manager, registry, ["0"], tmp_path)

    assert shell.run() == []
    assert fake_robocopy.calls == []
    assert any("1) Run a configured job" in line for line in output)


def test_run_job_by_number_then_by_name(manager, registry, tmp_path, fake_robocopy):
    shell, output = _shell(manager, registry, ["1", "1", "1", "Music", "0"], tmp_path)

    results = shell.run()

    assert [r.backup_name for r in results] == ["Docs", "Music"]
    assert (tmp_path / "docs_bak" / "a.txt").exists()
    assert any("next scheduled" in line for line in output)


def test_unknown_job_returns_to_menu(manager, registry, tmp_path, fake_robocopy):
    shell, output = _shell(manager, registry, ["1", "Video", "0"], tmp_path)

    assert shell.run() == []
    assert any("Video" in line for line in output)


def test_dry_run_toggle_applies_to_later_runs(manager, registry, tmp_path, fake_robocopy):
    shell, _ = _shell(manager, registry, ["4", "2", "0"], tmp_path)

    results = shell.run()

    assert [r.backup_name for r in results] == ["Docs", "Music"]
    assert all("/L" in cmd for cmd in fake_robocopy.calls)
    assert not (tmp_path / "docs_bak").exists()


def test_manual_backup_builds_fresh_request(manager, registry, tmp_path, fake_robocopy):
    (tmp_path / "src").mkdir()
    answers = ["3", "src", "dst", "y", "3", "src", "dst2", "", "0"]
    shell, _ = _shell(manager, registry, answers, tmp_path)

    results = shell.run()

    assert [r.request.mirror for r in results] == [True, False]
    assert results[1].request.destination == tmp_path / "dst2"
    assert "/MIR" in fake_robocopy.calls[0]
    assert "/E" in fake_robocopy.calls[1]


def test_manual_backup_requires_paths(manager, registry, tmp_path, fake_robocopy):
    shell, output = _shell(manager, registry, ["3", "", "0"], tmp_path)

    assert shell.run() == []
    assert "A source directory is required." in output


def test_empty_registry_reports_no_config(manager, tmp_path, fake_robocopy):
    shell, output = _shell(manager, JobRegistry(), ["1", "2", "0"], tmp_path)

    assert shell.run() == []
    assert "No configuration loaded." in output
    assert any("No backup jobs are configured" in line for line in output)


def test_create_config_refuses_overwrite(manager, registry, tmp_path):
    target = tmp_path / "backup_jobs.json"
    target.write_text("keep me", encoding="utf-8")
    shell, output = _shell(manager, registry, ["5", "", "n", "0"], tmp_path)

    shell.run()

    assert target.read_text(encoding="utf-8") == "keep me"
    assert "Configuration file left unchanged." in output


def test_create_config_new_file(manager, registry, tmp_path):
    shell, _ = _shell(manager, registry, ["5", "new_jobs.json", "0"], tmp_path)

    shell.run()

    assert len(load_config(tmp_path / "new_jobs.json")) >= 1


def test_open_logs_and_eof_exit(manager, registry, tmp_path):
    opened = []
    shell, _ = _shell(manager, registry, ["6"], tmp_path, open_logs=opened.append)

    assert shell.run() == []
    assert opened == [manager.log_dir]


def test_invalid_choice(manager, registry, tmp_path):
    shell, output = _shell(manager, registry, ["9", "q"], tmp_path)

    shell.run()

    assert "Invalid choice: 9" in output


def test_create_config_error_returns_to_menu(manager, registry, tmp_path):
    (tmp_path / "taken").mkdir()
    shell, output = _shell(manager, registry, ["5", "taken", "y", "0"], tmp_path)

    assert shell.run() == []
    assert any(line.startswith(f"Could not create {tmp_path / 'taken'}") for line in output)
    assert (tmp_path / "taken").is_dir()
