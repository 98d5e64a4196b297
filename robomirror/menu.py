"""Interactive menu built on the registry and the backup manager."""

from pathlib import Path
from typing import Callable, Dict, List, Optional

from .backup_manager import BackupManager, BackupResult
from .config import DEFAULT_CONFIG_NAMES, JobNotFound, JobRegistry, NoConfigLoaded, create_config
from .logging_setup import open_log_directory, record_transcript
from .robocopy import RunRequest
from .schedule_checker import ScheduleChecker

MENU_OPTIONS = (
    ("1", "Run a configured job"),
    ("2", "Run all configured jobs"),
    ("3", "Manual backup"),
    ("4", "Toggle dry run"),
    ("5", "Create configuration file"),
    ("6", "Open log directory"),
    ("0", "Exit"),
)
EXIT_CHOICES = ("0", "q", "quit", "exit")


class InteractiveShell:
    """Menu loop; every action builds its own request from fresh answers."""

    def __init__(
        self,
        manager: BackupManager,
        registry: JobRegistry,
        invocation_dir: Optional[Path] = None,
        dry_run: bool = False,
        input_func: Optional[Callable[[str], str]] = None,
        output_func: Callable[[str], None] = print,
        open_logs: Callable[[Path], bool] = open_log_directory,
    ):
        self.manager = manager
        self.registry = registry
        self.invocation_dir = Path(invocation_dir) if invocation_dir else Path.cwd()
        self.dry_run = dry_run
        self.input_func = input_func or input
        self._output_func = output_func
        self.open_logs = open_logs
        self.results: List[BackupResult] = []
        self._handlers: Dict[str, Callable[[], None]] = {
            "1": self.run_configured_job,
            "2": self.run_all_jobs,
            "3": self.run_manual,
            "4": self.toggle_dry_run,
            "5": self.create_config_file,
            "6": self.open_log_directory,
        }

    def run(self) -> List[BackupResult]:
        """Show the menu until the user exits; returns every result produced."""
        while True:
            self._show_menu()
            choice = self._ask("Select an option")
            if choice is None or choice.lower() in EXIT_CHOICES:
                return self.results

            handler = self._handlers.get(choice)
            if handler is None:
                self.output(f"Invalid choice: {choice}")
                continue
            handler()

    def output(self, text: str) -> None:
        """Print a line and copy it to the session transcript."""
        self._output_func(text)
        record_transcript(text)

    def _show_menu(self) -> None:
        self.output("")
        self.output("=== robomirror ===")
        if self.registry.source is not None:
            self.output(f"Config: {self.registry.source} ({len(self.registry)} jobs)")
        else:
            self.output("Config: none loaded (manual backups only)")
        self.output(f"Dry run: {'ON' if self.dry_run else 'off'}")
        for key, label in MENU_OPTIONS:
            self.output(f"  {key}) {label}")

    def _ask(self, prompt: str, default: str = "") -> Optional[str]:
        suffix = f" [{default}]" if default else ""
        try:
            answer = self.input_func(f"{prompt}{suffix}: ").strip()
        except EOFError:
            return None
        record_transcript(f"{prompt}{suffix}: {answer}")
        return answer or default

    def _confirm(self, prompt: str) -> bool:
        answer = self._ask(f"{prompt} (y/N)")
        return answer is not None and answer.lower() in ("y", "yes")

    def _record(self, result: BackupResult) -> None:
        self.results.append(result)
        status = "✅" if result.success else "❌"
        self.output(f"{status} {result.backup_name}: code {result.exit_code} - {result.message}")

    def run_configured_job(self) -> None:
        if self.registry.is_empty:
            self.output("No configuration loaded.")
            return

        names = self.registry.names()
        for index, job in enumerate(self.registry, start=1):
            mode = "mirror" if job.mirror else "additive"
            line = f"  {index}) {job.name}: {job.source} -> {job.destination} ({mode})"
            next_run = ScheduleChecker.next_run_time(job)
            if next_run is not None:
                line += f", next scheduled {next_run:%Y-%m-%d %H:%M}"
            self.output(line)

        answer = self._ask("Job number or name")
        if not answer:
            return
        if answer.isdigit() and 1 <= int(answer) <= len(names):
            answer = names[int(answer) - 1]

        try:
            job = self.registry.get(answer)
        except (JobNotFound, NoConfigLoaded) as e:
            self.output(str(e))
            return

        self._record(self.manager.run_job(job, self.registry.base_dir, dry_run=self.dry_run))

    def run_all_jobs(self) -> None:
        try:
            results = self.manager.run_all(self.registry, dry_run=self.dry_run)
        except NoConfigLoaded as e:
            self.output(str(e))
            return
        for result in results:
            self._record(result)

    def run_manual(self) -> None:
        source = self._ask("Source directory")
        if not source:
            self.output("A source directory is required.")
            return
        destination = self._ask("Destination directory")
        if not destination:
            self.output("A destination directory is required.")
            return

        request = RunRequest(
            source=self.invocation_dir / Path(source).expanduser(),
            destination=self.invocation_dir / Path(destination).expanduser(),
            mirror=self._confirm("Mirror (delete files missing from source)?"),
            dry_run=self.dry_run,
        )
        self._record(self.manager.run(request))

    def toggle_dry_run(self) -> None:
        self.dry_run = not self.dry_run
        self.output(f"Dry run {'enabled' if self.dry_run else 'disabled'}.")

    def create_config_file(self) -> None:
        default = str(self.invocation_dir / DEFAULT_CONFIG_NAMES[0])
        answer = self._ask("Create configuration at", default=default)
        if not answer:
            return

        target = self.invocation_dir / Path(answer).expanduser()
        overwrite = False
        if target.exists():
            if not self._confirm(f"{target} exists. Overwrite?"):
                self.output("Configuration file left unchanged.")
                return
            overwrite = True

        try:
            create_config(target, overwrite=overwrite)
        except OSError as e:
            self.output(f"Could not create {target}: {e}")
            return
        self.output(f"Created {target}; edit it and restart to load its jobs.")

    def open_log_directory(self) -> None:
        self.open_logs(self.manager.log_dir)
