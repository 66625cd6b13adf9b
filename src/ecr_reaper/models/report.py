"""Records produced by per-repository pipelines and collected afterward."""

from dataclasses import dataclass, field

from .image import DeletionResult


@dataclass(frozen=True, order=True)
class LogEntry:
    """A buffered log message.

    Entries sort by message text, so output from concurrent pipelines can
    be emitted in a stable order.
    """

    message: str
    level: str = "info"


@dataclass
class RepositoryResult:
    """Everything one repository's pipeline has to say for itself."""

    repository: str
    tagged: int = 0
    untagged: int = 0
    orphans: list[str] = field(default_factory=list)
    deletion: DeletionResult | None = None
    error: Exception | None = None
    messages: list[LogEntry] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def log(self, message: str, level: str = "info") -> None:
        self.messages.append(
            LogEntry(
                message=f"Repository {self.repository}: {message}",
                level=level,
            )
        )

    def status(self) -> str:
        if self.error is not None:
            return "FAILED"
        if self.deletion is None:
            return "clean"
        if self.deletion.dry_run:
            return "dry run"
        if self.deletion.failed:
            return "partial"
        return "deleted"
