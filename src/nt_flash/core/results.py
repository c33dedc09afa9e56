"""
Outcome of a flash run.

A run always ends in exactly one OperationResult; partial success is never
reported. The CLI prints ``to_summary()`` in verbose mode and embedding
tools can serialize ``to_dict()``.
"""

from dataclasses import asdict, dataclass, field
from typing import List, Dict, Any, Optional

from .messages import FailureCode


@dataclass
class OperationResult:
    """
    Result of one orchestrated operation.

    Attributes:
        ok: True only if the run reached Complete
        operation: Operation name ("flash_firmware")
        model: Target device name
        bytes_len: Firmware image size
        hashes: sha256 digests of the flashed images
        warnings: Notes that did not stop the run
        errors: Failure messages; non-empty means ok is False
        metadata: Run details: failure code, phase, phases traversed,
                  skip_sdp, erase_size, dry_run
        logs: Log lines captured during the run
    """
    ok: bool
    operation: str
    model: str = ""
    bytes_len: int = 0
    hashes: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, operation: str, **kwargs) -> "OperationResult":
        return cls(True, operation, **kwargs)

    @classmethod
    def failure_of(
        cls,
        operation: str,
        error: str,
        code: FailureCode,
        **kwargs,
    ) -> "OperationResult":
        """Failed result tagged with ``code`` (readable back via ``failure``)."""
        result = cls(False, operation, **kwargs)
        result.errors.append(error)
        result.metadata["failure"] = code
        return result

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def add_error(self, message: str) -> None:
        """Record an error; the result counts as failed from now on."""
        self.errors.append(message)
        self.ok = False

    @property
    def failure(self) -> Optional[FailureCode]:
        return self.metadata.get("failure")

    @property
    def error(self) -> str:
        """First error message, or empty string."""
        return next(iter(self.errors), "")

    def to_summary(self) -> str:
        """Multi-line, human-readable report of the run."""
        meta = self.metadata
        out = [f"[{'SUCCESS' if self.ok else 'FAILED'}] {self.operation}"]

        details = [
            ("Model", self.model),
            ("Firmware", f"{self.bytes_len:,} bytes" if self.bytes_len else ""),
            ("Erase", f"{meta['erase_size']:,} bytes" if meta.get("erase_size") else ""),
            ("Mode", "dry run" if meta.get("dry_run") else ""),
            ("SDP phase", "skipped (flashloader already running)" if meta.get("skip_sdp") else ""),
            ("Stopped in", meta.get("phase", "") if not self.ok else ""),
        ]
        out.extend(f"  {label}: {value}" for label, value in details if value)
        out.extend(f"  {name}: {digest[:16]}..." for name, digest in self.hashes.items())

        for title, items in (("Warnings", self.warnings), ("Errors", self.errors)):
            if items:
                out.append(f"  {title}:")
                out.extend(f"    - {item}" for item in items)
        return "\n".join(out)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly copy; the failure code is rendered by name."""
        data = asdict(self)
        failure = data["metadata"].get("failure")
        if isinstance(failure, FailureCode):
            data["metadata"]["failure"] = failure.value
        return data
