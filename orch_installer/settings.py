"""Environment-driven configuration for the installer process."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    root_path: Path
    log_dir: Path
    state_file: Path
    keep_generated_files: bool
    terraform_exec_path: str
    timeout: Optional[float]
    log_level: str

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment variables with sensible defaults."""

        root_path = Path(os.getenv("ORCH_INSTALLER_ROOT_PATH", ".")).resolve()
        log_dir = Path(os.getenv("ORCH_INSTALLER_LOG_DIR", str(root_path / ".logs")))
        state_file = Path(
            os.getenv("ORCH_INSTALLER_STATE_FILE", str(root_path / ".deploy" / "runtime-state.yaml"))
        )
        keep_generated_files = (
            os.getenv("ORCH_INSTALLER_KEEP_GENERATED_FILES", "false").strip().lower() in _TRUTHY
        )
        terraform_exec_path = os.getenv("TERRAFORM_EXEC_PATH", "terraform")
        raw_timeout = os.getenv("ORCH_INSTALLER_TIMEOUT", "").strip()
        timeout = float(raw_timeout) if raw_timeout else None
        log_level = os.getenv("LOG_LEVEL", "INFO")
        return cls(
            root_path=root_path,
            log_dir=log_dir,
            state_file=state_file,
            keep_generated_files=keep_generated_files,
            terraform_exec_path=terraform_exec_path,
            timeout=timeout,
            log_level=log_level,
        )

    def ensure_directories(self) -> None:
        """Create directories required for the runtime to operate."""

        for path in {self.log_dir, self.state_file.parent}:
            if not path.exists():
                path.mkdir(parents=True, exist_ok=True)
