"""
Audit trail of confinement decisions and filesystem mutations.

Records go to the 'plansandbox.audit' logger. When an audit log path is
configured, a file handler writes one JSON object per record.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from .config import SandboxConfig

AUDIT_LOGGER_NAME = "plansandbox.audit"


class AuditLogger:
    """Logs sandbox decisions for audit purposes."""

    def __init__(self, config: SandboxConfig):
        """
        Initialize audit logger.

        Args:
            config: Sandbox configuration
        """
        self.config = config
        self.log_file = config.audit_log_path
        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self._file_handler: Optional[logging.Handler] = None

        if self.log_file:
            self._setup_file_logging()

    def _setup_file_logging(self):
        """Set up JSON file audit logging."""
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        # Reuse a handler already attached for the same file
        target = str(Path(self.log_file).resolve())
        for handler in self.logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
                self._file_handler = handler
                return

        file_handler = logging.FileHandler(self.log_file, encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            jsonlogger.JsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s")
        )

        self.logger.addHandler(file_handler)
        self.logger.setLevel(logging.INFO)
        self._file_handler = file_handler

    def close(self):
        """Detach and close the file handler, if any."""
        if self._file_handler is not None:
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

    def log_operation(
        self,
        operation: str,
        path: str,
        success: bool,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Log a filesystem operation.

        Args:
            operation: Type of operation (delete, list, glob, bash, ...)
            path: Path or command concerned
            success: Whether the operation succeeded
            details: Optional additional details
        """
        if not self.config.enable_audit_logging:
            return

        status = "SUCCESS" if success else "FAILURE"
        extra = {"audit_operation": operation, "audit_path": path, "audit_status": status}
        if details:
            extra["audit_details"] = {k: str(v) for k, v in details.items()}

        self.logger.info(f"{status} - {operation} - {path}", extra=extra)

    def log_denial(self, path: str, jail_root: str, reason: str):
        """Log a path or command rejected by confinement."""
        if not self.config.enable_audit_logging:
            return

        self.logger.warning(
            f"DENIED - {path} - {reason}",
            extra={
                "audit_operation": "confine",
                "audit_path": path,
                "audit_status": "DENIED",
                "audit_jail_root": jail_root,
            },
        )
