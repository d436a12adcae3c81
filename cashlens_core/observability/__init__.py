from cashlens_core.observability.logging import log_command, setup_logging  # noqa: F401

__all__ = ["log_command", "setup_logging"]
