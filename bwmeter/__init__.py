"""Usage text, report messages, error codes and SCTP helpers for a bandwidth tester."""

__version__ = "0.1.0"
__all__ = ["usage", "messages", "errors", "sctp", "sctp_socket"]