from typing import Any, Mapping

__all__ = ["format_criteria", "fmt_ctx"]


def format_criteria(criteria: Mapping[str, Any]) -> str:
    """Formats lookup criteria as ``key: value, ...`` for error messages."""
    return ", ".join(f"{key}: {value}" for key, value in criteria.items())


def fmt_ctx(ctx: Mapping[str, Any]) -> str:
    """Return a deterministic key=value string used in log messages."""
    return " ".join(f"{k}={v}" for k, v in ctx.items() if v is not None)
