from __future__ import annotations
import sys
import uuid
from typing import TYPE_CHECKING, Any, Dict, Optional
from loguru import logger

if TYPE_CHECKING:
    from .models import TaskResult

_CONSOLE_FMT = "<level>{level: <8}</level> | <green>{time:HH:mm:ss}</green> | <cyan>{message}</cyan>"

ELIDED_MARKER = "[...]"


def setup_console(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=_CONSOLE_FMT, enqueue=True, backtrace=False, diagnose=False)

def setup_json(path: str, level: str = "DEBUG") -> None:
    logger.add(path, level=level.upper(), serialize=True, enqueue=True)

def configure_logging(log_level: str = "INFO", log_json_path: Optional[str] = None) -> None:
    """Human console output plus an optional JSON-lines file."""
    setup_console(log_level)
    if log_json_path:
        setup_json(log_json_path)

def bind_run(run_id: Optional[str] = None) -> str:
    """Tag every following record with a run id; returns it."""
    rid = run_id or uuid.uuid4().hex[:12]
    logger.configure(extra={"run_id": rid})
    return rid

def log_event(action: str, **fields: Any) -> None:
    # msg and level ride along with the fields; None values are dropped
    clean: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
    msg = clean.pop("msg", action)
    level = clean.pop("level", "INFO").upper()
    logger.bind(action=action, **clean).log(level, msg)


def log_outcome(done: int, total: int, result: "TaskResult") -> None:
    """One console line per finished file plus a structured record for the JSON sink."""
    name = result.audio_file.name
    err = result.error
    source = {k: v for k, v in (("duration_s", result.duration_s), ("info", result.info)) if v is not None}
    if result.ok:
        logger.bind(
            action="convert", file=name, status="ok", elapsed_ms=int(result.elapsed_s * 1000), **source
        ).debug("convert complete")
        logger.info(f"[{done}/{total}] OK  {name} -> {result.output_path}")
        return
    logger.bind(
        action="convert",
        file=name,
        status="error",
        kind=err.kind.value if err else None,
        reason=err.detail if err else None,
        **source,
    ).debug("convert failed")
    logger.error(f"[{done}/{total}] ERR {err.user_message() if err else name}")


def tail(text: str, max_chars: int = 4096, max_lines: int = 20) -> str:
    """Last lines of tool output; ffmpeg prints the actual failure at the end."""
    lines = (text or "").strip().splitlines()
    if not lines:
        return ""
    out = "\n".join(lines[-max_lines:])
    if len(lines) > max_lines or len(out) > max_chars:
        out = ELIDED_MARKER + "\n" + out[-max_chars:]
    return out
