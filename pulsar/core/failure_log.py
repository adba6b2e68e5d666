import json
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict


class FailureLog:
    """Appends one JSON record per unexpected exception to a log file.

    Write errors are not caught.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def write(self, exc: BaseException) -> Dict[str, Any]:
        record = exception_record(exc)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, default=str) + "\n")
        return record


def exception_record(exc: BaseException) -> Dict[str, Any]:
    frames = traceback.extract_tb(exc.__traceback__)
    origin = frames[-1] if frames else None
    return {
        "date": datetime.now().astimezone().isoformat(timespec="seconds"),
        "message": str(exc),
        "code": exception_code(exc),
        "file": origin.filename if origin else None,
        "line": origin.lineno if origin else None,
        "trace": [{"file": f.filename, "line": f.lineno, "function": f.name} for f in frames],
    }


def exception_code(exc: BaseException) -> int:
    for attribute in ("code", "status_code", "errno"):
        value = getattr(exc, attribute, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return 0
