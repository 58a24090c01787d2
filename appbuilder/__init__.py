import os
from pathlib import Path
from typing import Dict, Optional


def parse_dotenv(text: str) -> Dict[str, str]:
    """Read KEY=VALUE lines; ``export`` prefixes and matching quotes are stripped."""
    values: Dict[str, str] = {}
    for line in text.splitlines():
        s = line.strip()
        if s.startswith("export "):
            s = s[len("export "):].lstrip()
        if not s or s.startswith("#") or "=" not in s:
            continue
        key, val = (part.strip() for part in s.split("=", 1))
        if len(val) >= 2 and val[0] == val[-1] and val[0] in "\"'":
            val = val[1:-1]
        if key:
            values[key] = val
    return values


def load_dotenv(path: Optional[Path] = None) -> None:
    env_path = path or Path(".env")
    try:
        text = env_path.read_text(encoding="utf-8")
    except OSError:
        return
    for key, val in parse_dotenv(text).items():
        # Real environment wins over the file
        os.environ.setdefault(key, val)


# Tests stay offline and deterministic
if not os.getenv("PYTEST_CURRENT_TEST"):
    load_dotenv()
