import os
from pathlib import Path
from typing import Iterable, Optional

import config

# Config file sections that do not name a profile.
NON_PROFILE_SECTIONS = ("sso-session ", "services ")

logger = config.get_logger(service="profiles")


def default_profile_paths() -> list[Path]:
    aws_dir = Path.home() / ".aws"
    return [
        Path(os.environ.get("AWS_CONFIG_FILE") or aws_dir / "config").expanduser(),
        Path(os.environ.get("AWS_SHARED_CREDENTIALS_FILE") or aws_dir / "credentials").expanduser(),
    ]


def parse_profile_names(lines: Iterable[str]) -> set[str]:
    names = set()
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith(("#", ";")):
            continue
        if not (line.startswith("[") and line.endswith("]")):
            continue
        name = line[1:-1].strip()
        if name.startswith(NON_PROFILE_SECTIONS):
            continue
        name = name.removeprefix("profile ").strip()
        if name:
            names.add(name)
    return names


def load_profiles(paths: Optional[list[Path]] = None) -> list[str]:
    """Sorted, de-duplicated profile names from the AWS config and credentials files.

    Missing files contribute nothing; other read errors propagate.
    """
    names: set[str] = set()
    for path in paths if paths is not None else default_profile_paths():
        try:
            with open(path, encoding="utf-8") as f:
                names |= parse_profile_names(f)
        except FileNotFoundError:
            logger.debug("Profile file not found", extra={"path": str(path)})
            continue
    logger.info("Loaded AWS profiles", extra={"count": len(names)})
    return sorted(names)
