"""Read and write the ``.env`` files holding the shop configuration."""

from __future__ import annotations

from collections import OrderedDict
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional

from dotenv import dotenv_values

ROOT_DIR = Path(__file__).resolve().parents[1]
ENV_PATH = ROOT_DIR / ".env"
EXAMPLE_PATH = ROOT_DIR / ".env.example"

# Never shown on the settings page.
HIDDEN_KEYS = {"DB_PATH"}


def _report(
    error: Exception,
    *,
    logger: Optional[Callable[[str, Exception], None]] = None,
    on_error: Optional[Callable[[str], None]] = None,
    message: str,
) -> None:
    if logger is not None:
        logger(message, error)
    if on_error is not None:
        on_error(message)


def load_settings(
    *,
    include_hidden: bool = False,
    example_path: Path = EXAMPLE_PATH,
    env_path: Path = ENV_PATH,
    logger: Optional[Callable[[str, Exception], None]] = None,
    on_error: Optional[Callable[[str], None]] = None,
) -> "OrderedDict[str, str]":
    """Return ``.env.example`` defaults overridden by ``.env``.

    Keys keep the order of the template; keys only present in ``.env`` are
    appended at the end.
    """

    if not example_path.exists():
        _report(
            FileNotFoundError(example_path),
            logger=logger,
            on_error=on_error,
            message=f"Settings template missing: {example_path}",
        )
        return OrderedDict()

    try:
        example = dotenv_values(example_path)
        current = dotenv_values(env_path) if env_path.exists() else {}
    except OSError as exc:
        _report(
            exc,
            logger=logger,
            on_error=on_error,
            message=f"Failed to load .env files: {exc}",
        )
        return OrderedDict()

    values: "OrderedDict[str, str]" = OrderedDict()
    for key, default in example.items():
        values[key] = current.get(key, default)
    for key, val in current.items():
        values.setdefault(key, val)

    if not include_hidden:
        for hidden in HIDDEN_KEYS:
            values.pop(hidden, None)

    return values


def write_env(
    values: Mapping[str, str],
    *,
    example_path: Path = EXAMPLE_PATH,
    env_path: Path = ENV_PATH,
    logger: Optional[Callable[[str, Exception], None]] = None,
    on_error: Optional[Callable[[str], None]] = None,
) -> bool:
    """Write ``values`` to ``.env`` keeping the template order."""

    try:
        example = dotenv_values(example_path)
        current = dotenv_values(env_path) if env_path.exists() else {}
    except OSError as exc:
        _report(
            exc,
            logger=logger,
            on_error=on_error,
            message=f"Failed to read env template: {exc}",
        )
        return False

    ordered_keys: Iterable[str] = list(example.keys()) + [
        key for key in values.keys() if key not in example
    ]
    try:
        with env_path.open("w", encoding="utf-8") as handle:
            for key in ordered_keys:
                val = values.get(key, current.get(key, example.get(key, "")))
                handle.write(f"{key}={'' if val is None else val}\n")
    except OSError as exc:
        _report(
            exc,
            logger=logger,
            on_error=on_error,
            message=f"Failed to write .env file: {exc}",
        )
        return False

    try:
        env_path.chmod(0o600)
    except (NotImplementedError, OSError) as exc:
        if logger is not None:
            logger("Failed to set permissions", exc)

    return True


__all__ = [
    "ENV_PATH",
    "EXAMPLE_PATH",
    "HIDDEN_KEYS",
    "load_settings",
    "write_env",
]
