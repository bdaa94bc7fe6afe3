"""Runtime verification switches and assertion helpers."""

from __future__ import annotations

import os
from enum import Enum
from typing import Callable, Optional, Union

ENV_VERIFY = "BBOLT_VERIFY"


class VerificationType(str, Enum):
    """Kinds of verification that can be switched on through the environment."""

    ALL = "all"
    ASSERT = "assert"


def _type_name(verification: Union[VerificationType, str]) -> str:
    if isinstance(verification, VerificationType):
        return verification.value
    return str(verification)


def _current_setting() -> str:
    return os.environ.get(ENV_VERIFY, "").lower()


class _EnvRestorer:
    """Restores the verification setting; usable as a callable or context manager."""

    def __init__(self, previous: Optional[str]) -> None:
        self._previous = previous

    def __call__(self) -> None:
        if self._previous is None:
            os.environ.pop(ENV_VERIFY, None)
        else:
            os.environ[ENV_VERIFY] = self._previous

    def __enter__(self) -> "_EnvRestorer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self()


def is_verification_enabled(verification: Union[VerificationType, str]) -> bool:
    """Return True if the environment enables the given verification."""
    setting = _current_setting()
    return setting == VerificationType.ALL.value or setting == _type_name(verification).lower()


def enable_verifications(verification: Union[VerificationType, str]) -> _EnvRestorer:
    """Enable a verification; the returned object restores the previous setting."""
    restorer = _EnvRestorer(os.environ.get(ENV_VERIFY))
    os.environ[ENV_VERIFY] = _type_name(verification)
    return restorer


def enable_all_verifications() -> _EnvRestorer:
    """Enable every verification; the returned object restores the previous setting."""
    return enable_verifications(VerificationType.ALL)


def disable_verifications() -> _EnvRestorer:
    """Remove the verification setting; the returned object restores it."""
    restorer = _EnvRestorer(os.environ.get(ENV_VERIFY))
    os.environ.pop(ENV_VERIFY, None)
    return restorer


def verify(check: Callable[[], object]) -> None:
    """Run ``check`` only when assertion verification is enabled."""
    if is_verification_enabled(VerificationType.ASSERT):
        check()


def assert_that(condition: bool, msg: str, *args: object) -> None:
    """Raise AssertionError with a formatted message when ``condition`` is false."""
    if not condition:
        text = msg % args if args else msg
        raise AssertionError("assertion failed: " + text)