"""
Plugin version comparison.

Version strings are split into tokens on ``.``, ``,``, ``-``, ``_`` and on
letter/digit boundaries, so ``1.2rc3`` becomes ``[1, 2, "rc", 3]``. Token
sequences are compared left to right: numeric tokens numerically, anything
else as text.
"""

import enum
import re
from typing import List, Sequence, Union

_ALPHA_DIGIT = re.compile(r"([a-zA-Z]+)([0-9]+)")
_DIGIT_ALPHA = re.compile(r"([0-9]+)([a-zA-Z]+)")
_SEPARATORS = re.compile(r"[,\-_]")


class DependencyStatus(enum.IntEnum):
    """Outcome of a dependency check."""

    MET = 1
    MISSING = 0
    VERSION_MISMATCH = -1


def version_array(version: str) -> List[Union[int, str]]:
    """
    Split a version string into comparable tokens.

    Args:
        version: Version string, e.g. ``"1.2.0-beta1"``

    Returns:
        Tokens; numeric tokens are converted to ints
    """
    version = _ALPHA_DIGIT.sub(r"\1.\2", version)
    version = _DIGIT_ALPHA.sub(r"\1.\2", version)
    version = _SEPARATORS.sub(".", version)
    return [_coerce(token) for token in version.split(".")]


def _coerce(token: str) -> Union[int, str]:
    stripped = token.strip()
    if stripped.isdecimal():
        return int(stripped)
    return token


def _compare(a: Union[int, str], b: Union[int, str]) -> int:
    if not (isinstance(a, int) and isinstance(b, int)):
        a, b = str(a), str(b)
    return (a > b) - (a < b)


def version_check(
    have: Union[str, Sequence[Union[int, str]]],
    required: Union[str, Sequence[Union[int, str]]],
    maximum: bool = False,
) -> DependencyStatus:
    """
    Check a version against a minimum or maximum bound.

    The first differing token decides. When one side runs out of tokens:
    a minimum check is met if ``have`` still has tokens or both ran out
    together; a maximum check (strictly less than) is met only if
    ``required`` still has tokens.

    Args:
        have: Version being checked (string or token list)
        required: Version bound (string or token list)
        maximum: Check ``have < required`` instead of ``have >= required``

    Returns:
        DependencyStatus.MET or DependencyStatus.VERSION_MISMATCH

    Example:
        >>> version_check("1.2", "1.3")
        <DependencyStatus.VERSION_MISMATCH: -1>
        >>> version_check("1.2", "1.3", maximum=True)
        <DependencyStatus.MET: 1>
    """
    have_tokens = version_array(have) if isinstance(have, str) else list(have)
    required_tokens = (
        version_array(required) if isinstance(required, str) else list(required)
    )

    for have_token, required_token in zip(have_tokens, required_tokens):
        order = _compare(have_token, required_token)
        if order == 0:
            continue
        if maximum:
            order = -order
        return DependencyStatus.MET if order > 0 else DependencyStatus.VERSION_MISMATCH

    common = min(len(have_tokens), len(required_tokens))
    have_left = len(have_tokens) - common
    required_left = len(required_tokens) - common

    if maximum:
        if required_left > 0:
            return DependencyStatus.MET
    elif have_left > 0 or required_left == 0:
        return DependencyStatus.MET

    return DependencyStatus.VERSION_MISMATCH


def parse_requirement(required: str) -> tuple[str, bool]:
    """
    Parse a dependency constraint.

    A ``<`` anywhere selects a maximum bound on the text after it; otherwise
    the constraint is a minimum, optionally written with a leading ``>=``.

    Returns:
        The version text and whether it is a maximum bound
    """
    required = required.strip()
    lt_pos = required.find("<")
    if lt_pos != -1:
        return required[lt_pos + 1 :].strip(), True
    if required.startswith(">="):
        required = required[2:].strip()
    return required, False
