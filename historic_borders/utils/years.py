"""Year token codec.

Dataset files and routes spell BCE years with a ``bc`` prefix
(``world_bc500.geojson`` is 500 BCE).  Internally years are integers,
negative for BCE.
"""

from __future__ import annotations

import re

from historic_borders.core.exceptions import YearFormatError

_YEAR_TOKEN = re.compile(r"(bc)?(\d{1,5})", re.IGNORECASE | re.ASCII)
_SIGNED_YEAR = re.compile(r"-\d{1,5}", re.ASCII)
_WORLD_FILE = re.compile(r"world_(bc)?(\d{1,5})\.geojson", re.IGNORECASE | re.ASCII)


def parse_year(token: str | int) -> int:
    """Parse ``"1492"`` → ``1492`` and ``"bc500"`` → ``-500``.

    A leading minus sign is also accepted (``"-500"``).

    Raises:
        YearFormatError: If *token* is not a year.
    """
    if isinstance(token, int) and not isinstance(token, bool):
        return token
    text = str(token).strip()
    if _SIGNED_YEAR.fullmatch(text):
        return int(text)
    match = _YEAR_TOKEN.fullmatch(text)
    if match is None:
        msg = f"Not a year: {token!r} (expected e.g. '1492' or 'bc500')"
        raise YearFormatError(msg)
    year = int(match.group(2))
    return -year if match.group(1) else year


def format_year(year: int) -> str:
    """Inverse of ``parse_year``: ``-500`` → ``"bc500"``."""
    return f"bc{-year}" if year < 0 else str(year)


def year_from_filename(filename: str) -> int | None:
    """Return the year of a ``world_<year>.geojson`` file, else ``None``."""
    match = _WORLD_FILE.fullmatch(filename)
    if match is None:
        return None
    year = int(match.group(2))
    return -year if match.group(1) else year
