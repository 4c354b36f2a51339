"""
Project code helpers.

Project codes are seven digit strings starting with ``2`` (e.g. ``2601007``)
that staff type into invoice and bill memos and into storage folder names.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

PROJECT_CODE_PATTERN = re.compile(r"\b(?P<code>2\d{6})\b", re.ASCII)
PROJECT_CODE_FULLMATCH = re.compile(r"2\d{6}", re.ASCII)

# Folder names look like "2601007 - CD - PetroCan Kamloops"
FOLDER_PATTERN = re.compile(r"^(?P<code>\d{7})\s*-\s*(?P<client>\w+)\s*-\s*(?P<description>.+)$")


def extract_project_code(text: Optional[str]) -> Optional[str]:
    """Return the first standalone project code found in ``text``.

    ``None`` is returned for empty input or when no word-bounded
    seven-digit code starting with ``2`` is present.
    """

    if not text:
        return None
    match = PROJECT_CODE_PATTERN.search(str(text))
    if match is None:
        return None
    return match.group("code")


def is_project_code(value: object) -> bool:
    if value is None:
        return False
    return PROJECT_CODE_FULLMATCH.fullmatch(str(value).strip()) is not None


def parse_project_folder(name: Optional[str]) -> Optional[Tuple[str, str, str]]:
    """
    Split a storage folder name into ``(code, client_code, description)``.

    Returns ``None`` when the folder does not follow the
    ``"<code> - <client> - <description>"`` convention or the leading
    number is not a valid project code.
    """

    if not name:
        return None
    match = FOLDER_PATTERN.match(name.strip())
    if not match:
        return None
    code = match.group("code")
    if not is_project_code(code):
        return None
    return code, match.group("client").upper(), match.group("description").strip()
