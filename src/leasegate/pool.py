"""Identifier pool - pattern expansion and startup seeding."""

import logging
import re
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from leasegate.db.repositories import IdentifierRepository

logger = logging.getLogger("leasegate.pool")

_NUMBER = re.compile(r"\+?[0-9]+")


def expand_pattern(pattern: str) -> list[str]:
    """
    Expand every ``[start-end]`` range in a pattern.

    The first range is expanded inclusively and the remainder of the
    pattern recursively, so ``vm-[1-2]-[1-2]`` yields four values.
    A malformed range leaves the pattern as a literal identifier.
    """
    open_at = pattern.find("[")
    close_at = pattern.find("]")
    # The first "]" must follow the first "["
    if open_at == -1 or close_at == -1 or open_at > close_at:
        return [pattern]

    prefix = pattern[:open_at]
    body = pattern[open_at + 1 : close_at]
    suffix = pattern[close_at + 1 :]
    bounds = body.split("-")
    if len(bounds) != 2:
        logger.warning(f"Invalid range format: {body}")
        return [pattern]

    if not all(_NUMBER.fullmatch(bound) for bound in bounds):
        logger.warning(f"Invalid range numbers: {body}")
        return [pattern]
    start, end = int(bounds[0]), int(bounds[1])
    if start > end:
        logger.warning(f"Invalid range numbers: {body}")
        return [pattern]

    tails = expand_pattern(suffix)
    return [f"{prefix}{number}{tail}" for number in range(start, end + 1) for tail in tails]


def expand_patterns(patterns: Iterable[str]) -> list[str]:
    """Expand patterns into a deduplicated list, keeping first-seen order."""
    identifiers: dict[str, None] = {}
    for pattern in patterns:
        pattern = pattern.strip()
        if not pattern:
            continue
        for identifier in expand_pattern(pattern):
            identifiers.setdefault(identifier, None)
    return list(identifiers)


async def seed_pool(session: AsyncSession, patterns: Iterable[str]) -> int:
    """Insert the expanded pool as free identifiers. Returns rows added."""
    identifiers = expand_patterns(patterns)
    added = await IdentifierRepository(session).seed(identifiers)
    logger.info(
        f"Preloaded {len(identifiers)} identifiers into the database ({added} new)"
    )
    return added
