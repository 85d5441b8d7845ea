"""
Branch classification by requester address.

Branches are matched by literal string prefix of the (IPv4) address, in table
order. The table ends with a single fallback entry that has no subnet.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from .models import Branch

logger = logging.getLogger(__name__)

IPV4_MAPPED_PREFIX = "::ffff:"

DEFAULT_BRANCHES: tuple[Branch, ...] = (
    Branch(code="001", name="Janakpur", subnet="172.17.101"),
    Branch(code="002", name="Gaushala", subnet="192.168.131"),
    Branch(code="003", name="Kalyanpur", subnet="192.168.101"),
    Branch(code="004", name="Rajbiraj", subnet="192.168.111"),
    Branch(code="005", name="Ramgopalpur", subnet="192.168.141"),
    Branch(code="006", name="Manara", subnet="192.168.151"),
    Branch(code="007", name="Kaudena", subnet="192.168.71"),
    Branch(code="008", name="Godaita", subnet="192.168.81"),
    Branch(code="009", name="Other", subnet=None),
)


def clean_address(address: Optional[str]) -> str:
    if not isinstance(address, str):
        return ""
    cleaned = address.strip()
    if cleaned.lower().startswith(IPV4_MAPPED_PREFIX):
        cleaned = cleaned[len(IPV4_MAPPED_PREFIX):]
    return cleaned


class BranchClassifier:
    """Maps a requester address to a "<code> <name>" branch label. Never raises."""

    def __init__(self, branches: Optional[Iterable[Branch]] = None) -> None:
        table: Sequence[Branch] = tuple(branches) if branches else DEFAULT_BRANCHES
        if table[-1].subnet is not None:
            raise ValueError("The last branch must be the fallback entry without a subnet")
        self._matchers = tuple(branch for branch in table if branch.subnet)
        self._fallback = table[-1]

    @property
    def fallback_label(self) -> str:
        return self._fallback.label

    def classify(self, address: Optional[str]) -> str:
        cleaned = clean_address(address)
        if not cleaned:
            return self._fallback.label
        for branch in self._matchers:
            if cleaned.startswith(branch.subnet):
                return branch.label
        logger.debug("No branch matches %s; using fallback", cleaned)
        return self._fallback.label
