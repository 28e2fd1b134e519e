"""
ChannelName value object - immutable room channel name with validation.
"""

import re
from dataclasses import dataclass
from typing import ClassVar

from parloir.domain.exceptions import InvalidChannelNameError


@dataclass(frozen=True)
class ChannelName:
    """
    Value object representing a validated room channel name.

    Naming rules:
    - Letters, digits, dots, hyphens, underscores and colons
    - Must not start with a colon ("[" and ":" prefixes are broker qualifiers)
    - Maximum 100 characters

    Examples:
        - parloir-chat
        - rooms:lobby
        - team.design
    """

    name: str

    PATTERN: ClassVar[re.Pattern] = re.compile(r"^[A-Za-z0-9_.\-][A-Za-z0-9_.:\-]*$")
    MAX_LENGTH: ClassVar[int] = 100

    def __post_init__(self):
        """Validate channel name on creation."""
        if not self.name:
            raise InvalidChannelNameError(self.name, "cannot be empty")

        if len(self.name) > self.MAX_LENGTH:
            raise InvalidChannelNameError(
                self.name, f"too long (max {self.MAX_LENGTH} characters)"
            )

        if not self.PATTERN.match(self.name):
            raise InvalidChannelNameError(
                self.name,
                "must contain only letters, numbers, dots, hyphens, "
                "underscores and colons",
            )

    @property
    def value(self) -> str:
        """Get channel name value."""
        return self.name

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"ChannelName({self.name!r})"
