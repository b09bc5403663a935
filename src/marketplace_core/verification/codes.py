"""One-time code generation."""

from __future__ import annotations

import secrets
import string

MIN_CODE_LENGTH = 4


class CodeGenerator:
    """Produces fixed-length numeric codes from the OS CSPRNG.

    Each digit is drawn independently, so leading zeros are as likely
    as any other digit and every code of the configured length is
    equally probable.
    """

    def __init__(self, length: int = 6) -> None:
        if length < MIN_CODE_LENGTH:
            raise ValueError(f"OTP length must be at least {MIN_CODE_LENGTH}, got {length}")
        self.length = length

    def generate(self) -> str:
        return "".join(secrets.choice(string.digits) for _ in range(self.length))
