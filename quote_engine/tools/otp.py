"""
One-time code verification for customers who are not signed in.

In production the identity provider is the auth backend's email OTP flow.
The in-memory provider issues real random codes and is used by tests and
the console demo.
"""

import re
import secrets
from typing import Optional, Protocol

from quote_engine.config import settings
from quote_engine.errors import ValidationBlocked, VerificationFailed
from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.booking_schema import AuthenticatedUser
from quote_engine.utils import is_valid_email, normalize_email

logger = get_session_logger(__name__)


class IdentityProvider(Protocol):
    def is_authenticated(self) -> bool: ...

    def current_user(self) -> Optional[AuthenticatedUser]: ...

    def current_user_email(self) -> Optional[str]: ...

    async def send_code(self, email: str) -> None: ...

    async def confirm_code(self, email: str, code: str) -> Optional[AuthenticatedUser]: ...


class OtpEntry:
    """
    The six single-character code positions and the focused position.

    Mirrors how a code form behaves: typing advances focus, paste fans out
    across positions, and backspace on an empty box steps back.
    """

    def __init__(self, length: Optional[int] = None) -> None:
        self.length = settings.otp.code_length if length is None else length
        self.digits: list[str] = [""] * self.length
        self.focus = 0

    def set_digit(self, index: int, value: str) -> None:
        """Set one position, keeping only the last character typed."""
        if not 0 <= index < self.length:
            raise IndexError(f"Code position out of range: {index}")
        value = value[-1:] if value else ""
        self.digits[index] = value
        if value and index < self.length - 1:
            self.focus = index + 1
        else:
            self.focus = index

    def backspace(self, index: int) -> None:
        """Clear a position, or move focus back when it is already empty."""
        if self.digits[index]:
            self.digits[index] = ""
            self.focus = index
        elif index > 0:
            self.focus = index - 1

    def paste(self, text: str) -> None:
        """Spread pasted digits across positions from the start."""
        pasted = re.sub(r"\D", "", text)[: self.length]
        for i, char in enumerate(pasted):
            self.digits[i] = char
        self.focus = min(len(pasted), self.length - 1)

    def clear(self) -> None:
        self.digits = [""] * self.length
        self.focus = 0

    def is_complete(self) -> bool:
        return all(self.digits)

    @property
    def code(self) -> str:
        return "".join(self.digits)


class OTPAuthController:
    """Sends codes and confirms them through the identity provider."""

    def __init__(self, identity: IdentityProvider) -> None:
        self._identity = identity
        self.code_sent_to: Optional[str] = None

    async def request_code(self, email: str) -> None:
        if not is_valid_email(email):
            raise ValidationBlocked("invalid_email", "Please enter a valid email address.")
        try:
            await self._identity.send_code(email)
        except VerificationFailed:
            logger.warning("Code delivery failed for %s", email)
            raise
        self.code_sent_to = email
        logger.info("Verification code sent to %s", email)

    async def confirm_code(self, entry: OtpEntry) -> AuthenticatedUser:
        """Confirm the entered code.

        Raises:
            ValidationBlocked: if no code was requested or a position is empty.
            VerificationFailed: if the provider rejects the code.
        """
        if self.code_sent_to is None:
            raise ValidationBlocked("code_not_requested", "Request a verification code first.")
        if not entry.is_complete():
            raise ValidationBlocked(
                "code_incomplete", f"Enter all {entry.length} digits of your code."
            )

        user = await self._identity.confirm_code(self.code_sent_to, entry.code)
        if user is None:
            logger.info("Verification code rejected for %s", self.code_sent_to)
            raise VerificationFailed("Invalid or expired verification code")
        logger.info("Verification succeeded for %s", self.code_sent_to)
        return user


class InMemoryIdentityProvider:
    """Issues random numeric codes and remembers the last one per email."""

    def __init__(
        self,
        signed_in: Optional[AuthenticatedUser] = None,
        code_length: Optional[int] = None,
    ) -> None:
        self._user = signed_in
        self._code_length = settings.otp.code_length if code_length is None else code_length
        self._codes: dict[str, str] = {}
        self._users: dict[str, AuthenticatedUser] = {}
        self.outbox: list[tuple[str, str]] = []

    def is_authenticated(self) -> bool:
        return self._user is not None

    def current_user(self) -> Optional[AuthenticatedUser]:
        return self._user

    def current_user_email(self) -> Optional[str]:
        return self._user.email if self._user else None

    async def send_code(self, email: str) -> None:
        code = "".join(secrets.choice("0123456789") for _ in range(self._code_length))
        self._codes[normalize_email(email)] = code
        self.outbox.append((email, code))

    async def confirm_code(self, email: str, code: str) -> Optional[AuthenticatedUser]:
        key = normalize_email(email)
        expected = self._codes.get(key)
        if expected is None or not secrets.compare_digest(expected, code):
            return None
        del self._codes[key]
        # The same email always signs in as the same user
        if key not in self._users:
            self._users[key] = AuthenticatedUser(id=f"user-{secrets.token_hex(4)}", email=email)
        self._user = self._users[key]
        return self._user

    def last_code_for(self, email: str) -> Optional[str]:
        return self._codes.get(normalize_email(email))
