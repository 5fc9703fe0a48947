"""
Password utilities — random password generation and a strength heuristic.

Both helpers are independent of the vault's cryptographic core.
"""
import secrets
import unicodedata

from typing import Optional

from pydantic import BaseModel, Field

from .exceptions import VaultValidationError

UPPER_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWER_CHARS = "abcdefghijklmnopqrstuvwxyz"
DIGIT_CHARS = "0123456789"
SYMBOL_CHARS = "!@#$%^&*_+-="
SIMILAR_CHARS = "il1Lo0O"
AMBIGUOUS_CHARS = "{}[]()/'\"`,;:.<>\\"

DEFAULT_LENGTH = 12
MIN_LENGTH = 4


class PasswordOptions(BaseModel):
    """Character classes and length of a generated password."""

    length: int = 16
    upper: bool = True
    lower: bool = True
    digits: bool = True
    symbols: bool = True
    exclude_similar: bool = False
    exclude_ambiguous: bool = False


class PasswordStrength(BaseModel):
    score: int = Field(ge=0, le=100)
    feedback: list[str] = Field(default_factory=list)


def _strip(chars: str, options: PasswordOptions) -> str:
    if options.exclude_similar:
        chars = "".join(c for c in chars if c not in SIMILAR_CHARS)
    if options.exclude_ambiguous:
        chars = "".join(c for c in chars if c not in AMBIGUOUS_CHARS)
    return chars


def generate_password(options: Optional[PasswordOptions] = None) -> str:
    """Generate a random password with the CSPRNG.

    Lengths below 4 fall back to 12. At least one character of every
    selected class is included before the result is shuffled.

    Raises:
        VaultValidationError: If no character class is selected.
    """
    options = options or PasswordOptions()
    selected = [
        chars for enabled, chars in (
            (options.upper, UPPER_CHARS),
            (options.lower, LOWER_CHARS),
            (options.digits, DIGIT_CHARS),
            (options.symbols, SYMBOL_CHARS),
        ) if enabled
    ]
    # each selected class still needs a candidate after exclusions
    selected = [c for c in (_strip(chars, options) for chars in selected) if c]
    charset = "".join(selected)
    if not charset:
        raise VaultValidationError("no characters available for password generation")
    length = options.length if options.length >= MIN_LENGTH else DEFAULT_LENGTH

    chars = [secrets.choice(group) for group in selected]
    chars.extend(secrets.choice(charset) for _ in range(length - len(chars)))
    # Fisher-Yates with the CSPRNG
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]
    return "".join(chars)


def analyze_password_strength(password: str) -> PasswordStrength:
    """Score a password from 0 to 100 with human-readable feedback."""
    if not password:
        return PasswordStrength(score=0, feedback=["Password is empty"])

    has_upper = has_lower = has_digit = has_symbol = False
    for char in password:
        category = unicodedata.category(char)
        if char.isupper():
            has_upper = True
        elif char.islower():
            has_lower = True
        elif category.startswith("N"):
            has_digit = True
        elif category[0] in ("P", "S"):
            has_symbol = True
    categories = sum((has_upper, has_lower, has_digit, has_symbol))

    size = len(password)
    score = min(size * 2, 40) + categories * 10
    feedback = []
    if size < 8:
        feedback.append("Password is too short")
    if not has_upper or not has_lower:
        feedback.append("Mix upper and lowercase letters")
    if not has_digit:
        feedback.append("Add numbers")
    if not has_symbol:
        feedback.append("Add symbols")

    if size >= 12 and categories == 4:
        score += 20
    elif size >= 10 and categories >= 3:
        score += 10
    score = min(score, 100)

    if score >= 80:
        feedback.append("Strong password!")
    elif score >= 60:
        feedback.append("Good password, but could be stronger")
    elif score >= 40:
        feedback.append("Moderate password - consider strengthening")
    else:
        feedback.append("Weak password - needs improvement")
    return PasswordStrength(score=score, feedback=feedback)
