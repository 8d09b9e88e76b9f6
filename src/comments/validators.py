"""Comment content validation.

Rules travel as an explicit value so that each call site decides which
limits apply; there is no module-level validator configuration.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple


if TYPE_CHECKING:
    from src.config.settings import Settings


class ValidationResult(NamedTuple):
    """Result of a validation check."""

    valid: bool
    message: str | None = None
    value: str | None = None


@dataclass(frozen=True)
class ContentRules:
    """Length limits applied to comment bodies."""

    min_length: int = 1
    max_length: int = 2000
    strip: bool = True

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ContentRules":
        """Build rules from application settings."""
        return cls(
            min_length=settings.comment_min_length,
            max_length=settings.comment_max_length,
        )


def validate_comment_content(content: str | None, rules: ContentRules) -> ValidationResult:
    """Validate a comment body against ``rules``.

    Returns:
        ValidationResult with the normalized content when valid

    Examples:
        >>> validate_comment_content("  hi  ", ContentRules())
        ValidationResult(valid=True, message=None, value='hi')
        >>> validate_comment_content("   ", ContentRules())
        ValidationResult(valid=False, message='Content cannot be empty', value=None)
    """
    if content is None:
        return ValidationResult(False, "Content is required")

    value = content.strip() if rules.strip else content
    if not value:
        return ValidationResult(False, "Content cannot be empty")
    if len(value) < rules.min_length:
        return ValidationResult(
            False, f"Content must be at least {rules.min_length} characters"
        )
    if len(value) > rules.max_length:
        return ValidationResult(
            False, f"Content must be at most {rules.max_length} characters"
        )
    return ValidationResult(True, value=value)
