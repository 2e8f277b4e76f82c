"""
Input validation and output sanitization.

Questions pass through three layers before they reach the relay:
1. Validation - presence, type and length
2. Screening - script, SQL and shell injection patterns
3. Normalization - whitespace, Unicode NFKC, zero-width characters

Completions are reduced to a small allow-list of HTML tags before they are
returned to the widget.
"""

import logging
import re
import unicodedata
from typing import Any, List, Pattern, Tuple

from bs4 import BeautifulSoup, Comment

from .errors import InvalidInput

logger = logging.getLogger(__name__)

MAX_QUESTION_LENGTH = 500

ALLOWED_TAGS = frozenset({"div", "p", "ol", "ul", "li", "strong", "em", "br", "h1", "h2", "h3"})
# Removed together with their content
STRIPPED_BODY_TAGS = ("script", "style")

_SUSPICIOUS_PATTERNS: List[Pattern] = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"on\w+=", re.IGNORECASE),
    re.compile(r"style\s*=\s*\"[^\"]*expression\s*\(", re.IGNORECASE),
    re.compile(r"@import", re.IGNORECASE),
    re.compile(r"<!entity", re.IGNORECASE),
    re.compile(r"\[constructor\]", re.IGNORECASE),
    re.compile(r"(__proto__|prototype|constructor)\s*=", re.IGNORECASE),
    re.compile(r"<!\[cdata\[", re.IGNORECASE),
    re.compile(r"//\s*source\s*mapping", re.IGNORECASE),
    re.compile(r"base64", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"function\s*\(", re.IGNORECASE),
    re.compile(r"setInterval|setTimeout", re.IGNORECASE),
    re.compile(r"new\s+Function", re.IGNORECASE),
    re.compile(r"document\.", re.IGNORECASE),
    re.compile(r"window\.", re.IGNORECASE),
    re.compile(r"\[\s*symbol\s*\]", re.IGNORECASE),
    re.compile(r"\{\s*\[Symbol\.", re.IGNORECASE),
]

_SQL_INJECTION_PATTERN = re.compile(
    r"(\b(select|insert|update|delete|drop|union|exec|declare|cast)\b)|(-{2})|(\b(or|and)\b\s+\w+\s*=\s*\w+)",
    re.IGNORECASE,
)

_COMMAND_INJECTION_PATTERN = re.compile(r"(\||;|`|&|\$\(|\$\{)")

_ZERO_WIDTH_PATTERN = re.compile("[\u200b-\u200d\ufeff]")

_SCREENS: Tuple[Tuple[str, List[Pattern]], ...] = (
    ("potentially malicious content detected", _SUSPICIOUS_PATTERNS),
    ("potential SQL injection detected", [_SQL_INJECTION_PATTERN]),
    ("potential command injection detected", [_COMMAND_INJECTION_PATTERN]),
)


def validate_question(question: Any, max_length: int = MAX_QUESTION_LENGTH) -> str:
    """Check a question is a non-blank string of at most ``max_length`` characters.

    Raises:
        InvalidInput: If any check fails
    """
    if not question or not isinstance(question, str):
        raise InvalidInput("Invalid input: question must be a non-empty string")
    if len(question) > max_length:
        raise InvalidInput(
            f"Invalid input: question exceeds maximum length of {max_length} characters"
        )
    if not question.strip():
        raise InvalidInput("Invalid input: question cannot be empty")
    return question


def screen_question(question: str) -> None:
    """Reject questions that look like script, SQL or shell injection.

    Raises:
        InvalidInput: If a pattern matches
    """
    for reason, patterns in _SCREENS:
        if any(pattern.search(question) for pattern in patterns):
            logger.warning("Rejected question: %s", reason)
            raise InvalidInput(f"Invalid input: {reason}")


def normalize_question(question: str) -> str:
    """Trim, NFKC-normalize and drop zero-width characters."""
    normalized = unicodedata.normalize("NFKC", question.strip())
    return _ZERO_WIDTH_PATTERN.sub("", normalized)


def sanitize_question(question: Any, max_length: int = MAX_QUESTION_LENGTH) -> str:
    """Run the full input pipeline: validate, screen, normalize.

    Args:
        question: Raw question from the client
        max_length: Maximum allowed length in characters

    Returns:
        The cleaned question

    Raises:
        InvalidInput: If the question fails validation or screening
    """
    validate_question(question, max_length)
    screen_question(question)
    return normalize_question(question)


def sanitize_html(html: str) -> str:
    """Reduce completion HTML to the allowed tag set.

    Script and style elements are dropped with their content, any other
    tag outside ``ALLOWED_TAGS`` is unwrapped so its text survives, and
    comments and attributes are removed.
    """
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(list(STRIPPED_BODY_TAGS)):
        tag.decompose()

    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
        else:
            tag.attrs = {}

    return str(soup)
