"""
Domain validation and normalization module.

Normalizes user input to the canonical (lowercase, IDNA) form stored on a
WatchedDomain, validates its shape, and extracts the TLD used to resolve the
authoritative RDAP server.
"""

import re
from dataclasses import dataclass
from typing import Optional

import idna

from .enums import DomainValidationErrorCode
from .exceptions import ValidationError


DOMAIN_PATTERN = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+(?:[a-z]{2,}|xn--[a-z0-9-]{2,59})$"
)

# Control characters, whitespace and symbols never valid in a hostname
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'
    r'\s'
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'
)

# Registry suffixes treated as a single TLD
KNOWN_SECOND_LEVEL = frozenset({
    "co.uk", "com.au", "co.nz", "com.br", "co.jp", "org.uk", "net.au",
})

MAX_DOMAIN_LENGTH = 253


@dataclass
class DomainValidationError:
    """Structured error information for domain validation failures."""

    code: DomainValidationErrorCode
    message: str
    details: dict


@dataclass
class DomainValidationResult:
    """Result of domain validation operation."""

    valid: bool
    canonical_domain: Optional[str]
    tld: Optional[str]
    error: Optional[DomainValidationError]


class DomainValidator:
    """
    Validates and normalizes domain names.

    An optional TLD allow-list restricts which domains may be watched; by
    default any syntactically valid domain is accepted.
    """

    def __init__(self, allowed_tlds: Optional[list[str]] = None) -> None:
        self._allowed_tlds = (
            set(tld.lower() for tld in allowed_tlds) if allowed_tlds else None
        )

    def validate(self, raw_domain: str) -> DomainValidationResult:
        """
        Validate and normalize a domain string.

        Args:
            raw_domain: The raw domain string to validate

        Returns:
            DomainValidationResult with canonical form and TLD, or an error
        """
        if not raw_domain or not raw_domain.strip():
            return self._failure(
                DomainValidationErrorCode.EMPTY_INPUT,
                "Domain input is empty",
                {"raw_input": raw_domain},
            )

        stripped = raw_domain.strip()
        if FORBIDDEN_CHARS_PATTERN.search(stripped):
            return self._failure(
                DomainValidationErrorCode.FORBIDDEN_CHARS,
                "Domain contains forbidden characters",
                {
                    "raw_input": raw_domain,
                    "forbidden_chars": FORBIDDEN_CHARS_PATTERN.findall(stripped),
                },
            )

        try:
            canonical = self.normalize(stripped)
        except ValidationError as e:
            return self._failure(DomainValidationErrorCode.IDNA_ERROR, e.message, e.details)

        if not self.is_valid(canonical):
            return self._failure(
                DomainValidationErrorCode.INVALID_FORMAT,
                "Domain is not a valid hostname",
                {"raw_input": raw_domain, "canonical": canonical},
            )

        tld = self.extract_tld(canonical)
        if self._allowed_tlds is not None and tld not in self._allowed_tlds:
            return self._failure(
                DomainValidationErrorCode.INVALID_TLD,
                f"TLD '{tld}' is not in the configured allowed list",
                {"raw_input": raw_domain, "tld": tld},
            )

        return DomainValidationResult(valid=True, canonical_domain=canonical, tld=tld, error=None)

    def normalize(self, domain: str) -> str:
        """
        Convert domain to canonical form (trimmed, lowercase, no trailing dot, IDNA).

        Raises:
            ValidationError: If IDNA encoding fails
        """
        domain_lower = domain.strip().lower().rstrip(".")

        if any(ord(c) > 127 for c in domain_lower):
            try:
                return idna.encode(domain_lower, uts46=True).decode("ascii")
            except idna.IDNAError as e:
                raise ValidationError(
                    code=DomainValidationErrorCode.IDNA_ERROR.value,
                    message=f"IDNA encoding failed: {e}",
                    details={"domain": domain, "idna_error": str(e)},
                )

        return domain_lower

    @staticmethod
    def is_valid(domain: str) -> bool:
        """Check a canonical domain against the hostname pattern."""
        if not domain or len(domain) > MAX_DOMAIN_LENGTH:
            return False
        return DOMAIN_PATTERN.match(domain) is not None

    @staticmethod
    def extract_tld(domain: str) -> str:
        """
        Extract the TLD from a domain name.

        Known two-label registry suffixes (e.g. 'co.uk') are returned whole
        when the name has more labels than the suffix itself.
        """
        parts = domain.split(".")
        if len(parts) < 2:
            return ""

        last_two = ".".join(parts[-2:])
        if len(parts) > 2 and last_two in KNOWN_SECOND_LEVEL:
            return last_two
        return parts[-1]

    def parse_input(self, text: str) -> list[str]:
        """
        Parse free-form input (newline or comma separated) into canonical domains.

        Invalid entries and duplicates are dropped; order is preserved.
        """
        seen: set[str] = set()
        result: list[str] = []
        for chunk in re.split(r"[\n,]+", text):
            outcome = self.validate(chunk)
            if outcome.valid and outcome.canonical_domain not in seen:
                seen.add(outcome.canonical_domain)
                result.append(outcome.canonical_domain)
        return result

    @staticmethod
    def _failure(
        code: DomainValidationErrorCode, message: str, details: dict
    ) -> DomainValidationResult:
        return DomainValidationResult(
            valid=False,
            canonical_domain=None,
            tld=None,
            error=DomainValidationError(code=code, message=message, details=details),
        )
