"""
Tool: Email Domains
Purpose: Derive and validate the domains that domain-wide grants target

A domain grant covers everyone whose registered email ends in that domain, so
consumer mail providers (gmail.com, yahoo.com, ...) are refused outright.
"""

import re

from meetsync.config_models import get_config
from meetsync.errors import InvalidDomain, PersonalDomainRejected

DOMAIN_PATTERN = re.compile(r"^[a-z0-9.-]+\.[a-z]{2,}$")


def domain_of(email: str) -> str | None:
    """Right-hand side of an email address, lowercased."""
    if not email or "@" not in email:
        return None
    domain = email.strip().lower().rsplit("@", 1)[1]
    return domain or None


def normalize_domain(value: str) -> str:
    """Lowercase, trim, and drop a leading '@'."""
    value = value.strip().lower()
    return value[1:] if value.startswith("@") else value


def is_personal_domain(domain: str) -> bool:
    return normalize_domain(domain) in get_config().permissions.personal_domains


def validate_grant_domain(value: str) -> str:
    """
    Normalize and validate a domain-grant target.

    Returns:
        The normalized domain

    Raises:
        InvalidDomain: Not shaped like a domain name
        PersonalDomainRejected: Domain belongs to a consumer mail provider
    """
    domain = normalize_domain(value)
    if not DOMAIN_PATTERN.match(domain):
        raise InvalidDomain(value)
    if is_personal_domain(domain):
        raise PersonalDomainRejected(domain)
    return domain
