"""
Template rendering for new configuration stores.

Placeholders are an explicit table: each ``REPLACE_*`` token names
exactly one generator. Rendering is a single pass; every token gets one
value, reused wherever the token repeats, and anything left over is an
error rather than literal text in a secrets file.
"""

from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .envfile import EnvFile
from .errors import TemplateError

HEX = "0123456789abcdef"
ALPHANUMERIC = string.ascii_letters + string.digits

PLACEHOLDER_RE = re.compile(r"REPLACE_[A-Z0-9_]+")


class DeploymentMode(str, Enum):
    """Deployment flavour selecting between fixed alternative values."""

    PRODUCTION = "production"
    DEVELOPMENT = "development"

    @classmethod
    def parse(
        cls, value: Optional[str], default: Optional["DeploymentMode"] = None
    ) -> "DeploymentMode":
        """Map a NODE_ENV style string to a mode.

        Args:
            value: Raw string such as "production" or "dev".
            default: Returned for empty or unrecognised input.

        Returns:
            DeploymentMode: The matching mode.
        """
        fallback = default or cls.PRODUCTION
        if not value:
            return fallback
        normalized = value.strip().lower()
        if normalized in ("production", "prod"):
            return cls.PRODUCTION
        if normalized in ("development", "dev"):
            return cls.DEVELOPMENT
        return fallback


def random_string(length: int, alphabet: str = ALPHANUMERIC) -> str:
    """Draw ``length`` characters from ``alphabet`` with the secrets CSPRNG."""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(alphabet) for _ in range(length))


ENGINE_URLS = {
    DeploymentMode.PRODUCTION: "http://engine:8089",
    DeploymentMode.DEVELOPMENT: "http://localhost:8089",
}


@dataclass(frozen=True)
class Placeholder:
    """One named template token and how its value is produced.

    ``resolve`` receives the render context so derived values (the
    RabbitMQ URL) can reuse secrets generated for other tokens.
    """

    token: str
    resolve: Callable[["RenderContext"], str]
    description: str = ""


def _secret(length: int, alphabet: str) -> Callable[["RenderContext"], str]:
    return lambda ctx: random_string(length, alphabet)


def _by_mode(choices: dict) -> Callable[["RenderContext"], str]:
    return lambda ctx: choices[ctx.mode]


def _rabbitmq_url(ctx: "RenderContext") -> str:
    user = ctx.template_values.get("RABBITMQ_USER", "")
    host = ctx.template_values.get("RABBITMQ_HOST", "")
    port = ctx.template_values.get("RABBITMQ_PORT", "")
    password = ctx.value("REPLACE_RABBITMQ_PASSWORD")
    return f"amqp://{user}:{password}@{host}:{port}"


PLACEHOLDERS: dict[str, Placeholder] = {
    p.token: p
    for p in (
        Placeholder("REPLACE_JWT_SECRET", _secret(64, HEX), "JWT signing secret"),
        Placeholder("REPLACE_SESSION_SECRET", _secret(64, HEX), "session secret"),
        Placeholder("REPLACE_ENCRYPTION_KEY", _secret(64, HEX), "data encryption key"),
        Placeholder("REPLACE_DB_PASSWORD", _secret(32, ALPHANUMERIC), "database password"),
        Placeholder("REPLACE_REDIS_PASSWORD", _secret(32, ALPHANUMERIC), "Redis password"),
        Placeholder("REPLACE_RABBITMQ_PASSWORD", _secret(32, ALPHANUMERIC), "RabbitMQ password"),
        Placeholder("REPLACE_ERLANG_COOKIE", _secret(32, ALPHANUMERIC), "Erlang cookie"),
        Placeholder("REPLACE_PGADMIN_PASSWORD", _secret(32, ALPHANUMERIC), "pgAdmin password"),
        Placeholder("REPLACE_ADMIN_PASSWORD", _secret(16, ALPHANUMERIC), "admin password"),
        Placeholder("REPLACE_ENGINE_URL", _by_mode(ENGINE_URLS), "engine service URL"),
        Placeholder("REPLACE_RABBITMQ_URL", _rabbitmq_url, "RabbitMQ connection URL"),
    )
}


class RenderContext:
    """Per-render state: the mode, template defaults, resolved values."""

    def __init__(
        self,
        mode: DeploymentMode,
        template_values: dict[str, str],
        placeholders: dict[str, Placeholder],
    ):
        self.mode = mode
        self.template_values = template_values
        self.placeholders = placeholders
        self.resolved: dict[str, str] = {}

    def value(self, token: str) -> Optional[str]:
        """Resolve ``token`` once; later calls return the same value."""
        if token in self.resolved:
            return self.resolved[token]
        placeholder = self.placeholders.get(token)
        if placeholder is None:
            return None
        self.resolved[token] = placeholder.resolve(self)
        return self.resolved[token]


def render_template(
    text: str,
    mode: DeploymentMode = DeploymentMode.PRODUCTION,
    placeholders: Optional[dict[str, Placeholder]] = None,
) -> str:
    """Substitute every placeholder in ``text`` in one pass.

    Args:
        text: Template content.
        mode: Selects mode-dependent values such as ENGINE_URL.
        placeholders: Override the placeholder table.

    Returns:
        str: Rendered content with no ``REPLACE_`` token left.

    Raises:
        TemplateError: If any token has no generator.
    """
    table = PLACEHOLDERS if placeholders is None else placeholders
    ctx = RenderContext(mode, EnvFile.parse(text).as_dict(), table)
    unresolved: list[str] = []

    def _substitute(match: re.Match) -> str:
        token = match.group(0)
        value = ctx.value(token)
        if value is None:
            unresolved.append(token)
            return token
        return value

    rendered = PLACEHOLDER_RE.sub(_substitute, text)
    if unresolved:
        raise TemplateError(unresolved)
    if "REPLACE_" in rendered:
        # A generated value or a malformed token (e.g. lowercase suffix) slipped through.
        leftovers = re.findall(r"REPLACE_\w*", rendered)
        raise TemplateError(leftovers)
    return rendered
