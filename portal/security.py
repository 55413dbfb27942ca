from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import jwt

from portal.domain import Actor
from portal.errors import Unauthenticated


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _split_csv(raw: str) -> list[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


def redact_sensitive(value: object) -> object:
    sensitive_keys = {"authorization", "cookie", "token", "secret", "password", "access_token", "phone"}
    if isinstance(value, dict):
        redacted: dict[str, object] = {}
        for key, item in value.items():
            if str(key).lower() in sensitive_keys:
                redacted[str(key)] = "***REDACTED***"
            else:
                redacted[str(key)] = redact_sensitive(item)
        return redacted
    if isinstance(value, list):
        return [redact_sensitive(x) for x in value]
    if isinstance(value, str) and len(value) >= 24 and value.lower().startswith("bearer "):
        return "***REDACTED***"
    return value


@dataclass
class JwtSecurityConfig:
    enabled: bool
    issuer: str
    audience: str
    shared_secret: str
    required_claims: list[str]
    log_redaction_enabled: bool

    @classmethod
    def from_env(cls) -> "JwtSecurityConfig":
        issuer = os.environ.get("JWT_ISSUER", "").strip()
        audience = os.environ.get("JWT_AUDIENCE", "").strip()
        shared_secret = os.environ.get("JWT_SHARED_SECRET", "").strip()
        return cls(
            enabled=bool(issuer or audience or shared_secret),
            issuer=issuer,
            audience=audience,
            shared_secret=shared_secret,
            required_claims=_split_csv(os.environ.get("JWT_REQUIRED_CLAIMS", "sub,exp")),
            log_redaction_enabled=_env_bool("SECURITY_LOG_REDACTION_ENABLED", True),
        )


def actor_from_bearer_token(*, authorization: str | None, cfg: JwtSecurityConfig) -> Actor:
    """Verify an HS256 bearer token and map its claims onto an Actor."""
    if not authorization:
        raise Unauthenticated("missing Authorization bearer token")
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise Unauthenticated("invalid Authorization header")
    token = authorization[len(prefix) :].strip()
    if not token:
        raise Unauthenticated("empty bearer token")
    if not cfg.shared_secret:
        raise Unauthenticated("jwt shared secret not configured")

    options: dict[str, Any] = {"require": cfg.required_claims, "verify_aud": bool(cfg.audience)}
    try:
        claims = jwt.decode(
            token,
            cfg.shared_secret,
            algorithms=["HS256"],
            audience=cfg.audience or None,
            issuer=cfg.issuer or None,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("token expired") from None
    except jwt.MissingRequiredClaimError as exc:
        raise Unauthenticated(f"missing required claim: {exc.claim}") from None
    except jwt.InvalidAudienceError:
        raise Unauthenticated("jwt audience mismatch") from None
    except jwt.InvalidIssuerError:
        raise Unauthenticated("jwt issuer mismatch") from None
    except jwt.InvalidTokenError:
        raise Unauthenticated("invalid token") from None

    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise Unauthenticated("missing subject claim")
    return Actor(
        id=subject,
        display_name=str(claims.get("name") or "").strip(),
        email=str(claims.get("email") or "").strip(),
    )


def actor_from_headers(headers: Mapping[str, str]) -> Actor:
    actor_id = (headers.get("x-actor-id") or "").strip()
    if not actor_id:
        raise Unauthenticated()
    return Actor(
        id=actor_id,
        display_name=(headers.get("x-actor-name") or "").strip(),
        email=(headers.get("x-actor-email") or "").strip(),
    )


def resolve_actor(*, headers: Mapping[str, str], cfg: JwtSecurityConfig) -> Actor:
    if cfg.enabled:
        return actor_from_bearer_token(authorization=headers.get("authorization"), cfg=cfg)
    return actor_from_headers(headers)
