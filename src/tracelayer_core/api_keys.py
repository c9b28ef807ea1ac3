"""Stored LLM provider keys.

Keys are kept obfuscated (base64) and only exposed as a short preview.
Storing a key for a provider deactivates that provider's previous key.
"""
import base64
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .config import get_settings

logger = logging.getLogger("tracelayer-core.api_keys")


class MissingApiKeyError(ValueError):
    """Raised when no API key can be resolved for a pipeline run."""
    pass


def encode_key(key: str) -> str:
    return base64.b64encode(key.encode("utf-8")).decode("ascii")


def decode_key(encoded: str) -> str:
    return base64.b64decode(encoded.encode("ascii")).decode("utf-8")


def key_preview(key: str) -> str:
    """Masked display form, e.g. 'sk-pro...wxyz'."""
    if len(key) <= 10:
        return key[:2] + "..."
    return f"{key[:6]}...{key[-4:]}"


def store_key(db: Session, provider: models.LLMProviderName, key: str) -> models.ApiKey:
    """Store a key and deactivate any active key for the same provider."""
    key = key.strip()
    if not key:
        raise ValueError("API key cannot be empty")

    existing = (
        db.query(models.ApiKey)
        .filter(models.ApiKey.provider == provider, models.ApiKey.is_active.is_(True))
        .all()
    )
    for old in existing:
        old.is_active = False

    api_key = models.ApiKey(
        provider=provider,
        key_encoded=encode_key(key),
        key_preview=key_preview(key),
        is_active=True,
    )
    db.add(api_key)
    db.commit()
    db.refresh(api_key)
    logger.info(f"Stored {provider.value} API key ({api_key.key_preview}), deactivated {len(existing)} previous key(s)")
    return api_key


def get_active_keys(db: Session) -> list[models.ApiKey]:
    return (
        db.query(models.ApiKey)
        .filter(models.ApiKey.is_active.is_(True))
        .order_by(models.ApiKey.created_at.desc())
        .all()
    )


def delete_key(db: Session, key_id) -> bool:
    api_key = db.query(models.ApiKey).filter(models.ApiKey.id == key_id).first()
    if not api_key:
        return False
    db.delete(api_key)
    db.commit()
    return True


def get_key_for_provider(db: Session, provider: models.LLMProviderName) -> Optional[str]:
    """Raw active key for a provider, or None."""
    api_key = (
        db.query(models.ApiKey)
        .filter(models.ApiKey.provider == provider, models.ApiKey.is_active.is_(True))
        .order_by(models.ApiKey.created_at.desc())
        .first()
    )
    if not api_key:
        return None
    api_key.last_used = datetime.utcnow()
    db.commit()
    return decode_key(api_key.key_encoded)


def resolve_provider_and_key(
    db: Session,
    preferred_provider: Optional[models.LLMProviderName] = None,
    request_key: Optional[str] = None,
) -> tuple[models.LLMProviderName, str]:
    """
    Resolve which provider and key a run should use.

    Order: key supplied with the request (for the preferred provider), the
    stored key of the preferred provider, then any stored active key.

    Raises:
        MissingApiKeyError: If no key is available, or the custom provider is requested
    """
    if preferred_provider == models.LLMProviderName.CUSTOM:
        raise MissingApiKeyError(
            "The custom provider has no pipeline client. Choose openai, anthropic or gemini."
        )

    if request_key and request_key.strip():
        provider = preferred_provider or models.LLMProviderName(get_settings().default_provider)
        return provider, request_key.strip()

    if preferred_provider is not None:
        key = get_key_for_provider(db, preferred_provider)
        if key:
            return preferred_provider, key

    for api_key in get_active_keys(db):
        if api_key.provider == models.LLMProviderName.CUSTOM:
            continue
        api_key.last_used = datetime.utcnow()
        db.commit()
        return api_key.provider, decode_key(api_key.key_encoded)

    raise MissingApiKeyError(
        "No API key configured. Configure an AI provider key before starting the pipeline."
    )
