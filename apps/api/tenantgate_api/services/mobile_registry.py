"""Mobile API keys, devices and provisioning.

Keys are looked up by a short public prefix and verified against an
HMAC-SHA256 digest in constant time. Each key is bound to at most one device;
a device only authenticates while both its key and itself are ACTIVE.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tenantgate_api.auth.codec import require_secret
from tenantgate_api.errors import ConflictError, InvalidCodeError, NotFoundError, UnauthenticatedError
from tenantgate_api.models import (
    ApiKeyStatus,
    DeviceStatus,
    MobileApiKey,
    MobileDevice,
    MobileProvisionToken,
    ProvisionTokenStatus,
    Tenant,
)
from tenantgate_api.services.base import BaseService
from tenantgate_api.settings import get_settings
from tenantgate_api.utils.metrics import (
    mobile_auth_attempts,
    provision_redemptions,
    provision_tokens_issued,
)

logger = logging.getLogger(__name__)

MOBILE_API_KEY_PREFIX_LEN = 8
MIN_API_KEY_LENGTH = 32
MAX_KEY_CANDIDATES = 25
TOUCH_INTERVAL = timedelta(seconds=60)
DEFAULT_DEVICE_NAME = "New Device"

# No I, O, 0, 1: codes are typed in by hand
PROVISION_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PROVISION_CODE_LENGTH = 10
PROVISION_PREFIX_LEN = 4
PROVISION_TTL_DEFAULT_MINUTES = 30
PROVISION_TTL_MIN_MINUTES = 5
PROVISION_TTL_MAX_MINUTES = 240
LEGACY_CODE_PREFIX = "lrp_"
QR_SCHEME = "tenantgate://provision"


@dataclass
class IssuedApiKey:
    """Plaintext key is only ever available here, once."""

    plaintext_key: str
    id: str
    prefix: str
    device_id: Optional[str] = None


@dataclass(frozen=True)
class MobileAuthContext:
    tenant_id: str
    tenant_slug: str
    api_key_id: str
    device_id: str
    api_key_prefix: str


@dataclass
class IssuedProvisionToken:
    token: MobileProvisionToken
    code: str
    qr_payload: str


@dataclass
class RedeemedKey:
    api_key: str
    tenant_slug: str
    device_id: str


def get_api_key_secret() -> str:
    return require_secret(get_settings().mobile_api_key_secret, "MOBILE_API_KEY_SECRET")


def get_provision_secret() -> str:
    settings = get_settings()
    if settings.mobile_provision_token_secret:
        return require_secret(settings.mobile_provision_token_secret, "MOBILE_PROVISION_TOKEN_SECRET")
    return get_api_key_secret()


def compute_key_prefix(raw_key: str) -> str:
    """Compute prefix (first 8 chars) of API key."""
    return raw_key[:MOBILE_API_KEY_PREFIX_LEN]


def compute_key_hash(raw_key: str) -> str:
    """Compute HMAC-SHA256 digest of API key."""
    secret = get_api_key_secret().encode("utf-8")
    return hmac.new(secret, raw_key.encode("utf-8"), hashlib.sha256).hexdigest()


def generate_api_key() -> tuple[str, str, str]:
    """New random key: (plaintext, prefix, key_hash). 32 bytes -> 43 chars."""
    plaintext = secrets.token_urlsafe(32)
    return plaintext, compute_key_prefix(plaintext), compute_key_hash(plaintext)


def generate_provision_code() -> str:
    return "".join(secrets.choice(PROVISION_CODE_ALPHABET) for _ in range(PROVISION_CODE_LENGTH))


def compute_provision_hash(code: str) -> str:
    secret = get_provision_secret().encode("utf-8")
    return hmac.new(secret, code.encode("utf-8"), hashlib.sha256).hexdigest()


def normalize_provision_code(raw: Optional[str]) -> str:
    """Accept a bare code, a pasted deep link, or a legacy ``lrp_`` code."""
    value = (raw or "").strip()
    if "://" in value and "code=" in value:
        codes = parse_qs(urlparse(value).query).get("code")
        if codes and codes[0].strip():
            return codes[0].strip().upper()
    if value.lower().startswith(LEGACY_CODE_PREFIX):
        value = value[len(LEGACY_CODE_PREFIX):].strip()
    return value.upper()


def clamp_expires_minutes(value) -> int:
    try:
        minutes = int(round(float(value)))
    except (TypeError, ValueError):
        return PROVISION_TTL_DEFAULT_MINUTES
    return max(PROVISION_TTL_MIN_MINUTES, min(PROVISION_TTL_MAX_MINUTES, minutes))


def build_qr_payload(tenant_slug: str, code: str) -> str:
    return f"{QR_SCHEME}?{urlencode({'tenant': tenant_slug, 'code': code})}"


_UNSET = object()


class MobileRegistry(BaseService):
    """Lifecycle of device credentials for one tenant (or for unscoped auth)."""

    def __init__(self, db: Session, tenant_id: Optional[str] = None):
        super().__init__(db, tenant_id)

    # Keys

    def create_api_key(
        self,
        name: str,
        device_name: Optional[str] = None,
        create_device: bool = True,
    ) -> IssuedApiKey:
        """Create a key and, unless create_device is False, its bound device in one transaction."""
        tenant_id = self._enforce_tenant()
        plaintext, prefix, key_hash = generate_api_key()
        try:
            api_key = MobileApiKey(
                tenant_id=tenant_id,
                name=(name or "").strip() or "Mobile key",
                prefix=prefix,
                key_hash=key_hash,
                status=ApiKeyStatus.ACTIVE.value,
            )
            self.db.add(api_key)
            self.db.flush()

            device = None
            if create_device:
                device = MobileDevice(
                    tenant_id=tenant_id,
                    name=(device_name or "").strip() or DEFAULT_DEVICE_NAME,
                    api_key_id=api_key.id,
                    status=DeviceStatus.ACTIVE.value,
                )
                self.db.add(device)
                self.db.flush()
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(
            "Created mobile API key",
            extra={"tenant_id": tenant_id, "api_key_id": api_key.id, "prefix": prefix},
        )
        return IssuedApiKey(
            plaintext_key=plaintext,
            id=api_key.id,
            prefix=prefix,
            device_id=device.id if device else None,
        )

    def list_api_keys(self, limit: int = 200) -> list[MobileApiKey]:
        return (
            self.scoped(MobileApiKey)
            .order_by(MobileApiKey.created_at.desc())
            .limit(limit)
            .all()
        )

    def revoke_api_key(self, key_id: str) -> MobileApiKey:
        """Revoke a key and disable its device. Terminal; repeat calls are no-ops."""
        api_key = self.get_owned(MobileApiKey, key_id)
        now = datetime.utcnow()
        if api_key.status != ApiKeyStatus.REVOKED.value:
            api_key.status = ApiKeyStatus.REVOKED.value
            api_key.revoked_at = now

        device = self.scoped(MobileDevice).filter(MobileDevice.api_key_id == api_key.id).first()
        if device is not None and device.status != DeviceStatus.DISABLED.value:
            device.status = DeviceStatus.DISABLED.value
        self.db.commit()
        self.db.refresh(api_key)

        logger.info(
            "Revoked mobile API key",
            extra={"tenant_id": api_key.tenant_id, "api_key_id": api_key.id},
        )
        return api_key

    def delete_api_key(self, key_id: str) -> None:
        """Delete a key; its device is disabled and left without a key."""
        api_key = self.get_owned(MobileApiKey, key_id)
        device = self.scoped(MobileDevice).filter(MobileDevice.api_key_id == api_key.id).first()
        if device is not None:
            device.api_key_id = None
            device.status = DeviceStatus.DISABLED.value
            self.db.flush()
        self.db.delete(api_key)
        self.db.commit()
        logger.info("Deleted mobile API key", extra={"tenant_id": self.tenant_id, "api_key_id": key_id})

    # Devices

    def list_devices(self, limit: int = 200) -> list[MobileDevice]:
        return (
            self.scoped(MobileDevice)
            .order_by(MobileDevice.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_device(self, device_id: str) -> MobileDevice:
        return self.get_owned(MobileDevice, device_id)

    def update_device(
        self,
        device_id: str,
        name: Optional[str] = None,
        status: Optional[str] = None,
        active_event_id=_UNSET,
    ) -> MobileDevice:
        device = self.get_owned(MobileDevice, device_id)
        if name is not None:
            device.name = name.strip()
        if status is not None:
            if status == DeviceStatus.ACTIVE.value:
                api_key = device.api_key
                if api_key is None or api_key.status != ApiKeyStatus.ACTIVE.value:
                    raise ConflictError(
                        "Device has no active key; issue a provisioning code instead.",
                        code="DEVICE_KEY_REVOKED",
                    )
            device.status = status
        if active_event_id is not _UNSET:
            device.active_event_id = active_event_id
        self.db.commit()
        self.db.refresh(device)
        return device

    # Authentication

    def authenticate(self, raw_key: Optional[str]) -> MobileAuthContext:
        """Resolve a device from its plaintext key.

        Every failure raises the same UnauthenticatedError, whichever check
        failed.
        """
        raw_key = (raw_key or "").strip()
        if len(raw_key) < MIN_API_KEY_LENGTH:
            mobile_auth_attempts.labels(outcome="malformed").inc()
            raise UnauthenticatedError()

        key_hash = compute_key_hash(raw_key)
        prefix = compute_key_prefix(raw_key)

        candidates = (
            self.db.query(MobileApiKey)
            .filter(
                MobileApiKey.prefix == prefix,
                MobileApiKey.status == ApiKeyStatus.ACTIVE.value,
            )
            .limit(MAX_KEY_CANDIDATES)
            .all()
        )
        matched = None
        for candidate in candidates:
            # Constant-time comparison of digest
            if hmac.compare_digest(candidate.key_hash, key_hash):
                matched = candidate
                break
        if matched is None:
            mobile_auth_attempts.labels(outcome="unknown_key").inc()
            raise UnauthenticatedError()

        device = (
            self.db.query(MobileDevice)
            .filter(
                MobileDevice.api_key_id == matched.id,
                MobileDevice.tenant_id == matched.tenant_id,
            )
            .first()
        )
        if device is None or device.status != DeviceStatus.ACTIVE.value:
            mobile_auth_attempts.labels(outcome="device_inactive").inc()
            raise UnauthenticatedError()

        tenant = self.db.query(Tenant).filter(Tenant.id == matched.tenant_id).first()
        if tenant is None:
            mobile_auth_attempts.labels(outcome="unknown_tenant").inc()
            raise UnauthenticatedError()

        self._touch(matched, device)
        mobile_auth_attempts.labels(outcome="success").inc()
        return MobileAuthContext(
            tenant_id=tenant.id,
            tenant_slug=tenant.slug,
            api_key_id=matched.id,
            device_id=device.id,
            api_key_prefix=matched.prefix,
        )

    def _touch(self, api_key: MobileApiKey, device: MobileDevice) -> None:
        """Update last-used/last-seen at most once per TOUCH_INTERVAL."""
        now = datetime.utcnow()
        changed = False
        if api_key.last_used_at is None or now - api_key.last_used_at >= TOUCH_INTERVAL:
            api_key.last_used_at = now
            changed = True
        if device.last_seen_at is None or now - device.last_seen_at >= TOUCH_INTERVAL:
            device.last_seen_at = now
            changed = True
        if not changed:
            return
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            # Timestamps are advisory; authentication already succeeded
            self.db.rollback()
            logger.warning(f"Could not update last-used timestamps: {e}")

    # Provisioning

    def issue_provision_token(
        self,
        device_id: Optional[str] = None,
        device_name: Optional[str] = None,
        expires_in_minutes=None,
    ) -> IssuedProvisionToken:
        tenant_id = self._enforce_tenant()
        device = self.get_owned(MobileDevice, device_id) if device_id else None
        tenant = self.db.query(Tenant).filter(Tenant.id == tenant_id).one()

        minutes = clamp_expires_minutes(
            PROVISION_TTL_DEFAULT_MINUTES if expires_in_minutes is None else expires_in_minutes
        )
        expires_at = datetime.utcnow() + timedelta(minutes=minutes)
        requested_name = (device_name or "").strip() or None

        # Collisions are very unlikely; retry on the unique token_hash anyway
        for attempt in range(3):
            code = generate_provision_code()
            row = MobileProvisionToken(
                tenant_id=tenant_id,
                prefix=code[:PROVISION_PREFIX_LEN],
                token_hash=compute_provision_hash(code),
                token_plaintext=code,
                status=ProvisionTokenStatus.ACTIVE.value,
                expires_at=expires_at,
                device_id=device.id if device else None,
                requested_device_name=requested_name,
            )
            self.db.add(row)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if attempt == 2:
                    raise
                continue
            self.db.refresh(row)
            provision_tokens_issued.inc()
            logger.info(
                "Issued provision token",
                extra={"tenant_id": tenant_id, "provision_id": row.id, "expires_in_minutes": minutes},
            )
            return IssuedProvisionToken(token=row, code=code, qr_payload=build_qr_payload(tenant.slug, code))

    def list_provision_tokens(self, limit: int = 50) -> list[MobileProvisionToken]:
        return (
            self.scoped(MobileProvisionToken)
            .order_by(MobileProvisionToken.created_at.desc())
            .limit(limit)
            .all()
        )

    def reveal_provision_token(self, token_id: str) -> IssuedProvisionToken:
        """Hand out the stored plaintext once, then forget it."""
        row = self.get_owned(MobileProvisionToken, token_id)
        now = datetime.utcnow()
        if (
            not row.token_plaintext
            or row.effective_status(now) != ProvisionTokenStatus.ACTIVE.value
        ):
            raise NotFoundError()
        code = row.token_plaintext
        row.token_plaintext = None
        self.db.commit()
        self.db.refresh(row)
        tenant = self.db.query(Tenant).filter(Tenant.id == row.tenant_id).one()
        return IssuedProvisionToken(token=row, code=code, qr_payload=build_qr_payload(tenant.slug, code))

    def revoke_provision_token(self, token_id: str) -> MobileProvisionToken:
        """ACTIVE -> REVOKED; USED and REVOKED tokens keep their state."""
        row = self.get_owned(MobileProvisionToken, token_id)
        if row.status == ProvisionTokenStatus.ACTIVE.value:
            row.status = ProvisionTokenStatus.REVOKED.value
            row.token_plaintext = None
            self.db.commit()
            self.db.refresh(row)
        return row

    def redeem_provision_token(self, tenant_slug: Optional[str], code: Optional[str]) -> RedeemedKey:
        """Exchange a provisioning code for a fresh API key.

        Claiming the token, creating the key, binding the device and revoking
        the device's previous key commit together or not at all. Every
        rejection is the same InvalidCodeError.
        """
        slug = (tenant_slug or "").strip().lower()
        normalized = normalize_provision_code(code)
        if not slug or len(normalized) < PROVISION_PREFIX_LEN:
            provision_redemptions.labels(outcome="invalid").inc()
            raise InvalidCodeError()

        tenant = self.db.query(Tenant).filter(Tenant.slug == slug).first()
        token_hash = compute_provision_hash(normalized)
        if tenant is None:
            provision_redemptions.labels(outcome="invalid").inc()
            raise InvalidCodeError()

        now = datetime.utcnow()
        token = (
            self.db.query(MobileProvisionToken)
            .filter(
                MobileProvisionToken.tenant_id == tenant.id,
                MobileProvisionToken.token_hash == token_hash,
                MobileProvisionToken.status == ProvisionTokenStatus.ACTIVE.value,
                MobileProvisionToken.expires_at > now,
            )
            .first()
        )
        if token is None:
            provision_redemptions.labels(outcome="invalid").inc()
            raise InvalidCodeError()

        try:
            device = None
            if token.device_id:
                device = (
                    self.db.query(MobileDevice)
                    .filter(MobileDevice.id == token.device_id, MobileDevice.tenant_id == tenant.id)
                    .first()
                )
                if device is None:
                    raise InvalidCodeError()

            if not self._claim_provision_token(token.id, now):
                raise InvalidCodeError()

            plaintext, prefix, key_hash = generate_api_key()
            device_name = device.name if device else (token.requested_device_name or "Mobile device")
            new_key = MobileApiKey(
                tenant_id=tenant.id,
                name=f"{device_name} (provisioned)",
                prefix=prefix,
                key_hash=key_hash,
                status=ApiKeyStatus.ACTIVE.value,
            )
            self.db.add(new_key)
            self.db.flush()

            previous_key_id = None
            if device is None:
                device = MobileDevice(
                    tenant_id=tenant.id,
                    name=device_name,
                    api_key_id=new_key.id,
                    status=DeviceStatus.ACTIVE.value,
                )
                self.db.add(device)
            else:
                previous_key_id = device.api_key_id
                device.api_key_id = new_key.id
                device.status = DeviceStatus.ACTIVE.value
            self.db.flush()

            self.db.query(MobileProvisionToken).filter(MobileProvisionToken.id == token.id).update(
                {MobileProvisionToken.used_by_device_id: device.id},
                synchronize_session=False,
            )

            # Old key goes only after the new one exists and is bound
            if previous_key_id and previous_key_id != new_key.id:
                self.db.query(MobileApiKey).filter(
                    MobileApiKey.id == previous_key_id,
                    MobileApiKey.tenant_id == tenant.id,
                    MobileApiKey.status == ApiKeyStatus.ACTIVE.value,
                ).update(
                    {MobileApiKey.status: ApiKeyStatus.REVOKED.value, MobileApiKey.revoked_at: now},
                    synchronize_session=False,
                )

            self.db.commit()
        except InvalidCodeError:
            self.db.rollback()
            provision_redemptions.labels(outcome="invalid").inc()
            raise
        except SQLAlchemyError:
            self.db.rollback()
            provision_redemptions.labels(outcome="error").inc()
            raise

        provision_redemptions.labels(outcome="success").inc()
        logger.info(
            "Redeemed provision token",
            extra={"tenant_id": tenant.id, "provision_id": token.id, "device_id": device.id},
        )
        return RedeemedKey(api_key=plaintext, tenant_slug=tenant.slug, device_id=device.id)

    def _claim_provision_token(self, token_id: str, now: datetime) -> bool:
        """Conditionally flip ACTIVE -> USED. False if someone else got there first."""
        claimed = (
            self.db.query(MobileProvisionToken)
            .filter(
                MobileProvisionToken.id == token_id,
                MobileProvisionToken.status == ProvisionTokenStatus.ACTIVE.value,
                MobileProvisionToken.expires_at > now,
            )
            .update(
                {
                    MobileProvisionToken.status: ProvisionTokenStatus.USED.value,
                    MobileProvisionToken.used_at: now,
                    MobileProvisionToken.token_plaintext: None,
                },
                synchronize_session=False,
            )
        )
        return claimed == 1

    def cleanup_expired_provision_tokens(self, older_than: timedelta = timedelta(days=7)) -> int:
        """Delete tokens that expired more than older_than ago. Not needed for correctness."""
        cutoff = datetime.utcnow() - older_than
        deleted = (
            self.db.query(MobileProvisionToken)
            .filter(MobileProvisionToken.expires_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
