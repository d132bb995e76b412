"""Production configuration guard — enforces hard constraints in production.

The guard validates that production-critical settings are correctly configured
before a pipeline run starts.  It runs once at startup and fails hard
(raises ``ProductionConfigError``) if any constraint is violated.

Other code should not scatter ``if is_production`` checks — the guard
ensures the system is in a known-good state at startup.
"""

from __future__ import annotations

import logging

from mediaseal.config import SealConfig

logger = logging.getLogger(__name__)


class ProductionConfigError(RuntimeError):
    """Raised when production configuration constraints are violated.

    The process should exit; this error must not be caught and ignored.
    """


def enforce_production_constraints(config: SealConfig) -> None:
    """Validate all production-critical configuration constraints.

    Constraints enforced
    --------------------
    1. Debug mode must be disabled.
    2. Timestamp anchoring must be enabled.
    3. The S3 backend must be selected, with endpoint and credentials set.

    Parameters
    ----------
    config:
        The active ``SealConfig`` instance.

    Raises
    ------
    ProductionConfigError
        If any production constraint is violated.
    """
    if not config.is_production:
        return

    violations: list[str] = []

    if config.debug:
        violations.append(
            "debug=True is not allowed in production. Set MEDIASEAL_DEBUG=false."
        )

    if not config.anchor_enabled:
        violations.append(
            "Timestamp anchoring must be enabled in production. "
            "Set MEDIASEAL_ANCHOR_ENABLED=true."
        )

    if config.storage_backend != "s3":
        violations.append(
            f"storage_backend={config.storage_backend!r} is not allowed in "
            "production. Set MEDIASEAL_STORAGE_BACKEND=s3."
        )
    for field in ("s3_endpoint_url", "s3_access_key_id", "s3_secret_access_key"):
        if not getattr(config, field):
            violations.append(
                f"'{field}' is required in production but not configured. "
                f"Set MEDIASEAL_{field.upper()}."
            )

    if violations:
        msg = "Production configuration guard failed.\n" + "\n".join(
            f"  - {v}" for v in violations
        )
        logger.critical(msg)
        raise ProductionConfigError(msg)

    logger.info("Production configuration guard passed.")
