"""
Sentry Error Monitoring Configuration
Error tracking for the IDLHub verifier service
"""
import os
import re
import logging
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from infrastructure.config import MonitoringConfig, get_config

logger = logging.getLogger("Sentry")


_CREDENTIAL_QUERY = re.compile(r"([?&](?:api[-_]?key|token|secret)=)[^&\s\"']+", re.IGNORECASE)


def scrub_endpoint(text: str) -> str:
    """https://rpc.example/?api-key=abc -> https://rpc.example/?api-key=[FILTERED]"""
    return _CREDENTIAL_QUERY.sub(r"\1[FILTERED]", text)


def filter_sensitive_data(event, hint):
    """Strip endpoint credentials from Sentry events before they leave the process."""
    for exc in (event.get('exception') or {}).get('values') or []:
        if exc.get('value'):
            exc['value'] = scrub_endpoint(exc['value'])

    # LedgerRequestError / LedgerConnectivityError carry endpoints in extra details
    extra = event.get('extra') or {}
    for key, value in list(extra.items()):
        if isinstance(value, str):
            extra[key] = scrub_endpoint(value)
        elif isinstance(value, list):
            extra[key] = [scrub_endpoint(v) if isinstance(v, str) else v for v in value]

    for crumb in (event.get('breadcrumbs') or {}).get('values') or []:
        if isinstance(crumb.get('message'), str):
            crumb['message'] = scrub_endpoint(crumb['message'])

    return event


def init_sentry(monitoring: MonitoringConfig = None) -> bool:
    """Initialize Sentry when a DSN is configured."""
    cfg = get_config()
    monitoring = monitoring or cfg.monitoring

    if not monitoring.sentry_dsn:
        logger.info("No SENTRY_DSN found - error tracking disabled")
        return False

    release = os.getenv("COMMIT_SHA", "local")

    sentry_sdk.init(
        dsn=monitoring.sentry_dsn,
        environment=cfg.environment.value,
        traces_sample_rate=0.2,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            StarletteIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR
            ),
        ],
        before_send=filter_sensitive_data,
        send_default_pii=False,
        release=f"idlhub-verifier@{release}",
        ignore_errors=[
            ConnectionRefusedError,
            TimeoutError,
        ],
    )

    logger.info(f"Sentry initialized for {cfg.environment.value} (release: {release[:8]})")
    return True
