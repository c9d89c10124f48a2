"""
Claim notification e-mail through the Resend HTTP API.

Delivery is best effort: the escrow is already confirmed on-chain when this
runs, so every failure is logged and reported, never raised.
"""
import html
import logging
from dataclasses import dataclass
from typing import Optional

import requests
from django.conf import settings

from blockchain import claim_codes

logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    success: bool
    method: str                   # 'email', 'simulated', 'not_attempted'
    message_id: Optional[str] = None
    error: Optional[str] = None


def is_configured() -> bool:
    return bool(getattr(settings, 'RESEND_API_KEY', ''))


def notification_mode() -> str:
    return 'connected' if is_configured() else 'simulated'


def _render(claim_code: str, amount, message: Optional[str], network: str, application_id: Optional[int]) -> str:
    claim_url = f"{settings.CLAIM_APP_URL}?network={network}"
    lines = [
        f"<p>You have received <strong>{html.escape(str(amount))} ALGO</strong> on Algorand {html.escape(network)}.</p>",
    ]
    if message:
        lines.append(f"<p>Message from the sender: <em>{html.escape(message)}</em></p>")
    lines.append(f"<p>Your claim code: <code>{html.escape(claim_code)}</code></p>")
    if application_id:
        lines.append(f"<p>Escrow application: {application_id}</p>")
    lines.append(f'<p><a href="{html.escape(claim_url)}">Claim your funds</a></p>')
    lines.append("<p>Keep this code private. Anyone who has it can claim the funds.</p>")
    return "\n".join(lines)


def send_claim_notification(
    recipient: Optional[str],
    claim_code: str,
    amount,
    message: Optional[str],
    network: str,
    application_id: Optional[int] = None,
) -> NotificationResult:
    if not recipient:
        return NotificationResult(success=False, method='not_attempted')

    if not is_configured():
        logger.info(f"[ClaimEmail] Simulated e-mail to {recipient} for claim {claim_codes.redact(claim_code)}")
        return NotificationResult(success=True, method='simulated')

    headers = {
        'Authorization': f"Bearer {settings.RESEND_API_KEY}",
        'Content-Type': 'application/json',
    }
    payload = {
        'from': settings.CLAIM_EMAIL_FROM,
        'to': [recipient],
        'subject': f"You received {amount} ALGO",
        'html': _render(claim_code, amount, message, network, application_id),
    }
    try:
        resp = requests.post(settings.RESEND_API_URL, headers=headers, json=payload, timeout=10)
    except requests.RequestException as e:
        logger.error(f"[ClaimEmail] Resend request failed: {e}")
        return NotificationResult(success=False, method='email', error=str(e))

    if resp.status_code >= 400:
        logger.error(f"[ClaimEmail] Resend error {resp.status_code}: {resp.text}")
        return NotificationResult(success=False, method='email', error=f"HTTP {resp.status_code}")

    try:
        message_id = (resp.json() or {}).get('id')
    except ValueError:
        message_id = None
    logger.info(f"[ClaimEmail] Sent claim {claim_codes.redact(claim_code)} to {recipient} ({message_id})")
    return NotificationResult(success=True, method='email', message_id=message_id)
