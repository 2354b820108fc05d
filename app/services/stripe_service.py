"""
Stripe Service
All calls to the payment processor: balance gates, transfers to connected
accounts, payouts, refunds and transfer reversals.

Funds are not spendable right after a payment (about 2 business days in the
UK), so transfers are only attempted once the platform balance covers them.
"""

import logging
from datetime import datetime
from typing import Any, Optional

import stripe

from ..config import DEFAULT_CURRENCY, STRIPE_SECRET_KEY

logger = logging.getLogger(__name__)

stripe.api_key = STRIPE_SECRET_KEY


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def to_plain(obj):
    """Processor responses as plain dicts; StripeObject is not a dict"""
    if obj is None:
        return None
    if isinstance(obj, stripe.StripeObject):
        return obj.to_dict()
    return dict(obj)


def _currency_amount(entries, currency: str) -> int:
    for entry in entries or []:
        if entry["currency"] == currency:
            return entry["amount"]
    return 0


def check_platform_balance(amount_minor: int, currency: str = DEFAULT_CURRENCY) -> dict:
    """
    Check whether the platform balance covers a transfer.
    Never raises; a failed lookup reports can_transfer=False.
    """
    try:
        balance = to_plain(stripe.Balance.retrieve())
        available = _currency_amount(balance["available"], currency)
        pending = _currency_amount(balance["pending"], currency)
        has_balance = available >= amount_minor

        if has_balance:
            message = f"Sufficient balance: {available / 100} {currency.upper()} available"
        else:
            message = (
                f"Insufficient balance: Need {amount_minor / 100} {currency.upper()}, "
                f"only {available / 100} available ({pending / 100} pending)"
            )
        return {
            "has_available_balance": has_balance,
            "available_amount": available,
            "pending_amount": pending,
            "currency": currency,
            "can_transfer": has_balance,
            "message": message,
        }
    except Exception as e:
        logger.error(f"❌ Error checking platform balance: {e}")
        return {
            "has_available_balance": False,
            "available_amount": 0,
            "pending_amount": 0,
            "currency": currency,
            "can_transfer": False,
            "message": f"Balance check failed: {e}",
        }


def check_charge_funds_available(charge_id: str) -> dict:
    """Whether the funds of a charge have settled into the available balance"""
    try:
        charge = to_plain(stripe.Charge.retrieve(charge_id))
        balance_transaction = charge.get("balance_transaction")
        if not balance_transaction:
            return {
                "is_available": False,
                "available_on": None,
                "status": "unknown",
                "message": "No balance transaction associated with charge",
            }

        if not isinstance(balance_transaction, str):
            balance_transaction = balance_transaction["id"]
        txn = to_plain(stripe.BalanceTransaction.retrieve(balance_transaction))

        available_on = (
            datetime.utcfromtimestamp(txn["available_on"]) if txn.get("available_on") else None
        )
        is_available = txn.get("status") == "available" or (
            available_on is not None and datetime.utcnow() >= available_on
        )
        return {
            "is_available": is_available,
            "available_on": available_on,
            "status": "available" if is_available else "pending",
            "message": "Funds are available for transfer"
            if is_available
            else f"Funds will be available on {available_on.isoformat() if available_on else 'unknown date'}",
        }
    except Exception as e:
        logger.error(f"❌ Error checking charge funds availability for {charge_id}: {e}")
        return {
            "is_available": False,
            "available_on": None,
            "status": "unknown",
            "message": f"Error checking availability: {e}",
        }


def is_balance_error(error: Exception) -> bool:
    code = getattr(error, "code", None)
    message = str(getattr(error, "user_message", None) or error)
    return code == "balance_insufficient" or "balance" in message or "insufficient" in message


def safe_transfer_with_balance_gate(
    amount_minor: int,
    destination: str,
    currency: str = DEFAULT_CURRENCY,
    transfer_group: Optional[str] = None,
    metadata: Optional[dict[str, str]] = None,
    description: Optional[str] = None,
) -> dict:
    """
    Transfer to a connected account once the platform balance allows it

    Returns:
        {"success", "transfer", "reason", "should_defer"}; should_defer means
        retry later rather than fail the payout
    """
    balance_check = check_platform_balance(amount_minor, currency)
    if not balance_check["can_transfer"]:
        logger.info(f"⏸️ Transfer deferred: {balance_check['message']}")
        return {
            "success": False,
            "transfer": None,
            "reason": balance_check["message"],
            "should_defer": True,
        }

    try:
        transfer = stripe.Transfer.create(
            amount=amount_minor,
            currency=currency,
            destination=destination,
            transfer_group=transfer_group,
            metadata=metadata or {},
            description=description,
        )
        transfer = to_plain(transfer)
        logger.info(f"✅ Transfer {transfer['id']} - {amount_minor / 100} {currency.upper()}")
        return {
            "success": True,
            "transfer": transfer,
            "reason": "Transfer completed successfully",
            "should_defer": False,
        }
    except stripe.StripeError as e:
        logger.error(f"❌ Transfer to {destination} failed: {e}")
        return {
            "success": False,
            "transfer": None,
            "reason": str(getattr(e, "user_message", None) or e),
            "should_defer": is_balance_error(e),
        }


def create_connected_account_payout(
    account_id: str,
    amount_minor: int,
    currency: str = DEFAULT_CURRENCY,
    description: Optional[str] = None,
    metadata: Optional[dict[str, str]] = None,
):
    """Move funds from the connected balance to the owner's bank account"""
    payout = stripe.Payout.create(
        amount=amount_minor,
        currency=currency,
        method="standard",
        description=description,
        metadata=metadata or {},
        stripe_account=account_id,
    )
    return to_plain(payout)


def create_refund(payment_intent_id: str, amount_minor: Optional[int] = None, reason: str = "requested_by_customer"):
    params: dict[str, Any] = {"payment_intent": payment_intent_id, "reason": reason}
    if amount_minor is not None:
        params["amount"] = amount_minor
    return to_plain(stripe.Refund.create(**params))


def reverse_transfer(transfer_id: str, amount_minor: int, metadata: Optional[dict[str, str]] = None):
    """Pull money back from a connected account"""
    reversal = stripe.Transfer.create_reversal(transfer_id, amount=amount_minor, metadata=metadata or {})
    return to_plain(reversal)


def list_connected_payouts(account_id: str, limit: int = 100) -> list:
    result = to_plain(stripe.Payout.list(limit=limit, stripe_account=account_id))
    return [to_plain(payout) for payout in result["data"]]


def get_platform_balance(currency: str = DEFAULT_CURRENCY) -> dict:
    """Platform balance in major units"""
    balance = to_plain(stripe.Balance.retrieve())
    return {
        "available": _currency_amount(balance["available"], currency) / 100,
        "pending": _currency_amount(balance["pending"], currency) / 100,
        "currency": currency,
    }
