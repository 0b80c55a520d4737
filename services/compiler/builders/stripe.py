"""
Stripe builders.
"""

from typing import Any, Dict

from ..templating import render_source
from .registry import StepTarget, registry, step_context

CAPTURE_METHODS = ["automatic", "automatic_async", "manual"]

CREATE_PAYMENT_INTENT_TEMPLATE = r'''
def {{ fn }}(ctx):
    """Create a Stripe payment intent (node {{ node_id | doc }})."""
    step = {{ step | py }}
    config = interpolate_value({{ config | py }}, ctx)

    raw_amount = to_trimmed_string(config.get("amount"))
    if not re.match(r"^[0-9]+$", raw_amount) or int(raw_amount) <= 0:
        raise ValidationError(step, "amount", "amount must be a positive integer in the smallest currency unit")
    amount = int(raw_amount)
    currency = (to_trimmed_string(config.get("currency")) or "usd").lower()
    if not re.match(r"^[a-z]{3}$", currency):
        raise ValidationError(step, "currency", "currency must be a three letter ISO code")

    params = {"amount": amount, "currency": currency}
    capture_method = to_trimmed_string(config.get("capture_method")).lower()
    if capture_method:
        if capture_method not in {{ capture_methods | py }}:
            raise ValidationError(step, "capture_method", "capture_method must be one of " + ", ".join({{ capture_methods | py }}))
        params["capture_method"] = capture_method
    customer = to_trimmed_string(config.get("customer"))
    if customer:
        params["customer"] = customer
    description = to_trimmed_string(config.get("description"))
    if description:
        params["description"] = description
    receipt_email = to_trimmed_string(config.get("receipt_email"))
    if receipt_email:
        if not is_valid_email(receipt_email):
            raise ValidationError(step, "receipt_email", "receipt_email is not a valid address: " + receipt_email)
        params["receipt_email"] = receipt_email
    payment_method_types = config.get("payment_method_types")
    if isinstance(payment_method_types, list) and payment_method_types:
        params["payment_method_types"] = [to_trimmed_string(item) for item in payment_method_types]
    elif config.get("automatic_payment_methods", True) is not False:
        params["automatic_payment_methods"] = {"enabled": True}
    metadata = config.get("metadata")
    if isinstance(metadata, dict) and metadata:
        params["metadata"] = {str(key): to_trimmed_string(value) for key, value in metadata.items()}

    key = to_trimmed_string(config.get("idempotency_key")) or idempotency_key(step, ctx.get("run_id"), amount, currency, customer)

    try:
        secret_key = get_secret("STRIPE_SECRET_KEY", {"connector_key": "stripe"})
    except MissingSecretError as error:
        log_warn("stripe_missing_credentials", {"step": step, "message": str(error)})
        return ctx

    try:
        response = rate_limit_aware(
            lambda attempt: fetch_json({
                "url": "https://api.stripe.com/v1/payment_intents",
                "method": "POST",
                "headers": {"Authorization": "Bearer " + secret_key, "Idempotency-Key": key},
                "payload": encode_form(params),
                "content_type": "application/x-www-form-urlencoded",
            }),
            {"attempts": 3, "initial_delay_ms": 1000, "max_delay_ms": 16000, "jitter": 0.2},
        )
    except Exception as error:
        wrapped = wrap_http_error("Stripe create_payment_intent failed", error, flatten_error_details(getattr(error, "body", None)))
        log_error("stripe_create_payment_intent_failed", {"step": step, "status": wrapped.status, "message": str(wrapped)})
        raise wrapped

    body = response["body"] if isinstance(response["body"], dict) else {}
    result = dict(ctx)
    result["stripe_payment_intent_id"] = body.get("id")
    result["stripe_payment_intent_status"] = body.get("status")
    result["stripe_client_secret"] = body.get("client_secret")
    result["stripe_idempotency_key"] = key
    log_info("stripe_create_payment_intent_success", {
        "step": step,
        "payment_intent_id": result["stripe_payment_intent_id"],
        "status": result["stripe_payment_intent_status"],
    })
    return result
'''


@registry.register(
    "action.stripe:create_payment_intent",
    description="Create a payment intent with an idempotency key",
    scopes=["host:external_request", "host:properties"],
)
def build_stripe_create_payment_intent(config: Dict[str, Any], target: StepTarget) -> str:
    return render_source(
        CREATE_PAYMENT_INTENT_TEMPLATE,
        **step_context("action.stripe:create_payment_intent", config, target, capture_methods=CAPTURE_METHODS)
    )
