"""
Shopify builders.
"""

from typing import Any, Dict

from ..templating import render_source
from .registry import StepTarget, registry, step_context

SHOPIFY_API_VERSION = "2024-01"

FINANCIAL_STATUSES = ["authorized", "paid", "partially_paid", "partially_refunded", "pending", "refunded", "voided"]

ADDRESS_FIELDS = ["first_name", "last_name", "company", "address1", "address2", "city", "province",
                  "country", "zip", "phone"]

CREATE_ORDER_TEMPLATE = r'''
def {{ fn }}(ctx):
    """Create a Shopify order (node {{ node_id | doc }})."""
    step = {{ step | py }}
    config = interpolate_value({{ config | py }}, ctx)

    raw_items = config.get("line_items")
    if isinstance(raw_items, dict):
        raw_items = [raw_items]
    if not isinstance(raw_items, list):
        raw_items = []
    line_items = []
    missing = []
    for index, item in enumerate(raw_items):
        prefix = "line_items[%d]" % index
        if not isinstance(item, dict):
            log_warn("shopify_line_item_skipped", {"step": step, "index": index, "reason": "line item is not an object"})
            missing.append(prefix)
            continue
        raw_quantity = pick_first(item, ["quantity", "qty"])
        quantity = 1 if raw_quantity is None or raw_quantity == "" else to_positive_integer(raw_quantity)
        if quantity is None or (raw_quantity not in (None, "") and float(str(raw_quantity).strip()) != quantity):
            log_warn("shopify_line_item_skipped", {"step": step, "index": index, "reason": "quantity is not a positive integer"})
            missing.append(prefix + ".quantity")
            continue
        variant_id = to_positive_integer(pick_first(item, ["variant_id", "variantId"]))
        price = to_currency_string(item.get("price"))
        if variant_id is None and price is None:
            log_warn("shopify_line_item_skipped", {"step": step, "index": index, "reason": "missing variant_id and price"})
            missing.extend([prefix + ".variant_id", prefix + ".price"])
            continue
        normalized = {"quantity": quantity}
        if variant_id is not None:
            normalized["variant_id"] = variant_id
            if price is not None:
                normalized["price"] = price
        else:
            title = to_trimmed_string(pick_first(item, ["title", "name"]))
            if not title:
                log_warn("shopify_line_item_skipped", {"step": step, "index": index, "reason": "custom item without title"})
                missing.append(prefix + ".title")
                continue
            normalized["title"] = title
            normalized["price"] = price
        sku = to_trimmed_string(item.get("sku"))
        if sku:
            normalized["sku"] = sku
        line_items.append(normalized)
    if not line_items:
        raise ValidationError(
            step,
            missing or ["line_items"],
            "at least one line item needs a variant_id, or a title and price" + (" (missing: " + ", ".join(missing) + ")" if missing else ""),
        )

    customer_id = to_positive_integer(config.get("customer_id"))
    email = to_trimmed_string(pick_first(config, ["email", "customer_email"]))
    if customer_id is None and not email:
        raise ValidationError(step, ["customer_id", "email"], "customer_id or email is required")
    if email and not is_valid_email(email):
        raise ValidationError(step, "email", "email is not a valid address: " + email)

    order = {"line_items": line_items}
    if customer_id is not None:
        order["customer"] = {"id": customer_id}
    if email:
        order["email"] = email

    address = config.get("shipping_address")
    if isinstance(address, dict):
        shipping = {}
        for field in {{ address_fields | py }}:
            value = to_trimmed_string(address.get(field))
            if value:
                shipping[field] = value
        if shipping:
            absent = [field for field in ("address1", "city", "country") if not shipping.get(field)]
            if absent:
                raise ValidationError(
                    step,
                    ["shipping_address." + field for field in absent],
                    "shipping_address is missing " + ", ".join(absent),
                )
            order["shipping_address"] = shipping

    financial_status = to_trimmed_string(config.get("financial_status")).lower()
    if financial_status:
        if financial_status not in {{ financial_statuses | py }}:
            raise ValidationError(step, "financial_status", "financial_status must be one of " + ", ".join({{ financial_statuses | py }}))
        order["financial_status"] = financial_status
    note = to_trimmed_string(config.get("note"))
    if note:
        order["note"] = note
    tags = config.get("tags")
    if isinstance(tags, list):
        tags = ", ".join(to_trimmed_string(tag) for tag in tags if to_trimmed_string(tag))
    tags = to_trimmed_string(tags)
    if tags:
        order["tags"] = tags
    if isinstance(config.get("send_receipt"), bool):
        order["send_receipt"] = config["send_receipt"]

    try:
        access_token = get_secret("SHOPIFY_ACCESS_TOKEN", {"connector_key": "shopify"})
        shop_domain = get_secret("SHOPIFY_SHOP_DOMAIN", {"connector_key": "shopify"})
    except MissingSecretError as error:
        log_warn("shopify_missing_credentials", {"step": step, "message": str(error)})
        return ctx

    shop = re.sub(r"^https?://", "", to_trimmed_string(shop_domain)).rstrip("/")
    shop = re.sub(r"\.myshopify\.com$", "", shop)
    url = "https://" + shop + ".myshopify.com/admin/api/{{ api_version }}/orders.json"

    def call_limit_retry(context):
        response = context.get("response") or {}
        limit = str((response.get("headers") or {}).get("x-shopify-shop-api-call-limit") or "")
        parts = [part.strip() for part in limit.split("/")]
        if len(parts) == 2 and parts[0].isdigit() and parts[1].isdigit() and int(parts[0]) >= int(parts[1]):
            return {"retry": True, "delay_ms": 2000}
        return None

    try:
        response = rate_limit_aware(
            lambda attempt: fetch_json({
                "url": url,
                "method": "POST",
                "headers": {"X-Shopify-Access-Token": access_token},
                "payload": {"order": order},
                "content_type": "application/json",
            }),
            {"attempts": 5, "initial_delay_ms": 1000, "max_delay_ms": 32000, "jitter": 0.2, "retry_on": call_limit_retry},
        )
    except Exception as error:
        wrapped = wrap_http_error("Shopify create_order failed", error, flatten_error_details(getattr(error, "body", None)))
        log_error("shopify_create_order_failed", {"step": step, "status": wrapped.status, "message": str(wrapped)})
        raise wrapped

    body = response["body"] if isinstance(response["body"], dict) else {}
    created = body.get("order") or {}
    result = dict(ctx)
    result["shopify_order_id"] = created.get("id")
    result["shopify_order_name"] = created.get("name")
    result["shopify_order_number"] = created.get("order_number")
    result["shopify_order_total"] = created.get("total_price")
    log_info("shopify_create_order_success", {
        "step": step,
        "order_id": result["shopify_order_id"],
        "line_items": len(line_items),
    })
    return result
'''


@registry.register(
    "action.shopify:create_order",
    description="Create an order from validated line items and customer details",
    scopes=["host:external_request", "host:properties", "shopify:write_orders"],
)
def build_shopify_create_order(config: Dict[str, Any], target: StepTarget) -> str:
    return render_source(
        CREATE_ORDER_TEMPLATE,
        **step_context(
            "action.shopify:create_order",
            config,
            target,
            api_version=SHOPIFY_API_VERSION,
            address_fields=ADDRESS_FIELDS,
            financial_statuses=FINANCIAL_STATUSES,
        )
    )
