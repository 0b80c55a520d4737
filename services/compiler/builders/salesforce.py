"""
Salesforce builders.
"""

from typing import Any, Dict

from ..templating import render_source
from .registry import StepTarget, registry, step_context

SALESFORCE_API_VERSION = "v59.0"

# config key -> Lead field
LEAD_FIELDS = [
    ("first_name", "FirstName"),
    ("email", "Email"),
    ("phone", "Phone"),
    ("title", "Title"),
    ("lead_source", "LeadSource"),
    ("status", "Status"),
    ("description", "Description"),
    ("website", "Website"),
]

CREATE_LEAD_TEMPLATE = r'''
def {{ fn }}(ctx):
    """Create a Salesforce lead (node {{ node_id | doc }})."""
    step = {{ step | py }}
    config = interpolate_value({{ config | py }}, ctx)

    last_name = to_trimmed_string(pick_first(config, ["last_name", "LastName"]))
    company = to_trimmed_string(pick_first(config, ["company", "Company"]))
    missing = [name for name, value in (("last_name", last_name), ("company", company)) if not value]
    if missing:
        raise ValidationError(step, missing, "missing required lead fields: " + ", ".join(missing))

    lead = {"LastName": last_name, "Company": company}
    for source, field in {{ lead_fields | py }}:
        value = to_trimmed_string(pick_first(config, [source, field]))
        if value:
            lead[field] = value
    if lead.get("Email") and not is_valid_email(lead["Email"]):
        raise ValidationError(step, "email", "email is not a valid address: " + lead["Email"])
    custom_fields = config.get("custom_fields")
    if isinstance(custom_fields, dict):
        for field, value in custom_fields.items():
            lead[str(field)] = value

    try:
        access_token = get_secret("SALESFORCE_ACCESS_TOKEN", {"connector_key": "salesforce"})
        instance_url = get_secret("SALESFORCE_INSTANCE_URL", {"connector_key": "salesforce"})
    except MissingSecretError as error:
        log_warn("salesforce_missing_credentials", {"step": step, "message": str(error)})
        return ctx

    url = to_trimmed_string(instance_url).rstrip("/") + "/services/data/{{ api_version }}/sobjects/Lead"
    try:
        response = rate_limit_aware(
            lambda attempt: fetch_json({
                "url": url,
                "method": "POST",
                "headers": {"Authorization": "Bearer " + access_token},
                "payload": lead,
                "content_type": "application/json",
            }),
            {"attempts": 3, "initial_delay_ms": 1000, "max_delay_ms": 16000, "jitter": 0.2},
        )
    except Exception as error:
        wrapped = wrap_http_error("Salesforce create_lead failed", error, flatten_error_details(getattr(error, "body", None)))
        log_error("salesforce_create_lead_failed", {"step": step, "status": wrapped.status, "message": str(wrapped)})
        raise wrapped

    body = response["body"] if isinstance(response["body"], dict) else {}
    result = dict(ctx)
    result["salesforce_lead_id"] = body.get("id")
    log_info("salesforce_create_lead_success", {"step": step, "lead_id": result["salesforce_lead_id"]})
    return result
'''


@registry.register(
    "action.salesforce:create_lead",
    description="Create a lead; LastName and Company are required",
    scopes=["host:external_request", "host:properties", "salesforce:api"],
)
def build_salesforce_create_lead(config: Dict[str, Any], target: StepTarget) -> str:
    return render_source(
        CREATE_LEAD_TEMPLATE,
        **step_context("action.salesforce:create_lead", config, target,
                       api_version=SALESFORCE_API_VERSION, lead_fields=LEAD_FIELDS)
    )
