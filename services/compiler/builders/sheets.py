"""
Google Sheets action builders.
"""

from typing import Any, Dict

from ..templating import render_source
from .registry import StepTarget, registry, step_context

VALUE_INPUT_OPTIONS = ["RAW", "USER_ENTERED"]

APPEND_ROW_TEMPLATE = r'''
def {{ fn }}(ctx):
    """Append a row to a sheet (node {{ node_id | doc }})."""
    step = {{ step | py }}
    config = interpolate_value({{ config | py }}, ctx)

    spreadsheet_id = to_trimmed_string(config.get("spreadsheet_id"))
    if not spreadsheet_id:
        raise ValidationError(step, "spreadsheet_id", "spreadsheet_id is required")
    target_range = to_trimmed_string(pick_first(config, ["range", "sheet_name"])) or "Sheet1"
    values = config.get("values")
    if isinstance(values, dict):
        columns = config.get("columns") if isinstance(config.get("columns"), list) else list(values)
        values = [values.get(column) for column in columns]
    if not isinstance(values, list) or not values:
        raise ValidationError(step, "values", "values must be a non-empty list or a column mapping")
    rows = values if all(isinstance(item, list) for item in values) else [values]
    rows = [[_stringify(cell) if isinstance(cell, (dict, list)) else cell for cell in row] for row in rows]
    value_input_option = (to_trimmed_string(config.get("value_input_option")) or "USER_ENTERED").upper()
    if value_input_option not in {{ value_input_options | py }}:
        raise ValidationError(step, "value_input_option", "value_input_option must be one of " + ", ".join({{ value_input_options | py }}))

    try:
        token = require_oauth_token("sheets", {"scopes": {{ oauth_scopes | py }}})
    except MissingSecretError as error:
        log_warn("sheets_missing_credentials", {"step": step, "message": str(error)})
        return ctx

    url = (
        "https://sheets.googleapis.com/v4/spreadsheets/" + url_encode(spreadsheet_id)
        + "/values/" + url_encode(target_range) + ":append?valueInputOption=" + value_input_option
        + "&insertDataOption=INSERT_ROWS"
    )
    try:
        response = rate_limit_aware(
            lambda attempt: fetch_json({
                "url": url,
                "method": "POST",
                "headers": {"Authorization": "Bearer " + token},
                "payload": {"values": rows},
                "content_type": "application/json",
            }),
            {"attempts": 4, "initial_delay_ms": 1000, "max_delay_ms": 16000, "jitter": 0.2},
        )
    except Exception as error:
        wrapped = wrap_http_error("Sheets append_row failed", error, flatten_error_details(getattr(error, "body", None)))
        log_error("sheets_append_row_failed", {"step": step, "status": wrapped.status, "message": str(wrapped)})
        raise wrapped

    body = response["body"] if isinstance(response["body"], dict) else {}
    updates = body.get("updates") or {}
    updated_range = updates.get("updatedRange") or ""
    match = re.search(r"![A-Z]+([0-9]+)", updated_range)
    result = dict(ctx)
    result["sheets_updated_range"] = updated_range or None
    result["sheets_row_number"] = int(match.group(1)) if match else None
    result["sheets_updated_rows"] = updates.get("updatedRows")
    log_info("sheets_append_row_success", {
        "step": step,
        "spreadsheet_id": spreadsheet_id,
        "range": result["sheets_updated_range"],
    })
    return result
'''


@registry.register(
    "action.sheets:append_row",
    description="Append one or more rows through the values API",
    scopes=["host:external_request", "host:properties", "sheets:spreadsheets"],
)
def build_sheets_append_row(config: Dict[str, Any], target: StepTarget) -> str:
    return render_source(
        APPEND_ROW_TEMPLATE,
        **step_context(
            "action.sheets:append_row",
            config,
            target,
            value_input_options=VALUE_INPUT_OPTIONS,
            oauth_scopes=["https://www.googleapis.com/auth/spreadsheets"],
        )
    )
