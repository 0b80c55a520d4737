"""
Trigger builders: manual, time schedule, incoming webhook and sheet polling.

A trigger renders a handler function named after the node. Triggers that
need a host-side trigger also render ``install_<handler>()``, which the
assembler calls from ``setup_triggers()``.
"""

from typing import Any, Dict

from ..templating import render_source
from .registry import StepTarget, registry

HOST_TRIGGER_SCOPES = ["host:triggers", "host:properties"]

TIME_TRIGGER_OPTIONS = (
    "every_minutes",
    "every_hours",
    "every_days",
    "every_weeks",
    "at_hour",
    "near_minute",
    "on_week_day",
    "on_month_day",
    "run_at",
    "timezone",
    "description",
    "ephemeral",
)


MANUAL_TEMPLATE = r'''
def {{ fn }}(payload=None):
    """Run the workflow by hand (node {{ node_id | doc }})."""
    return dispatch_pipeline({{ trigger_key | py }}, payload)
'''


@registry.register(
    "trigger.core:manual",
    connector="core",
    description="Run the workflow on demand with a caller supplied payload",
)
def build_manual_trigger(config: Dict[str, Any], target: StepTarget) -> str:
    return render_source(MANUAL_TEMPLATE, fn=target.function_name, node_id=target.node_id,
                         trigger_key=target.trigger_key)


SCHEDULE_TEMPLATE = r'''
def {{ fn }}(event=None):
    """Scheduled run (node {{ node_id | doc }})."""
    trigger = {"key": {{ trigger_key | py }}, "kind": "time", "fired_at": _iso_timestamp()}
    if isinstance(event, dict):
        trigger["event"] = event
    return dispatch_pipeline({{ trigger_key | py }}, {"trigger": trigger})


def install_{{ fn }}():
    config = dict({{ schedule | py }})
    config["key"] = {{ trigger_key | py }}
    config["handler"] = {{ fn | py }}
    return build_time_trigger(config)
'''


@registry.register(
    "trigger.time:schedule",
    connector="time",
    description="Recurring or one-shot time based trigger",
    scopes=HOST_TRIGGER_SCOPES,
    installs_trigger=True,
)
def build_schedule_trigger(config: Dict[str, Any], target: StepTarget) -> str:
    schedule = {option: config[option] for option in TIME_TRIGGER_OPTIONS if option in config}
    return render_source(SCHEDULE_TEMPLATE, fn=target.function_name, node_id=target.node_id,
                         trigger_key=target.trigger_key, schedule=schedule)


WEBHOOK_TEMPLATE = r'''
def {{ fn }}(event=None):
    """Handle an incoming webhook request (node {{ node_id | doc }})."""
    event = event if isinstance(event, dict) else {}
    parameters = event.get("parameters") or {}
    headers = _normalize_headers(event.get("headers"))
    token_property = {{ token_property | py }}
    if token_property:
        expected = get_secret(token_property, {"connector_key": "webhook"})
        provided = parameters.get("token") or headers.get("x-webhook-token")
        if not _constant_time_equals(str(expected), str(provided or "")):
            log_warn("webhook_rejected", {"trigger": {{ trigger_key | py }}, "reason": "token mismatch"})
            return {"ok": False, "status": 401, "error": "invalid token"}

    body_text = event.get("body")
    payload = {}
    if isinstance(body_text, str) and body_text.strip():
        try:
            parsed = json.loads(body_text)
        except ValueError as error:
            log_warn("webhook_invalid_json", {"trigger": {{ trigger_key | py }}, "message": str(error)})
            return {"ok": False, "status": 400, "error": "invalid JSON body"}
        payload = parsed if isinstance(parsed, dict) else {"items": parsed}

    ctx = dict(payload)
    ctx["webhook"] = {"parameters": parameters, "received_at": _iso_timestamp()}
    result = dispatch_pipeline({{ trigger_key | py }}, ctx)
    return {"ok": True, "status": 200, "run_id": result.get("run_id") if isinstance(result, dict) else None}
'''


@registry.register(
    "trigger.webhook:incoming",
    connector="webhook",
    description="Start the workflow from an HTTP POST; the JSON body becomes the context",
    advanced_services=["web_app"],
    entry_points=["do_post"],
)
def build_webhook_trigger(config: Dict[str, Any], target: StepTarget) -> str:
    token_property = config.get("token_property") or None
    return render_source(WEBHOOK_TEMPLATE, fn=target.function_name, node_id=target.node_id,
                         trigger_key=target.trigger_key, token_property=token_property)


SHEETS_ROW_ADDED_TEMPLATE = r'''
def {{ fn }}(event=None):
    """Poll a sheet for appended rows (node {{ node_id | doc }})."""
    config = {{ config | py }}
    step = {{ step | py }}

    def poll(runtime):
        spreadsheet_id = to_trimmed_string(config.get("spreadsheet_id"))
        if not spreadsheet_id:
            raise ValidationError(step, "spreadsheet_id", "spreadsheet_id is required")
        sheet_name = to_trimmed_string(config.get("sheet_name")) or "Sheet1"
        header_row = to_positive_integer(config.get("header_row")) or 1
        max_rows = to_positive_integer(config.get("max_rows_per_poll")) or 50
        try:
            token = require_oauth_token("sheets", {"scopes": {{ oauth_scopes | py }}})
        except MissingSecretError as error:
            log_warn("sheets_missing_credentials", {"step": step, "message": str(error)})
            return {"skipped": True}

        url = (
            "https://sheets.googleapis.com/v4/spreadsheets/" + url_encode(spreadsheet_id)
            + "/values/" + url_encode(sheet_name)
        )
        response = rate_limit_aware(
            lambda attempt: fetch_json({"url": url, "method": "GET", "headers": {"Authorization": "Bearer " + token}}),
            {"attempts": 3, "initial_delay_ms": 1000, "max_delay_ms": 16000, "jitter": 0.2},
        )
        body = response["body"] if isinstance(response["body"], dict) else {}
        values = body.get("values") or []
        header = values[header_row - 1] if len(values) >= header_row else []
        total = len(values)

        last_index = runtime.state.get("last_row_index")
        if not isinstance(last_index, int):
            if not config.get("initial_sync"):
                runtime.state["last_row_index"] = max(total, header_row)
                log_info("sheets_initial_sync_skipped", {"step": step, "rows": total})
                return {"new_rows": 0}
            last_index = header_row

        events = []
        for index in range(last_index, min(total, last_index + max_rows)):
            row = values[index]
            record = {}
            for column, value in enumerate(row):
                name = header[column] if column < len(header) and header[column] else "column_%d" % (column + 1)
                record[name] = value
            events.append({
                "row": {"number": index + 1, "values": row, "record": record},
                "sheet": {"spreadsheet_id": spreadsheet_id, "sheet_name": sheet_name},
            })

        outcome = runtime.dispatch_batch(events)
        runtime.state["last_row_index"] = last_index + len(events)
        return {"new_rows": len(events), "dispatched": outcome["succeeded"], "failed": outcome["failed"]}

    return build_polling_wrapper({{ trigger_key | py }}, poll)


def install_{{ fn }}():
    return build_time_trigger({
        "key": {{ trigger_key | py }},
        "handler": {{ fn | py }},
        "every_minutes": {{ interval | py }},
        "description": "Poll sheet for new rows",
    })
'''


@registry.register(
    "trigger.sheets:row_added",
    connector="sheets",
    description="Poll a spreadsheet and run once per appended row",
    scopes=HOST_TRIGGER_SCOPES + ["host:external_request", "sheets:spreadsheets.readonly"],
    installs_trigger=True,
)
def build_sheets_row_added_trigger(config: Dict[str, Any], target: StepTarget) -> str:
    interval = config.get("poll_interval_minutes")
    if not isinstance(interval, int) or isinstance(interval, bool) or interval < 1:
        interval = 5
    return render_source(
        SHEETS_ROW_ADDED_TEMPLATE,
        fn=target.function_name,
        node_id=target.node_id,
        step=f"trigger.sheets:row_added@{target.node_id}",
        trigger_key=target.trigger_key,
        config=config,
        interval=interval,
        oauth_scopes=["https://www.googleapis.com/auth/spreadsheets.readonly"],
    )
