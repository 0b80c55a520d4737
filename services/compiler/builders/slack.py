"""
Slack builders.
"""

from typing import Any, Dict

from ..templating import render_source
from .registry import StepTarget, registry, step_context

SEND_MESSAGE_TEMPLATE = r'''
def {{ fn }}(ctx):
    """Post a Slack message (node {{ node_id | doc }})."""
    step = {{ step | py }}
    try:
        bot_token = get_secret("SLACK_BOT_TOKEN", {"connector_key": "slack"})
    except MissingSecretError:
        bot_token = None
    webhook_url = None
    if not bot_token:
        try:
            webhook_url = get_secret("SLACK_WEBHOOK_URL", {"connector_key": "slack"})
        except MissingSecretError:
            webhook_url = None
    if not bot_token and not webhook_url:
        log_warn("slack_missing_credentials", {
            "step": step,
            "message": "Configure SLACK_BOT_TOKEN or SLACK_WEBHOOK_URL to enable this step",
        })
        return ctx

    config = interpolate_value({{ config | py }}, ctx)
    text = to_trimmed_string(config.get("text"))
    channel = to_trimmed_string(pick_first(config, ["channel", "channel_id"]))
    blocks = config.get("blocks") if isinstance(config.get("blocks"), list) else None
    if not text and not blocks:
        raise ValidationError(step, "text", "text is required")
    if bot_token and not channel:
        raise ValidationError(step, "channel", "channel is required when posting with a bot token")

    message = {"text": text}
    if blocks:
        message["blocks"] = blocks
    for field in ("username", "icon_emoji", "icon_url", "thread_ts"):
        value = to_trimmed_string(config.get(field))
        if value:
            message[field] = value

    if bot_token:
        message["channel"] = channel
        request = {
            "url": "https://slack.com/api/chat.postMessage",
            "method": "POST",
            "headers": {"Authorization": "Bearer " + bot_token},
            "payload": message,
            "content_type": "application/json; charset=utf-8",
        }
    else:
        request = {
            "url": webhook_url,
            "method": "POST",
            "payload": message,
            "content_type": "application/json",
        }

    try:
        response = rate_limit_aware(
            lambda attempt: fetch_json(request),
            {"attempts": 3, "initial_delay_ms": 1000, "max_delay_ms": 10000, "jitter": 0.1},
        )
    except Exception as error:
        wrapped = wrap_http_error("Slack send_message failed", error, flatten_error_details(getattr(error, "body", None)))
        log_error("slack_send_message_failed", {"step": step, "status": wrapped.status, "message": str(wrapped)})
        raise wrapped

    body = response["body"] if isinstance(response["body"], dict) else {}
    if bot_token and body.get("ok") is False:
        log_error("slack_send_message_failed", {"step": step, "message": body.get("error")})
        raise HttpError(
            "Slack API error: " + str(body.get("error")),
            status=response["status"],
            headers=response["headers"],
            body=body,
            text=response["text"],
        )

    result = dict(ctx)
    result["slack_message_sent"] = True
    result["slack_channel"] = body.get("channel") or channel or None
    result["slack_message_ts"] = body.get("ts")
    log_info("slack_send_message_success", {
        "step": step,
        "channel": result["slack_channel"],
        "ts": result["slack_message_ts"],
    })
    return result
'''


@registry.register(
    "action.slack:send_message",
    description="Post a message with a bot token or an incoming webhook",
    scopes=["host:external_request", "host:properties", "slack:chat:write"],
)
def build_slack_send_message(config: Dict[str, Any], target: StepTarget) -> str:
    return render_source(SEND_MESSAGE_TEMPLATE, **step_context("action.slack:send_message", config, target))
