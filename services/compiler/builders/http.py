"""
Generic HTTP request builder.
"""

from typing import Any, Dict

from ..templating import identifier, render_source
from .registry import StepTarget, registry, step_context

HTTP_METHODS = ["DELETE", "GET", "HEAD", "PATCH", "POST", "PUT"]
AUTH_TYPES = ["api_key", "basic", "bearer", "none"]

REQUEST_TEMPLATE = r'''
def {{ fn }}(ctx):
    """Call an HTTP endpoint (node {{ node_id | doc }})."""
    step = {{ step | py }}
    config = interpolate_value({{ config | py }}, ctx)

    url = to_trimmed_string(config.get("url"))
    if not re.match(r"^https?://[^\s/]+", url, re.IGNORECASE):
        raise ValidationError(step, "url", "url must be an absolute http(s) URL")
    method = (to_trimmed_string(config.get("method")) or "GET").upper()
    if method not in {{ methods | py }}:
        raise ValidationError(step, "method", "method must be one of " + ", ".join({{ methods | py }}))
    query = config.get("query")
    if isinstance(query, dict) and query:
        url += ("&" if "?" in url else "?") + encode_form(query)
    headers = {}
    if isinstance(config.get("headers"), dict):
        for name, value in config["headers"].items():
            headers[str(name)] = to_trimmed_string(value)

    auth = config.get("auth") if isinstance(config.get("auth"), dict) else {}
    auth_type = (to_trimmed_string(auth.get("type")) or "none").lower()
    if auth_type not in {{ auth_types | py }}:
        raise ValidationError(step, "auth.type", "auth.type must be one of " + ", ".join({{ auth_types | py }}))
    try:
        if auth_type == "bearer":
            headers["Authorization"] = "Bearer " + get_secret(auth.get("secret") or "HTTP_BEARER_TOKEN", {"connector_key": "http"})
        elif auth_type == "api_key":
            headers[to_trimmed_string(auth.get("header")) or "X-API-Key"] = get_secret(auth.get("secret") or "HTTP_API_KEY", {"connector_key": "http"})
        elif auth_type == "basic":
            username = get_secret(auth.get("username_secret") or "HTTP_BASIC_USERNAME", {"connector_key": "http"})
            password = get_secret(auth.get("password_secret") or "HTTP_BASIC_PASSWORD", {"connector_key": "http"})
            headers["Authorization"] = "Basic " + host.base64_encode((username + ":" + password).encode("utf-8"))
    except MissingSecretError as error:
        log_warn("http_missing_credentials", {"step": step, "message": str(error)})
        return ctx

    request = {"url": url, "method": method, "headers": headers}
    body = config.get("body")
    if body is not None and method not in ("GET", "HEAD"):
        if (to_trimmed_string(config.get("body_type")) or "json").lower() == "form" and isinstance(body, dict):
            request["payload"] = encode_form(body)
            request["content_type"] = "application/x-www-form-urlencoded"
        else:
            request["payload"] = body
            request["content_type"] = "application/json"

    attempts = to_positive_integer(config.get("retry_attempts")) or 3
    try:
        response = rate_limit_aware(
            lambda attempt: fetch_json(request),
            {"attempts": attempts, "initial_delay_ms": 500, "max_delay_ms": 16000, "jitter": 0.2},
        )
    except Exception as error:
        wrapped = wrap_http_error("HTTP " + method + " " + url + " failed", error, flatten_error_details(getattr(error, "body", None)))
        log_error("http_request_failed", {"step": step, "status": wrapped.status, "message": str(wrapped)})
        raise wrapped

    result = dict(ctx)
    result[to_trimmed_string(config.get("result_key")) or {{ result_key | py }}] = {
        "status": response["status"],
        "headers": response["headers"],
        "body": response["body"],
    }
    log_info("http_request_success", {"step": step, "method": method, "status": response["status"]})
    return result
'''


@registry.register(
    "action.http:request",
    description="Templated REST call with optional secret backed auth",
    scopes=["host:external_request", "host:properties"],
)
def build_http_request(config: Dict[str, Any], target: StepTarget) -> str:
    return render_source(
        REQUEST_TEMPLATE,
        **step_context(
            "action.http:request",
            config,
            target,
            methods=HTTP_METHODS,
            auth_types=AUTH_TYPES,
            result_key=f"http_{identifier(target.node_id)}_response",
        )
    )
