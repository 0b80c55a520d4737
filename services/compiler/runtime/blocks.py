"""
Source text of the shared runtime block.

Each constant below is a section of host-side Python that every bundle embeds
exactly once. The sections only reach the outside world through the injected
``host`` global and only import modules the host exposes.
"""

PRELUDE = r'''
import json
import math
import random
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from urllib.parse import quote


class ValidationError(Exception):
    """A step received a missing or invalid field; raised before any request."""

    def __init__(self, step, fields, message):
        super().__init__(str(step) + ": " + message)
        self.step = step
        self.fields = [fields] if isinstance(fields, str) else list(fields)


class MissingSecretError(Exception):
    """No candidate key resolved to a configured secret."""

    def __init__(self, key, tried_keys, message=None):
        super().__init__(message or 'Missing required secret "' + key + '" (tried: ' + ', '.join(tried_keys) + ')')
        self.key = key
        self.tried_keys = list(tried_keys)


class SealedSecretError(Exception):
    """A sealed credential token could not be used."""


class IntegrityError(SealedSecretError):
    """A sealed credential token failed its integrity checks."""


class SealedSecretExpiredError(SealedSecretError):
    """A sealed credential token is past its expiry."""


class HttpError(Exception):
    """An outbound request failed."""

    def __init__(self, message, status=None, headers=None, body=None, text=None, cause=None):
        super().__init__(message)
        self.status = status
        self.headers = headers or {}
        self.body = body
        self.text = text
        self.cause = cause
'''

LOGGING = r'''
def _iso_timestamp(ms=None):
    if ms is None:
        ms = host.now_ms()
    moment = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    return "%04d-%02d-%02dT%02d:%02d:%02d.%03dZ" % (
        moment.year, moment.month, moment.day, moment.hour, moment.minute, moment.second, int(ms) % 1000)


def log_structured(level, event, details=None):
    payload = {
        "level": level,
        "event": event,
        "details": details if details is not None else {},
        "timestamp": _iso_timestamp(),
    }
    message = "[" + level + "] " + event + " " + json.dumps(payload["details"], default=str, sort_keys=True)
    host.log(level, message, payload)
    return payload


def log_info(event, details=None):
    return log_structured("INFO", event, details)


def log_warn(event, details=None):
    return log_structured("WARN", event, details)


def log_error(event, details=None):
    return log_structured("ERROR", event, details)
'''

VALUES = r'''
_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_INTEGER_PATTERN = re.compile(r"^[0-9]+$")


def _lookup_path(ctx, path):
    current = ctx
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def _stringify(value):
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate(template, ctx):
    """Replace {{path}} placeholders with values looked up in ctx."""
    if not isinstance(template, str):
        return template
    context = ctx if isinstance(ctx, dict) else {}
    return _PLACEHOLDER_PATTERN.sub(lambda match: _stringify(_lookup_path(context, match.group(1))), template)


def interpolate_value(value, ctx):
    if isinstance(value, str):
        return interpolate(value, ctx)
    if isinstance(value, list):
        return [interpolate_value(item, ctx) for item in value]
    if isinstance(value, dict):
        return {key: interpolate_value(item, ctx) for key, item in value.items()}
    return value


def pick_first(source, keys):
    if not isinstance(source, dict):
        return None
    for key in keys:
        if source.get(key) is not None:
            return source[key]
    return None


def to_trimmed_string(value):
    return _stringify(value).strip()


def to_positive_integer(value):
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    text = str(value).strip()
    if _INTEGER_PATTERN.match(text):
        numeric = int(text)
        return numeric if numeric > 0 else None
    try:
        numeric = float(text)
    except ValueError:
        return None
    if not math.isfinite(numeric) or numeric <= 0:
        return None
    return int(math.floor(numeric))


def to_currency_string(value):
    if value is None or value == "" or isinstance(value, bool):
        return None
    normalized = re.sub(r"[^0-9.\-]", "", str(value).strip())
    if not normalized:
        return None
    try:
        numeric = float(normalized)
    except ValueError:
        return None
    if not math.isfinite(numeric):
        return None
    return "%.2f" % numeric


def is_valid_email(value):
    return isinstance(value, str) and _EMAIL_PATTERN.match(value) is not None


def url_encode(value):
    return quote(_stringify(value), safe="")


def encode_form(params, prefix=None):
    """Form-encode params, flattening nested dicts and lists as name[key]."""
    pairs = []
    for key, value in params.items():
        name = str(key) if prefix is None else prefix + "[" + str(key) + "]"
        if value is None:
            continue
        if isinstance(value, dict):
            nested = encode_form(value, name)
            if nested:
                pairs.append(nested)
        elif isinstance(value, list):
            for index, item in enumerate(value):
                if item is not None:
                    pairs.append(url_encode(name + "[" + str(index) + "]") + "=" + url_encode(item))
        else:
            pairs.append(url_encode(name) + "=" + url_encode(value))
    return "&".join(pairs)


def idempotency_key(*parts):
    digest = host.hmac_sha256(
        b"scriptforge-idempotency-v1",
        json.dumps(list(parts), default=str, sort_keys=True).encode("utf-8"),
    )
    return "sf-" + digest.hex()[:32]


def flatten_error_details(payload):
    """Collect human readable messages from a connector error body."""
    details = []
    if isinstance(payload, str):
        text = payload.strip()
        if text:
            details.append(text)
        return details
    if isinstance(payload, list):
        for item in payload:
            details.extend(flatten_error_details(item))
        return details
    if not isinstance(payload, dict):
        return details
    errors = payload.get("errors")
    if isinstance(errors, str):
        details.append(errors)
    elif isinstance(errors, list):
        for item in errors:
            if isinstance(item, dict):
                details.append(_stringify(item.get("message") or item))
            else:
                details.append(_stringify(item))
    elif isinstance(errors, dict):
        for field in sorted(errors):
            messages = errors[field]
            if isinstance(messages, list):
                messages = ", ".join(_stringify(message) for message in messages)
            details.append(str(field) + ": " + _stringify(messages))
    error = payload.get("error")
    if isinstance(error, dict):
        details.append(_stringify(error.get("message") or error))
    elif error:
        details.append(_stringify(error))
    if payload.get("message"):
        details.append(_stringify(payload["message"]))
    return details


def wrap_http_error(prefix, error, details=None):
    """Wrap a failed request into an HttpError carrying status, headers, body and cause."""
    status = getattr(error, "status", None)
    message = prefix
    parts = []
    if status:
        parts.append("status " + str(status))
    parts.extend(details or [])
    if not parts:
        parts.append(str(error))
    message += ": " + "; ".join(parts)
    return HttpError(
        message,
        status=status,
        headers=getattr(error, "headers", None),
        body=getattr(error, "body", None),
        text=getattr(error, "text", None),
        cause=error,
    )
'''

HTTP = r'''
_HTTP_RETRY_DEFAULTS = {
    "max_attempts": 5,
    "initial_delay_ms": 500,
    "backoff_factor": 2,
    "max_delay_ms": 60000,
}

_RATE_LIMIT_HEADER_PAIRS = [
    ("x-ratelimit-remaining", "x-ratelimit-reset"),
    ("x-rate-limit-remaining", "x-rate-limit-reset"),
]


def _normalize_headers(headers):
    normalized = {}
    if not headers:
        return normalized
    for key, value in headers.items():
        normalized[str(key).lower()] = value
    return normalized


def _first_header_value(value):
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _resolve_retry_after_ms(value):
    """Milliseconds to wait for a Retry-After or reset header value, or None."""
    value = _first_header_value(value)
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    now = host.now_ms()
    try:
        numeric = float(raw)
    except ValueError:
        numeric = None
    if numeric is not None and math.isfinite(numeric):
        if numeric > 1000000000000:
            return max(0, int(round(numeric - now)))
        if numeric > 1000000000:
            return max(0, int(round(numeric * 1000 - now)))
        return max(0, int(round(numeric * 1000)))
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return max(0, int(round(parsed.timestamp() * 1000 - now)))


def _is_retryable_status(status):
    return status == 429 or (status is not None and 500 <= status < 600)


def _retry_context(attempt, error, delay_ms):
    status = getattr(error, "status", None)
    if not isinstance(status, int) or isinstance(status, bool):
        status = None
    headers = _normalize_headers(getattr(error, "headers", None))
    response = None
    if status is not None:
        response = {
            "status": status,
            "headers": headers,
            "body": getattr(error, "body", None),
            "text": getattr(error, "text", None),
        }
    return {
        "attempt": attempt,
        "error": error,
        "response": response,
        "delay_ms": delay_ms,
        "retry_after_ms": _resolve_retry_after_ms(headers.get("retry-after")),
    }


def with_retries(fn, options=None):
    """Call fn(attempt_number) until it succeeds or the attempt budget runs out.

    Waits block through host.sleep; there is no asynchronous primitive.
    """
    options = options or {}
    attempts = options.get("attempts") or options.get("max_attempts") or _HTTP_RETRY_DEFAULTS["max_attempts"]
    attempts = max(1, int(attempts))
    initial_delay_ms = options.get("initial_delay_ms", options.get("backoff_ms"))
    if initial_delay_ms is None:
        initial_delay_ms = _HTTP_RETRY_DEFAULTS["initial_delay_ms"]
    backoff_factor = options.get("backoff_factor") or _HTTP_RETRY_DEFAULTS["backoff_factor"]
    max_delay_ms = options.get("max_delay_ms") or _HTTP_RETRY_DEFAULTS["max_delay_ms"]
    jitter = options.get("jitter") or 0
    retry_on = options.get("retry_on")

    attempt = 0
    while True:
        try:
            return fn(attempt + 1)
        except Exception as error:
            attempt += 1
            delay_ms = min(initial_delay_ms * (backoff_factor ** (attempt - 1)), max_delay_ms)
            context = _retry_context(attempt, error, delay_ms)
            status = context["response"]["status"] if context["response"] else None
            should_retry = status is None or _is_retryable_status(status)
            user_delay_ms = None

            if retry_on is not None:
                try:
                    decision = retry_on(context)
                except Exception as callback_error:
                    log_warn("http_retry_callback_failed", {"message": str(callback_error)})
                    decision = None
                if isinstance(decision, bool):
                    should_retry = decision
                elif isinstance(decision, dict):
                    if isinstance(decision.get("retry"), bool):
                        should_retry = decision["retry"]
                    if isinstance(decision.get("delay_ms"), (int, float)):
                        user_delay_ms = max(0, decision["delay_ms"])

            if not should_retry or attempt >= attempts:
                log_error("http_retry_exhausted" if should_retry else "http_retry_aborted", {
                    "attempts": attempt,
                    "message": str(error),
                    "status": status,
                })
                raise

            if user_delay_ms is not None:
                wait_ms = user_delay_ms
            elif context["retry_after_ms"] is not None:
                wait_ms = context["retry_after_ms"]
            else:
                wait_ms = delay_ms
            wait_ms = min(wait_ms, max_delay_ms)
            if jitter:
                wait_ms = min(wait_ms + math.floor(random.random() * wait_ms * jitter), max_delay_ms)
            wait_ms = int(wait_ms)

            log_warn("http_retry", {
                "attempt": attempt,
                "delay_ms": wait_ms,
                "status": status,
                "message": str(error),
            })
            host.sleep(wait_ms)


def _rate_limit_delay_ms(headers):
    """Delay demanded by Retry-After or an exhausted quota header, and whether quota is exhausted."""
    delay_ms = _resolve_retry_after_ms(headers.get("retry-after"))
    exhausted = False
    for remaining_header, reset_header in _RATE_LIMIT_HEADER_PAIRS:
        remaining = _first_header_value(headers.get(remaining_header))
        if remaining is None:
            continue
        try:
            remaining_value = float(str(remaining).strip())
        except ValueError:
            continue
        if remaining_value > 0:
            continue
        exhausted = True
        reset_ms = _resolve_retry_after_ms(headers.get(reset_header))
        if reset_ms is not None:
            delay_ms = reset_ms if delay_ms is None else max(delay_ms, reset_ms)
    return delay_ms, exhausted


def rate_limit_aware(fn, options=None):
    """with_retries plus quota-header awareness.

    Retry when the status is 429/5xx, the quota is exhausted, or the caller's
    retry_on asks for it. An explicit caller refusal only wins when no
    throttling condition was detected. The delay is the largest of the
    detected delay, the caller's delay and the backoff delay.
    """
    config = dict(options or {})
    provided_retry_on = config.get("retry_on")

    def retry_on(context):
        headers = {}
        status = None
        if context.get("response"):
            headers = context["response"].get("headers") or {}
            status = context["response"].get("status")
        headers = _normalize_headers(headers)
        computed_delay, exhausted = _rate_limit_delay_ms(headers)
        detected = _is_retryable_status(status) or exhausted

        user_retry = None
        user_delay = None
        if provided_retry_on is not None:
            decision = provided_retry_on(context)
            if isinstance(decision, bool):
                user_retry = decision
            elif isinstance(decision, dict):
                if isinstance(decision.get("retry"), bool):
                    user_retry = decision["retry"]
                if isinstance(decision.get("delay_ms"), (int, float)):
                    user_delay = decision["delay_ms"]

        result = {}
        if detected or user_retry:
            result["retry"] = True
        elif user_retry is False:
            result["retry"] = False

        delays = [delay for delay in (computed_delay, user_delay) if delay is not None]
        if delays:
            result["delay_ms"] = max(delays + [context.get("delay_ms") or 0])
        return result

    config["retry_on"] = retry_on
    return with_retries(fn, config)


def fetch_json(request):
    """Issue one request through the host and parse a JSON body when present."""
    url = request.get("url")
    if not url:
        raise ValueError("fetch_json requires a url")
    method = (request.get("method") or "GET").upper()
    options = {"method": method, "headers": dict(request.get("headers") or {})}
    payload = request.get("payload")
    if isinstance(payload, (dict, list)):
        payload = json.dumps(payload)
    if payload is not None:
        options["payload"] = payload
    if request.get("content_type"):
        options["content_type"] = request["content_type"]

    started = host.now_ms()
    response = host.fetch(url, options)
    duration_ms = host.now_ms() - started
    status = int(response.get("status") or 0)
    text = response.get("text") or ""
    headers = _normalize_headers(response.get("headers"))
    success = 200 <= status < 300

    details = {"url": url, "method": method, "status": status, "duration_ms": duration_ms}
    if not success:
        details["response"] = text
    log_structured("INFO" if success else "ERROR", "http_success" if success else "http_failure", details)

    body = text
    trimmed = text.strip()
    is_json = "application/json" in str(headers.get("content-type") or "")
    if not is_json and trimmed:
        is_json = (trimmed[0] == "{" and trimmed[-1] == "}") or (trimmed[0] == "[" and trimmed[-1] == "]")
    if is_json:
        try:
            body = json.loads(text) if trimmed else None
        except ValueError as error:
            log_warn("http_parse_failure", {"url": url, "message": str(error)})

    if not success:
        raise HttpError(
            "Request failed with status " + str(status),
            status=status,
            headers=headers,
            body=body,
            text=text,
        )
    return {"status": status, "headers": headers, "body": body, "text": text}
'''

CODEC = r'''
_SEALED_SECRET_PREFIX = "SF1."
_SEALED_SECRET_STREAM_LABEL = b"scriptforge-secret-stream-v1"
_SEALED_SECRET_METADATA_LABEL = b"scriptforge-secret-metadata-v1"


def _derive_secret_keystream(shared_key, iv, length):
    output = b""
    counter = 0
    while len(output) < length:
        output += host.hmac_sha256(shared_key, iv + counter.to_bytes(4, "big") + _SEALED_SECRET_STREAM_LABEL)
        counter += 1
    return output[:length]


def _sealed_secret_mac(shared_key, iv, ciphertext, issued_at, expires_at, purpose):
    data = (
        _SEALED_SECRET_METADATA_LABEL
        + iv
        + ciphertext
        + str(issued_at).encode("utf-8")
        + str(expires_at).encode("utf-8")
        + (purpose or "").encode("utf-8")
    )
    return host.hmac_sha256(shared_key, data)


def _constant_time_equals(left, right):
    if not isinstance(left, str) or not isinstance(right, str) or len(left) != len(right):
        return False
    result = 0
    for a, b in zip(left, right):
        result |= ord(a) ^ ord(b)
    return result == 0


def decode_sealed_secret(value):
    """Open a sealed credential token; None when value is not a token."""
    if not isinstance(value, str) or not value.startswith(_SEALED_SECRET_PREFIX):
        return None

    try:
        token = json.loads(host.base64_decode(value[len(_SEALED_SECRET_PREFIX):]).decode("utf-8"))
    except ValueError as error:
        raise SealedSecretError("Failed to parse sealed credential token: " + str(error))
    if not isinstance(token, dict) or token.get("version") != 1:
        raise SealedSecretError("Unrecognized sealed credential token format.")

    purpose = token.get("purpose") or None
    label = purpose or "credential"
    issued_at = token.get("issued_at")
    expires_at = token.get("expires_at")
    if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
        raise SealedSecretError("Sealed credential token for " + label + " has no expiry.")
    if host.now_ms() > expires_at:
        raise SealedSecretExpiredError("Credential token for " + label + " has expired.")

    try:
        shared_key = host.base64_decode(token["shared_key"])
        iv = host.base64_decode(token["iv"])
        ciphertext = host.base64_decode(token["ciphertext"])
    except (KeyError, TypeError, ValueError) as error:
        raise SealedSecretError("Malformed sealed credential token for " + label + ": " + str(error))

    expected = _sealed_secret_mac(shared_key, iv, ciphertext, issued_at, expires_at, purpose).hex()
    if not _constant_time_equals(expected, token.get("hmac")):
        raise IntegrityError("Credential token integrity check failed for " + label + ".")

    keystream = _derive_secret_keystream(shared_key, iv, len(ciphertext))
    plaintext = bytes(c ^ k for c, k in zip(ciphertext, keystream))
    try:
        sealed = json.loads(plaintext.decode("utf-8"))
    except ValueError as error:
        raise IntegrityError("Failed to decode sealed credential payload for " + label + ": " + str(error))

    if (
        not isinstance(sealed, dict)
        or sealed.get("issued_at") != issued_at
        or sealed.get("expires_at") != expires_at
        or (sealed.get("purpose") or None) != purpose
    ):
        raise IntegrityError("Credential token metadata mismatch for " + label + ".")

    return {
        "payload": sealed.get("payload"),
        "issued_at": issued_at,
        "expires_at": expires_at,
        "purpose": purpose,
    }
'''

SECRETS = r'''
_VAULT_EXPORT_PROPERTY_KEYS = ["__VAULT_EXPORTS__", "VAULT_EXPORTS_JSON", "VAULT_EXPORTS"]
_vault_exports_cache = {}


def _is_blank(value):
    return value is None or (isinstance(value, str) and value.strip() == "")


def _coerce_secret_list(value):
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _merge_secret_entries(base, extra):
    merged = {}
    for key, entry in (base or {}).items():
        merged[key] = dict(entry)
        merged[key]["aliases"] = _coerce_secret_list(entry.get("aliases"))
    for key, entry in (extra or {}).items():
        if not isinstance(entry, dict):
            continue
        target = merged.setdefault(key, {"aliases": []})
        for name, value in entry.items():
            if name != "aliases":
                target[name] = value
        for alias in _coerce_secret_list(entry.get("aliases")):
            if alias not in target["aliases"]:
                target["aliases"].append(alias)
    return merged


def _secret_helper_overrides():
    """Built-in alias table merged with a SECRET_HELPER_OVERRIDES global, if any."""
    custom = globals().get("SECRET_HELPER_OVERRIDES") or {}
    custom_connectors = custom.get("connectors") or {}
    connectors = {}
    for name in list(_SECRET_HELPER_DEFAULT_OVERRIDES["connectors"]) + list(custom_connectors):
        if name not in connectors:
            connectors[name] = _merge_secret_entries(
                _SECRET_HELPER_DEFAULT_OVERRIDES["connectors"].get(name),
                custom_connectors.get(name),
            )
    return {
        "defaults": _merge_secret_entries(_SECRET_HELPER_DEFAULT_OVERRIDES["defaults"], custom.get("defaults")),
        "connectors": connectors,
    }


def _load_vault_exports():
    if "secrets" in _vault_exports_cache:
        return _vault_exports_cache["secrets"]
    secrets = {}
    for property_key in _VAULT_EXPORT_PROPERTY_KEYS:
        raw = host.get_property(property_key)
        if _is_blank(raw):
            continue
        try:
            parsed = json.loads(raw)
        except ValueError as error:
            log_warn("vault_exports_parse_failed", {"property": property_key, "message": str(error)})
            parsed = None
        if isinstance(parsed, dict):
            nested = parsed.get("secrets")
            secrets = nested if isinstance(nested, dict) else parsed
        break
    _vault_exports_cache["secrets"] = secrets
    return secrets


def _connector_sealed_property(connector_key):
    return re.sub(r"[^A-Z0-9]+", "_", connector_key.upper()) + "_SEALED_CREDENTIALS"


def _unwrap_sealed_payload(payload, candidates):
    if isinstance(payload, dict) and isinstance(payload.get("secrets"), dict):
        for candidate in candidates:
            if not _is_blank(payload["secrets"].get(candidate)):
                return payload["secrets"][candidate]
        return None
    return payload


def get_secret(name, options=None):
    """Resolve a secret through aliases, the property store, vault exports and defaults."""
    options = options or {}
    key = name.strip() if isinstance(name, str) else ""
    if not key:
        raise ValueError("get_secret requires a property name")

    connector_key = options.get("connector_key")
    if not connector_key:
        stripped = key.lstrip("_")
        if "_" in stripped:
            connector_key = stripped.split("_", 1)[0].lower()

    overrides = _secret_helper_overrides()
    default_entry = overrides["defaults"].get(key) or {}
    connector_entry = (overrides["connectors"].get(connector_key) or {}).get(key) or {}

    raw_candidates = [key]
    raw_candidates.extend(_coerce_secret_list(default_entry.get("aliases")))
    raw_candidates.extend(_coerce_secret_list(connector_entry.get("aliases")))
    raw_candidates.extend(_coerce_secret_list(options.get("aliases")))
    for entry in (default_entry, connector_entry, options):
        raw_candidates.extend(_coerce_secret_list(entry.get("map_to")))
    candidates = []
    for candidate in raw_candidates:
        if candidate not in candidates:
            candidates.append(candidate)

    value = None
    source = None
    resolved_key = None
    for candidate in candidates:
        stored = host.get_property(candidate)
        if not _is_blank(stored):
            value, source, resolved_key = stored, "properties", candidate
            break

    if value is None:
        exports = _load_vault_exports()
        for candidate in candidates:
            stored = exports.get(candidate)
            if not _is_blank(stored):
                value, source, resolved_key = str(stored), "vault_exports", candidate
                break

    if value is None and connector_key:
        sealed_property = _connector_sealed_property(connector_key)
        stored = host.get_property(sealed_property)
        if not _is_blank(stored):
            value, source, resolved_key = stored, "sealed_bundle", sealed_property

    if value is None:
        for entry, origin in ((default_entry, "default_override"), (connector_entry, "connector_override"), (options, "default_option")):
            if not _is_blank(entry.get("default_value")):
                value, source, resolved_key = entry["default_value"], origin, key
                break

    if value is None:
        log_warn("secret_missing", {"property": key, "connector_key": connector_key, "tried_keys": candidates})
        raise MissingSecretError(key, candidates)

    if options.get("log_resolved"):
        log_info("secret_resolved", {
            "property": key,
            "connector_key": connector_key,
            "resolved_key": resolved_key,
            "source": source,
        })

    sealed = decode_sealed_secret(value)
    if sealed is not None:
        if options.get("log_resolved"):
            log_info("sealed_secret_validated", {
                "property": key,
                "connector_key": connector_key,
                "purpose": sealed["purpose"],
                "expires_at": _iso_timestamp(sealed["expires_at"]),
            })
        value = _unwrap_sealed_payload(sealed["payload"], candidates)
        if _is_blank(value):
            log_warn("secret_missing", {"property": key, "connector_key": connector_key, "tried_keys": candidates})
            raise MissingSecretError(key, candidates)

    return value


def require_oauth_token(connector_key, options=None):
    """Resolve a connector's OAuth token or raise an actionable MissingSecretError."""
    options = options or {}
    metadata = _CONNECTOR_OAUTH_TOKEN_METADATA.get(connector_key)
    if not metadata:
        raise ValueError('No OAuth token metadata registered for connector "' + str(connector_key) + '"')
    scopes = _coerce_secret_list(options.get("scopes"))
    try:
        return get_secret(metadata["property"], {
            "connector_key": connector_key,
            "aliases": metadata.get("aliases"),
            "log_resolved": options.get("log_resolved"),
        })
    except MissingSecretError as error:
        description = metadata.get("description") or "access token"
        article = "an" if description[0].lower() in "aeiou" else "a"
        aliases = [alias for alias in error.tried_keys if alias != metadata["property"]]
        message = metadata["display_name"] + " requires " + article + " " + description + ". Configure " + metadata["property"]
        if aliases:
            message += " (aliases: " + ", ".join(aliases) + ")"
        message += " in the script properties."
        if scopes:
            message += " Required scopes: " + ", ".join(scopes) + "."
        raise MissingSecretError(metadata["property"], error.tried_keys, message) from error
'''

TRIGGERS = r'''
_TRIGGER_REGISTRY_KEY = "__scriptforge_trigger_registry__"
_TRIGGER_STATE_PREFIX = "__scriptforge_trigger_state__:"
_TIME_TRIGGER_INTERVALS = [
    ("every_minutes", "minutes"),
    ("every_hours", "hours"),
    ("every_days", "days"),
    ("every_weeks", "weeks"),
]
_WEEK_DAYS = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]


def _load_trigger_registry():
    raw = host.get_property(_TRIGGER_REGISTRY_KEY)
    if _is_blank(raw):
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError as error:
        log_warn("trigger_registry_parse_failed", {"message": str(error)})
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _save_trigger_registry(registry):
    try:
        host.set_property(_TRIGGER_REGISTRY_KEY, json.dumps(registry, sort_keys=True))
    except Exception as error:
        log_error("trigger_registry_save_failed", {"message": str(error)})
        raise


def _find_trigger_by_id(trigger_id):
    if not trigger_id:
        return None
    for trigger in host.list_triggers():
        if trigger.get("id") == trigger_id:
            return trigger
    return None


def ensure_trigger(key, handler, kind, builder_fn, description=None, fingerprint=None):
    """Create the host trigger for key unless a live one is already registered."""
    registry = _load_trigger_registry()
    entry = registry.get(key)
    entry = entry if isinstance(entry, dict) else None
    live = _find_trigger_by_id(entry.get("id")) if entry else None

    if live and (fingerprint is None or entry.get("fingerprint") == fingerprint):
        log_info("trigger_exists", {"key": key, "trigger_id": entry["id"], "handler": handler})
        return {"key": key, "trigger_id": entry["id"], "handler": handler, "kind": kind, "created": False}

    if live:
        log_info("trigger_config_changed", {"key": key, "trigger_id": entry["id"]})
        host.delete_trigger(entry["id"])
    elif entry:
        log_warn("trigger_missing_recreating", {"key": key, "trigger_id": entry.get("id")})

    try:
        trigger_id = builder_fn()
        registry[key] = {
            "key": key,
            "id": trigger_id,
            "handler": handler,
            "kind": kind,
            "description": description,
            "fingerprint": fingerprint,
            "updated_at": _iso_timestamp(),
        }
        _save_trigger_registry(registry)
    except Exception as error:
        log_error("trigger_create_failed", {"key": key, "handler": handler, "message": str(error)})
        raise

    log_info("trigger_created", {"key": key, "trigger_id": trigger_id, "handler": handler, "kind": kind})
    return {"key": key, "trigger_id": trigger_id, "handler": handler, "kind": kind, "created": True}


def create_ephemeral_trigger(key, handler, kind, builder_fn, description=None):
    """Create a host trigger without registry bookkeeping."""
    try:
        trigger_id = builder_fn()
    except Exception as error:
        log_error("trigger_create_failed", {"key": key, "handler": handler, "message": str(error), "ephemeral": True})
        raise
    log_info("trigger_created", {"key": key, "trigger_id": trigger_id, "handler": handler, "kind": kind, "ephemeral": True})
    return {"key": key, "trigger_id": trigger_id, "handler": handler, "kind": kind, "created": True, "ephemeral": True}


def sync_trigger_registry(active_keys):
    """Delete registered triggers whose keys are no longer active."""
    active = set(active_keys or [])
    registry = _load_trigger_registry()
    removed = []
    for key in sorted(registry):
        if key in active:
            continue
        entry = registry.pop(key)
        trigger_id = entry.get("id") if isinstance(entry, dict) else None
        if _find_trigger_by_id(trigger_id):
            host.delete_trigger(trigger_id)
        host.delete_property(_TRIGGER_STATE_PREFIX + key)
        removed.append(key)
        log_info("trigger_removed", {"key": key, "trigger_id": trigger_id})
    if removed:
        _save_trigger_registry(registry)
    return removed


def clear_trigger_by_key(key):
    """Remove one registry entry and everything installed for its key."""
    registry = _load_trigger_registry()
    entry = registry.pop(key, None)
    trigger_id = entry.get("id") if isinstance(entry, dict) else None
    if _find_trigger_by_id(trigger_id):
        host.delete_trigger(trigger_id)
    host.delete_property(_TRIGGER_STATE_PREFIX + key)
    _save_trigger_registry(registry)
    log_info("trigger_cleared", {"key": key, "trigger_id": trigger_id})
    return entry is not None


def build_time_trigger(config):
    """Create a recurring or one-shot time trigger from a declarative description."""
    config = config or {}
    handler = config.get("handler") or "main"
    key = config.get("key") or handler + ":" + (config.get("frequency") or "time")
    definition = {"kind": "time", "handler": handler}

    if config.get("run_at") is not None:
        definition["run_at"] = config["run_at"]
    else:
        for option, unit in _TIME_TRIGGER_INTERVALS:
            value = to_positive_integer(config.get(option))
            if value is not None:
                definition["every"] = {"unit": unit, "value": value}
                break
        if "every" not in definition:
            raise ValidationError(
                "build_time_trigger",
                [option for option, _ in _TIME_TRIGGER_INTERVALS] + ["run_at"],
                "time trigger " + key + " requires an interval or run_at",
            )
        at_hour = config.get("at_hour")
        if at_hour is not None:
            if not isinstance(at_hour, int) or isinstance(at_hour, bool) or not 0 <= at_hour <= 23:
                raise ValidationError("build_time_trigger", "at_hour", "at_hour must be an integer between 0 and 23")
            definition["at_hour"] = at_hour
        near_minute = config.get("near_minute")
        if near_minute is not None:
            if not isinstance(near_minute, int) or isinstance(near_minute, bool) or not 0 <= near_minute <= 59:
                raise ValidationError("build_time_trigger", "near_minute", "near_minute must be an integer between 0 and 59")
            definition["near_minute"] = near_minute
        on_month_day = config.get("on_month_day")
        if on_month_day is not None:
            if not isinstance(on_month_day, int) or isinstance(on_month_day, bool) or not 1 <= on_month_day <= 31:
                raise ValidationError("build_time_trigger", "on_month_day", "on_month_day must be an integer between 1 and 31")
            definition["on_month_day"] = on_month_day
        on_week_day = config.get("on_week_day")
        if on_week_day is not None:
            if str(on_week_day).upper() not in _WEEK_DAYS:
                raise ValidationError("build_time_trigger", "on_week_day", "on_week_day must be one of " + ", ".join(_WEEK_DAYS))
            definition["on_week_day"] = str(on_week_day).upper()
    if config.get("timezone"):
        definition["timezone"] = config["timezone"]

    fingerprint = json.dumps(definition, sort_keys=True)

    def create():
        return host.create_trigger(dict(definition))

    if config.get("ephemeral"):
        return create_ephemeral_trigger(key, handler, "time", create, config.get("description"))
    return ensure_trigger(key, handler, "time", create, config.get("description"), fingerprint)


def _load_trigger_state(key):
    raw = host.get_property(_TRIGGER_STATE_PREFIX + key)
    if _is_blank(raw):
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError as error:
        log_warn("trigger_state_parse_failed", {"key": key, "message": str(error)})
        return {}
    return parsed if isinstance(parsed, dict) else {}


class PollingRuntime(object):
    """Handle given to a polling executor: persisted state, dispatch and stats."""

    def __init__(self, trigger_key, state, stats, entry):
        self.trigger_key = trigger_key
        self.state = state
        self.stats = stats
        self._entry = entry

    def dispatch(self, payload=None):
        try:
            result = self._entry(payload or {})
        except Exception as error:
            log_error("trigger_dispatch_failed", {"key": self.trigger_key, "message": str(error)})
            raise
        self.stats["processed"] += 1
        return result

    def dispatch_batch(self, events, mapper=None):
        outcome = {"attempted": 0, "succeeded": 0, "failed": 0}
        for event in events:
            outcome["attempted"] += 1
            try:
                self.dispatch(mapper(event) if mapper else event)
            except Exception:
                outcome["failed"] += 1
            else:
                outcome["succeeded"] += 1
        return outcome

    def summary(self, partial):
        if isinstance(partial, dict):
            self.stats.update(partial)


def build_polling_wrapper(trigger_key, executor, entry=None):
    """Run a polling executor, persisting its cursor state only on success."""
    if entry is None:
        entry = lambda payload: dispatch_pipeline(trigger_key, payload)
    stats = {"processed": 0}
    log_info("trigger_poll_start", {"key": trigger_key})
    runtime = PollingRuntime(trigger_key, _load_trigger_state(trigger_key), stats, entry)
    try:
        result = executor(runtime)
        runtime.summary(result)
        host.set_property(_TRIGGER_STATE_PREFIX + trigger_key, json.dumps(runtime.state, sort_keys=True))
    except Exception as error:
        log_error("trigger_poll_error", {"key": trigger_key, "message": str(error)})
        raise
    log_info("trigger_poll_success", {"key": trigger_key, "stats": stats})
    return stats


def dispatch_pipeline(trigger_key, payload=None):
    pipeline = (globals().get("PIPELINES") or {}).get(trigger_key)
    if pipeline is None:
        raise LookupError("No pipeline registered for trigger " + str(trigger_key))
    return pipeline(payload)


def begin_run(trigger_key, payload=None):
    ctx = dict(payload) if isinstance(payload, dict) else {}
    if not ctx.get("run_id"):
        ctx["run_id"] = "%d-%06x" % (host.now_ms(), random.getrandbits(24))
    log_info("run_start", {"trigger": trigger_key, "run_id": ctx["run_id"]})
    return ctx


def finish_run(trigger_key, ctx):
    log_info("run_complete", {"trigger": trigger_key, "run_id": ctx.get("run_id") if isinstance(ctx, dict) else None})
    return ctx
'''
