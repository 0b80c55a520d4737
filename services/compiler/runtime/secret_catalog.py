"""
Built-in secret alias and OAuth token tables embedded in the runtime block.

Every connector property gets one alias of the form
``scriptforge__<connector>__<suffix>`` so deployments that namespace their
script properties resolve without per-workflow overrides.
"""

import re
from typing import Any, Dict, List, Tuple

ALIAS_PREFIX = "scriptforge"

CONNECTOR_SECRET_PROPERTIES: Dict[str, List[str]] = {
    "airtable": ["AIRTABLE_API_KEY", "AIRTABLE_BASE_ID"],
    "asana": ["ASANA_ACCESS_TOKEN"],
    "box": ["BOX_ACCESS_TOKEN"],
    "docusign": ["DOCUSIGN_ACCESS_TOKEN", "DOCUSIGN_ACCOUNT_ID", "DOCUSIGN_BASE_URI"],
    "dropbox": ["DROPBOX_ACCESS_TOKEN"],
    "github": ["GITHUB_ACCESS_TOKEN"],
    "google-admin": ["GOOGLE_ADMIN_ACCESS_TOKEN", "GOOGLE_ADMIN_CUSTOMER_ID"],
    "hubspot": ["HUBSPOT_API_KEY"],
    "jira": ["JIRA_API_TOKEN", "JIRA_BASE_URL", "JIRA_EMAIL"],
    "notion": ["NOTION_ACCESS_TOKEN"],
    "salesforce": ["SALESFORCE_ACCESS_TOKEN", "SALESFORCE_INSTANCE_URL"],
    "sheets": ["SHEETS_ACCESS_TOKEN"],
    "shopify": ["SHOPIFY_ACCESS_TOKEN", "SHOPIFY_API_KEY", "SHOPIFY_SHOP_DOMAIN"],
    "slack": ["SLACK_BOT_TOKEN", "SLACK_WEBHOOK_URL"],
    "square": ["SQUARE_ACCESS_TOKEN", "SQUARE_APPLICATION_ID", "SQUARE_ENVIRONMENT"],
    "stripe": ["STRIPE_SECRET_KEY"],
    "trello": ["TRELLO_API_KEY", "TRELLO_TOKEN"],
    "twilio": ["TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER"],
    "typeform": ["TYPEFORM_ACCESS_TOKEN"],
}

# connector -> (display name, canonical property, description)
OAUTH_TOKEN_METADATA: Dict[str, Tuple[str, str, str]] = {
    "asana": ("Asana", "ASANA_ACCESS_TOKEN", "personal access token"),
    "box": ("Box", "BOX_ACCESS_TOKEN", "OAuth access token"),
    "docusign": ("DocuSign", "DOCUSIGN_ACCESS_TOKEN", "access token"),
    "dropbox": ("Dropbox", "DROPBOX_ACCESS_TOKEN", "OAuth access token"),
    "github": ("GitHub", "GITHUB_ACCESS_TOKEN", "access token"),
    "google-admin": ("Google Admin", "GOOGLE_ADMIN_ACCESS_TOKEN", "access token"),
    "jira": ("Jira", "JIRA_API_TOKEN", "API token"),
    "notion": ("Notion", "NOTION_ACCESS_TOKEN", "integration token"),
    "salesforce": ("Salesforce", "SALESFORCE_ACCESS_TOKEN", "access token"),
    "sheets": ("Google Sheets", "SHEETS_ACCESS_TOKEN", "OAuth access token"),
    "shopify": ("Shopify", "SHOPIFY_ACCESS_TOKEN", "access token"),
    "slack": ("Slack", "SLACK_BOT_TOKEN", "bot token"),
    "square": ("Square", "SQUARE_ACCESS_TOKEN", "access token"),
    "stripe": ("Stripe", "STRIPE_SECRET_KEY", "secret key"),
    "trello": ("Trello", "TRELLO_TOKEN", "OAuth token"),
    "twilio": ("Twilio", "TWILIO_AUTH_TOKEN", "auth token"),
    "typeform": ("Typeform", "TYPEFORM_ACCESS_TOKEN", "access token"),
}


def property_prefix(connector: str) -> str:
    """Upper-case property prefix for a connector, e.g. ``GOOGLE_ADMIN_``."""
    return re.sub(r"[^A-Z0-9]+", "_", connector.upper()) + "_"


def secret_alias(connector: str, property_name: str) -> str:
    """Namespaced alias for a connector property."""
    prefix = property_prefix(connector)
    suffix = property_name[len(prefix):] if property_name.startswith(prefix) else property_name
    connector_part = re.sub(r"[^a-z0-9]+", "_", connector.lower())
    return f"{ALIAS_PREFIX}__{connector_part}__{suffix.lower()}"


def sealed_credentials_property(connector: str) -> str:
    """Property holding a sealed bundle of all of a connector's secrets."""
    return f"{property_prefix(connector)}SEALED_CREDENTIALS"


def _connector_entries(connector: str, properties: List[str]) -> Dict[str, Dict[str, Any]]:
    entries: Dict[str, Dict[str, Any]] = {}
    for property_name in properties:
        entries[property_name] = {"aliases": [secret_alias(connector, property_name)]}

    if connector == "slack":
        bot_alias = secret_alias("slack", "SLACK_BOT_TOKEN")
        entries["SLACK_ACCESS_TOKEN"] = {"aliases": [bot_alias], "map_to": "SLACK_BOT_TOKEN"}
        entries["SLACK_BOT_TOKEN"] = {"aliases": ["SLACK_ACCESS_TOKEN", bot_alias]}
    return entries


def build_secret_overrides() -> Dict[str, Dict[str, Any]]:
    """Default alias table: ``{"defaults": {...}, "connectors": {...}}``."""
    defaults: Dict[str, Any] = {}
    connectors: Dict[str, Any] = {}
    for connector in sorted(CONNECTOR_SECRET_PROPERTIES):
        entries = _connector_entries(connector, CONNECTOR_SECRET_PROPERTIES[connector])
        connectors[connector] = entries
        for property_name in sorted(entries):
            defaults[property_name] = entries[property_name]
    return {"defaults": defaults, "connectors": connectors}


def build_oauth_metadata() -> Dict[str, Dict[str, Any]]:
    """OAuth token metadata keyed by connector."""
    metadata: Dict[str, Any] = {}
    for connector in sorted(OAUTH_TOKEN_METADATA):
        display_name, property_name, description = OAUTH_TOKEN_METADATA[connector]
        metadata[connector] = {
            "display_name": display_name,
            "property": property_name,
            "description": description,
            "aliases": [secret_alias(connector, property_name)],
        }
    return metadata
