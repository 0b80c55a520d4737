"""
Dry-run fixture models.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .host import DEFAULT_NOW_MS

logger = logging.getLogger(__name__)


class HttpRequestExpectation(BaseModel):
    """What a fixture expects the next request to look like"""
    url: Optional[str] = Field(None, description="Exact URL")
    method: Optional[str] = Field(None, description="HTTP method")
    headers: Dict[str, str] = Field(default_factory=dict, description="Required header subset")
    payload: Optional[Any] = Field(None, description="Required payload subset (JSON or form fields)")


class HttpResponseFixture(BaseModel):
    status: int = 200
    headers: Dict[str, Any] = Field(default_factory=dict)
    body: Optional[Any] = None
    text: Optional[str] = None


class HttpFixture(BaseModel):
    name: str = ""
    request: HttpRequestExpectation = Field(default_factory=HttpRequestExpectation)
    response: HttpResponseFixture = Field(default_factory=HttpResponseFixture)


class EntrySpec(BaseModel):
    """Which bundle function to call and with what context"""
    function: str = "main"
    context: Dict[str, Any] = Field(default_factory=dict)


class LogExpectation(BaseModel):
    level: Optional[str] = None
    event: Optional[str] = None
    includes: Optional[str] = Field(None, description="Substring of the log message")
    matches: Optional[str] = Field(None, description="Regular expression searched in the log message")


class HttpCallExpectation(BaseModel):
    url: Optional[str] = None
    method: Optional[str] = None
    includes_payload_fragment: Optional[str] = None


class FixtureExpectations(BaseModel):
    context: Dict[str, Any] = Field(default_factory=dict, description="Subset of the returned context")
    logs: List[LogExpectation] = Field(default_factory=list)
    http_calls: Optional[List[HttpCallExpectation]] = Field(
        None, description="When set, the exact ordered list of requests issued"
    )
    error: Optional[str] = Field(None, description="Name of the exception class the run must raise")
    error_includes: Optional[str] = None


class DryRunFixture(BaseModel):
    """One behavioural scenario for a compiled graph"""
    id: str
    description: str = ""
    graph: Dict[str, Any]
    entry: EntrySpec = Field(default_factory=EntrySpec)
    secrets: Dict[str, str] = Field(default_factory=dict)
    properties: Dict[str, str] = Field(default_factory=dict)
    http: List[HttpFixture] = Field(default_factory=list)
    expect: FixtureExpectations = Field(default_factory=FixtureExpectations)
    now_ms: int = DEFAULT_NOW_MS


def load_fixture(path: Union[str, Path]) -> DryRunFixture:
    with open(path, "r") as f:
        return DryRunFixture.model_validate(json.load(f))


def load_fixtures(directory: Union[str, Path]) -> List[DryRunFixture]:
    """Load every ``*.json`` fixture in a directory, sorted by file name."""
    directory = Path(directory)
    fixtures = [load_fixture(path) for path in sorted(directory.glob("*.json"))]
    logger.info(f"📋 Loaded {len(fixtures)} dry-run fixture(s) from {directory}")
    return fixtures
