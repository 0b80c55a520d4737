"""
Base compiler class with common functionality and interfaces.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)


@dataclass
class CompilerReport:
    """Report from compiler operations"""
    errors: List[Dict[str, Any]] = None
    warnings: List[Dict[str, Any]] = None

    def __post_init__(self):
        if self.errors is None:
            self.errors = []
        if self.warnings is None:
            self.warnings = []

    def add_error(self, code: str, path: str, message: str, hint: Optional[str] = None):
        """Add an error to the report"""
        self.errors.append({
            "code": code,
            "path": path,
            "message": message,
            "hint": hint
        })

    def add_warning(self, code: str, path: str, message: str, hint: Optional[str] = None):
        """Add a warning to the report"""
        self.warnings.append({
            "code": code,
            "path": path,
            "message": message,
            "hint": hint
        })

    @property
    def has_errors(self) -> bool:
        """Check if there are any errors"""
        return len(self.errors) > 0

    @property
    def is_success(self) -> bool:
        """Check if compilation was successful"""
        return not self.has_errors

    def to_dict(self) -> Dict[str, Any]:
        return {"errors": list(self.errors), "warnings": list(self.warnings)}


class BaseCompiler(ABC):
    """Base class for all compilers"""

    def __init__(self):
        self.report = CompilerReport()

    @abstractmethod
    def compile(self, input_doc: Dict[str, Any], ctx: Dict[str, Any]) -> Dict[str, Any]:
        """Main compilation method - must be implemented by subclasses"""
        pass
