"""
Content, override and configuration models.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ConfigDict, Field

from .base import Document, StoredModel


class Resource(Document):
    title: str
    link: str = ""
    display_order: int = 0


class News(Document):
    date: datetime
    title: str
    description: str = ""
    html_content: str = ""
    link: Optional[str] = None


class FAQGeneral(StoredModel):
    title: str
    description: str = ""
    link: Optional[str] = None


class FAQQuestion(StoredModel):
    id: str
    title: str
    description: str = ""
    link: Optional[str] = None
    display_order: int = 0


class FAQSection(StoredModel):
    id: str
    title: str
    display_order: int = 0
    questions: List[FAQQuestion] = Field(default_factory=list)


class FAQ(StoredModel):
    """The single FAQ document. It has no id of its own."""

    date_updated: Optional[datetime] = None
    general: List[FAQGeneral] = Field(default_factory=list)
    sections: List[FAQSection] = Field(default_factory=list)

    def sort(self) -> None:
        """Order sections, and questions within them, by display_order."""
        self.sections.sort(key=lambda s: s.display_order)
        for section in self.sections:
            section.questions.sort(key=lambda q: q.display_order)


class UINOverride(Document):
    """Manual override of the testing interval/category for one UIN."""

    uin: str
    interval: int = 0
    category: Optional[str] = None
    expiration: Optional[datetime] = None


class AppVersion(Document):
    version: str

    def sort_key(self) -> Tuple[int, ...]:
        """Numeric components of the version, so that 2.10 sorts after 2.9."""
        parts = []
        for part in self.version.split("."):
            parts.append(int(part) if part.isdigit() else 0)
        return tuple(parts)


COVID19_CONFIG_NAME = "covid19"


class Covid19Config(StoredModel):
    """
    The covid19 configuration document.

    Settings other than the name are free-form and round-trip untouched.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = COVID19_CONFIG_NAME

    def settings(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})
