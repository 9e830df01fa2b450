"""Effect executor interfaces.

The dispatcher calls exactly one executor per job attempt. Executors are
side-effecting and fallible; they must tolerate being invoked more than once
for the same subject (at-least-once delivery).
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

from geoscale.models.generated_page import GeneratedPage
from geoscale.models.location_keyword import LocationKeyword
from geoscale.models.project import Project
from geoscale.models.project_service import ProjectService, ServiceFaq
from geoscale.models.project_testimonial import ProjectTestimonial


@dataclass
class PageContext:
    """Everything an executor may need about one subject, loaded fresh per attempt."""

    subject: LocationKeyword
    project: Project
    parent: LocationKeyword | None = None
    page: GeneratedPage | None = None
    # Prompt material, loaded for content generation only
    services: list[ProjectService] = field(default_factory=list)
    testimonials: list[ProjectTestimonial] = field(default_factory=list)
    faqs: list[ServiceFaq] = field(default_factory=list)


@dataclass
class GeneratedContent:
    """Output of a content generation call."""

    title: str
    body: str
    meta_title: str
    meta_description: str
    slug: str
    # Request summary for the audit log (model, prompt size, ...)
    audit: dict[str, Any] = field(default_factory=dict)


@dataclass
class PublishResult:
    """Output of a WordPress publish call."""

    page_id: int | None
    page_url: str | None
    endpoint: str
    updated: bool = False


class ContentGenerator(Protocol):
    """Generates page content for a subject (LLM call)."""

    api_type: str
    endpoint: str

    async def generate(self, context: PageContext) -> GeneratedContent: ...


class PagePublisher(Protocol):
    """Publishes a generated page to the project's WordPress site.

    Must be safe to call twice for the same subject: a subject that already has
    a WordPress page id is updated in place rather than published again.
    """

    api_type: str

    async def publish(self, context: PageContext) -> PublishResult: ...
