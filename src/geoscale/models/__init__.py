"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from geoscale.models.api_log import ApiLog
from geoscale.models.generated_page import GeneratedPage
from geoscale.models.job import InvalidStateTransition, Job, JobKind, JobStatus
from geoscale.models.location_keyword import LocationKeyword, SubjectStatus
from geoscale.models.project import Project
from geoscale.models.project_service import ProjectService, ServiceFaq
from geoscale.models.project_testimonial import ProjectTestimonial

__all__ = [
    "ApiLog",
    "GeneratedPage",
    "InvalidStateTransition",
    "Job",
    "JobKind",
    "JobStatus",
    "LocationKeyword",
    "Project",
    "ProjectService",
    "ProjectTestimonial",
    "ServiceFaq",
    "SubjectStatus",
]
