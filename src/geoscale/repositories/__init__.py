"""Repository layer for GeoScale backend.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from geoscale.repositories.api_log import ApiLogRepository
from geoscale.repositories.generated_page import GeneratedPageRepository
from geoscale.repositories.job import JobRepository
from geoscale.repositories.location_keyword import LocationKeywordRepository
from geoscale.repositories.project import ProjectRepository
from geoscale.repositories.project_service import ProjectServiceRepository
from geoscale.repositories.project_testimonial import ProjectTestimonialRepository

__all__ = [
    "ApiLogRepository",
    "GeneratedPageRepository",
    "JobRepository",
    "LocationKeywordRepository",
    "ProjectRepository",
    "ProjectServiceRepository",
    "ProjectTestimonialRepository",
]
