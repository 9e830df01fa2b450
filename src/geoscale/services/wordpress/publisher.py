"""WordPress publisher (effect executor for wordpress-push jobs).

Talks to the GeoScale connector plugin installed on the client's site:
- POST {site}/wp-json/geoscale/v1/publish  creates a page
- POST {site}/wp-json/geoscale/v1/update   updates the page identified by page_id

A subject that already carries a `wp_page_id` is always updated, which makes a
retried or re-run push idempotent on the WordPress side.
"""

import httpx
import structlog

from geoscale.core.config import Settings
from geoscale.services.effects import PageContext, PublishResult
from geoscale.services.exceptions import (
    ExternalServiceError,
    NotFoundError,
    PermanentServiceError,
    WordPressAuthError,
    WordPressConfigError,
)

logger = structlog.get_logger(__name__)

API_KEY_HEADER = "X-GeoScale-API-Key"


def normalize_site_url(url: str) -> str:
    """'example.com/' -> 'https://example.com'."""
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    return url.rstrip("/")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Failed to publish to WordPress: {response.reason_phrase}"
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or "Failed to publish to WordPress"
    return "Failed to publish to WordPress"


class WordPressPublisher:
    """Publishes generated pages through the GeoScale WordPress plugin."""

    api_type = "wordpress"

    def __init__(self, timeout: float = 30.0):
        """Initialize publisher.

        Args:
            timeout: HTTP timeout in seconds for plugin calls
        """
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "WordPressPublisher":
        return cls(timeout=settings.wordpress_timeout_seconds)

    async def publish(self, context: PageContext) -> PublishResult:
        """Publish or update the subject's generated page.

        Returns:
            PublishResult with the WordPress page id and URL

        Raises:
            NotFoundError: Subject has no generated page yet
            WordPressConfigError: Project has no WordPress URL or API key
            WordPressAuthError: Plugin rejected the API key (401, 403)
            PermanentServiceError: Other 4xx responses
            ExternalServiceError: Timeout, network failure, 429 or 5xx
        """
        subject, project, page = context.subject, context.project, context.page
        if page is None:
            raise NotFoundError(f"Generated page not found for: {subject.phrase}")

        api_base = project.wordpress_api_base
        if not api_base or not project.wp_api_key:
            raise WordPressConfigError("WordPress URL or API Key not configured for this project")

        is_update = subject.wp_page_id is not None
        endpoint = (
            f"{normalize_site_url(api_base)}/wp-json/geoscale/v1/"
            f"{'update' if is_update else 'publish'}"
        )

        payload: dict = {
            "title": page.title,
            "content": page.content,
            "meta_title": page.meta_title,
            "meta_description": page.meta_description,
            "status": project.wp_publish_status or "publish",
            "page_template": project.wp_page_template or "",
            "location": subject.location_name,
            "keyword": subject.keyword,
        }
        if is_update:
            payload["page_id"] = subject.wp_page_id

        logger.debug("wordpress.push.requested", endpoint=endpoint, update=is_update)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    endpoint,
                    headers={
                        "Content-Type": "application/json",
                        API_KEY_HEADER: project.wp_api_key,
                    },
                    json=payload,
                )
        except httpx.TimeoutException as e:
            raise ExternalServiceError(f"WordPress request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"WordPress network error: {e}") from e

        # Error classification
        if response.status_code == 429 or response.status_code >= 500:
            raise ExternalServiceError(
                f"WordPress unavailable ({response.status_code}): {_error_detail(response)}"
            )
        elif response.status_code in (401, 403):
            raise WordPressAuthError(
                f"WordPress rejected API key ({response.status_code}): {_error_detail(response)}"
            )
        elif response.status_code >= 400:
            raise PermanentServiceError(_error_detail(response))

        try:
            result = response.json()
        except ValueError as e:
            raise PermanentServiceError(f"WordPress returned invalid JSON: {e}") from e

        page_id = result.get("page_id")
        return PublishResult(
            page_id=int(page_id) if page_id is not None else None,
            page_url=result.get("page_url"),
            endpoint=endpoint,
            updated=is_update,
        )
