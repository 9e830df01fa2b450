"""Prompt construction and reply parsing for landing page generation.

Two page types are generated:
- Town pages: full landing page for "<service> in <location>"
- Suburb pages: short coverage page that supports its parent town page
"""

import json
import random
import re

from geoscale.models.project_service import ProjectService, ServiceFaq
from geoscale.models.project_testimonial import ProjectTestimonial
from geoscale.services.effects import PageContext
from geoscale.services.exceptions import LLMResponseError

RESPONSE_FORMAT = """Format your response as JSON:
{{
  "title": "{title_hint}",
  "meta_title": "Meta title here (can include business name)",
  "meta_description": "Meta description here (150 characters max)",
  "content": "HTML content here"
}}"""

CONTENT_RULES = """**CRITICAL RULES - DO NOT VIOLATE:**
- DO NOT invent case studies, statistics, or specific client results
- DO NOT create fake testimonials - only use the exact testimonial text provided above
- DO NOT invent service names - only use services listed in "Services offered by this business"
- DO NOT invent client names
- Keep claims general and non-specific

**FORMATTING:**
- Use semantic HTML: h2, h3, p, ul, li, strong, em
- No H1 tags (WordPress uses page title as H1)"""


def _business_block(context: PageContext) -> str:
    project = context.project
    lines = [f"Business name: {project.business_name}"]
    if project.phone_number:
        lines.append(f"Phone number: {project.phone_number}")
    if project.contact_url:
        lines.append(f"Contact page URL: {project.contact_url}")
    if project.service_description:
        lines.append(f"Service description: {project.service_description}")
    return "\n".join(lines)


def testimonial_block(
    testimonials: list[ProjectTestimonial], rng: random.Random | None = None
) -> str:
    """One randomly chosen testimonial as `"text" - name, business`, or "" if none."""
    if not testimonials:
        return ""
    chosen = (rng or random).choice(testimonials)
    if chosen.attribution:
        return f'"{chosen.testimonial_text}" - {chosen.attribution}'
    return f'"{chosen.testimonial_text}"'


def services_block(services: list[ProjectService]) -> str:
    return "\n".join(
        f"- {s.name}: {s.description}" if s.description else f"- {s.name}" for s in services
    )


def faqs_block(faqs: list[ServiceFaq]) -> str:
    return "\n\n".join(f"Q: {faq.question}\nA: {faq.answer}" for faq in faqs)


def build_town_prompt(context: PageContext, testimonial: str = "") -> str:
    """Prompt for a primary town (or standalone) landing page."""
    service = context.subject.keyword or "service"
    location = context.subject.location_name

    material = [
        f"Testimonial to include:\n{testimonial}" if testimonial else "No testimonials provided."
    ]
    if context.services:
        material.append(f"Services offered by this business:\n{services_block(context.services)}")
    if context.faqs:
        material.append(f"Service-specific FAQs to include:\n{faqs_block(context.faqs)}")
    material_text = "\n\n".join(material)

    return f"""Create a comprehensive, SEO-optimized landing page for a service business \
that will rank highly in Google search results.

Service: {service}
Location: {location}
Target keyword phrase: {context.subject.phrase}

{_business_block(context)}

{material_text}

**CONTENT STRUCTURE:**
- Introduction that explains the service benefits and includes the business name
- Why Choose section with 4-6 reasons to choose this business
- Services/process section: ONLY list services from "Services offered by this business" \
above. If none are provided, write general content about the main service type
- Testimonials section using the provided testimonial exactly - skip if none provided
- Benefits/value proposition
- FAQ section ONLY if "Service-specific FAQs to include" appears above. Never invent FAQs
- Strong call-to-action with contact information

**SEO REQUIREMENTS:**
- Natural keyword integration (3-6 keyword mentions)
- 4-8 location references
- 800-1500 words of original content

{CONTENT_RULES}

{RESPONSE_FORMAT.format(title_hint=f"{service} in {location} (NO business name)")}"""


def build_suburb_prompt(context: PageContext, testimonial: str = "") -> str:
    """Prompt for a suburb coverage page that defers to its parent town page."""
    service = context.subject.keyword or "service"
    location = context.subject.location_name
    parent = context.parent
    parent_location = parent.location_name if parent else "the main town"

    if parent and parent.wp_page_url:
        linking = (
            "- In the intro or summary, link naturally to the parent town page: "
            f'<a href="{parent.wp_page_url}">{service} in {parent_location}</a>'
        )
    else:
        linking = "- Parent town page not yet published, skip the parent link."

    if testimonial:
        testimonial_handling = f"""- You may briefly reference this testimonial, but DO NOT \
include it in full
- Instead, paraphrase or use a short excerpt
- Original testimonial for reference: {testimonial}"""
    else:
        testimonial_handling = "- No testimonials provided - do not invent any"

    return f"""Create a suburb-level service coverage page that reinforces local relevance \
while supporting the main town page.

Service: {service}
Suburb Location: {location}
Parent Town: {parent_location}
Target keyword phrase: {service} services available in {location}

{_business_block(context)}

**SUBURB PAGE CONSTRAINTS (MUST FOLLOW):**
- 500-750 words maximum
- At most 3 H2 sections
- Emphasise proximity, availability and coverage
- Position the {parent_location} page as the primary service hub
- No full testimonials, no detailed service breakdowns

**TESTIMONIAL HANDLING:**
{testimonial_handling}

**INTERNAL LINKING:**
{linking}

{CONTENT_RULES}

{RESPONSE_FORMAT.format(title_hint=f"{service} services available in {location}")}"""


def build_prompt(context: PageContext, rng: random.Random | None = None) -> str:
    testimonial = testimonial_block(context.testimonials, rng)
    if context.subject.parent_location_id is not None:
        return build_suburb_prompt(context, testimonial)
    return build_town_prompt(context, testimonial)


def parse_generated_json(text: str) -> dict:
    """Extract the JSON object from a model reply.

    Models often wrap the object in prose or code fences, so the outermost
    `{...}` span is parsed when present.

    Raises:
        LLMResponseError: If no valid object with `title` and `content` is found
    """
    match = re.search(r"\{.*\}", text, re.DOTALL)
    candidate = match.group(0) if match else text
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"Failed to parse OpenRouter response: {e}") from e

    if not isinstance(parsed, dict) or not parsed.get("title") or not parsed.get("content"):
        raise LLMResponseError("OpenRouter response missing title or content")
    return parsed


def slugify(phrase: str) -> str:
    """'Web Design in London' -> 'web-design-in-london'."""
    return re.sub(r"[^a-z0-9]+", "-", phrase.lower()).strip("-")
