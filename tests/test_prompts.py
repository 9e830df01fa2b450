"""Prompt construction and reply parsing tests."""

import random
from uuid import uuid4

import pytest

from geoscale.models.location_keyword import LocationKeyword
from geoscale.models.project import Project
from geoscale.models.project_service import ProjectService, ServiceFaq
from geoscale.models.project_testimonial import ProjectTestimonial
from geoscale.services.content.prompts import (
    build_prompt,
    parse_generated_json,
    slugify,
    testimonial_block,
)
from geoscale.services.effects import PageContext
from geoscale.services.exceptions import LLMResponseError


def make_subject(location: str, parent: LocationKeyword | None = None) -> LocationKeyword:
    return LocationKeyword(
        project_id=uuid4(),
        phrase=f"plumber in {location}",
        location_name=location,
        keyword="plumber",
        parent_location_id=parent.id if parent else None,
    )


@pytest.fixture
def project() -> Project:
    return Project(
        owner_id=uuid4(),
        name="fallback name",
        company_name="Leeds Plumbing Co",
        phone_number="0113 496 0000",
    )


def test_town_prompt_includes_business_details(project):
    prompt = build_prompt(PageContext(subject=make_subject("Leeds"), project=project))

    assert "Service: plumber" in prompt
    assert "Location: Leeds" in prompt
    assert "Business name: Leeds Plumbing Co" in prompt
    assert "Phone number: 0113 496 0000" in prompt
    assert "Contact page URL" not in prompt


def test_suburb_prompt_links_published_parent(project):
    town = make_subject("Leeds")
    town.wp_page_url = "https://leedsplumbing.example/plumber-leeds"
    suburb = make_subject("Headingley", parent=town)

    prompt = build_prompt(PageContext(subject=suburb, project=project, parent=town))

    assert "Suburb Location: Headingley" in prompt
    assert "Parent Town: Leeds" in prompt
    assert 'href="https://leedsplumbing.example/plumber-leeds"' in prompt


def test_suburb_prompt_without_published_parent(project):
    town = make_subject("Leeds")
    suburb = make_subject("Headingley", parent=town)

    prompt = build_prompt(PageContext(subject=suburb, project=project, parent=town))

    assert "skip the parent link" in prompt


def test_parse_generated_json_accepts_wrapped_object():
    reply = 'Sure!\n```json\n{"title": "T", "content": "<p>C</p>"}\n```'

    assert parse_generated_json(reply) == {"title": "T", "content": "<p>C</p>"}


@pytest.mark.parametrize("reply", ["no json here", '{"title": "T"}', "[1, 2]"])
def test_parse_generated_json_rejects_unusable_reply(reply):
    with pytest.raises(LLMResponseError):
        parse_generated_json(reply)


def test_slugify():
    assert slugify("Web Design in St. Albans!") == "web-design-in-st-albans"


def make_testimonial(text: str, **fields) -> ProjectTestimonial:
    return ProjectTestimonial(project_id=uuid4(), testimonial_text=text, **fields)


def test_testimonial_block_with_attribution():
    testimonial = make_testimonial(
        "Fixed our boiler fast", customer_name="Sam", business_name="Sam's Cafe"
    )

    assert testimonial_block([testimonial]) == '"Fixed our boiler fast" - Sam, Sam\'s Cafe'
    assert testimonial_block([make_testimonial("Great")]) == '"Great"'
    assert testimonial_block([]) == ""


def test_testimonial_block_picks_one_at_random():
    testimonials = [make_testimonial(f"Quote {i}") for i in range(5)]

    picked = {testimonial_block(testimonials, random.Random(seed)) for seed in range(20)}

    assert picked <= {f'"Quote {i}"' for i in range(5)}
    assert len(picked) > 1


def test_town_prompt_includes_services_faqs_and_testimonial(project):
    service = ProjectService(
        project_id=uuid4(), name="Boiler repair", slug="boiler-repair", description="Same day"
    )
    context = PageContext(
        subject=make_subject("Leeds"),
        project=project,
        services=[service, ProjectService(project_id=uuid4(), name="Drains", slug="drains")],
        faqs=[ServiceFaq(service_id=service.id, question="Do you cover Otley?", answer="Yes.")],
        testimonials=[make_testimonial("Quick and tidy", customer_name="Jo")],
    )

    prompt = build_prompt(context)

    assert "Testimonial to include:\n\"Quick and tidy\" - Jo" in prompt
    assert "Services offered by this business:\n- Boiler repair: Same day\n- Drains" in prompt
    assert "Service-specific FAQs to include:\nQ: Do you cover Otley?\nA: Yes." in prompt


def test_town_prompt_without_material(project):
    prompt = build_prompt(PageContext(subject=make_subject("Leeds"), project=project))

    assert "No testimonials provided." in prompt
    assert "Services offered by this business:\n" not in prompt
    assert "Service-specific FAQs to include:" not in prompt


def test_suburb_prompt_only_references_testimonial(project):
    town = make_subject("Leeds")
    context = PageContext(
        subject=make_subject("Headingley", parent=town),
        project=project,
        parent=town,
        testimonials=[make_testimonial("Quick and tidy")],
    )

    prompt = build_prompt(context)

    assert "DO NOT include it in full" in prompt
    assert 'Original testimonial for reference: "Quick and tidy"' in prompt
    assert "Testimonial to include" not in prompt
