"""Local Support Score for suburb pages and the optimisation prompt it drives.

Suburb pages should read as light coverage pages, not sales pages. The score
checks length, keyword and location density, keyword headings, and sales
pressure. Failed checks become numbered rewrite instructions for a second,
low-temperature model pass.
"""

import re
from dataclasses import dataclass, field

SALES_TERMS = [
    "best",
    "leading",
    "top",
    "award-winning",
    "premier",
    "number one",
    "#1",
    "guaranteed",
    "unbeatable",
    "cheapest",
    "lowest price",
]
PRICING_PATTERN = re.compile(r"\$|£|€|price|pricing|cost|quote|fee", re.IGNORECASE)
TESTIMONIAL_PATTERN = re.compile(r'<blockquote|class="testimonial"|"testimonial', re.IGNORECASE)
HEADING_PATTERN = re.compile(r"<h[2-3][^>]*>.*?</h[2-3]>", re.IGNORECASE)
TAG_PATTERN = re.compile(r"<[^>]*>")

# Title checks are not run on generated bodies; they always score
TITLE_POINTS = 20


@dataclass
class SupportCheck:
    """A failed check. `problem` is "low", "high" or "over" (far too high)."""

    name: str
    message: str
    problem: str
    current_value: int | None = None


@dataclass
class LocalSupportScore:
    score: int
    failed_checks: list[SupportCheck] = field(default_factory=list)


def _strip_location(phrase: str, location: str) -> str:
    """'web design in London' -> 'web design'."""
    pattern = rf"\s*(in|for|near|around)\s+{re.escape(location)}"
    return re.sub(pattern, "", phrase, flags=re.IGNORECASE).strip()


def _count(text: str, term: str) -> int:
    return text.count(term) if term else 0


def calculate_local_support_score(content: str, phrase: str, location: str) -> LocalSupportScore:
    """Score suburb page HTML out of 100.

    Args:
        content: Generated HTML body
        phrase: Target phrase, e.g. "web design in Headingley"
        location: Suburb name

    Returns:
        LocalSupportScore with every check that lost points
    """
    failed: list[SupportCheck] = []
    plain_text = TAG_PATTERN.sub(" ", content)
    lower_text = plain_text.lower()
    word_count = len(plain_text.split())
    keyword = _strip_location(phrase, location).lower()
    score = 0

    # Content length (20): 300-700 words
    if 300 <= word_count <= 700:
        score += 20
    elif word_count < 300:
        score += 10
        failed.append(
            SupportCheck(
                "Content Length",
                f"{word_count} words (could be slightly longer)",
                "low",
                word_count,
            )
        )
    elif word_count <= 800:
        score += 10
        failed.append(
            SupportCheck(
                "Content Length",
                f"{word_count} words (slightly long for suburb page)",
                "high",
                word_count,
            )
        )
    else:
        failed.append(
            SupportCheck("Content Length", f"{word_count} words (too long)", "over", word_count)
        )

    # Keyword frequency (15): 2-5 mentions
    keyword_count = _count(lower_text, keyword)
    if 2 <= keyword_count <= 5:
        score += 15
    elif keyword_count < 2:
        score += 5
        failed.append(
            SupportCheck(
                "Keyword Frequency",
                f"Keyword appears {keyword_count} times (could add 1-2 more)",
                "low",
                keyword_count,
            )
        )
    elif keyword_count <= 6:
        score += 10
        failed.append(
            SupportCheck(
                "Keyword Frequency",
                f"Keyword appears {keyword_count} times (slightly high)",
                "high",
                keyword_count,
            )
        )
    else:
        failed.append(
            SupportCheck(
                "Keyword Frequency",
                f"Keyword appears {keyword_count} times (over-optimised)",
                "over",
                keyword_count,
            )
        )

    # Location frequency (15): 3-6 mentions
    location_count = _count(lower_text, location.lower())
    if 3 <= location_count <= 6:
        score += 15
    elif location_count < 3:
        score += 8
        failed.append(
            SupportCheck(
                "Location Frequency",
                f"Location appears {location_count} times (could add 1-2 more)",
                "low",
                location_count,
            )
        )
    elif location_count <= 8:
        score += 8
        failed.append(
            SupportCheck(
                "Location Frequency",
                f"Location appears {location_count} times (slightly high)",
                "high",
                location_count,
            )
        )
    else:
        failed.append(
            SupportCheck(
                "Location Frequency",
                f"Location appears {location_count} times (over-optimised)",
                "over",
                location_count,
            )
        )

    # Heading usage (15): at most one heading carries the keyword
    headings = HEADING_PATTERN.findall(content)
    keyword_headings = sum(1 for h in headings if keyword and keyword in h.lower())
    if keyword_headings <= 1:
        score += 15
    else:
        score += 5
        failed.append(
            SupportCheck(
                "Heading Usage",
                f"{keyword_headings} keyword headings (too many)",
                "high",
                keyword_headings,
            )
        )

    # Sales pressure (15)
    pressure = 2 * sum(1 for term in SALES_TERMS if term in lower_text)
    if PRICING_PATTERN.search(plain_text):
        pressure += 3
    if TESTIMONIAL_PATTERN.search(content):
        pressure += 3
    score += max(0, 15 - pressure * 2)
    if pressure > 3:
        failed.append(
            SupportCheck("Sales Pressure", "High sales pressure (reduce for suburb page)", "high")
        )

    score += TITLE_POINTS
    return LocalSupportScore(score=score, failed_checks=failed)


def optimisation_instructions(
    checks: list[SupportCheck], phrase: str, location: str
) -> list[str]:
    """Rewrite instructions for the failed checks that have a fix."""
    instructions = []
    for check in checks:
        value = check.current_value
        if check.name == "Content Length":
            if check.problem == "over":
                instructions.append(
                    f"REDUCE content length. Current: ~{value} words. Target: 300-700 words."
                )
            elif check.problem == "low":
                instructions.append(
                    f"SLIGHTLY EXPAND content. Current: ~{value} words. Target: 300-400 words."
                )
        elif check.name == "Keyword Frequency":
            if check.problem == "low":
                instructions.append(
                    f'ADD 1-2 natural mentions of "{phrase}". Current: {value}. Target: 2-4 times.'
                )
            else:
                instructions.append(
                    f'REDUCE keyword "{phrase}" mentions. Current: {value}. Target: 2-5 times.'
                )
        elif check.name == "Location Frequency":
            if check.problem == "low":
                instructions.append(
                    f'ADD 1-2 natural mentions of "{location}". Current: {value}. '
                    "Target: 3-5 times."
                )
            else:
                instructions.append(
                    f'REDUCE location "{location}" mentions. Current: {value}. Target: 3-6 times.'
                )
        elif check.name == "Heading Usage":
            instructions.append(f"REDUCE keyword in headings. Current: {value}. Target: 0-1.")
        elif check.name == "Sales Pressure":
            instructions.append(
                'REMOVE aggressive sales language like "best", "leading", "top". '
                "Remove pricing mentions."
            )
    return instructions


def build_optimise_prompt(content: str, instructions: list[str]) -> str:
    changes = "\n".join(f"{i}. {text}" for i, text in enumerate(instructions, start=1))
    return f"""You are an SEO content optimiser for LOCAL SUBURB SUPPORT PAGES.

CURRENT CONTENT:
{content}

REQUIRED CHANGES:
{changes}

RULES:
- Make ONLY the changes listed above
- Preserve the HTML structure
- Output ONLY the optimised HTML content, no explanations

OUTPUT THE OPTIMISED HTML:"""
