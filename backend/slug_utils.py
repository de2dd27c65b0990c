"""
Slug Utilities
Generates URL slugs for events and derives spreadsheet tab names from them.
"""

import re
import unicodedata
from datetime import date as date_type


def generate_slug(title: str, date: date_type = None, suffix: str = None) -> str:
    """
    Generate a URL-friendly slug from a title.

    Args:
        title: The title to convert to a slug
        date: Optional date; only its year is appended
        suffix: Optional suffix for guaranteed uniqueness

    Returns:
        A lowercase, hyphenated slug suitable for URLs

    Examples:
        "Purim" with 2025-03-14 -> "purim-2025"
        "Women's Torah & Tea" -> "womens-torah-and-tea"
    """
    if not title:
        return None

    # Normalize unicode characters (e.g., é -> e)
    slug = unicodedata.normalize('NFKD', title)
    slug = slug.encode('ascii', 'ignore').decode('ascii')

    slug = slug.lower()

    # Replace common special characters
    slug = slug.replace('&', 'and')
    slug = slug.replace("'", '')
    slug = slug.replace('"', '')

    # Replace any non-alphanumeric characters with hyphens
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    slug = re.sub(r'-+', '-', slug)
    slug = slug.strip('-')

    # Year suffix keeps sheet tab names like "Purim25" derivable from the slug
    if date:
        year = str(date.year)
        if not slug.endswith(f'-{year}'):
            slug = f"{slug}-{year}"

    if suffix:
        slug = f"{slug}-{suffix}"

    if len(slug) > 200:
        slug = slug[:200].rsplit('-', 1)[0]

    return slug


def ensure_unique_slug(base_slug: str, existing_slugs: set) -> str:
    """Append -2, -3, ... until the slug is not taken"""
    if not base_slug:
        return None

    slug = base_slug
    counter = 1

    while slug in existing_slugs:
        counter += 1
        slug = f"{base_slug}-{counter}"

    return slug


def generate_event_slug(title: str, date: date_type, db_session, exclude_id: int = None) -> str:
    """
    Generate a unique slug for an event.

    Args:
        title: Event title
        date: Event date
        db_session: Database session for checking existing slugs
        exclude_id: Event ID to exclude from duplicate checking (for updates)
    """
    from database import Event

    base_slug = generate_slug(title, date)
    if not base_slug:
        return None

    query = db_session.query(Event.slug).filter(Event.slug.isnot(None))
    if exclude_id:
        query = query.filter(Event.id != exclude_id)

    existing_slugs = {row[0] for row in query.all()}
    return ensure_unique_slug(base_slug, existing_slugs)


def slug_to_sheet_name(slug: str) -> str:
    """
    Convert an event slug to a spreadsheet tab name.

    "purim-2025" -> "Purim25"; a slug without dashes is just capitalised.
    """
    slug = (slug or '').lstrip('/')
    parts = slug.split('-')

    if len(parts) >= 2:
        event_name = parts[0][:1].upper() + parts[0][1:]
        year = parts[-1]
        short_year = year[-2:] if len(year) == 4 else year
        return f"{event_name}{short_year}"

    return slug[:1].upper() + slug[1:]
