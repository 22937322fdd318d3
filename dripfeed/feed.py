"""Feed rendering: visible chapter window to entries and RSS 2.0."""

from __future__ import annotations

from .errors import ConsistencyError
from .models import FeedEntry, FeedPlan

RSS_MEDIA_TYPE = "application/rss+xml"


def _escape_xml(s: str) -> str:
    """Escape &, <, >, ", ' for XML text/attributes."""
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def render_entries(plan: FeedPlan) -> list[FeedEntry]:
    """Entries for every visible chapter, newest first.

    Chapter 0 is the prologue and requires the story to have a prologue URL.
    """
    story = plan.story
    entries = []
    for chapter in plan.window:
        label = f"{story.title} Chapter {chapter}"
        if chapter == 0:
            if story.prologue_url is None:
                raise ConsistencyError(
                    f"Subscription {plan.subscription.id} starts at chapter 0 "
                    f"but story {story.id} has no prologue URL"
                )
            entries.append(FeedEntry(label, story.prologue_url))
        else:
            entries.append(FeedEntry(label, story.chapter_url(chapter)))

    entries.reverse()
    return entries


def _item_xml(entry: FeedEntry) -> str:
    return f"""
    <item>
      <title>{_escape_xml(entry.label)}</title>
      <link>{_escape_xml(entry.link)}</link>
    </item>"""


def render_rss(plan: FeedPlan, self_href: str) -> str:
    """RSS 2.0 document for a feed plan. Items carry only a title and a link."""
    items = "".join(_item_xml(entry) for entry in render_entries(plan))
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<rss version="2.0">\n'
        "  <channel>\n"
        f"    <title>{_escape_xml(plan.story.title)}</title>\n"
        f"    <link>{_escape_xml(self_href)}</link>\n"
        f"    <description>{_escape_xml(plan.subscription.description)}</description>"
        f"{items}\n"
        "  </channel>\n"
        "</rss>"
    )
