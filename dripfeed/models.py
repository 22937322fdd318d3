"""Pydantic models for catalog entries, subscriptions and feed plans."""

from __future__ import annotations

from typing import NamedTuple, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

CHAPTER_PLACEHOLDER = "%s"


class CatalogEntry(BaseModel):
    """Static metadata describing a story and how to build its chapter URLs."""

    model_config = {"frozen": True}

    id: str = Field(min_length=1)
    title: str
    url_template: str  # e.g. example.com/orv/chap_%s.xhtml
    leading_zeros: int = Field(ge=0)
    prologue_url: Optional[str] = None

    @field_validator("url_template")
    @classmethod
    def _single_placeholder(cls, value: str) -> str:
        count = value.count(CHAPTER_PLACEHOLDER)
        if count != 1:
            raise ValueError(
                f"url template must contain exactly one {CHAPTER_PLACEHOLDER} placeholder, found {count}"
            )
        return value

    def chapter_url(self, chapter: int) -> str:
        """Substitute the zero-padded chapter number into the URL template."""
        return self.url_template.replace(
            CHAPTER_PLACEHOLDER, str(chapter).zfill(self.leading_zeros)
        )


class Subscription(BaseModel):
    """A reader's progress through one story."""

    id: str = Field(min_length=1)
    story_id: str
    frequency_days: int = Field(ge=1)
    batch_size: int = Field(ge=1)
    current_chapter: int = Field(ge=0)
    last_update_epoch_day: int = Field(ge=0)
    start_chapter: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _window_not_inverted(self) -> "Subscription":
        if self.current_chapter < self.start_chapter:
            raise ValueError(
                f"current_chapter {self.current_chapter} is below start_chapter {self.start_chapter}"
            )
        return self

    @property
    def next_release_day(self) -> int:
        return self.last_update_epoch_day + self.frequency_days

    @property
    def description(self) -> str:
        return (
            f"frequency: {self.frequency_days}, "
            f"{self.batch_size} chapters per update, id: {self.id}"
        )


class FeedEntry(NamedTuple):
    label: str
    link: str


class FeedPlan(BaseModel):
    """Outcome of a resolve: what the feed for one subscription should show."""

    story: CatalogEntry
    subscription: Subscription
    advanced: bool = False

    @property
    def start_chapter(self) -> int:
        return self.subscription.start_chapter

    @property
    def current_chapter(self) -> int:
        return self.subscription.current_chapter

    @property
    def window(self) -> range:
        """Visible chapters, inclusive of both ends."""
        return range(self.start_chapter, self.current_chapter + 1)
