"""Domain events dispatched after a rename commits."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TitleChangedEvent:
    article_number: int
    old_title: str
    new_title: str
    old_url: str
    new_url: str

    @property
    def url_changed(self) -> bool:
        return self.old_url != self.new_url


@dataclass(frozen=True)
class RedirectCreatedEvent:
    from_url: str
    to_url: str
