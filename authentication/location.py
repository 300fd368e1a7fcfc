from __future__ import annotations

import webbrowser
from abc import ABC, abstractmethod

from elfsquad.constants import LOGGER


class Location(ABC):
    """Where the redirect flow currently is, and how to send it elsewhere."""

    @abstractmethod
    def current_url(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def navigate(self, url: str) -> None:
        raise NotImplementedError


class MemoryLocation(Location):
    def __init__(self, url: str = "") -> None:
        self.url = url
        self.history: list[str] = []

    def current_url(self) -> str:
        return self.url

    def navigate(self, url: str) -> None:
        self.history.append(url)
        self.url = url


class WebBrowserLocation(MemoryLocation):
    """Opens navigations in the system browser.

    The application sets ``url`` to the redirect URI it was called back on
    before starting a new context, so the pending authorization can complete.
    """

    def navigate(self, url: str) -> None:
        super().navigate(url)
        if not webbrowser.open(url):
            LOGGER.warning("Could not open a browser; visit %s to continue.", url)
