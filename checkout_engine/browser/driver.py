"""
PageDriver: the capability interface the engine drives pages through.

Engine modules never touch Playwright directly. They ask a driver to find an
element by text, role or selector, to wait for something to attach, or to run
a PageScript, so selector cascades are ordered capability calls that can be
unit-tested against a fake driver.

PlaywrightPageDriver wraps either a Page or a Frame (payment iframes are
driven through the same interface). Lookups return None instead of raising
when nothing visible turns up before the timeout.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional, Pattern, Protocol, Union

from playwright.async_api import Frame, Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from checkout_engine.browser.scripts import PageScript
from shared.logging import get_logger

logger = get_logger(__name__)

TextQuery = Union[str, Pattern[str]]


@dataclass
class NavigationResponse:
    status: Optional[int]
    headers: dict[str, str] = field(default_factory=dict)
    url: Optional[str] = None


@dataclass(frozen=True)
class FrameInfo:
    name: str
    url: str


class Element(Protocol):
    async def click(self, *, force: bool = False, timeout_ms: int = 5000) -> None: ...

    async def text(self) -> str: ...

    async def get_attribute(self, name: str) -> Optional[str]: ...

    async def is_visible(self) -> bool: ...

    async def is_disabled(self) -> bool: ...

    async def is_checked(self) -> bool: ...

    async def set_checked(self, checked: bool) -> None: ...

    async def fill(self, value: str) -> None: ...

    async def type(self, value: str, *, delay_ms: int = 50) -> None: ...

    async def evaluate(self, script: PageScript, arg: Any = None) -> Any: ...


class PageDriver(Protocol):
    @property
    def url(self) -> str: ...

    async def goto(self, url: str, *, timeout_ms: int) -> Optional[NavigationResponse]: ...

    async def title(self) -> str: ...

    async def body_text(self) -> str: ...

    async def content(self) -> str: ...

    async def find(self, selector: str, *, timeout_ms: int = 1500, state: str = "visible") -> Optional[Element]: ...

    async def find_by_text(
        self,
        text: TextQuery,
        *,
        selector: Optional[str] = None,
        exact: bool = True,
        timeout_ms: int = 1500,
    ) -> Optional[Element]: ...

    async def find_by_role(self, role: str, name: TextQuery, *, timeout_ms: int = 1500) -> Optional[Element]: ...

    async def wait_for_attached(self, selector: str, *, timeout_ms: int) -> bool: ...

    async def evaluate(self, script: PageScript, params: Any = None) -> Any: ...

    async def press(self, key: str) -> None: ...

    async def screenshot(self) -> bytes: ...

    async def frames(self) -> list[FrameInfo]: ...

    def frame_driver(self, url_or_name: str) -> Optional["PageDriver"]: ...

    def response_urls(self) -> list[str]: ...


def _exact_pattern(text: str) -> Pattern[str]:
    return re.compile(rf"^\s*{re.escape(text)}\s*$", re.IGNORECASE)


class PlaywrightElement:
    """Element backed by a Playwright Locator (already narrowed to one node)."""

    def __init__(self, locator: Locator) -> None:
        self.locator = locator

    async def click(self, *, force: bool = False, timeout_ms: int = 5000) -> None:
        await self.locator.click(force=force, timeout=timeout_ms)

    async def text(self) -> str:
        try:
            return (await self.locator.inner_text(timeout=2000)).strip()
        except PlaywrightTimeoutError:
            return ""

    async def get_attribute(self, name: str) -> Optional[str]:
        return await self.locator.get_attribute(name, timeout=2000)

    async def is_visible(self) -> bool:
        return await self.locator.is_visible()

    async def is_disabled(self) -> bool:
        """disabled attribute, aria-disabled, or a disabled-looking class."""
        try:
            if await self.locator.is_disabled(timeout=1000):
                return True
            if await self.locator.get_attribute("aria-disabled", timeout=1000) == "true":
                return True
            classes = (await self.locator.get_attribute("class", timeout=1000)) or ""
            return "disabled" in classes.lower()
        except PlaywrightTimeoutError:
            return False

    async def is_checked(self) -> bool:
        return await self.locator.is_checked(timeout=1000)

    async def set_checked(self, checked: bool) -> None:
        await self.locator.set_checked(checked, force=True, timeout=3000)

    async def fill(self, value: str) -> None:
        await self.locator.fill(value, timeout=5000)

    async def type(self, value: str, *, delay_ms: int = 50) -> None:
        await self.locator.press_sequentially(value, delay=delay_ms, timeout=15_000)

    async def evaluate(self, script: PageScript, arg: Any = None) -> Any:
        return await self.locator.evaluate(script.source, arg)


class PlaywrightPageDriver:
    """PageDriver over a Playwright Page, or over one of its frames."""

    def __init__(self, target: Union[Page, Frame], page: Optional[Page] = None) -> None:
        self.target = target
        self.page: Page = page if page is not None else target  # type: ignore[assignment]
        self._responses: list[str] = []
        if page is None:
            self.page.on("response", lambda response: self._responses.append(response.url))

    @property
    def url(self) -> str:
        return self.target.url

    async def goto(self, url: str, *, timeout_ms: int) -> Optional[NavigationResponse]:
        response = await self.target.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        if response is None:
            return None
        return NavigationResponse(
            status=response.status,
            headers=await response.all_headers(),
            url=response.url,
        )

    async def title(self) -> str:
        return await self.target.title()

    async def body_text(self) -> str:
        try:
            return await self.target.inner_text("body", timeout=5000)
        except PlaywrightTimeoutError:
            return ""

    async def content(self) -> str:
        return await self.target.content()

    async def _first(self, locator: Locator, timeout_ms: int, state: str = "visible") -> Optional[Element]:
        first = locator.first
        try:
            await first.wait_for(state=state, timeout=timeout_ms)  # type: ignore[arg-type]
        except PlaywrightTimeoutError:
            return None
        return PlaywrightElement(first)

    async def find(self, selector: str, *, timeout_ms: int = 1500, state: str = "visible") -> Optional[Element]:
        return await self._first(self.target.locator(selector), timeout_ms, state)

    async def find_by_text(
        self,
        text: TextQuery,
        *,
        selector: Optional[str] = None,
        exact: bool = True,
        timeout_ms: int = 1500,
    ) -> Optional[Element]:
        if isinstance(text, str):
            pattern: TextQuery = _exact_pattern(text) if exact else text
        else:
            pattern = text
        if selector:
            locator = self.target.locator(selector).filter(has_text=pattern)
        else:
            locator = self.target.get_by_text(pattern)
        return await self._first(locator, timeout_ms)

    async def find_by_role(self, role: str, name: TextQuery, *, timeout_ms: int = 1500) -> Optional[Element]:
        locator = self.target.get_by_role(role, name=name)  # type: ignore[arg-type]
        return await self._first(locator, timeout_ms)

    async def wait_for_attached(self, selector: str, *, timeout_ms: int) -> bool:
        try:
            await self.target.locator(selector).first.wait_for(state="attached", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return False
        return True

    async def evaluate(self, script: PageScript, params: Any = None) -> Any:
        try:
            return await self.target.evaluate(script.source, params)
        except Exception as e:
            logger.warning("page_script.failed", script=script.key, error=str(e)[:200])
            raise

    async def press(self, key: str) -> None:
        await self.page.keyboard.press(key)

    async def screenshot(self) -> bytes:
        return await self.page.screenshot(full_page=False, timeout=15_000)

    async def frames(self) -> list[FrameInfo]:
        return [FrameInfo(name=f.name, url=f.url) for f in self.page.frames if f != self.page.main_frame]

    def frame_driver(self, url_or_name: str) -> Optional["PlaywrightPageDriver"]:
        for frame in self.page.frames:
            if frame == self.page.main_frame:
                continue
            if frame.name == url_or_name or url_or_name in frame.url:
                return PlaywrightPageDriver(frame, page=self.page)
        return None

    def response_urls(self) -> list[str]:
        return list(self._responses)


_DOM_CLICK = PageScript(name="dom_click", version=1, source="(el) => el.click()")


async def click_with_fallback(element: Element, *, timeout_ms: int = 5000) -> str:
    """
    Click an element: normal, then forced, then a DOM-level click.

    Returns which method worked; raises the last error if none did.
    """
    try:
        await element.click(timeout_ms=timeout_ms)
        return "click"
    except Exception:
        pass
    try:
        await element.click(force=True, timeout_ms=timeout_ms)
        return "force_click"
    except Exception:
        pass
    await element.evaluate(_DOM_CLICK)
    return "dom_click"

