"""
In-memory PageDriver for driving cascades without a browser.

Elements are registered by selector, by text (optionally limited to the
selector scopes they sit in) or by ARIA role. Page scripts are answered from
a dict keyed by script name; a value may be a callable taking the params.
Click callbacks let a test mutate page state (cart count, body text) the way
a real page would.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, Optional, Pattern, Union

from checkout_engine.browser.driver import FrameInfo, NavigationResponse
from checkout_engine.browser.scripts import PageScript

TextQuery = Union[str, Pattern[str]]


class FakeElement:
    def __init__(
        self,
        text: str = "",
        *,
        visible: bool = True,
        disabled: bool = False,
        checked: bool = False,
        attributes: Optional[dict[str, str]] = None,
        on_click: Optional[Callable[["FakeElement"], None]] = None,
        on_check: Optional[Callable[["FakeElement", bool], None]] = None,
        click_error: Optional[Exception] = None,
    ) -> None:
        self._text = text
        self.visible = visible
        self.disabled = disabled
        self.checked = checked
        self.attributes = dict(attributes or {})
        self.on_click = on_click
        self.on_check = on_check
        self.click_error = click_error
        self.clicks: list[str] = []
        self.filled: list[str] = []
        self.typed: list[str] = []
        self.evaluated: list[tuple[str, Any]] = []

    def _fire_click(self, method: str) -> None:
        self.clicks.append(method)
        if self.on_click is not None:
            self.on_click(self)

    async def click(self, *, force: bool = False, timeout_ms: int = 5000) -> None:
        if self.click_error is not None and not force:
            raise self.click_error
        self._fire_click("force_click" if force else "click")

    async def text(self) -> str:
        return self._text

    async def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    async def is_visible(self) -> bool:
        return self.visible

    async def is_disabled(self) -> bool:
        return self.disabled

    async def is_checked(self) -> bool:
        return self.checked

    async def set_checked(self, checked: bool) -> None:
        self.checked = checked
        if self.on_check is not None:
            self.on_check(self, checked)

    async def fill(self, value: str) -> None:
        self.filled.append(value)

    async def type(self, value: str, *, delay_ms: int = 50) -> None:
        self.typed.append(value)

    async def evaluate(self, script: PageScript, arg: Any = None) -> Any:
        self.evaluated.append((script.name, arg))
        if script.name == "dom_click":
            self._fire_click("dom_click")
        return None


def _text_matches(query: TextQuery, text: str, exact: bool) -> bool:
    if not isinstance(query, str):
        return bool(query.search(text))
    if exact:
        return text.strip().lower() == query.strip().lower()
    return query.lower() in text.lower()


class FakePageDriver:
    def __init__(
        self,
        url: str = "https://order.example.com/menu",
        *,
        title: str = "Sample Cafe - Order Online",
        body: str = "",
        html: str = "<html><body></body></html>",
        scripts: Optional[dict[str, Any]] = None,
        goto_plan: Optional[Iterable[Any]] = None,
    ) -> None:
        self._url = url
        self.title_text = title
        self.body = body
        self.html = html
        self.scripts: dict[str, Any] = dict(scripts or {})
        self.goto_plan = list(goto_plan or [])
        self.goto_calls: list[str] = []
        self.selectors: dict[str, FakeElement] = {}
        self.attached: set[str] = set()
        self.text_elements: list[tuple[FakeElement, Optional[set[str]]]] = []
        self.role_elements: list[tuple[str, FakeElement]] = []
        self.frame_infos: list[FrameInfo] = []
        self.frame_drivers: dict[str, "FakePageDriver"] = {}
        self.responses: list[str] = []
        self.pressed: list[str] = []
        self.evaluated: list[tuple[str, Any]] = []
        self.screenshot_error: Optional[Exception] = None

    # --- registration helpers ---

    def add_selector(self, selector: str, element: Optional[FakeElement] = None) -> FakeElement:
        element = element or FakeElement()
        self.selectors[selector] = element
        return element

    def add_text(self, text: str, *, scopes: Optional[Iterable[str]] = None, **kwargs: Any) -> FakeElement:
        element = FakeElement(text, **kwargs)
        self.text_elements.append((element, set(scopes) if scopes is not None else None))
        return element

    def add_role(self, role: str, text: str, **kwargs: Any) -> FakeElement:
        element = FakeElement(text, **kwargs)
        self.role_elements.append((role, element))
        return element

    def remove(self, element: FakeElement) -> None:
        self.selectors = {s: e for s, e in self.selectors.items() if e is not element}
        self.text_elements = [(e, s) for e, s in self.text_elements if e is not element]
        self.role_elements = [(r, e) for r, e in self.role_elements if e is not element]

    # --- PageDriver ---

    @property
    def url(self) -> str:
        return self._url

    async def goto(self, url: str, *, timeout_ms: int) -> Optional[NavigationResponse]:
        self.goto_calls.append(url)
        self._url = url
        outcome = self.goto_plan.pop(0) if self.goto_plan else NavigationResponse(status=200, url=url)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def title(self) -> str:
        return self.title_text

    async def body_text(self) -> str:
        return self.body

    async def content(self) -> str:
        return self.html

    async def find(self, selector: str, *, timeout_ms: int = 1500, state: str = "visible") -> Optional[FakeElement]:
        element = self.selectors.get(selector)
        if element is None:
            return None
        if state == "visible" and not element.visible:
            return None
        return element

    async def find_by_text(
        self,
        text: TextQuery,
        *,
        selector: Optional[str] = None,
        exact: bool = True,
        timeout_ms: int = 1500,
    ) -> Optional[FakeElement]:
        for element, scopes in self.text_elements:
            if not element.visible:
                continue
            if selector is not None and scopes is not None and selector not in scopes:
                continue
            if _text_matches(text, element._text, exact):
                return element
        return None

    async def find_by_role(self, role: str, name: TextQuery, *, timeout_ms: int = 1500) -> Optional[FakeElement]:
        for element_role, element in self.role_elements:
            if element_role == role and element.visible and _text_matches(name, element._text, exact=False):
                return element
        return None

    async def wait_for_attached(self, selector: str, *, timeout_ms: int) -> bool:
        return selector in self.attached or selector in self.selectors

    async def evaluate(self, script: PageScript, params: Any = None) -> Any:
        self.evaluated.append((script.name, params))
        answer = self.scripts.get(script.name)
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(params)
        return answer

    async def press(self, key: str) -> None:
        self.pressed.append(key)

    async def screenshot(self) -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        return b"\x89PNG fake"

    async def frames(self) -> list[FrameInfo]:
        return list(self.frame_infos)

    def frame_driver(self, url_or_name: str) -> Optional["FakePageDriver"]:
        return self.frame_drivers.get(url_or_name)

    def response_urls(self) -> list[str]:
        return list(self.responses)

    # --- script helpers ---

    def calls(self, script_name: str) -> list[Any]:
        return [params for name, params in self.evaluated if name == script_name]


class CartCounter:
    """Cart badge state answering the cart_snapshot script."""

    def __init__(self, count: Optional[int] = 0, cta: bool = False) -> None:
        self.count = count
        self.cta = cta

    def __call__(self, params: Any) -> dict:
        badge = None if self.count is None else str(self.count)
        return {
            "triggers": [{"text": "Cart", "label": "Cart", "badge": badge}],
            "ctaTexts": ["View order"] if self.cta else [],
        }

    def increment(self, _element: Any = None) -> None:
        self.count = (self.count or 0) + 1


class FakeSession:
    """Async context manager standing in for BrowserSessionManager."""

    def __init__(self, driver: FakePageDriver, *, proxy_active: bool = False, proxy_degraded: bool = False) -> None:
        self.driver = driver
        self.proxy_active = proxy_active
        self.proxy_degraded = proxy_degraded
        self.closed = False

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.closed = True
        return False


def session_factory_for(*drivers: FakePageDriver) -> Callable[[str], FakeSession]:
    """Factory handing out one session per call, cycling through the drivers given."""
    sessions: list[FakeSession] = []

    def factory(url: str) -> FakeSession:
        session = FakeSession(drivers[len(sessions) % len(drivers)])
        sessions.append(session)
        return session

    factory.sessions = sessions  # type: ignore[attr-defined]
    return factory


CHALLENGE_SIGNALS = {"iframeSrcs": ["https://challenges.cloudflare.com/cdn-cgi/challenge-platform/h/b"], "markers": []}


def pattern(text: str) -> Pattern[str]:
    return re.compile(text, re.IGNORECASE)
