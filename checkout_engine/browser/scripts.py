"""
In-page evaluation scripts as versioned, typed-parameter templates.

Each PageScript is a single JS function taking one params object. Collectors
are read-only apart from tagging elements with a `data-oa-id` attribute so
Python can address them afterwards; actors operate on an element that was
tagged earlier. Decision logic lives in Python, not here.

Bump `version` whenever a script's params or result shape changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, TypedDict


@dataclass(frozen=True)
class PageScript:
    name: str
    version: int
    source: str

    @property
    def key(self) -> str:
        return f"{self.name}@v{self.version}"


def oa_selector(oa_id: str) -> str:
    """CSS selector for an element tagged by a collector script."""
    return f'[data-oa-id="{oa_id}"]'


# --- Params / results ---


class BotSignalsParams(TypedDict):
    markers: list[str]


class BotSignalsResult(TypedDict):
    iframeSrcs: list[str]
    markers: list[str]


class CartTrigger(TypedDict):
    text: str
    label: str
    badge: Optional[str]


class CartSnapshotParams(TypedDict):
    triggerSelector: str
    ctaPhrases: list[str]


class CartSnapshotResult(TypedDict):
    triggers: list[CartTrigger]
    ctaTexts: list[str]


class ScanParams(TypedDict):
    limit: int


class ItemCandidate(TypedDict):
    id: str
    tag: str
    text: str
    href: Optional[str]


class ModifierGroupsParams(TypedDict):
    groupSelector: str
    requiredPattern: str


class ModifierOption(TypedDict):
    id: str
    label: str
    checked: bool
    disabled: bool
    inputType: str


class ModifierGroup(TypedDict):
    id: str
    header: str
    required: bool
    options: list[ModifierOption]


class TargetParams(TypedDict):
    id: str


class PromptParams(TypedDict):
    selector: str
    maxLength: int


class PromptCandidate(TypedDict):
    id: str
    text: str
    visible: bool
    disabled: bool


class ConfirmationLink(TypedDict):
    href: str
    text: str
    onclick: str


class ConfirmationHints(TypedDict):
    orderNumberTexts: list[str]
    etaTexts: list[str]
    links: list[ConfirmationLink]


class MenuEntry(TypedDict):
    name: str
    priceText: str
    hasImage: bool
    category: Optional[str]


# --- Collectors ---

BOT_SIGNALS = PageScript(
    name="bot_signals",
    version=1,
    source="""
(params) => {
  const iframeSrcs = Array.from(document.querySelectorAll('iframe'))
    .map(f => f.getAttribute('src') || '')
    .filter(Boolean)
    .slice(0, 50);
  const markers = [];
  for (const sel of params.markers) {
    try {
      if (document.querySelector(sel)) markers.push(sel);
    } catch (_) {}
  }
  return { iframeSrcs, markers };
}
""",
)

CART_SNAPSHOT = PageScript(
    name="cart_snapshot",
    version=1,
    source="""
(params) => {
  const visible = (el) => {
    const r = el.getBoundingClientRect();
    const s = window.getComputedStyle(el);
    return r.width > 0 && r.height > 0 && s.visibility !== 'hidden' && s.display !== 'none';
  };
  let nodes = [];
  try {
    nodes = Array.from(document.querySelectorAll(params.triggerSelector));
  } catch (_) {}
  const triggers = [];
  for (const el of nodes.slice(0, 20)) {
    if (!visible(el)) continue;
    const badge = el.querySelector('[class*="badge" i], [class*="count" i], [data-testid*="count" i]');
    triggers.push({
      text: (el.innerText || '').trim().slice(0, 80),
      label: el.getAttribute('aria-label') || '',
      badge: badge ? (badge.innerText || '').trim() : null,
    });
  }
  const ctaTexts = [];
  for (const el of document.querySelectorAll('button, a, [role="button"]')) {
    if (!visible(el)) continue;
    const t = (el.innerText || el.getAttribute('aria-label') || '').trim().toLowerCase();
    if (t && t.length <= 40 && params.ctaPhrases.some(p => t.includes(p))) ctaTexts.push(t);
    if (ctaTexts.length >= 5) break;
  }
  return { triggers, ctaTexts };
}
""",
)

ITEM_SCAN = PageScript(
    name="item_scan",
    version=1,
    source="""
(params) => {
  const out = [];
  const nodes = document.querySelectorAll(
    'a[href], button, [role="button"], li, [class*="item" i], [class*="card" i], [data-testid]'
  );
  let n = 0;
  for (const el of nodes) {
    const text = (el.innerText || '').trim();
    if (!text || text.length > 160) continue;
    const r = el.getBoundingClientRect();
    if (r.width === 0 || r.height === 0) continue;
    const id = 'item-' + (n++);
    el.setAttribute('data-oa-id', id);
    const anchor = el.tagName === 'A' ? el : el.closest('a[href]');
    out.push({ id, tag: el.tagName.toLowerCase(), text, href: anchor ? anchor.href : null });
    if (out.length >= params.limit) break;
  }
  return out;
}
""",
)

MODIFIER_GROUPS = PageScript(
    name="modifier_groups",
    version=1,
    source="""
(params) => {
  const required = new RegExp(params.requiredPattern, 'i');
  const containers = Array.from(document.querySelectorAll(params.groupSelector))
    .filter(c => c.querySelector('input[type="radio"], input[type="checkbox"]'));
  const leaves = containers.filter(c => !containers.some(o => o !== c && c.contains(o)));
  const groups = [];
  leaves.forEach((c, g) => {
    const header = c.querySelector('legend, h2, h3, h4, h5, [class*="header" i], [class*="title" i]');
    const headerText = header ? (header.innerText || '').trim() : (c.getAttribute('aria-label') || '');
    const gid = 'grp-' + g;
    const options = [];
    c.querySelectorAll('input[type="radio"], input[type="checkbox"]').forEach((input, o) => {
      const id = gid + '-opt-' + o;
      input.setAttribute('data-oa-id', id);
      const label = input.closest('label')
        || (input.id ? document.querySelector('label[for="' + CSS.escape(input.id) + '"]') : null)
        || input.parentElement;
      options.push({
        id,
        label: label ? (label.innerText || '').trim().slice(0, 120) : '',
        checked: input.checked,
        disabled: input.disabled,
        inputType: input.type,
      });
    });
    groups.push({ id: gid, header: headerText.slice(0, 120), required: required.test(headerText), options });
  });
  return groups;
}
""",
)

PROMPT_CANDIDATES = PageScript(
    name="prompt_candidates",
    version=1,
    source="""
(params) => {
  const out = [];
  let n = 0;
  for (const el of document.querySelectorAll(params.selector)) {
    const text = ((el.innerText || el.value || el.getAttribute('aria-label') || '') + '').trim();
    if (!text || text.length > params.maxLength) continue;
    const r = el.getBoundingClientRect();
    const s = window.getComputedStyle(el);
    const id = 'prompt-' + (n++);
    el.setAttribute('data-oa-id', id);
    out.push({
      id,
      text,
      visible: r.width > 0 && r.height > 0 && s.visibility !== 'hidden' && s.display !== 'none',
      disabled: !!el.disabled || el.getAttribute('aria-disabled') === 'true',
    });
  }
  return out;
}
""",
)

CONFIRMATION_HINTS = PageScript(
    name="confirmation_hints",
    version=1,
    source="""
() => {
  const texts = (sel) => Array.from(document.querySelectorAll(sel))
    .map(e => (e.innerText || '').trim())
    .filter(Boolean)
    .slice(0, 10);
  const links = Array.from(document.querySelectorAll('a[href], [onclick]')).slice(0, 200).map(e => ({
    href: e.getAttribute('href') || '',
    text: (e.innerText || '').trim().slice(0, 80),
    onclick: e.getAttribute('onclick') || '',
  }));
  return {
    orderNumberTexts: texts('[class*="order-number" i], [class*="orderNumber"], [class*="confirmation" i], [data-testid*="order-number" i]'),
    etaTexts: texts('[class*="eta" i], [class*="estimated" i], [class*="ready-time" i], [data-testid*="eta" i]'),
    links,
  };
}
""",
)

MENU_SCAN = PageScript(
    name="menu_scan",
    version=1,
    source="""
(params) => {
  const price = /\\$\\s?\\d+(?:\\.\\d{2})?/;
  const items = [];
  const seen = new Set();
  const nodes = document.querySelectorAll(
    '[data-testid*="menu-item" i], [class*="menuItem"], [class*="menu-item" i], [class*="item-card" i], li, article, button'
  );
  for (const el of nodes) {
    const text = (el.innerText || '').trim();
    if (!text || text.length > 300 || !price.test(text)) continue;
    const lines = text.split('\\n').map(l => l.trim()).filter(Boolean);
    const name = lines.find(l => !price.test(l) && l.length > 1 && l.length < 80);
    if (!name || seen.has(name.toLowerCase())) continue;
    seen.add(name.toLowerCase());
    const section = el.closest('section, [class*="category" i], [data-testid*="category" i]');
    const heading = section ? section.querySelector('h2, h3') : null;
    items.push({
      name,
      priceText: (text.match(price) || [''])[0],
      hasImage: !!el.querySelector('img'),
      category: heading ? (heading.innerText || '').trim().slice(0, 60) : null,
    });
    if (items.length >= params.limit) break;
  }
  return items;
}
""",
)

FRAME_INPUT_COUNT = PageScript(
    name="frame_input_count",
    version=1,
    source="""
() => {
  let count = 0;
  for (const el of document.querySelectorAll('input, [contenteditable="true"]')) {
    if (el.type === 'hidden') continue;
    const r = el.getBoundingClientRect();
    const s = window.getComputedStyle(el);
    if (r.width > 0 && r.height > 0 && s.visibility !== 'hidden' && s.display !== 'none') count++;
  }
  return count;
}
""",
)

# --- Actors ---

TAG_ELEMENT = PageScript(
    name="tag_element",
    version=1,
    source="(el, id) => { el.setAttribute('data-oa-id', id); return id; }",
)

FORCE_CHECK = PageScript(
    name="force_check",
    version=1,
    source="""
(params) => {
  const el = document.querySelector('[data-oa-id="' + params.id + '"]');
  if (!el) return false;
  const label = el.closest('label');
  if (label) label.click();
  if (!el.checked) el.checked = true;
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  return el.checked;
}
""",
)

ENABLE_AND_CLICK = PageScript(
    name="enable_and_click",
    version=1,
    source="""
(params) => {
  const el = document.querySelector('[data-oa-id="' + params.id + '"]');
  if (!el) return false;
  el.removeAttribute('disabled');
  el.removeAttribute('aria-disabled');
  el.disabled = false;
  el.click();
  return true;
}
""",
)

POINTER_SEQUENCE = PageScript(
    name="pointer_sequence",
    version=1,
    source="""
(params) => {
  const el = document.querySelector('[data-oa-id="' + params.id + '"]');
  if (!el) return false;
  el.scrollIntoView({ block: 'center' });
  const r = el.getBoundingClientRect();
  const opts = {
    bubbles: true, cancelable: true, composed: true, button: 0,
    clientX: r.left + r.width / 2, clientY: r.top + r.height / 2,
    pointerId: 1, pointerType: 'mouse', isPrimary: true,
  };
  el.dispatchEvent(new PointerEvent('pointerover', opts));
  el.dispatchEvent(new PointerEvent('pointerdown', opts));
  el.dispatchEvent(new MouseEvent('mousedown', opts));
  el.dispatchEvent(new PointerEvent('pointerup', opts));
  el.dispatchEvent(new MouseEvent('mouseup', opts));
  el.dispatchEvent(new MouseEvent('click', opts));
  return true;
}
""",
)

# Runs before any page script in every frame of the context.
STEALTH_INIT = PageScript(
    name="stealth_init",
    version=1,
    source="""
Object.defineProperty(navigator, 'webdriver', { get: () => false });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = window.chrome || { runtime: {} };
""",
)

ALL_SCRIPTS = (
    BOT_SIGNALS,
    CART_SNAPSHOT,
    ITEM_SCAN,
    MODIFIER_GROUPS,
    PROMPT_CANDIDATES,
    CONFIRMATION_HINTS,
    MENU_SCAN,
    FRAME_INPUT_COUNT,
    TAG_ELEMENT,
    FORCE_CHECK,
    ENABLE_AND_CLICK,
    POINTER_SEQUENCE,
    STEALTH_INIT,
)
