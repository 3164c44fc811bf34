"""
Small Playwright helpers shared by browser adapters.
"""
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page


def is_present(page: Page, selector: str) -> bool:
    """True if at least one element matches selector."""
    return page.locator(selector).count() > 0


def is_visible(page: Page, selector: str) -> bool:
    """True if the first element matching selector is visible."""
    locator = page.locator(selector)
    return locator.count() > 0 and locator.first.is_visible()


def any_visible(page: Page, selector: str) -> bool:
    """True if any element matching selector is visible."""
    locator = page.locator(selector)
    return any(locator.nth(i).is_visible() for i in range(locator.count()))


def first_text(page: Page, selector: str) -> Optional[str]:
    """Text content of the first match, or None if nothing matches."""
    locator = page.locator(selector)
    if locator.count() == 0:
        return None
    return locator.first.text_content()


def click_if_present(page: Page, selector: str, timeout_ms: int = 5000) -> bool:
    """Click the first match if it exists and is visible; True if clicked."""
    locator = page.locator(selector).first
    try:
        if locator.count() > 0 and locator.is_visible():
            locator.click(timeout=timeout_ms)
            return True
    except PlaywrightError:
        return False
    return False


def zoom_out(page: Page, factor: float = 0.5) -> None:
    """Shrink the page so login forms fit small screens."""
    page.evaluate(f"() => {{ document.body.style.zoom = '{factor}'; }}")
