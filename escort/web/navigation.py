# escort/web/navigation.py

from __future__ import annotations

import json
import re
from html import escape

from escort.auth.permissions import User, nav_items_for

NAV_PLACEHOLDER = "<!--NAVIGATION_MENU_PLACEHOLDER-->"

_BODY_OPEN_RE = re.compile(r"<body[^>]*>", re.IGNORECASE)
_HEADER_CLOSE_RE = re.compile(r"</header\s*>", re.IGNORECASE)
_BODY_CLOSE_RE = re.compile(r"</body\s*>", re.IGNORECASE)


def nav_link(page: str, label: str, current: str) -> str:
    active = page == current
    cls = "nav-button active" if active else "nav-button"
    aria = ' aria-current="page"' if active else ""
    return f'<a class="{cls}" href="?page={escape(page)}" data-page="{escape(page)}"{aria}>{escape(label)}</a>'


def navigation_html(user: User, current_page: str) -> str:
    links = "\n    ".join(nav_link(page, label, current_page) for page, label in nav_items_for(user.role))
    return (
        '<nav class="navigation" id="main-navigation">\n'
        f"    {links}\n"
        f'    <span class="nav-user">{escape(user.name)} ({escape(user.role)})</span>\n'
        '    <a class="nav-button nav-logout" href="?auth=logout">Sign out</a>\n'
        "</nav>"
    )


def inject_navigation(html: str, nav_html: str) -> str:
    """Puts the menu at the placeholder; without one, right after the page
    header, then right after the opening body tag, then at the very top."""
    if NAV_PLACEHOLDER in html:
        return html.replace(NAV_PLACEHOLDER, nav_html)

    m = _HEADER_CLOSE_RE.search(html)
    if m:
        return html[: m.end()] + "\n" + nav_html + html[m.end() :]

    m = _BODY_OPEN_RE.search(html)
    if m:
        return html[: m.end()] + "\n" + nav_html + html[m.end() :]

    return nav_html + "\n" + html


def user_context_script(user: User) -> str:
    payload = json.dumps(user.context()).replace("</", "<\\/")
    return f"<script>window.currentUser = {payload};</script>"


def inject_user_context(html: str, user: User) -> str:
    script = user_context_script(user)
    matches = list(_BODY_CLOSE_RE.finditer(html))
    if matches:
        m = matches[-1]
        return html[: m.start()] + script + "\n" + html[m.start() :]
    return html + "\n" + script


def compose_page(template_html: str, user: User, current_page: str) -> str:
    html = inject_navigation(template_html, navigation_html(user, current_page))
    return inject_user_context(html, user)
