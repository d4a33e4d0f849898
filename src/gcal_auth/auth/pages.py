"""HTML pages returned to the browser by the OAuth callback listener.

Pages never contain token material or internal error detail; any dynamic
text is escaped.
"""

from __future__ import annotations

import html

_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <title>{title}</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, sans-serif;
               display: flex; justify-content: center; align-items: center;
               height: 100vh; margin: 0; background: {background}; }}
        .card {{ background: white; padding: 40px; border-radius: 12px;
                box-shadow: 0 4px 6px rgba(0,0,0,0.1); text-align: center; }}
        h1 {{ color: {accent}; margin-bottom: 10px; }}
        p {{ color: #666; }}
    </style>
</head>
<body>
    <div class="card">
        <h1>{heading}</h1>
        <p>{message}</p>
    </div>
</body>
</html>
"""


def _render(title: str, heading: str, message: str, *, background: str, accent: str) -> str:
    return _PAGE.format(
        title=html.escape(title),
        heading=html.escape(heading),
        message=html.escape(message),
        background=background,
        accent=accent,
    )


def success_page() -> str:
    return _render(
        "Authentication Successful",
        "Authentication successful",
        "You can close this window and return to your calendar assistant.",
        background="#f0fdf4",
        accent="#16a34a",
    )


def error_page(message: str = "The authorization request could not be completed.") -> str:
    return _render(
        "Authentication Error",
        "Authentication failed",
        f"{message} Please try again.",
        background="#fef2f2",
        accent="#dc2626",
    )


def not_found_page() -> str:
    return _render(
        "Not Found",
        "Not found",
        "This address only handles Google sign-in callbacks.",
        background="#f8fafc",
        accent="#475569",
    )
