"""Minimal HTML pages for the browser login flow."""

import html
import json

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from tenantgate_api.auth.guard import require_admin_user, require_tenant_context
from tenantgate_api.security.redirects import safe_next_path

router = APIRouter(tags=["pages"], include_in_schema=False)

LOGIN_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Sign in</title></head>
<body>
<form id="login">
  <input name="email" type="email" autocomplete="username" required>
  <input name="password" type="password" autocomplete="current-password" required>
  <button type="submit">Sign in</button>
</form>
<script>
document.getElementById("login").addEventListener("submit", async (event) => {{
  event.preventDefault();
  const form = new FormData(event.target);
  const res = await fetch("/api/auth/login", {{
    method: "POST",
    headers: {{"content-type": "application/json"}},
    body: JSON.stringify({{email: form.get("email"), password: form.get("password")}}),
  }});
  if (res.ok) window.location.assign({next_json});
}});
</script>
</body>
</html>
"""

ADMIN_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Admin</title></head>
<body data-tenant="{tenant_slug}">
<p>Signed in to {tenant_slug}. <a href="/api/auth/logout">Sign out</a></p>
</body>
</html>
"""


@router.get("/login", response_class=HTMLResponse)
def login_page(next: str = ""):
    target = safe_next_path(next, fallback="/admin")
    next_json = json.dumps(target).replace("<", "\\u003c")
    return HTMLResponse(LOGIN_PAGE.format(next_json=next_json))


@router.get("/admin", response_class=HTMLResponse)
def admin_page(request: Request):
    require_admin_user(request)
    tenant = require_tenant_context(request)
    return HTMLResponse(ADMIN_PAGE.format(tenant_slug=html.escape(tenant.tenant_slug)))
