"""Server-rendered pages: landing, pricing and the legal notices.

Any other GET path that is not an API route renders the landing page.
"""

from html import escape

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse

from stagingpro.api.deps import get_app_settings, get_data
from stagingpro.config import Settings
from stagingpro.models.plan import plan_to_public
from stagingpro.services.repository import StudioData

router = APIRouter()

LEGAL_PAGES = {
    "commercial-disclosure": (
        "Commercial Disclosure",
        "Prices are shown per image and include tax. Payment is taken by card at checkout. "
        "Digital deliverables are provided within the stated business days after payment; "
        "because the service is made to order, cancellations are accepted only before work starts.",
    ),
    "privacy-policy": (
        "Privacy Policy",
        "We store the images and instructions you upload, your email address and your order history "
        "to deliver the service. Payment details are handled by our payment provider and never reach our servers. "
        "Contact the studio to have your data removed.",
    ),
    "terms-of-service": (
        "Terms of Service",
        "You confirm you hold the rights to the photos you upload. Results are virtual renderings and must be "
        "labelled as such where required. The studio may decline orders that cannot be produced.",
    ),
}


def _page(title: str, body: str, settings: Settings) -> HTMLResponse:
    html = f"""<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>{escape(title)} | StagingPro Studio</title></head>
<body style="font-family:Inter,system-ui,sans-serif;max-width:760px;margin:40px auto;padding:0 16px;color:#0f172a">
  <nav style="font-size:12px;letter-spacing:.2em;text-transform:uppercase">
    <a href="/">StagingPro</a> · <a href="/pricing">Pricing</a>
  </nav>
  <h1>{escape(title)}</h1>
  {body}
  <footer style="margin-top:48px;font-size:12px;color:#64748b">
    <a href="/commercial-disclosure">Commercial Disclosure</a> ·
    <a href="/privacy-policy">Privacy</a> ·
    <a href="/terms-of-service">Terms</a> ·
    {escape(settings.studio_contact_email)}
  </footer>
</body>
</html>"""
    return HTMLResponse(html)


def _plan_list(data: StudioData) -> str:
    items = []
    for plan in (plan_to_public(p) for p in data.plans.fetch_all()):
        if not plan["isVisible"]:
            continue
        items.append(
            f"<li><strong>{escape(plan['number'])} {escape(plan['title'])}</strong> "
            f"({escape(plan['price'])})<br>{escape(plan['description'])}</li>"
        )
    return "<ul>" + "".join(items) + "</ul>" if items else "<p>Plans are being updated.</p>"


@router.get("/", response_class=HTMLResponse)
def landing(data: StudioData = Depends(get_data), settings: Settings = Depends(get_app_settings)):
    body = (
        "<p>Virtual staging and furniture removal for property photos, delivered by our studio team.</p>"
        + _plan_list(data)
    )
    return _page("StagingPro Studio", body, settings)


@router.get("/pricing", response_class=HTMLResponse)
def pricing(data: StudioData = Depends(get_data), settings: Settings = Depends(get_app_settings)):
    return _page("Pricing", _plan_list(data), settings)


@router.get("/{page}", response_class=HTMLResponse)
def page(page: str, data: StudioData = Depends(get_data), settings: Settings = Depends(get_app_settings)):
    if page in LEGAL_PAGES:
        title, text = LEGAL_PAGES[page]
        return _page(title, f"<p>{escape(text)}</p>", settings)
    return landing(data, settings)


@router.get("/{full_path:path}", response_class=HTMLResponse)
def fallback(full_path: str, data: StudioData = Depends(get_data), settings: Settings = Depends(get_app_settings)):
    if full_path.startswith(("api/", "ws/")):
        raise HTTPException(status_code=404, detail="Not Found")
    return landing(data, settings)
