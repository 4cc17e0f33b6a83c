import json
import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel
import httpx

from wishlists_app.core.config import settings
from wishlists_app.core.rate_limit import check_rate_limit


router = APIRouter(tags=["og"])
logger = logging.getLogger("wishlists.og")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
MAX_HTML_BYTES = 2_000_000


class OgPreviewRequest(BaseModel):
    url: str


class OgPreviewResponse(BaseModel):
    url: str
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    price: float | None = None
    currency: str | None = None


def _normalize_url(raw: str) -> str:
    value = re.sub(r"\s+", "", (raw or "").strip())
    if not value:
        return ""
    if value.startswith("//"):
        value = "https:" + value
    elif not value.startswith(("http://", "https://")):
        value = "https://" + value
    return re.sub(r"^(https?://)(https?://)+", r"\1", value)


def _extract_price(value: str | None) -> float | None:
    """Parse ``1 299,90 €``, ``1,299.90`` or ``25`` into a float; None when absent or not positive."""
    if not value:
        return None
    compact = value.replace("\u00a0", " ").replace("\u202f", " ")
    compact = re.sub(r"[^0-9,.\s]", "", compact)
    parts = re.findall(r"\d[\d\s.,]*", compact)
    if not parts:
        return None

    numeric = parts[0].replace(" ", "").rstrip(".,")
    if "," in numeric and "." in numeric:
        if numeric.rfind(",") > numeric.rfind("."):
            numeric = numeric.replace(".", "").replace(",", ".")
        else:
            numeric = numeric.replace(",", "")
    elif numeric.count(",") > 1:
        numeric = numeric.replace(",", "")
    elif numeric.count(".") > 1:
        numeric = numeric.replace(".", "")
    else:
        numeric = numeric.replace(",", ".")

    try:
        parsed = float(numeric)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _normalize_currency(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = re.sub(r"[^A-Za-z]", "", value).upper()
    return cleaned if len(cleaned) == 3 else None


def _meta(soup: BeautifulSoup, *keys: str) -> str | None:
    for key in keys:
        tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
        if tag is not None:
            content = (tag.get("content") or "").strip()
            if content:
                return content
    return None


def _jsonld_offer(soup: BeautifulSoup) -> tuple[float | None, str | None]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text(strip=True)
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            continue
        nodes = data if isinstance(data, list) else data.get("@graph", [data]) if isinstance(data, dict) else []
        for node in nodes:
            if not isinstance(node, dict) or "product" not in str(node.get("@type", "")).lower():
                continue
            offers = node.get("offers")
            if isinstance(offers, list):
                offers = offers[0] if offers else None
            if isinstance(offers, dict):
                price = _extract_price(str(offers.get("price") or offers.get("lowPrice") or ""))
                if price is not None:
                    return price, _normalize_currency(offers.get("priceCurrency"))
    return None, None


def parse_preview(html: str, url: str) -> OgPreviewResponse:
    soup = BeautifulSoup(html, "html.parser")
    title = _meta(soup, "og:title", "twitter:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip() or None

    image = _meta(soup, "og:image", "og:image:url", "twitter:image")
    price = _extract_price(_meta(soup, "product:price:amount", "og:price:amount"))
    currency = _normalize_currency(_meta(soup, "product:price:currency", "og:price:currency"))
    if price is None:
        price, jsonld_currency = _jsonld_offer(soup)
        currency = currency or jsonld_currency

    return OgPreviewResponse(
        url=url,
        title=title,
        description=_meta(soup, "og:description", "twitter:description", "description"),
        image_url=urljoin(url, image) if image else None,
        price=price,
        currency=currency,
    )


@router.post("/og/preview", response_model=OgPreviewResponse)
async def preview_url(payload: OgPreviewRequest, request: Request) -> OgPreviewResponse:
    check_rate_limit(request, max_requests=30, window_seconds=60, key_suffix="og")
    target_url = _normalize_url(payload.url)
    if not target_url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="URL manquante ou invalide")

    logger.info("OG preview request url=%s", target_url)
    try:
        async with httpx.AsyncClient(follow_redirects=True, timeout=settings.og_fetch_timeout_s) as client:
            resp = await client.get(
                target_url,
                headers={"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8"},
            )
    except httpx.HTTPError as exc:
        logger.warning("OG fetch failed url=%s error=%s", target_url, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Impossible de récupérer la page cible",
        ) from None

    if resp.status_code >= 400:
        logger.warning("OG upstream status url=%s status=%s", target_url, resp.status_code)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Impossible de récupérer la page cible",
        )

    result = parse_preview(resp.text[:MAX_HTML_BYTES], str(resp.url))
    logger.info("OG preview result url=%s title=%s price=%s", target_url, result.title, result.price)
    return result
