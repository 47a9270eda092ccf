import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import SITE_ORIGIN, Settings

FREE_NOW_LINK = 'a:has(span:text-is("Free Now"))'
PROMOTIONS_URL = "https://store-site-backend-static-ipv4.ak.epicgames.com/freeGamesPromotions"
PRODUCT_URL = f"{SITE_ORIGIN}/en-US/p/"

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/99.0.4844.83 Safari/537.36"
    ),
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}


def _create_session() -> requests.Session:
    session = requests.Session()
    session.headers.update(DEFAULT_HEADERS)
    retry = Retry(
        total=3,
        connect=3,
        read=3,
        backoff_factor=1.0,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=frozenset(["GET"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


async def fetch_from_page(page) -> List[str]:
    games = page.locator(FREE_NOW_LINK)
    await games.last.wait_for()
    # Navigating by href instead of clicking the tiles, clicks sometimes ended on a 404.
    handles = await games.element_handles()
    hrefs = await asyncio.gather(*(h.get_attribute("href") for h in handles))
    return [urljoin(SITE_ORIGIN, href) for href in hrefs if href]


def _page_slug(element: Dict[str, Any]) -> Optional[str]:
    for mapping in (element.get("catalogNs") or {}).get("mappings") or []:
        if mapping.get("pageSlug"):
            return mapping["pageSlug"]
    for mapping in element.get("offerMappings") or []:
        if mapping.get("pageSlug"):
            return mapping["pageSlug"]
    return element.get("productSlug") or element.get("urlSlug")


def _is_free_now(element: Dict[str, Any]) -> bool:
    promotions = element.get("promotions") or {}
    if not any(group.get("promotionalOffers") for group in promotions.get("promotionalOffers") or []):
        return False
    total = (element.get("price") or {}).get("totalPrice") or {}
    return total.get("discountPrice") == 0


def fetch_from_promotions_api(session: Optional[requests.Session] = None) -> List[str]:
    """Free games from the JSON feed the free games page itself is built from."""
    logging.info("Fetching promotions feed: %s", PROMOTIONS_URL)
    session = session or _create_session()
    resp = session.get(PROMOTIONS_URL, params={"locale": "en-US", "country": "US", "allowCountries": "US"}, timeout=20)
    resp.raise_for_status()
    elements = (((resp.json().get("data") or {}).get("Catalog") or {}).get("searchStore") or {}).get("elements") or []
    urls: List[str] = []
    for element in elements:
        if not _is_free_now(element):
            continue
        slug = _page_slug(element)
        if not slug:
            logging.warning("No page slug for free game %s", element.get("title"))
            continue
        url = PRODUCT_URL + slug.strip("/")
        if url not in urls:
            urls.append(url)
    return urls


async def list_free_items(page, settings: Settings) -> List[str]:
    try:
        urls = await fetch_from_page(page)
    except Exception as e:
        if not settings.discovery_fallback:
            raise
        logging.warning("Free games not found on page: %s", e)
        try:
            urls = await asyncio.get_running_loop().run_in_executor(None, fetch_from_promotions_api)
        except Exception as api_error:
            logging.error("Promotions feed fetch failed: %s", api_error)
            raise e
        if not urls:
            raise
    logging.info("Free games: %s", urls)
    return urls
