"""
Document Fetcher
-----------------
Discovers and downloads PDF documents for ingestion.

Discovery order:
  1. Scrape the archive listing page for links ending in `link_suffix`
     under `path_prefix` (capped at `max_documents`)
  2. If that yields nothing, or nothing downloads, use the backup list
  3. Add any PDFs placed in the documents directory by hand

Downloads are idempotent (existing files are reused) and atomic (bytes go
to a .part file that is renamed on success and deleted on failure).
Redirects are followed manually so the hop count can be capped.
"""
from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from archive_rag.config import SourceSettings
from archive_rag.errors import DownloadError
from archive_rag.schemas import DocumentLink, SourceDocument
from archive_rag.utils.retry import RetryPolicy

_HEADERS = {"User-Agent": "ArchiveRAG/1.0 (research ingestion)"}
_REDIRECT_CODES = {301, 302, 303, 307, 308}


class _TransportFailure(Exception):
    """Network-level failure worth retrying (HTTP status errors are not)."""


class DocumentFetcher:
    """
    Async document discovery + download.

    `transport` lets tests plug in an httpx.MockTransport; in production
    httpx uses its default network transport.
    """

    def __init__(
        self,
        settings: SourceSettings,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        # Only transport failures are retried; an HTTP error status is final
        self.retry_policy = replace(retry_policy or RetryPolicy(), retry_on=(_TransportFailure,))
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.timeout_s,
            headers=_HEADERS,
            follow_redirects=False,
            transport=self._transport,
        )

    # --- Discovery ------------------------------------------------------------

    async def list_documents(self) -> list[DocumentLink]:
        """Scrape the listing page.  Returns [] on any network or parse failure."""
        url = self.settings.listing_url
        logger.info(f"[Fetcher] Scanning listing page: {url}")
        try:
            html = (await self.fetch(url)).decode("utf-8", errors="replace")
        except DownloadError as exc:
            logger.warning(f"[Fetcher] Listing page unavailable: {exc.message}")
            return []

        links = self.parse_listing(html, base_url=url)
        logger.info(f"[Fetcher] Found {len(links)} document link(s) on listing page")
        return links

    def parse_listing(self, html: str, base_url: str) -> list[DocumentLink]:
        """Extract matching document links from listing-page HTML."""
        soup = BeautifulSoup(html, "html.parser")
        suffix = self.settings.link_suffix.lower()
        prefix = self.settings.path_prefix

        links: list[DocumentLink] = []
        seen_urls: set[str] = set()
        for anchor in soup.find_all("a", href=True):
            absolute = urljoin(base_url, anchor["href"].strip())
            path = unquote(urlparse(absolute).path)
            if not path.lower().endswith(suffix):
                continue
            if prefix and not path.startswith(prefix):
                continue
            if absolute in seen_urls:
                continue
            seen_urls.add(absolute)
            links.append(DocumentLink(name=Path(path).name, url=absolute))
            if len(links) >= self.settings.max_documents:
                break
        return links

    def backup_links(self) -> list[DocumentLink]:
        return [DocumentLink(name=b.name, url=b.url) for b in self.settings.backup_documents]

    # --- Download -------------------------------------------------------------

    async def fetch(self, url: str) -> bytes:
        """
        GET `url`, following up to `max_redirects` redirects.

        Raises DownloadError on a non-200 final status, too many redirects,
        or a transport failure that survives the retry policy.
        """
        try:
            return await self.retry_policy.acall(self._fetch_once, url)
        except _TransportFailure as exc:
            raise DownloadError(f"Failed to download {url}: {exc}", url=url) from exc

    async def _fetch_once(self, url: str) -> bytes:
        current = url
        async with self._client() as client:
            for _ in range(self.settings.max_redirects + 1):
                try:
                    response = await client.get(current)
                except httpx.HTTPError as exc:
                    raise _TransportFailure(str(exc)) from exc

                if response.status_code in _REDIRECT_CODES:
                    location = response.headers.get("location")
                    if not location:
                        raise DownloadError(
                            f"Redirect without Location header from {current}",
                            url=url,
                            status_code=response.status_code,
                        )
                    current = urljoin(current, location)
                    logger.debug(f"[Fetcher] Following redirect to: {current}")
                    continue

                if response.status_code != 200:
                    raise DownloadError(
                        f"Failed to download {url}, status code: {response.status_code}",
                        url=url,
                        status_code=response.status_code,
                    )
                return response.content

        raise DownloadError(
            f"Too many redirects (> {self.settings.max_redirects}) for {url}", url=url
        )

    async def download(self, link: DocumentLink, dest_dir: str | Path) -> SourceDocument:
        """Download one document unless it already exists locally."""
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        target = dest_dir / link.name
        if not link.name or target.resolve().parent != dest_dir.resolve():
            raise DownloadError(
                f"Refusing to write {link.name!r} outside {dest_dir}", url=link.url
            )

        if target.exists():
            logger.info(f"[Fetcher] {link.name} already exists, skipping download")
            return SourceDocument(name=link.name, path=target, url=link.url)

        logger.info(f"[Fetcher] Downloading {link.url} -> {target}")
        data = await self.fetch(link.url)

        partial = target.with_name(target.name + ".part")
        try:
            partial.write_bytes(data)
            os.replace(partial, target)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Could not write {target}: {exc}", url=link.url) from exc

        logger.info(f"[Fetcher] Downloaded {link.name} ({len(data):,} bytes)")
        return SourceDocument(name=link.name, path=target, url=link.url)

    async def _download_all(self, links: list[DocumentLink], dest_dir: Path) -> list[SourceDocument]:
        documents: list[SourceDocument] = []
        for link in links:
            try:
                documents.append(await self.download(link, dest_dir))
            except DownloadError as exc:
                logger.error(f"[Fetcher] Error downloading {link.name}: {exc.message}")
        return documents

    # --- Orchestration --------------------------------------------------------

    async def collect(self, dest_dir: Optional[str | Path] = None) -> list[SourceDocument]:
        """Discover, download and return every document available for ingestion."""
        dest_dir = Path(dest_dir or self.settings.documents_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)

        documents: list[SourceDocument] = []
        if self.settings.scrape_listing:
            scraped = await self.list_documents()
            documents = await self._download_all(scraped, dest_dir)

        if not documents:
            logger.info("[Fetcher] No documents from listing page - using backup list")
            documents = await self._download_all(self.backup_links(), dest_dir)

        known = {d.name for d in documents}
        for path in sorted(dest_dir.iterdir()):
            if (
                path.is_file()
                and path.suffix.lower() == self.settings.link_suffix.lower()
                and path.name not in known
            ):
                documents.append(SourceDocument(name=path.name, path=path))
                logger.debug(f"[Fetcher] Including local file {path.name}")

        documents.sort(key=lambda d: d.name)
        logger.info(f"[Fetcher] {len(documents)} document(s) ready in {dest_dir}")
        return documents
