from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from typing import List
from urllib.parse import urlsplit

from product_scraper.config import BACKEND_BROWSER, BACKEND_RELAY, ScraperConfig
from product_scraper.factory import SessionFactory
from product_scraper.metrics import MetricsCollector
from product_scraper.models import JobStatus
from product_scraper.orchestrator import JobOrchestrator
from product_scraper.storage import CsvStorage, JsonlStorage, StorageBase

DEFAULT_URL_LIST_PATH = "urls.txt"


def _site_host(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _load_urls(path: str, base_url: str, limit: int = 100) -> List[str]:
    """Read search URLs (one per line), keeping only http(s) links to the configured site."""
    site = _site_host(base_url)
    urls: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            url = line.strip()
            if not url or url.startswith("#"):
                continue
            if not url.startswith("http") or _site_host(url) != site:
                continue
            urls.append(url)
            if len(urls) >= limit:
                break
    if not urls:
        raise ValueError(f"No search URLs found in {path}")
    return urls


def _build_sink(kind: str, directory: str) -> StorageBase:
    if kind == "csv":
        return CsvStorage(directory)
    return JsonlStorage(directory)


def run_job(config: ScraperConfig, urls: List[str], sink_kind: str, affiliate_tag: str = "") -> bool:
    metrics = MetricsCollector()
    factory = SessionFactory(config, metrics=metrics)
    sink = _build_sink(sink_kind, config.output_dir)
    orchestrator = JobOrchestrator(factory.create_session, sink, default_target=config.output_sheet)

    job_id = orchestrator.submit_run(urls, affiliate_tag=affiliate_tag or None)
    job = orchestrator.wait(job_id)
    orchestrator.shutdown(wait=True)
    sink.close()

    for entry in metrics.export_json():
        print(
            f"url={entry['url']} success={entry['success']} records={entry['records']} "
            f"latency_ms={entry['latency_ms']} error={entry['error_type']}"
        )

    snap = metrics.snapshot(window_secs=24 * 3600)
    print(
        f"\nDONE: job={job.id} status={job.status.value} products={job.product_count} "
        f"ok={snap.success_count} blocked={snap.blocked_count} total={snap.total_requests}"
    )
    if job.error:
        print(f"error: {job.error}")
    return job.status is JobStatus.COMPLETED


def main() -> None:
    parser = argparse.ArgumentParser(description="Extract product records from search result pages")
    parser.add_argument("urls", nargs="*", help="Search URLs or bare search terms")
    parser.add_argument("--urls-file", default=None, help=f"File with one search URL per line (e.g. {DEFAULT_URL_LIST_PATH})")
    parser.add_argument("--limit", type=int, default=100, help="Max number of URLs to load from the file")

    parser.add_argument("--backend", choices=[BACKEND_RELAY, BACKEND_BROWSER], default=None, help="Acquisition backend")
    parser.add_argument("--sink", choices=["jsonl", "csv"], default="jsonl", help="Output format")
    parser.add_argument("--output-dir", default=None, help="Directory for output files")
    parser.add_argument("--target", default=None, help="Output target name (sheet/file name)")

    parser.add_argument("--product-limit", type=int, default=None, help="Max products per search page (0 = all)")
    parser.add_argument("--detail-limit", type=int, default=None, help="Enrich the top N products from their pages")
    parser.add_argument("--affiliate-tag", default="", help="Override the affiliate tag for this run")
    parser.add_argument("--headful", action="store_true", help="Show the browser window (browser backend)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = ScraperConfig.from_env()
    overrides = {}
    if args.backend:
        overrides["backend"] = args.backend
    if args.output_dir:
        overrides["output_dir"] = args.output_dir
    if args.target:
        overrides["output_sheet"] = args.target
    if args.product_limit is not None:
        overrides["product_limit"] = args.product_limit
    if args.detail_limit is not None:
        overrides["detail_limit"] = args.detail_limit
    if args.headful:
        overrides["headless"] = False
    config = replace(config, **overrides)

    urls = list(args.urls)
    if args.urls_file:
        urls.extend(_load_urls(args.urls_file, config.base_url, limit=args.limit))
    if not urls:
        parser.error("Nothing to do. Pass search URLs or --urls-file.")

    ok = run_job(config, urls, args.sink, affiliate_tag=args.affiliate_tag)
    raise SystemExit(0 if ok else 1)


if __name__ == "__main__":
    main()
