"""Storefront product scraper package.

Extracts product records from e-commerce search result pages that push
back against automated access, and runs extraction jobs one at a time.

Key modules:
    extractor       -- ExtractionContext, strategy lists, FieldExtractor
    base            -- AcquisitionBackend interface and the content-validity gate
    backends        -- RelayBackend (fetch through an unblocking relay)
    navigator       -- BrowserBackend, the Playwright acquisition state machine
    backoff         -- BackoffStrategy and the shared RetryPolicy
    session         -- ScrapeSession: search URL -> product records
    orchestrator    -- JobOrchestrator: single-flight jobs with progress
    factory         -- SessionFactory choosing the backend from configuration
    storage         -- StorageBase, JsonlStorage and CsvStorage sinks
    metrics         -- MetricsCollector for per-URL outcomes
    models          -- ProductRecord, Price, Job, ScrapeResult, MetricsSnapshot
    config          -- ScraperConfig loaded from the environment
    errors          -- exception hierarchy
"""
